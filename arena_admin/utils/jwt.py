from datetime import datetime, timedelta, timezone
from typing import Any

from jose import JWTError, jwt
from pydantic import BaseModel, ValidationError

from arena_admin.config import get_settings
from arena_admin.utils.permissions import AdminRole


class AdminPrincipal(BaseModel):
    admin_id: str
    role: AdminRole
    permissions: list[str] = []


def create_access_token(
    admin_id: str,
    role: str,
    permissions: list[str] | None = None,
    expires_delta: timedelta | None = None,
) -> str:
    """Create an admin JWT (used by the login service and tests)"""
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (expires_delta or timedelta(hours=1))

    to_encode: dict[str, Any] = {
        "sub": admin_id,
        "role": role,
        "permissions": permissions or [],
        "exp": expire,
    }
    return jwt.encode(to_encode, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def verify_admin_token(token: str) -> AdminPrincipal | None:
    """Decode and validate an admin JWT; None when invalid or expired"""
    settings = get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
        return AdminPrincipal(
            admin_id=payload["sub"],
            role=payload["role"],
            permissions=payload.get("permissions") or [],
        )
    except (JWTError, KeyError, ValidationError):
        return None
