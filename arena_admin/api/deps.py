"""Shared FastAPI dependencies: admin auth and service construction."""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from arena_admin.config import get_settings
from arena_admin.database import get_db, get_session_factory
from arena_admin.logging_config import bind_admin
from arena_admin.services import (
    FundAdjustmentService,
    LedgerService,
    LotterySettlement,
    MatchCancellation,
    PaymentSettlement,
    TournamentSettlement,
)
from arena_admin.services.notification_service import PushNotificationService
from arena_admin.utils.jwt import AdminPrincipal, verify_admin_token
from arena_admin.utils.permissions import Permission, has_permission

security = HTTPBearer()


async def get_current_admin(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AdminPrincipal:
    """Get the authenticated admin from the bearer token"""
    principal = verify_admin_token(credentials.credentials)
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    bind_admin(principal.admin_id)
    return principal


def require_permission(permission: Permission):
    """Dependency to require access to a console page"""

    async def permission_checker(
        admin: AdminPrincipal = Depends(get_current_admin),
    ) -> AdminPrincipal:
        if not has_permission(admin.role, admin.permissions, permission):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Insufficient permissions. Required page: {permission.value}",
            )
        return admin

    return permission_checker


def get_notifier(request: Request) -> Optional[PushNotificationService]:
    return getattr(request.app.state, "notifier", None)


def get_payment_settlement(
    notifier: Optional[PushNotificationService] = Depends(get_notifier),
) -> PaymentSettlement:
    return PaymentSettlement(
        get_session_factory(), notifier, get_settings().ledger_max_cas_attempts
    )


def get_lottery_settlement(
    notifier: Optional[PushNotificationService] = Depends(get_notifier),
) -> LotterySettlement:
    return LotterySettlement(
        get_session_factory(), notifier, get_settings().ledger_max_cas_attempts
    )


def get_tournament_settlement(
    notifier: Optional[PushNotificationService] = Depends(get_notifier),
) -> TournamentSettlement:
    return TournamentSettlement(
        get_session_factory(), notifier, get_settings().ledger_max_cas_attempts
    )


def get_match_cancellation(
    notifier: Optional[PushNotificationService] = Depends(get_notifier),
) -> MatchCancellation:
    return MatchCancellation(
        get_session_factory(), notifier, get_settings().ledger_max_cas_attempts
    )


def get_fund_adjustment() -> FundAdjustmentService:
    return FundAdjustmentService(get_session_factory(), get_settings().ledger_max_cas_attempts)


def get_ledger(db: AsyncSession = Depends(get_db)) -> LedgerService:
    return LedgerService(db, get_settings().ledger_max_cas_attempts)
