"""Push notifications through Firebase Cloud Messaging (HTTP v1 API).

Delivery is best effort: settlement code hands over a title, body and
device tokens and never looks at the outcome beyond logging it.

Usage:
    service = PushNotificationService.from_settings(get_settings())
    result = await service.send_to_tokens(
        ["token-a", "token-b"],
        title="You won!",
        body="1,000 credited to your winnings",
    )
    # result.success == 2, result.failed == 0
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx
import structlog
from jose import jwt

from arena_admin.config import Settings

logger = structlog.get_logger(__name__)

TokenFetcher = Callable[[], Awaitable[tuple[str, int]]]


class NotificationError(Exception):
    """FCM authentication or transport failure."""


class FcmAccessTokenCache:
    """Caches the OAuth2 access token until shortly before it expires.

    Args:
        fetch_token: Coroutine returning (access_token, expires_in_seconds)
        ttl_margin_seconds: Refresh this many seconds before expiry
        clock: Monotonic clock, injectable for tests
    """

    def __init__(
        self,
        fetch_token: TokenFetcher,
        ttl_margin_seconds: int = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._fetch_token = fetch_token
        self._ttl_margin = ttl_margin_seconds
        self._clock = clock
        self._token: Optional[str] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()

    async def get_token(self) -> str:
        async with self._lock:
            if self._token and self._clock() < self._expires_at:
                return self._token

            token, expires_in = await self._fetch_token()
            self._token = token
            self._expires_at = self._clock() + max(expires_in - self._ttl_margin, 0)
            logger.debug("fcm_access_token_refreshed", expires_in=expires_in)
            return token

    def invalidate(self) -> None:
        self._token = None
        self._expires_at = 0.0


class ServiceAccountTokenFetcher:
    """Exchanges a signed service-account assertion for an access token."""

    TOKEN_URL = "https://oauth2.googleapis.com/token"
    SCOPE = "https://www.googleapis.com/auth/firebase.messaging"
    ASSERTION_LIFETIME = 3600

    def __init__(self, client_email: str, private_key: str, http_client: httpx.AsyncClient):
        self.client_email = client_email
        self.private_key = private_key
        self._client = http_client

    def build_assertion(self, now: Optional[int] = None) -> str:
        issued_at = int(now if now is not None else time.time())
        claims = {
            "iss": self.client_email,
            "scope": self.SCOPE,
            "aud": self.TOKEN_URL,
            "iat": issued_at,
            "exp": issued_at + self.ASSERTION_LIFETIME,
        }
        return jwt.encode(claims, self.private_key, algorithm="RS256")

    async def __call__(self) -> tuple[str, int]:
        response = await self._client.post(
            self.TOKEN_URL,
            data={
                "grant_type": "urn:ietf:params:oauth:grant-type:jwt-bearer",
                "assertion": self.build_assertion(),
            },
        )
        payload = response.json()
        if response.status_code != 200 or "access_token" not in payload:
            raise NotificationError(
                payload.get("error_description") or "Failed to get access token"
            )
        return payload["access_token"], int(payload.get("expires_in", self.ASSERTION_LIFETIME))


@dataclass
class NotificationResult:
    """Per-batch delivery tally."""

    success: int = 0
    failed: int = 0
    errors: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"success": self.success, "failed": self.failed, "errors": self.errors}


class PushNotificationService:
    """Sends FCM notifications one device token at a time."""

    SEND_URL = "https://fcm.googleapis.com/v1/projects/{project_id}/messages:send"

    def __init__(
        self,
        project_id: str,
        token_cache: Optional[FcmAccessTokenCache],
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        self.project_id = project_id
        self.token_cache = token_cache
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> "PushNotificationService":
        client = httpx.AsyncClient(timeout=settings.fcm_timeout_seconds)
        token_cache = None
        if settings.fcm_configured:
            token_cache = FcmAccessTokenCache(
                ServiceAccountTokenFetcher(
                    settings.fcm_client_email,
                    settings.fcm_private_key,
                    client,
                ),
                ttl_margin_seconds=settings.fcm_token_ttl_margin_seconds,
            )
        return cls(settings.fcm_project_id, token_cache, http_client=client)

    @property
    def is_configured(self) -> bool:
        return bool(self.project_id and self.token_cache)

    async def close(self) -> None:
        await self._client.aclose()

    @staticmethod
    def build_message(token: str, title: str, body: str, data: Optional[dict] = None) -> dict:
        return {
            "message": {
                "token": token,
                "notification": {"title": title, "body": body},
                # FCM data values must be strings
                "data": {k: str(v) for k, v in (data or {}).items()},
                "android": {
                    "priority": "high",
                    "notification": {"sound": "default", "channel_id": "default"},
                },
                "apns": {"payload": {"aps": {"sound": "default"}}},
            }
        }

    async def send(
        self,
        token: str,
        title: str,
        body: str,
        data: Optional[dict] = None,
    ) -> tuple[bool, Optional[str]]:
        """Send to a single device token.

        Returns:
            (success, error message)
        """
        if not self.is_configured:
            return False, "FCM not configured"

        try:
            access_token = await self.token_cache.get_token()
            response = await self._client.post(
                self.SEND_URL.format(project_id=self.project_id),
                json=self.build_message(token, title, body, data),
                headers={"Authorization": f"Bearer {access_token}"},
            )
        except (httpx.HTTPError, NotificationError) as e:
            return False, str(e)

        if response.status_code == 200:
            return True, None
        if response.status_code == 401:
            self.token_cache.invalidate()
        try:
            message = response.json().get("error", {}).get("message")
        except ValueError:
            message = None
        return False, message or f"HTTP {response.status_code}"

    async def send_to_tokens(
        self,
        tokens: Iterable[str],
        title: str,
        body: str,
        data: Optional[dict] = None,
    ) -> NotificationResult:
        result = NotificationResult()
        for token in tokens:
            ok, error = await self.send(token, title, body, data)
            if ok:
                result.success += 1
            else:
                result.failed += 1
                result.errors.append({"token": token[:20] + "...", "error": error})

        logger.info(
            "push_notifications_sent",
            title=title,
            success=result.success,
            failed=result.failed,
        )
        return result


async def notify_quietly(
    notifier: Optional[PushNotificationService],
    tokens: Iterable[Optional[str]],
    title: str,
    body: str,
    data: Optional[dict[str, Any]] = None,
) -> Optional[NotificationResult]:
    """Fire-and-forget wrapper used after a settlement has committed."""
    targets = [t for t in tokens if t]
    if notifier is None or not targets:
        return None
    try:
        return await notifier.send_to_tokens(targets, title, body, data)
    except Exception as e:
        logger.error("push_notification_failed", title=title, error=str(e))
        return None
