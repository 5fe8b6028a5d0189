"""Arena admin settlement API.

Run with:
    uvicorn arena_admin.main:app
"""

import uuid
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import ORJSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from arena_admin import __version__
from arena_admin.api import lotteries, payments, tournaments, users
from arena_admin.config import get_settings
from arena_admin.database import close_db
from arena_admin.logging_config import bind_request, configure_logging
from arena_admin.services.notification_service import PushNotificationService
from arena_admin.utils.errors import ErrorCode, PartialFailure, SettlementError

settings = get_settings()
logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    configure_logging(settings)
    app.state.notifier = PushNotificationService.from_settings(settings)
    logger.info(
        "app_started",
        app_env=settings.app_env,
        fcm_configured=app.state.notifier.is_configured,
    )

    yield

    await app.state.notifier.close()
    await close_db()
    logger.info("app_stopped")


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    lifespan=lifespan,
    default_response_class=ORJSONResponse,
)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """Bind X-Request-ID into the log context and echo it back."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        started = datetime.now(timezone.utc)

        bind_request(request_id)
        try:
            response = await call_next(request)
        finally:
            duration = (datetime.now(timezone.utc) - started).total_seconds()

        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status=response.status_code,
            duration=round(duration, 3),
        )
        return response


app.add_middleware(RequestIDMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origin_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["Authorization", "Content-Type", "X-Request-ID"],
    expose_headers=["X-Request-ID"],
)


# =============================================================================
# Error Handlers
# =============================================================================

STATUS_BY_CODE = {
    ErrorCode.NOT_FOUND.value: status.HTTP_404_NOT_FOUND,
    ErrorCode.INVALID_STATE.value: status.HTTP_409_CONFLICT,
    ErrorCode.CONCURRENT_UPDATE.value: status.HTTP_409_CONFLICT,
    ErrorCode.VALIDATION_FAILED.value: status.HTTP_400_BAD_REQUEST,
}


def get_request_id(request: Request) -> str | None:
    return getattr(request.state, "request_id", None)


def create_error_response(
    code: str,
    message: str,
    details: dict[str, Any] | None = None,
    trace_id: str | None = None,
) -> dict[str, Any]:
    """Create standardized error response."""
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details or {},
        },
        "traceId": trace_id,
    }


@app.exception_handler(PartialFailure)
async def partial_failure_handler(request: Request, exc: PartialFailure) -> ORJSONResponse:
    """Bulk settlement with failed participants: report what went through."""
    logger.warning(
        "settlement_partial_failure",
        kind=exc.summary.kind,
        tournament_id=exc.summary.tournament_id,
        failed=exc.summary.failed,
    )
    return ORJSONResponse(
        status_code=status.HTTP_207_MULTI_STATUS,
        content=exc.summary.to_dict(),
    )


@app.exception_handler(SettlementError)
async def settlement_error_handler(request: Request, exc: SettlementError) -> ORJSONResponse:
    """Map settlement errors onto HTTP status codes."""
    status_code = STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST)
    logger.warning("settlement_error", code=exc.code, message=exc.message)
    return ORJSONResponse(
        status_code=status_code,
        content=create_error_response(
            code=exc.code,
            message=exc.message,
            details=exc.details,
            trace_id=get_request_id(request),
        ),
    )


# =============================================================================
# Routes
# =============================================================================


@app.get("/health")
async def health_check():
    return {"status": "healthy", "version": __version__}


app.include_router(payments.deposits_router, prefix="/api/deposits", tags=["Deposits"])
app.include_router(payments.withdrawals_router, prefix="/api/withdrawals", tags=["Withdrawals"])
app.include_router(lotteries.router, prefix="/api/lotteries", tags=["Lotteries"])
app.include_router(tournaments.router, prefix="/api/tournaments", tags=["Tournaments"])
app.include_router(users.router, prefix="/api/users", tags=["Users"])
