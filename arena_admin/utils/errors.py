"""Settlement error taxonomy.

Every error carries a machine-readable code and a human-readable message
so the admin UI can show a specific reason for single-entity failures.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from arena_admin.services.summary import SettlementSummary


class ErrorCode(str, Enum):
    """Standard error codes for settlement errors."""

    NOT_FOUND = "NOT_FOUND"
    INVALID_STATE = "INVALID_STATE"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    CONCURRENT_UPDATE = "CONCURRENT_UPDATE"
    PARTIAL_FAILURE = "PARTIAL_FAILURE"


class SettlementError(Exception):
    """Base exception for settlement errors.

    Attributes:
        code: Error code for programmatic handling
        message: User-friendly error message
        details: Additional error details
    """

    def __init__(
        self,
        code: ErrorCode | str,
        message: str,
        details: dict[str, Any] | None = None,
    ):
        self.code = code if isinstance(code, str) else code.value
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "errorCode": self.code,
            "errorMessage": self.message,
            "details": self.details,
        }


class NotFoundError(SettlementError):
    """Raised when a referenced user, request, tournament or lottery is missing."""

    def __init__(self, entity: str, entity_id: str):
        super().__init__(
            code=ErrorCode.NOT_FOUND,
            message=f"{entity} not found: {entity_id}",
            details={"entity": entity, "id": entity_id},
        )


class InvalidStateError(SettlementError):
    """Raised when an action targets an entity that is not in the required state."""

    def __init__(
        self,
        message: str,
        current_state: str | None = None,
    ):
        super().__init__(
            code=ErrorCode.INVALID_STATE,
            message=message,
            details={"currentState": current_state} if current_state else {},
        )


class ValidationError(SettlementError):
    """Raised for non-positive amounts, empty reasons or malformed participant data."""

    def __init__(self, message: str, field: str | None = None):
        super().__init__(
            code=ErrorCode.VALIDATION_FAILED,
            message=message,
            details={"field": field} if field else {},
        )


class ConcurrentUpdateError(SettlementError):
    """Raised when a wallet keeps changing underneath an optimistic update."""

    def __init__(self, user_id: str, attempts: int):
        super().__init__(
            code=ErrorCode.CONCURRENT_UPDATE,
            message=f"Wallet {user_id} changed concurrently, gave up after {attempts} attempts",
            details={"userId": user_id, "attempts": attempts},
        )


class PartialFailure(SettlementError):
    """Raised when a bulk settlement finished with failed participants.

    Succeeded participants stay applied; re-running the operation retries
    only the failed ones.
    """

    def __init__(self, summary: SettlementSummary):
        self.summary = summary
        super().__init__(
            code=ErrorCode.PARTIAL_FAILURE,
            message=(
                f"{summary.kind} for {summary.tournament_id} finished with "
                f"{summary.failed} failed of {summary.failed + summary.successful}"
            ),
            details=summary.to_dict(),
        )
