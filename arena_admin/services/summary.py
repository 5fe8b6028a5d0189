"""Result types for bulk settlements."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional
from uuid import uuid4

from arena_admin.utils.errors import PartialFailure


@dataclass
class PayoutResult:
    """Outcome for one participant of a bulk settlement."""

    participant_id: str = ""
    user_id: str = ""
    user_name: str = ""
    previous_earnings: Decimal = Decimal("0")
    new_earnings: Decimal = Decimal("0")
    delta: Decimal = Decimal("0")
    applied_delta: Decimal = Decimal("0")
    shortfall: Decimal = Decimal("0")
    transaction_id: Optional[str] = None
    success: bool = True
    error_message: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "participant_id": self.participant_id,
            "user_id": self.user_id,
            "user_name": self.user_name,
            "previous_earnings": str(self.previous_earnings),
            "new_earnings": str(self.new_earnings),
            "delta": str(self.delta),
            "applied_delta": str(self.applied_delta),
            "shortfall": str(self.shortfall),
            "transaction_id": self.transaction_id,
            "success": self.success,
            "error_message": self.error_message,
        }


@dataclass
class SettlementSummary:
    """Aggregate tally reported back to the admin UI."""

    settlement_id: str = field(default_factory=lambda: str(uuid4()))
    kind: str = ""
    tournament_id: str = ""
    tournament_name: str = ""
    is_correction: bool = False
    total_credited: Decimal = Decimal("0")
    total_debited: Decimal = Decimal("0")
    successful: int = 0
    failed: int = 0
    payouts: List[PayoutResult] = field(default_factory=list)
    settled_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def record_success(self, result: PayoutResult) -> None:
        result.success = True
        self.successful += 1
        if result.applied_delta > 0:
            self.total_credited += result.applied_delta
        elif result.applied_delta < 0:
            self.total_debited += -result.applied_delta
        self.payouts.append(result)

    def record_failure(self, result: PayoutResult, error: str) -> None:
        result.success = False
        result.error_message = error
        self.failed += 1
        self.payouts.append(result)

    def raise_for_failures(self) -> None:
        if self.failed:
            raise PartialFailure(self)

    def to_dict(self) -> dict:
        return {
            "settlement_id": self.settlement_id,
            "kind": self.kind,
            "tournament_id": self.tournament_id,
            "tournament_name": self.tournament_name,
            "is_correction": self.is_correction,
            "total_credited": str(self.total_credited),
            "total_debited": str(self.total_debited),
            "successful": self.successful,
            "failed": self.failed,
            "payouts": [p.to_dict() for p in self.payouts],
            "settled_at": self.settled_at.isoformat(),
        }
