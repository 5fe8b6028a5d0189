"""Settlement services."""

from arena_admin.services.fund_adjustment import FundAdjustmentService
from arena_admin.services.ledger import LedgerEntry, LedgerService
from arena_admin.services.lottery_settlement import LotterySettlement
from arena_admin.services.match_cancellation import MatchCancellation
from arena_admin.services.payment_settlement import PaymentSettlement
from arena_admin.services.summary import PayoutResult, SettlementSummary
from arena_admin.services.tournament_settlement import (
    ParticipantResult,
    TournamentSettlement,
    Winners,
    compute_earnings,
)

__all__ = [
    "FundAdjustmentService",
    "LedgerEntry",
    "LedgerService",
    "LotterySettlement",
    "MatchCancellation",
    "ParticipantResult",
    "PaymentSettlement",
    "PayoutResult",
    "SettlementSummary",
    "TournamentSettlement",
    "Winners",
    "compute_earnings",
]
