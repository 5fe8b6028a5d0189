"""Database models."""

from arena_admin.models.base import Base, TimestampMixin, UUIDMixin
from arena_admin.models.lottery import Lottery, LotteryParticipant, LotteryStatus
from arena_admin.models.payment import (
    DepositRequest,
    DepositStatus,
    WithdrawalRequest,
    WithdrawalStatus,
)
from arena_admin.models.tournament import (
    MatchType,
    Tournament,
    TournamentParticipant,
    TournamentStatus,
)
from arena_admin.models.user import User
from arena_admin.models.wallet import (
    SubBalance,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)

__all__ = [
    # Base
    "Base",
    "TimestampMixin",
    "UUIDMixin",
    # User wallet
    "User",
    "SubBalance",
    "WalletTransaction",
    "TransactionType",
    "TransactionStatus",
    # Deposits / withdrawals
    "DepositRequest",
    "DepositStatus",
    "WithdrawalRequest",
    "WithdrawalStatus",
    # Tournaments
    "Tournament",
    "TournamentParticipant",
    "TournamentStatus",
    "MatchType",
    # Lottery
    "Lottery",
    "LotteryParticipant",
    "LotteryStatus",
]
