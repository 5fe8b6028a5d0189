"""Wallet transaction log.

- SubBalance: the three wallet partitions
- TransactionType: every ledger entry kind on the platform
- WalletTransaction: append-only transaction history
"""

from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from sqlalchemy import Enum as SQLEnum, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arena_admin.models.base import Base, Money, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from arena_admin.models.user import User


class SubBalance(str, Enum):
    """Wallet partitions; each maps to a balance column on User."""

    DEPOSITED = "deposited"
    WINNING = "winning"
    BONUS = "bonus"

    @property
    def column(self) -> str:
        return f"{self.value}_balance"

    @property
    def label(self) -> str:
        return {"deposited": "Deposit", "winning": "Winning", "bonus": "Bonus"}[self.value]


class TransactionType(str, Enum):
    """Transaction types for wallet operations."""

    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    ENTRY_FEE = "entry_fee"
    WINNING = "winning"
    WINNING_ADJUSTMENT = "winning_adjustment"
    BONUS = "bonus"
    MANUAL_CREDIT = "manual_credit"
    MANUAL_DEBIT = "manual_debit"
    REFUND = "refund"


class TransactionStatus(str, Enum):
    """Pending transactions are settled exactly once."""

    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class WalletTransaction(Base, UUIDMixin, TimestampMixin):
    """Wallet transaction record.

    Immutable once settled: only a pending record may move to completed
    or rejected, and only once.
    """

    __tablename__ = "wallet_transactions"

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    user_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    tx_type: Mapped[TransactionType] = mapped_column(
        SQLEnum(TransactionType),
        nullable=False,
        index=True,
    )
    status: Mapped[TransactionStatus] = mapped_column(
        SQLEnum(TransactionStatus),
        default=TransactionStatus.COMPLETED,
        nullable=False,
        index=True,
    )
    amount: Mapped[Decimal] = mapped_column(
        Money,
        nullable=False,
        comment="Always non-negative; direction follows tx_type",
    )
    description: Mapped[str] = mapped_column(String(500), default="", nullable=False)

    # Link to the originating request / tournament / lottery
    reference_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)

    # Ledger bookkeeping
    wallet_type: Mapped[SubBalance | None] = mapped_column(SQLEnum(SubBalance), nullable=True)
    balance_after: Mapped[Decimal | None] = mapped_column(
        Money,
        nullable=True,
        comment="Wallet total right after this entry was applied",
    )
    shortfall: Mapped[Decimal | None] = mapped_column(
        Money,
        nullable=True,
        comment="Part of a debit that could not be taken because the balance floored at zero",
    )

    # Tournament winnings
    kills: Mapped[int | None] = mapped_column(Integer, nullable=True)
    previous_earnings: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    new_earnings: Mapped[Decimal | None] = mapped_column(Money, nullable=True)

    # Manual adjustments
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(64), nullable=True)

    integrity_hash: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="SHA-256 hash for tamper detection",
    )

    user: Mapped["User"] = relationship("User", back_populates="transactions")

    def __repr__(self) -> str:
        return (
            f"<WalletTransaction {self.id[:8] if self.id else '?'}... "
            f"type={self.tx_type.value} amount={self.amount}>"
        )
