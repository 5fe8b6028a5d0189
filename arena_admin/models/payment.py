"""Deposit and withdrawal requests filed by users.

Requests are created by the user-facing app together with a pending
wallet transaction; the admin console only settles them.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import DateTime, Enum as SQLEnum, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from arena_admin.models.base import Base, Money, TimestampMixin, UUIDMixin


class DepositStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class WithdrawalStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REJECTED = "rejected"


class _SettledRequestMixin:
    """Fields shared by both request kinds."""

    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    user_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    amount: Mapped[Decimal] = mapped_column(Money, nullable=False)

    # Pending transaction created alongside the request
    transaction_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("wallet_transactions.id", ondelete="SET NULL"),
        nullable=True,
    )

    processed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    processed_by: Mapped[str | None] = mapped_column(String(64), nullable=True)
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)


class DepositRequest(Base, UUIDMixin, TimestampMixin, _SettledRequestMixin):
    """User deposit awaiting manual verification (UPI / bank transfer)."""

    __tablename__ = "deposit_requests"

    status: Mapped[DepositStatus] = mapped_column(
        SQLEnum(DepositStatus),
        default=DepositStatus.PENDING,
        nullable=False,
        index=True,
    )
    utr: Mapped[str | None] = mapped_column(
        String(64),
        nullable=True,
        comment="Payment reference number supplied by the user",
    )

    def __repr__(self) -> str:
        return f"<DepositRequest {self.id[:8]}... {self.status.value} amount={self.amount}>"


class WithdrawalRequest(Base, UUIDMixin, TimestampMixin, _SettledRequestMixin):
    """User withdrawal; the amount was debited from winnings when filed."""

    __tablename__ = "withdrawal_requests"

    status: Mapped[WithdrawalStatus] = mapped_column(
        SQLEnum(WithdrawalStatus),
        default=WithdrawalStatus.PENDING,
        nullable=False,
        index=True,
    )
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_details: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return f"<WithdrawalRequest {self.id[:8]}... {self.status.value} amount={self.amount}>"
