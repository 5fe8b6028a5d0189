"""User wallet model."""

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arena_admin.models.base import Base, Money, TimestampMixin, UUIDMixin

if TYPE_CHECKING:
    from arena_admin.models.wallet import WalletTransaction


class User(Base, UUIDMixin, TimestampMixin):
    """Platform user with a three-part wallet.

    wallet_balance is a denormalized total of the three sub-balances.
    Balance columns are only written by the ledger service.
    """

    __tablename__ = "users"

    # Profile
    display_name: Mapped[str] = mapped_column(String(100), default="", nullable=False)
    email: Mapped[str] = mapped_column(String(255), default="", nullable=False, index=True)
    fcm_token: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
        comment="Device token for push notifications",
    )

    # Wallet
    wallet_balance: Mapped[Decimal] = mapped_column(
        Money,
        default=Decimal("0"),
        nullable=False,
        comment="Denormalized sum of deposited + winning + bonus",
    )
    deposited_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    winning_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    bonus_balance: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    total_winnings: Mapped[Decimal] = mapped_column(
        Money,
        default=Decimal("0"),
        nullable=False,
        comment="Lifetime winnings credited, never decremented",
    )

    # Optimistic concurrency token for wallet updates
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    transactions: Mapped[list["WalletTransaction"]] = relationship(
        "WalletTransaction",
        back_populates="user",
        order_by="desc(WalletTransaction.created_at)",
    )

    def __repr__(self) -> str:
        return f"<User {self.id[:8]}... wallet={self.wallet_balance}>"
