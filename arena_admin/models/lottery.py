"""Lottery models."""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Enum as SQLEnum, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arena_admin.models.base import Base, Money, TimestampMixin, UUIDMixin


class LotteryStatus(str, Enum):
    UPCOMING = "upcoming"
    ONGOING = "ongoing"
    FINISHED = "finished"


class Lottery(Base, UUIDMixin, TimestampMixin):
    """Lottery draw with a single prize."""

    __tablename__ = "lotteries"

    title: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[LotteryStatus] = mapped_column(
        SQLEnum(LotteryStatus),
        default=LotteryStatus.UPCOMING,
        nullable=False,
        index=True,
    )
    prize_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    entry_fee: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)

    # Set once, never cleared
    winner_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    winner_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    participants: Mapped[list["LotteryParticipant"]] = relationship(
        "LotteryParticipant",
        back_populates="lottery",
        cascade="all, delete-orphan",
    )

    def __repr__(self) -> str:
        return f"<Lottery {self.title} {self.status.value}>"


class LotteryParticipant(Base, UUIDMixin, TimestampMixin):
    __tablename__ = "lottery_participants"
    __table_args__ = (UniqueConstraint("lottery_id", "user_id"),)

    lottery_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("lotteries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(String(36), ForeignKey("users.id"), nullable=False)
    user_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    lottery: Mapped["Lottery"] = relationship("Lottery", back_populates="participants")
