"""Tournament and participant models."""

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import JSON, DateTime, Enum as SQLEnum, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from arena_admin.models.base import Base, Money, TimestampMixin, UUIDMixin


class TournamentStatus(str, Enum):
    UPCOMING = "upcoming"
    LIVE = "live"
    FINISHED = "finished"
    CANCELLED = "cancelled"


class MatchType(str, Enum):
    SOLO = "solo"
    DUO = "duo"
    SQUAD = "squad"

    @property
    def team_size(self) -> int:
        return {"solo": 1, "duo": 2, "squad": 4}[self.value]

    @property
    def is_team_mode(self) -> bool:
        return self is not MatchType.SOLO


class Tournament(Base, UUIDMixin, TimestampMixin):
    """Tournament with entry fee, kill prize and top-3 placement prizes."""

    __tablename__ = "tournaments"

    name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[TournamentStatus] = mapped_column(
        SQLEnum(TournamentStatus),
        default=TournamentStatus.UPCOMING,
        nullable=False,
        index=True,
    )
    match_type: Mapped[MatchType] = mapped_column(
        SQLEnum(MatchType),
        default=MatchType.SOLO,
        nullable=False,
    )

    entry_fee: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    prize_pool: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    per_kill_prize: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    prize1: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    prize2: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    prize3: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)

    # Winner snapshot, overwritten on correction
    results: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    # Set on first announcement only
    result_announced_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    participants: Mapped[list["TournamentParticipant"]] = relationship(
        "TournamentParticipant",
        back_populates="tournament",
        order_by="TournamentParticipant.joined_order",
        cascade="all, delete-orphan",
    )

    def prize_for(self, placement: str) -> Decimal:
        return {"first": self.prize1, "second": self.prize2, "third": self.prize3}[placement]

    def __repr__(self) -> str:
        return f"<Tournament {self.name} {self.status.value}>"


class TournamentParticipant(Base, UUIDMixin, TimestampMixin):
    """One registered player.

    previous_earnings is the amount already paid out for this entry;
    settlement_version increments each time it is rewritten.
    """

    __tablename__ = "tournament_participants"

    tournament_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("tournaments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    user_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("users.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    joined_order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    user_name: Mapped[str | None] = mapped_column(String(100), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    game_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    game_name: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Team grouping key for duo/squad
    slot_number: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    kills: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    previous_earnings: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"), nullable=False)
    settlement_version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Entry fee refund marker
    refunded_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    tournament: Mapped["Tournament"] = relationship("Tournament", back_populates="participants")

    def __repr__(self) -> str:
        return f"<TournamentParticipant slot={self.slot_number} user={self.user_id[:8]}...>"
