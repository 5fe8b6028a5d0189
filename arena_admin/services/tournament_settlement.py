"""
Tournament Result Settlement.

Pays kill earnings and placement prizes when a result is announced, and
re-settles by delta when the result is corrected.

Each participant row keeps previous_earnings, the total already paid for
that entry. Announcing (or re-announcing) computes the participant's new
total and moves only new - previous through the ledger, so:

- an identical re-announcement moves nothing
- a correction moves just the difference (debits floor at zero)
- a retry after a crash halfway through pays only the participants that
  were not reached

The per-participant wallet update, transaction record and the rewrite of
previous_earnings commit in one database transaction.

Usage:
    settlement = TournamentSettlement(session_factory)
    summary = await settlement.announce_result(
        tournament_id,
        [ParticipantResult(participant_id="p-1", kills=4), ...],
        Winners(first="3", second="1", third="7"),
    )
"""

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import ROUND_DOWN, Decimal
from typing import Dict, Iterable, List, Optional, Sequence

import structlog
from sqlalchemy import exists, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena_admin.logging_config import settlement_context
from arena_admin.models.tournament import (
    MatchType,
    Tournament,
    TournamentParticipant,
    TournamentStatus,
)
from arena_admin.models.wallet import (
    SubBalance,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)
from arena_admin.services.ledger import LedgerService
from arena_admin.services.notification_service import PushNotificationService, notify_quietly
from arena_admin.services.summary import PayoutResult, SettlementSummary
from arena_admin.utils.errors import (
    InvalidStateError,
    NotFoundError,
    SettlementError,
    ValidationError,
)

logger = structlog.get_logger(__name__)

PLACEMENTS = ("first", "second", "third")
CENT = Decimal("0.01")


@dataclass(frozen=True)
class Winners:
    """Placement picks.

    Solo: participant ids. Duo/squad: slot numbers (as int or str).
    """

    first: Optional[str] = None
    second: Optional[str] = None
    third: Optional[str] = None

    def picks(self) -> Dict[str, str]:
        """Non-empty picks keyed by placement."""
        picks = {}
        for placement in PLACEMENTS:
            value = getattr(self, placement)
            if value is not None and str(value).strip():
                picks[placement] = str(value).strip()
        return picks


@dataclass(frozen=True)
class ParticipantResult:
    participant_id: str
    kills: int


@dataclass
class _Snapshot:
    """Participant state read once before the bulk pass."""

    id: str
    user_id: str
    user_name: Optional[str]
    game_id: Optional[str]
    slot_number: int
    kills: int
    previous_earnings: Decimal
    settlement_version: int


def _slot_key(value: str) -> Optional[int]:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _matches(pick: str, participant, team_mode: bool) -> bool:
    if team_mode:
        return _slot_key(pick) == participant.slot_number
    return pick == participant.id


def team_sizes(participants: Iterable) -> Counter:
    """How many participants currently occupy each slot."""
    return Counter(p.slot_number for p in participants)


def split_prize(prize: Decimal, members: int) -> Decimal:
    """Even share of a team prize, rounded down to the cent."""
    if members <= 0:
        return Decimal("0")
    return (Decimal(prize) / members).quantize(CENT, rounding=ROUND_DOWN)


def compute_earnings(
    participant,
    tournament: Tournament,
    winners: Winners,
    sizes: Optional[Counter] = None,
) -> Decimal:
    """Total earnings for one participant: kills plus placement prize.

    Args:
        participant: Anything with id, slot_number and kills
        tournament: Prize configuration
        winners: Placement picks
        sizes: Occupants per slot; defaults to tournament.participants

    Returns:
        Earnings rounded to the cent
    """
    total = Decimal(participant.kills or 0) * Decimal(tournament.per_kill_prize)
    team_mode = tournament.match_type.is_team_mode

    # Distinct placements are enforced upstream, so at most one matches
    for placement, pick in winners.picks().items():
        if not _matches(pick, participant, team_mode):
            continue
        prize = Decimal(tournament.prize_for(placement))
        if team_mode:
            if sizes is None:
                sizes = team_sizes(tournament.participants)
            prize = split_prize(prize, sizes.get(participant.slot_number, 0))
        total += prize
        break

    return total.quantize(CENT)


class TournamentSettlement:
    """Announces and corrects tournament results."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Optional[PushNotificationService] = None,
        max_cas_attempts: int = LedgerService.DEFAULT_MAX_ATTEMPTS,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.max_cas_attempts = max_cas_attempts

    async def announce_result(
        self,
        tournament_id: str,
        participant_results: Sequence[ParticipantResult],
        winners: Winners,
        admin_id: Optional[str] = None,
    ) -> SettlementSummary:
        """Settle (or re-settle) every participant of a tournament.

        Participants missing from participant_results keep their stored
        kill count. Per-participant failures are collected in the summary
        and do not stop the batch. A cancellation that commits mid-pass
        fails every participant not yet reached, and the tournament is
        left cancelled without results.

        Raises:
            NotFoundError: Unknown tournament
            InvalidStateError: Tournament was cancelled before the pass
            ValidationError: Unknown participant, negative kills, bad winners
        """
        with settlement_context("tournament_result", tournament_id, admin_id):
            return await self._announce(tournament_id, participant_results, winners, admin_id)

    async def _announce(
        self,
        tournament_id: str,
        participant_results: Sequence[ParticipantResult],
        winners: Winners,
        admin_id: Optional[str],
    ) -> SettlementSummary:
        tournament, snapshots = await self._load_snapshot(tournament_id)
        kills = self._validate_results(snapshots, participant_results)
        for snap in snapshots:
            snap.kills = kills.get(snap.id, snap.kills)
        self._validate_winners(tournament, snapshots, winners)

        sizes = team_sizes(snapshots)
        is_correction = tournament.result_announced_at is not None
        summary = SettlementSummary(
            kind="tournament_result",
            tournament_id=tournament.id,
            tournament_name=tournament.name,
            is_correction=is_correction,
        )

        logger.info(
            "tournament_settlement_started",
            tournament_id=tournament_id,
            participants=len(snapshots),
            is_correction=is_correction,
        )

        notify_tokens: List[Optional[str]] = []
        for snap in snapshots:
            new_earnings = compute_earnings(snap, tournament, winners, sizes)
            result = PayoutResult(
                participant_id=snap.id,
                user_id=snap.user_id,
                user_name=snap.user_name or "",
                previous_earnings=snap.previous_earnings,
                new_earnings=new_earnings,
                delta=new_earnings - snap.previous_earnings,
            )
            try:
                token = await self._settle_participant(
                    tournament, snap, result, is_correction, admin_id
                )
                summary.record_success(result)
                if result.applied_delta > 0:
                    notify_tokens.append(token)
            except SettlementError as e:
                summary.record_failure(result, e.message)
                logger.error(
                    "participant_settlement_failed",
                    tournament_id=tournament_id,
                    participant_id=snap.id,
                    error=e.message,
                )
            except SQLAlchemyError as e:
                summary.record_failure(result, f"Database error: {e}")
                logger.exception(
                    "participant_settlement_failed",
                    tournament_id=tournament_id,
                    participant_id=snap.id,
                )

        finished = await self._finish_tournament(tournament, snapshots, winners, sizes)
        if not finished:
            logger.warning(
                "tournament_settlement_interrupted",
                tournament_id=tournament_id,
                successful=summary.successful,
                failed=summary.failed,
            )
            return summary

        logger.info(
            "tournament_settled",
            tournament_id=tournament_id,
            is_correction=is_correction,
            credited=str(summary.total_credited),
            debited=str(summary.total_debited),
            successful=summary.successful,
            failed=summary.failed,
        )
        await notify_quietly(
            self.notifier,
            notify_tokens,
            "Tournament results",
            f"Results for {tournament.name} are out. Your winnings have been credited.",
            {"type": "tournament_result", "tournamentId": tournament_id},
        )
        return summary

    async def _load_snapshot(self, tournament_id: str) -> tuple[Tournament, List[_Snapshot]]:
        async with self.session_factory() as session:
            tournament = await session.get(Tournament, tournament_id)
            if tournament is None:
                raise NotFoundError("Tournament", tournament_id)
            if tournament.status == TournamentStatus.CANCELLED:
                raise InvalidStateError(
                    f"Tournament {tournament_id} was cancelled",
                    current_state=tournament.status.value,
                )

            rows = (
                await session.execute(
                    select(TournamentParticipant)
                    .where(TournamentParticipant.tournament_id == tournament_id)
                    .order_by(TournamentParticipant.joined_order)
                )
            ).scalars().all()

        snapshots = [
            _Snapshot(
                id=p.id,
                user_id=p.user_id,
                user_name=p.user_name,
                game_id=p.game_id,
                slot_number=p.slot_number,
                kills=p.kills,
                previous_earnings=p.previous_earnings,
                settlement_version=p.settlement_version,
            )
            for p in rows
        ]
        return tournament, snapshots

    @staticmethod
    def _validate_results(
        snapshots: Sequence[_Snapshot],
        participant_results: Sequence[ParticipantResult],
    ) -> Dict[str, int]:
        known = {s.id for s in snapshots}
        kills: Dict[str, int] = {}
        for item in participant_results:
            if item.participant_id not in known:
                raise ValidationError(
                    f"Unknown participant: {item.participant_id}",
                    field="participant_results",
                )
            if item.participant_id in kills:
                raise ValidationError(
                    f"Duplicate result for participant {item.participant_id}",
                    field="participant_results",
                )
            if not isinstance(item.kills, int) or isinstance(item.kills, bool) or item.kills < 0:
                raise ValidationError(
                    f"Kills must be a non-negative integer for {item.participant_id}",
                    field="kills",
                )
            kills[item.participant_id] = item.kills
        return kills

    @staticmethod
    def _validate_winners(
        tournament: Tournament,
        snapshots: Sequence[_Snapshot],
        winners: Winners,
    ) -> None:
        team_mode = tournament.match_type.is_team_mode
        picks = winners.picks()

        if team_mode:
            occupied = {s.slot_number for s in snapshots}
            keys = {}
            for placement, pick in picks.items():
                slot = _slot_key(pick)
                if slot is None or slot not in occupied:
                    raise ValidationError(f"No team in slot {pick} for {placement}", field=placement)
                keys[placement] = slot
        else:
            ids = {s.id for s in snapshots}
            for placement, pick in picks.items():
                if pick not in ids:
                    raise ValidationError(f"Unknown participant {pick} for {placement}", field=placement)
            keys = dict(picks)

        if len(set(keys.values())) != len(keys):
            raise ValidationError(
                "The same winner cannot take more than one placement",
                field="winners",
            )

    async def _settle_participant(
        self,
        tournament: Tournament,
        snap: _Snapshot,
        result: PayoutResult,
        is_correction: bool,
        admin_id: Optional[str],
    ) -> Optional[str]:
        """Apply one participant's delta; returns their device token."""
        delta = result.delta
        token = None

        async with self.session_factory() as session, session.begin():
            still_open = exists().where(
                Tournament.id == tournament.id,
                Tournament.status != TournamentStatus.CANCELLED,
            )
            updated = await session.execute(
                update(TournamentParticipant)
                .where(
                    TournamentParticipant.id == snap.id,
                    TournamentParticipant.settlement_version == snap.settlement_version,
                    still_open,
                )
                .values(
                    kills=snap.kills,
                    previous_earnings=result.new_earnings,
                    settlement_version=snap.settlement_version + 1,
                )
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount != 1:
                status = await session.scalar(
                    select(Tournament.status).where(Tournament.id == tournament.id)
                )
                if status == TournamentStatus.CANCELLED:
                    raise InvalidStateError(
                        f"Tournament {tournament.id} was cancelled during settlement",
                        current_state=status.value,
                    )
                raise InvalidStateError(
                    f"Participant {snap.id} was settled concurrently, re-run to retry"
                )

            if delta != 0:
                if delta > 0:
                    tx_type = TransactionType.WINNING
                    suffix = " (Correction +)" if is_correction else ""
                    description = f"Tournament Winning{suffix} - {tournament.name}"
                else:
                    tx_type = TransactionType.WINNING_ADJUSTMENT
                    description = f"Tournament Winning Correction (-) - {tournament.name}"

                txn = WalletTransaction(
                    tx_type=tx_type,
                    status=TransactionStatus.COMPLETED,
                    amount=abs(delta),
                    user_name=snap.user_name,
                    description=description,
                    reference_id=tournament.id,
                    kills=snap.kills,
                    previous_earnings=snap.previous_earnings,
                    new_earnings=result.new_earnings,
                    created_by=admin_id,
                )
                ledger = LedgerService(session, self.max_cas_attempts)
                entry = await ledger.apply_ledger_delta(
                    snap.user_id, SubBalance.WINNING, delta, txn
                )
                result.applied_delta = entry.applied_delta
                result.shortfall = entry.shortfall
                result.transaction_id = txn.id
                token = entry.fcm_token

                if entry.clamped:
                    logger.warning(
                        "correction_underfunded",
                        tournament_id=tournament.id,
                        participant_id=snap.id,
                        user_id=snap.user_id,
                        requested=str(-delta),
                        recovered=str(-entry.applied_delta),
                        shortfall=str(entry.shortfall),
                    )

        return token

    async def _finish_tournament(
        self,
        tournament: Tournament,
        snapshots: Sequence[_Snapshot],
        winners: Winners,
        sizes: Counter,
    ) -> bool:
        """Store the results and mark the tournament finished unless it was cancelled."""
        results = self._build_results(tournament, snapshots, winners, sizes)
        now = datetime.now(timezone.utc)

        async with self.session_factory() as session, session.begin():
            updated = await session.execute(
                update(Tournament)
                .where(
                    Tournament.id == tournament.id,
                    Tournament.status != TournamentStatus.CANCELLED,
                )
                .values(
                    status=TournamentStatus.FINISHED,
                    results=results,
                    result_announced_at=func.coalesce(Tournament.result_announced_at, now),
                    updated_at=now,
                )
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount != 1:
                return False

        tournament.status = TournamentStatus.FINISHED
        tournament.results = results
        if tournament.result_announced_at is None:
            tournament.result_announced_at = now
        return True

    @staticmethod
    def _build_results(
        tournament: Tournament,
        snapshots: Sequence[_Snapshot],
        winners: Winners,
        sizes: Counter,
    ) -> dict:
        """Winner snapshot stored on the tournament."""
        picks = winners.picks()
        results: dict = {}

        for placement in PLACEMENTS:
            pick = picks.get(placement)
            if pick is None:
                results[placement] = None
                continue

            if tournament.match_type.is_team_mode:
                slot = _slot_key(pick)
                members = [s for s in snapshots if s.slot_number == slot]
                results[placement] = {
                    "slot_number": slot,
                    "team_members": [{"name": m.user_name, "game_id": m.game_id} for m in members],
                    "prize_per_member": str(
                        split_prize(tournament.prize_for(placement), sizes.get(slot, 0))
                    ),
                }
            else:
                winner = next(s for s in snapshots if s.id == pick)
                results[placement] = {
                    "participant_id": winner.id,
                    "name": winner.user_name,
                    "game_id": winner.game_id,
                }

        return results
