"""
Match cancellation with entry fee refunds.

Cancelling flips the tournament to cancelled and returns each
participant's entry fee to their deposited balance. Every participant
is refunded in its own database transaction together with its
refunded_at marker, so a run that dies halfway can be re-run and will
only refund the participants it did not reach.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional

import structlog
from sqlalchemy import exists, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena_admin.logging_config import settlement_context
from arena_admin.models.tournament import Tournament, TournamentParticipant, TournamentStatus
from arena_admin.models.wallet import (
    SubBalance,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)
from arena_admin.services.ledger import LedgerService
from arena_admin.services.notification_service import PushNotificationService, notify_quietly
from arena_admin.services.summary import PayoutResult, SettlementSummary
from arena_admin.utils.errors import InvalidStateError, NotFoundError, SettlementError

logger = structlog.get_logger(__name__)


class MatchCancellation:
    """Cancel a tournament and refund entry fees exactly once."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Optional[PushNotificationService] = None,
        max_cas_attempts: int = LedgerService.DEFAULT_MAX_ATTEMPTS,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.max_cas_attempts = max_cas_attempts

    async def cancel_match(
        self,
        tournament_id: str,
        admin_id: Optional[str] = None,
    ) -> SettlementSummary:
        """Cancel the tournament and refund every unrefunded participant.

        Raises:
            NotFoundError: Unknown tournament
            InvalidStateError: Tournament finished or has settled results,
                or already cancelled with every participant refunded
        """
        with settlement_context("match_cancellation", tournament_id, admin_id):
            return await self._cancel(tournament_id, admin_id)

    async def _cancel(self, tournament_id: str, admin_id: Optional[str]) -> SettlementSummary:
        tournament, pending = await self._begin_cancellation(tournament_id)

        summary = SettlementSummary(
            kind="match_cancellation",
            tournament_id=tournament.id,
            tournament_name=tournament.name,
        )
        entry_fee = Decimal(tournament.entry_fee)
        tokens: List[Optional[str]] = []

        for participant in pending:
            result = PayoutResult(
                participant_id=participant.id,
                user_id=participant.user_id,
                user_name=participant.user_name or "",
                delta=entry_fee,
            )
            try:
                token = await self._refund_participant(tournament, participant, result, admin_id)
                summary.record_success(result)
                if result.applied_delta > 0:
                    tokens.append(token)
            except SettlementError as e:
                summary.record_failure(result, e.message)
                logger.error(
                    "participant_refund_failed",
                    tournament_id=tournament_id,
                    participant_id=participant.id,
                    error=e.message,
                )
            except SQLAlchemyError as e:
                summary.record_failure(result, f"Database error: {e}")
                logger.exception(
                    "participant_refund_failed",
                    tournament_id=tournament_id,
                    participant_id=participant.id,
                )

        logger.info(
            "match_cancelled",
            tournament_id=tournament_id,
            refunded=summary.successful,
            failed=summary.failed,
            total_refunded=str(summary.total_credited),
        )
        await notify_quietly(
            self.notifier,
            tokens,
            "Match cancelled",
            f"{tournament.name} was cancelled. Your entry fee of {entry_fee} has been refunded.",
            {"type": "match_cancelled", "tournamentId": tournament_id},
        )
        return summary

    async def _begin_cancellation(
        self, tournament_id: str
    ) -> tuple[Tournament, List[TournamentParticipant]]:
        """Flip the status and return the participants still owed a refund."""
        async with self.session_factory() as session, session.begin():
            tournament = await session.get(Tournament, tournament_id)
            if tournament is None:
                raise NotFoundError("Tournament", tournament_id)
            if tournament.status == TournamentStatus.FINISHED:
                raise InvalidStateError(
                    f"Tournament {tournament_id} is finished and cannot be cancelled",
                    current_state=tournament.status.value,
                )

            already_cancelled = tournament.status == TournamentStatus.CANCELLED
            if not already_cancelled:
                settled = exists().where(
                    TournamentParticipant.tournament_id == tournament_id,
                    or_(
                        TournamentParticipant.settlement_version > 0,
                        TournamentParticipant.previous_earnings > 0,
                    ),
                )
                if await session.scalar(select(settled)):
                    raise InvalidStateError(
                        f"Tournament {tournament_id} has settled results and cannot be cancelled",
                        current_state=tournament.status.value,
                    )

                now = datetime.now(timezone.utc)
                flipped = await session.execute(
                    update(Tournament)
                    .where(
                        Tournament.id == tournament_id,
                        Tournament.status.notin_(
                            [TournamentStatus.FINISHED, TournamentStatus.CANCELLED]
                        ),
                        ~settled,
                    )
                    .values(status=TournamentStatus.CANCELLED, cancelled_at=now, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if flipped.rowcount != 1:
                    raise InvalidStateError(
                        f"Tournament {tournament_id} changed state during cancellation"
                    )
                await session.refresh(tournament)

            pending = list(
                (
                    await session.execute(
                        select(TournamentParticipant)
                        .where(
                            TournamentParticipant.tournament_id == tournament_id,
                            TournamentParticipant.refunded_at.is_(None),
                        )
                        .order_by(TournamentParticipant.joined_order)
                    )
                ).scalars().all()
            )

            if already_cancelled and not pending:
                raise InvalidStateError(
                    f"Tournament {tournament_id} is already cancelled and refunded",
                    current_state=tournament.status.value,
                )

        if already_cancelled:
            logger.info(
                "match_cancellation_resumed",
                tournament_id=tournament_id,
                remaining=len(pending),
            )
        return tournament, pending

    async def _refund_participant(
        self,
        tournament: Tournament,
        participant: TournamentParticipant,
        result: PayoutResult,
        admin_id: Optional[str],
    ) -> Optional[str]:
        token = None

        async with self.session_factory() as session, session.begin():
            marked = await session.execute(
                update(TournamentParticipant)
                .where(
                    TournamentParticipant.id == participant.id,
                    TournamentParticipant.refunded_at.is_(None),
                )
                .values(refunded_at=datetime.now(timezone.utc))
                .execution_options(synchronize_session=False)
            )
            if marked.rowcount != 1:
                raise InvalidStateError(f"Participant {participant.id} was already refunded")

            if result.delta > 0:
                txn = WalletTransaction(
                    tx_type=TransactionType.REFUND,
                    status=TransactionStatus.COMPLETED,
                    amount=result.delta,
                    user_name=participant.user_name,
                    description=f"Match Cancelled Refund - {tournament.name}",
                    reference_id=tournament.id,
                    created_by=admin_id,
                )
                ledger = LedgerService(session, self.max_cas_attempts)
                entry = await ledger.apply_ledger_delta(
                    participant.user_id, SubBalance.DEPOSITED, result.delta, txn
                )
                result.applied_delta = entry.applied_delta
                result.transaction_id = txn.id
                token = entry.fcm_token

        return token
