"""Lottery winner selection.

The status guard is the only idempotence boundary: once a lottery is
finished its winner is fixed and there is no correction path.
"""

from datetime import datetime, timezone
from typing import Optional

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena_admin.models.lottery import Lottery, LotteryParticipant, LotteryStatus
from arena_admin.models.wallet import (
    SubBalance,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)
from arena_admin.services.ledger import LedgerEntry, LedgerService
from arena_admin.services.notification_service import PushNotificationService, notify_quietly
from arena_admin.utils.errors import InvalidStateError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)


class LotterySettlement:
    """Pick a lottery winner and pay the prize into winnings."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Optional[PushNotificationService] = None,
        max_cas_attempts: int = LedgerService.DEFAULT_MAX_ATTEMPTS,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.max_cas_attempts = max_cas_attempts

    async def select_winner(
        self,
        lottery_id: str,
        user_id: str,
        admin_id: Optional[str] = None,
    ) -> tuple[Lottery, Optional[LedgerEntry]]:
        """Finish the lottery with user_id as winner and credit the prize.

        The lottery update and the wallet credit share one database
        transaction.

        Raises:
            NotFoundError: Unknown lottery or user
            InvalidStateError: Lottery already finished
            ValidationError: user_id did not enter this lottery
        """
        async with self.session_factory() as session, session.begin():
            lottery = await session.get(Lottery, lottery_id)
            if lottery is None:
                raise NotFoundError("Lottery", lottery_id)
            if lottery.status == LotteryStatus.FINISHED:
                raise InvalidStateError(
                    f"Lottery {lottery_id} already has a winner",
                    current_state=lottery.status.value,
                )

            participant = (
                await session.execute(
                    select(LotteryParticipant).where(
                        LotteryParticipant.lottery_id == lottery_id,
                        LotteryParticipant.user_id == user_id,
                    )
                )
            ).scalar_one_or_none()
            if participant is None:
                raise ValidationError(
                    f"User {user_id} is not a participant of lottery {lottery_id}",
                    field="user_id",
                )

            result = await session.execute(
                update(Lottery)
                .where(Lottery.id == lottery_id, Lottery.status != LotteryStatus.FINISHED)
                .values(
                    status=LotteryStatus.FINISHED,
                    winner_id=user_id,
                    winner_name=participant.user_name,
                    updated_at=datetime.now(timezone.utc),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise InvalidStateError(f"Lottery {lottery_id} was finished concurrently")
            await session.refresh(lottery)

            entry = None
            if lottery.prize_amount > 0:
                txn = WalletTransaction(
                    tx_type=TransactionType.WINNING,
                    status=TransactionStatus.COMPLETED,
                    amount=lottery.prize_amount,
                    user_name=participant.user_name,
                    description=f"Lottery Winner - {lottery.title}",
                    reference_id=lottery.id,
                    created_by=admin_id,
                )
                ledger = LedgerService(session, self.max_cas_attempts)
                entry = await ledger.apply_ledger_delta(
                    user_id, SubBalance.WINNING, lottery.prize_amount, txn
                )

        logger.info(
            "lottery_winner_selected",
            lottery_id=lottery_id,
            user_id=user_id,
            prize=str(lottery.prize_amount),
            admin_id=admin_id,
        )
        if entry is not None:
            await notify_quietly(
                self.notifier,
                [entry.fcm_token],
                "You won the lottery!",
                f"{lottery.prize_amount} from {lottery.title} is in your winnings",
                {"type": "lottery", "lotteryId": lottery_id},
            )
        return lottery, entry
