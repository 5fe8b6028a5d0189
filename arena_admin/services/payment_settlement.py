"""Deposit and withdrawal settlement.

A request is terminal once approved or rejected; the status flip is a
conditional update, so a repeated or concurrent admin action finds the
request no longer pending and fails instead of paying twice.

Balance effects:
- approve deposit: credit deposited balance
- reject deposit: none (never credited)
- approve withdrawal: none (debited when the user filed it)
- reject withdrawal: refund to winning balance
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, Type, Union

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena_admin.models.payment import (
    DepositRequest,
    DepositStatus,
    WithdrawalRequest,
    WithdrawalStatus,
)
from arena_admin.models.wallet import (
    SubBalance,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)
from arena_admin.services.ledger import LedgerService
from arena_admin.services.notification_service import PushNotificationService, notify_quietly
from arena_admin.utils.errors import InvalidStateError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

PaymentRequest = Union[DepositRequest, WithdrawalRequest]


class PaymentSettlement:
    """Admin approval workflow for deposit and withdrawal requests."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        notifier: Optional[PushNotificationService] = None,
        max_cas_attempts: int = LedgerService.DEFAULT_MAX_ATTEMPTS,
    ):
        self.session_factory = session_factory
        self.notifier = notifier
        self.max_cas_attempts = max_cas_attempts

    # ============================================================
    # Deposits
    # ============================================================

    async def approve_deposit(self, request_id: str, admin_id: Optional[str] = None) -> DepositRequest:
        """Credit the deposited balance and close the request.

        Raises:
            NotFoundError: Unknown request or user
            InvalidStateError: Request already approved or rejected
        """
        async with self.session_factory() as session, session.begin():
            deposit = await self._load_pending(session, DepositRequest, request_id, DepositStatus.PENDING)
            self._require_positive(deposit.amount)

            await self._transition(
                session,
                deposit,
                DepositStatus.PENDING,
                status=DepositStatus.APPROVED,
                processed_by=admin_id,
            )

            txn = await self._linked_pending_transaction(session, deposit)
            if txn is None:
                txn = WalletTransaction(
                    tx_type=TransactionType.DEPOSIT,
                    amount=deposit.amount,
                    user_name=deposit.user_name,
                    reference_id=deposit.id,
                )
            txn.status = TransactionStatus.COMPLETED
            txn.description = f"Deposit Approved - UTR: {deposit.utr or 'N/A'}"

            ledger = LedgerService(session, self.max_cas_attempts)
            entry = await ledger.apply_ledger_delta(
                deposit.user_id, SubBalance.DEPOSITED, deposit.amount, txn
            )

        logger.info(
            "deposit_approved",
            request_id=request_id,
            user_id=deposit.user_id,
            amount=str(deposit.amount),
            admin_id=admin_id,
        )
        await notify_quietly(
            self.notifier,
            [entry.fcm_token],
            "Deposit approved",
            f"{deposit.amount} has been added to your wallet",
            {"type": "deposit", "requestId": request_id},
        )
        return deposit

    async def reject_deposit(
        self,
        request_id: str,
        reason: str,
        admin_id: Optional[str] = None,
    ) -> DepositRequest:
        """Reject a deposit; nothing was credited, so no balance moves."""
        reason = self._require_reason(reason)

        async with self.session_factory() as session, session.begin():
            deposit = await self._load_pending(session, DepositRequest, request_id, DepositStatus.PENDING)
            await self._transition(
                session,
                deposit,
                DepositStatus.PENDING,
                status=DepositStatus.REJECTED,
                processed_by=admin_id,
                rejection_reason=reason,
            )
            await self._settle_linked_transaction(
                session,
                deposit,
                TransactionStatus.REJECTED,
                f"Deposit Rejected - {reason}",
            )

        logger.info("deposit_rejected", request_id=request_id, reason=reason, admin_id=admin_id)
        return deposit

    # ============================================================
    # Withdrawals
    # ============================================================

    async def approve_withdrawal(
        self,
        request_id: str,
        admin_id: Optional[str] = None,
    ) -> WithdrawalRequest:
        """Mark a withdrawal paid out; the debit already happened at request time."""
        async with self.session_factory() as session, session.begin():
            withdrawal = await self._load_pending(
                session, WithdrawalRequest, request_id, WithdrawalStatus.PENDING
            )
            await self._transition(
                session,
                withdrawal,
                WithdrawalStatus.PENDING,
                status=WithdrawalStatus.COMPLETED,
                processed_by=admin_id,
            )
            await self._settle_linked_transaction(
                session,
                withdrawal,
                TransactionStatus.COMPLETED,
                f"Withdrawal Completed - {withdrawal.payment_method or 'manual'}",
            )

        logger.info(
            "withdrawal_approved",
            request_id=request_id,
            user_id=withdrawal.user_id,
            amount=str(withdrawal.amount),
            admin_id=admin_id,
        )
        return withdrawal

    async def reject_withdrawal(
        self,
        request_id: str,
        reason: str,
        admin_id: Optional[str] = None,
    ) -> WithdrawalRequest:
        """Reject a withdrawal and give the money back to winnings.

        Leaves two records: the original transaction flipped to rejected
        and a separate completed refund entry.
        """
        reason = self._require_reason(reason)

        async with self.session_factory() as session, session.begin():
            withdrawal = await self._load_pending(
                session, WithdrawalRequest, request_id, WithdrawalStatus.PENDING
            )
            self._require_positive(withdrawal.amount)

            await self._transition(
                session,
                withdrawal,
                WithdrawalStatus.PENDING,
                status=WithdrawalStatus.REJECTED,
                processed_by=admin_id,
                rejection_reason=reason,
            )
            await self._settle_linked_transaction(
                session,
                withdrawal,
                TransactionStatus.REJECTED,
                f"Withdrawal Rejected - {reason}",
            )

            refund = WalletTransaction(
                tx_type=TransactionType.REFUND,
                status=TransactionStatus.COMPLETED,
                amount=withdrawal.amount,
                user_name=withdrawal.user_name,
                description=f"Withdrawal Refund - {reason}",
                reference_id=withdrawal.id,
                created_by=admin_id,
            )
            ledger = LedgerService(session, self.max_cas_attempts)
            entry = await ledger.apply_ledger_delta(
                withdrawal.user_id, SubBalance.WINNING, withdrawal.amount, refund
            )

        logger.info(
            "withdrawal_rejected",
            request_id=request_id,
            user_id=withdrawal.user_id,
            refunded=str(entry.applied_delta),
            reason=reason,
            admin_id=admin_id,
        )
        await notify_quietly(
            self.notifier,
            [entry.fcm_token],
            "Withdrawal rejected",
            f"{withdrawal.amount} has been returned to your wallet: {reason}",
            {"type": "withdrawal", "requestId": request_id},
        )
        return withdrawal

    # ============================================================
    # Helpers
    # ============================================================

    @staticmethod
    def _require_reason(reason: Optional[str]) -> str:
        if not reason or not reason.strip():
            raise ValidationError("Rejection reason is required", field="reason")
        return reason.strip()

    @staticmethod
    def _require_positive(amount: Decimal) -> None:
        if amount is None or amount <= 0:
            raise ValidationError("Request amount must be positive", field="amount")

    @staticmethod
    async def _load_pending(
        session: AsyncSession,
        model: Type[PaymentRequest],
        request_id: str,
        pending,
    ) -> PaymentRequest:
        request = await session.get(model, request_id)
        if request is None:
            raise NotFoundError(model.__name__, request_id)
        if request.status != pending:
            raise InvalidStateError(
                f"{model.__name__} {request_id} is already {request.status.value}",
                current_state=request.status.value,
            )
        return request

    @staticmethod
    async def _transition(
        session: AsyncSession,
        request: PaymentRequest,
        expected,
        **values,
    ) -> None:
        """Conditional status flip; fails if someone settled it first."""
        model = type(request)
        result = await session.execute(
            update(model)
            .where(model.id == request.id, model.status == expected)
            .values(processed_at=datetime.now(timezone.utc), **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InvalidStateError(f"{model.__name__} {request.id} was settled concurrently")
        await session.refresh(request)

    @staticmethod
    async def _linked_pending_transaction(
        session: AsyncSession,
        request: PaymentRequest,
    ) -> Optional[WalletTransaction]:
        if not request.transaction_id:
            logger.warning("linked_transaction_missing", request_id=request.id)
            return None
        txn = await session.get(WalletTransaction, request.transaction_id)
        if txn is None:
            logger.warning(
                "linked_transaction_missing",
                request_id=request.id,
                transaction_id=request.transaction_id,
            )
            return None
        if txn.status != TransactionStatus.PENDING:
            raise InvalidStateError(
                f"Transaction {txn.id} is already {txn.status.value}",
                current_state=txn.status.value,
            )
        return txn

    @staticmethod
    async def _settle_linked_transaction(
        session: AsyncSession,
        request: PaymentRequest,
        status: TransactionStatus,
        description: str,
    ) -> bool:
        """Move the request's pending transaction to its final status."""
        if not request.transaction_id:
            logger.warning("linked_transaction_missing", request_id=request.id)
            return False
        result = await session.execute(
            update(WalletTransaction)
            .where(
                WalletTransaction.id == request.transaction_id,
                WalletTransaction.status == TransactionStatus.PENDING,
            )
            .values(status=status, description=description)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning(
                "linked_transaction_not_pending",
                request_id=request.id,
                transaction_id=request.transaction_id,
            )
            return False
        return True
