"""Manual fund adjustment by an admin."""

from decimal import Decimal, InvalidOperation
from typing import Optional, Union

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from arena_admin.models.wallet import (
    SubBalance,
    TransactionStatus,
    TransactionType,
    WalletTransaction,
)
from arena_admin.services.ledger import LedgerEntry, LedgerService
from arena_admin.utils.errors import ValidationError

logger = structlog.get_logger(__name__)

OPERATIONS = ("deposit", "withdraw")


class FundAdjustmentService:
    """Credit or debit one sub-balance on an admin's request.

    Debits floor at zero like every other ledger debit; the returned
    LedgerEntry shows how much was actually removed.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        max_cas_attempts: int = LedgerService.DEFAULT_MAX_ATTEMPTS,
    ):
        self.session_factory = session_factory
        self.max_cas_attempts = max_cas_attempts

    async def adjust_funds(
        self,
        user_id: str,
        wallet_type: Union[SubBalance, str],
        operation: str,
        amount: Union[Decimal, str, int],
        note: Optional[str] = None,
        admin_id: Optional[str] = None,
    ) -> LedgerEntry:
        """Apply a manual adjustment.

        Args:
            user_id: Wallet owner
            wallet_type: deposited, winning or bonus
            operation: "deposit" to add, "withdraw" to remove
            amount: Positive amount
            note: Free text shown in the description
            admin_id: Acting admin

        Raises:
            ValidationError: Bad amount, operation or wallet type
            NotFoundError: Unknown user
        """
        sub_balance = self._parse_wallet_type(wallet_type)
        if operation not in OPERATIONS:
            raise ValidationError(
                f"Operation must be one of {', '.join(OPERATIONS)}", field="operation"
            )
        try:
            amount = Decimal(amount)
        except (InvalidOperation, TypeError, ValueError):
            raise ValidationError("Amount must be a number", field="amount")
        if not amount.is_finite() or amount <= 0:
            raise ValidationError("Amount must be positive", field="amount")

        crediting = operation == "deposit"
        verb = "added" if crediting else "removed"
        description = f"Admin {verb} {sub_balance.label} balance"
        note = (note or "").strip() or None
        if note:
            description = f"{description}: {note}"

        async with self.session_factory() as session, session.begin():
            txn = WalletTransaction(
                tx_type=TransactionType.MANUAL_CREDIT if crediting else TransactionType.MANUAL_DEBIT,
                status=TransactionStatus.COMPLETED,
                amount=amount,
                description=description,
                note=note,
                created_by=admin_id,
            )
            ledger = LedgerService(session, self.max_cas_attempts)
            user = await ledger.get_wallet(user_id)
            txn.user_name = user.display_name
            entry = await ledger.apply_ledger_delta(
                user_id, sub_balance, amount if crediting else -amount, txn
            )

        logger.info(
            "funds_adjusted",
            user_id=user_id,
            admin_id=admin_id,
            wallet_type=sub_balance.value,
            operation=operation,
            requested=str(amount),
            applied=str(entry.applied_delta),
        )
        return entry

    @staticmethod
    def _parse_wallet_type(wallet_type: Union[SubBalance, str]) -> SubBalance:
        if isinstance(wallet_type, SubBalance):
            return wallet_type
        try:
            return SubBalance(str(wallet_type).lower())
        except ValueError:
            raise ValidationError(
                "Wallet type must be one of deposited, winning, bonus", field="wallet_type"
            )
