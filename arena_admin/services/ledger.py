"""Ledger primitives for the three-part user wallet.

Every balance change on the platform goes through
LedgerService.apply_ledger_delta, which in one optimistic write:

- moves the chosen sub-balance by a signed delta, flooring at zero
- moves wallet_balance by the same clamped delta
- bumps total_winnings for winning credits
- persists the accompanying transaction record

The caller owns the database transaction, so the wallet update and the
transaction record commit or roll back together.
"""

import hashlib
from dataclasses import dataclass
from decimal import Decimal

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from arena_admin.models.user import User
from arena_admin.models.wallet import SubBalance, TransactionType, WalletTransaction
from arena_admin.utils.errors import ConcurrentUpdateError, NotFoundError, ValidationError

logger = structlog.get_logger(__name__)

ZERO = Decimal("0")


@dataclass
class LedgerEntry:
    """What a single ledger call actually did."""

    user_id: str
    sub_balance: SubBalance
    requested_delta: Decimal
    applied_delta: Decimal
    balance_after: Decimal
    wallet_balance_after: Decimal
    transaction: WalletTransaction
    fcm_token: str | None = None

    @property
    def shortfall(self) -> Decimal:
        """Portion of a debit that was not taken because the balance hit zero."""
        return self.applied_delta - self.requested_delta if self.requested_delta < 0 else ZERO

    @property
    def clamped(self) -> bool:
        return self.shortfall > 0


class LedgerService:
    """Atomic wallet updates plus transaction log writes.

    Uses compare-and-swap on User.version: the UPDATE only matches if
    nobody else touched the wallet since it was read, otherwise the read
    is repeated.
    """

    DEFAULT_MAX_ATTEMPTS = 5

    def __init__(self, session: AsyncSession, max_attempts: int = DEFAULT_MAX_ATTEMPTS) -> None:
        self.session = session
        self.max_attempts = max_attempts

    async def _load_user(self, user_id: str) -> User | None:
        result = await self.session.execute(
            select(User)
            .where(User.id == user_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_wallet(self, user_id: str) -> User:
        user = await self._load_user(user_id)
        if user is None:
            raise NotFoundError("User", user_id)
        return user

    async def apply_ledger_delta(
        self,
        user_id: str,
        sub_balance: SubBalance,
        delta: Decimal,
        txn: WalletTransaction,
    ) -> LedgerEntry:
        """Apply a signed delta to one sub-balance and persist txn.

        Args:
            user_id: Wallet owner
            sub_balance: Which partition to move
            delta: Positive credits, negative debits
            txn: Transaction record to persist (new, or a loaded pending one)

        Returns:
            LedgerEntry with the clamped delta that was applied

        Raises:
            NotFoundError: If the user does not exist
            ValidationError: For a zero delta or a negative transaction amount
            ConcurrentUpdateError: If the wallet kept changing underneath us
        """
        delta = Decimal(delta)
        if delta == 0:
            raise ValidationError("Ledger delta cannot be zero", field="delta")
        if txn.amount is None or Decimal(txn.amount) < 0:
            raise ValidationError("Transaction amount must be non-negative", field="amount")

        column = sub_balance.column

        for attempt in range(1, self.max_attempts + 1):
            user = await self._load_user(user_id)
            if user is None:
                raise NotFoundError("User", user_id)

            current = getattr(user, column)
            # No overdraft: a debit takes at most what is there
            applied = delta if delta > 0 else max(delta, -max(current, ZERO))

            values = {
                column: current + applied,
                "wallet_balance": user.wallet_balance + applied,
                "version": user.version + 1,
            }
            if sub_balance is SubBalance.WINNING and applied > 0:
                values["total_winnings"] = user.total_winnings + applied

            result = await self.session.execute(
                update(User)
                .where(User.id == user_id, User.version == user.version)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 1:
                break

            logger.warning(
                "ledger_cas_conflict",
                user_id=user_id,
                attempt=attempt,
                sub_balance=sub_balance.value,
            )
        else:
            raise ConcurrentUpdateError(user_id, self.max_attempts)

        entry = LedgerEntry(
            user_id=user_id,
            sub_balance=sub_balance,
            requested_delta=delta,
            applied_delta=applied,
            balance_after=values[column],
            wallet_balance_after=values["wallet_balance"],
            transaction=txn,
            fcm_token=user.fcm_token,
        )

        txn.user_id = user_id
        txn.wallet_type = sub_balance
        txn.balance_after = entry.wallet_balance_after
        if entry.clamped:
            txn.shortfall = entry.shortfall
            logger.warning(
                "ledger_debit_clamped",
                user_id=user_id,
                sub_balance=sub_balance.value,
                requested=str(delta),
                applied=str(applied),
                shortfall=str(entry.shortfall),
            )
        txn.integrity_hash = self.compute_integrity_hash(
            user_id=user_id,
            tx_type=txn.tx_type,
            amount=Decimal(txn.amount),
            balance_after=entry.wallet_balance_after,
        )

        self.session.add(txn)
        await self.session.flush()

        logger.info(
            "ledger_delta_applied",
            user_id=user_id,
            tx_type=txn.tx_type.value,
            sub_balance=sub_balance.value,
            delta=str(applied),
            wallet_balance=str(entry.wallet_balance_after),
        )
        return entry

    async def list_transactions(
        self,
        user_id: str,
        *,
        limit: int = 50,
        offset: int = 0,
        tx_type: TransactionType | None = None,
    ) -> list[WalletTransaction]:
        """User's transaction history, newest first."""
        query = select(WalletTransaction).where(WalletTransaction.user_id == user_id)
        if tx_type:
            query = query.where(WalletTransaction.tx_type == tx_type)
        query = (
            query.order_by(WalletTransaction.created_at.desc())
            .offset(offset)
            .limit(limit)
        )

        result = await self.session.execute(query)
        return list(result.scalars().all())

    @staticmethod
    def wallet_is_consistent(user: User) -> bool:
        """True when the denormalized total matches the sub-balances."""
        parts = user.deposited_balance + user.winning_balance + user.bonus_balance
        return user.wallet_balance == parts and min(
            user.wallet_balance,
            user.deposited_balance,
            user.winning_balance,
            user.bonus_balance,
        ) >= 0

    @staticmethod
    def compute_integrity_hash(
        user_id: str,
        tx_type: TransactionType,
        amount: Decimal,
        balance_after: Decimal,
    ) -> str:
        """SHA-256 over the fields that define a ledger entry."""
        data = f"{user_id}:{tx_type.value}:{amount:.2f}:{balance_after:.2f}"
        return hashlib.sha256(data.encode()).hexdigest()

    @staticmethod
    def verify_integrity(txn: WalletTransaction) -> bool:
        """Verify transaction integrity hash."""
        if txn.balance_after is None:
            return False
        expected = LedgerService.compute_integrity_hash(
            user_id=txn.user_id,
            tx_type=txn.tx_type,
            amount=Decimal(txn.amount),
            balance_after=Decimal(txn.balance_after),
        )
        return txn.integrity_hash == expected
