"""User wallet endpoints.

Provides endpoints for:
- Manual fund adjustment
- Wallet balances with a consistency check
- Transaction history (newest first)
"""

from decimal import Decimal
from typing import Literal, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from arena_admin.api.deps import get_fund_adjustment, get_ledger, require_permission
from arena_admin.models.wallet import SubBalance, TransactionType, WalletTransaction
from arena_admin.services import FundAdjustmentService, LedgerService
from arena_admin.utils.jwt import AdminPrincipal
from arena_admin.utils.permissions import Permission

router = APIRouter()


# ============================================================
# Pydantic Models
# ============================================================


class AdjustFundsRequest(BaseModel):
    wallet_type: SubBalance
    operation: Literal["deposit", "withdraw"]
    amount: Decimal = Field(gt=0, max_digits=14, decimal_places=2)
    note: Optional[str] = Field(default=None, max_length=500)


class AdjustFundsResponse(BaseModel):
    user_id: str
    wallet_type: str
    requested_delta: str
    applied_delta: str
    shortfall: str
    balance_after: str
    wallet_balance: str
    transaction_id: str


class WalletResponse(BaseModel):
    user_id: str
    wallet_balance: str
    deposited_balance: str
    winning_balance: str
    bonus_balance: str
    total_winnings: str
    consistent: bool


class TransactionResponse(BaseModel):
    id: str
    tx_type: str
    status: str
    amount: str
    description: str
    wallet_type: Optional[str]
    balance_after: Optional[str]
    reference_id: Optional[str]
    created_at: str
    integrity_ok: Optional[bool]


def _money(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def _integrity(txn: WalletTransaction) -> Optional[bool]:
    # Pending request rows settled by status flip were never hashed
    if txn.integrity_hash is None and txn.balance_after is None:
        return None
    return LedgerService.verify_integrity(txn)


def _transaction_response(txn: WalletTransaction) -> TransactionResponse:
    return TransactionResponse(
        id=txn.id,
        tx_type=txn.tx_type.value,
        status=txn.status.value,
        amount=str(txn.amount),
        description=txn.description,
        wallet_type=txn.wallet_type.value if txn.wallet_type else None,
        balance_after=_money(txn.balance_after),
        reference_id=txn.reference_id,
        created_at=txn.created_at.isoformat(),
        integrity_ok=_integrity(txn),
    )


# ============================================================
# Endpoints
# ============================================================


@router.post("/{user_id}/funds", response_model=AdjustFundsResponse)
async def adjust_funds(
    user_id: str,
    body: AdjustFundsRequest,
    admin: AdminPrincipal = Depends(require_permission(Permission.USERS)),
    service: FundAdjustmentService = Depends(get_fund_adjustment),
):
    """Add to or remove from one sub-balance. Removals floor at zero."""
    entry = await service.adjust_funds(
        user_id,
        body.wallet_type,
        body.operation,
        body.amount,
        note=body.note,
        admin_id=admin.admin_id,
    )
    return AdjustFundsResponse(
        user_id=entry.user_id,
        wallet_type=entry.sub_balance.value,
        requested_delta=str(entry.requested_delta),
        applied_delta=str(entry.applied_delta),
        shortfall=str(entry.shortfall),
        balance_after=str(entry.balance_after),
        wallet_balance=str(entry.wallet_balance_after),
        transaction_id=entry.transaction.id,
    )


@router.get("/{user_id}/wallet", response_model=WalletResponse)
async def get_wallet(
    user_id: str,
    admin: AdminPrincipal = Depends(require_permission(Permission.USERS)),
    ledger: LedgerService = Depends(get_ledger),
):
    user = await ledger.get_wallet(user_id)
    return WalletResponse(
        user_id=user.id,
        wallet_balance=str(user.wallet_balance),
        deposited_balance=str(user.deposited_balance),
        winning_balance=str(user.winning_balance),
        bonus_balance=str(user.bonus_balance),
        total_winnings=str(user.total_winnings),
        consistent=LedgerService.wallet_is_consistent(user),
    )


@router.get("/{user_id}/transactions", response_model=list[TransactionResponse])
async def list_transactions(
    user_id: str,
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    tx_type: Optional[TransactionType] = Query(None),
    admin: AdminPrincipal = Depends(require_permission(Permission.USERS)),
    ledger: LedgerService = Depends(get_ledger),
):
    """User transaction history, newest first."""
    txns = await ledger.list_transactions(user_id, limit=limit, offset=offset, tx_type=tx_type)
    return [_transaction_response(t) for t in txns]
