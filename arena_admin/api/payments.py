"""Deposit and withdrawal request endpoints.

Provides endpoints for:
- Deposit approve / reject
- Withdrawal approve / reject (rejection refunds the held amount)
"""

from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from arena_admin.api.deps import get_payment_settlement, require_permission
from arena_admin.models.payment import DepositRequest, WithdrawalRequest
from arena_admin.services import PaymentSettlement
from arena_admin.utils.jwt import AdminPrincipal
from arena_admin.utils.permissions import Permission

deposits_router = APIRouter()
withdrawals_router = APIRouter()


# ============================================================
# Pydantic Models
# ============================================================


class RejectRequest(BaseModel):
    reason: str


class PaymentRequestResponse(BaseModel):
    id: str
    user_id: str
    amount: str
    status: str
    transaction_id: Optional[str]
    processed_at: Optional[str]
    processed_by: Optional[str]
    rejection_reason: Optional[str]


def _to_response(request: Union[DepositRequest, WithdrawalRequest]) -> PaymentRequestResponse:
    return PaymentRequestResponse(
        id=request.id,
        user_id=request.user_id,
        amount=str(request.amount),
        status=request.status.value,
        transaction_id=request.transaction_id,
        processed_at=request.processed_at.isoformat() if request.processed_at else None,
        processed_by=request.processed_by,
        rejection_reason=request.rejection_reason,
    )


# ============================================================
# Deposits
# ============================================================


@deposits_router.post("/{request_id}/approve", response_model=PaymentRequestResponse)
async def approve_deposit(
    request_id: str,
    admin: AdminPrincipal = Depends(require_permission(Permission.DEPOSITS)),
    service: PaymentSettlement = Depends(get_payment_settlement),
):
    """Approve a pending deposit and credit the deposited balance."""
    deposit = await service.approve_deposit(request_id, admin_id=admin.admin_id)
    return _to_response(deposit)


@deposits_router.post("/{request_id}/reject", response_model=PaymentRequestResponse)
async def reject_deposit(
    request_id: str,
    body: RejectRequest,
    admin: AdminPrincipal = Depends(require_permission(Permission.DEPOSITS)),
    service: PaymentSettlement = Depends(get_payment_settlement),
):
    deposit = await service.reject_deposit(request_id, body.reason, admin_id=admin.admin_id)
    return _to_response(deposit)


# ============================================================
# Withdrawals
# ============================================================


@withdrawals_router.post("/{request_id}/approve", response_model=PaymentRequestResponse)
async def approve_withdrawal(
    request_id: str,
    admin: AdminPrincipal = Depends(require_permission(Permission.WITHDRAWALS)),
    service: PaymentSettlement = Depends(get_payment_settlement),
):
    """Mark a pending withdrawal as paid out."""
    withdrawal = await service.approve_withdrawal(request_id, admin_id=admin.admin_id)
    return _to_response(withdrawal)


@withdrawals_router.post("/{request_id}/reject", response_model=PaymentRequestResponse)
async def reject_withdrawal(
    request_id: str,
    body: RejectRequest,
    admin: AdminPrincipal = Depends(require_permission(Permission.WITHDRAWALS)),
    service: PaymentSettlement = Depends(get_payment_settlement),
):
    """Reject a pending withdrawal and refund the amount to winnings."""
    withdrawal = await service.reject_withdrawal(request_id, body.reason, admin_id=admin.admin_id)
    return _to_response(withdrawal)
