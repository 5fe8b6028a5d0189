"""Lottery winner endpoint."""

from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from arena_admin.api.deps import get_lottery_settlement, require_permission
from arena_admin.services import LotterySettlement
from arena_admin.utils.jwt import AdminPrincipal
from arena_admin.utils.permissions import Permission

router = APIRouter()


class SelectWinnerRequest(BaseModel):
    user_id: str


class LotteryWinnerResponse(BaseModel):
    id: str
    status: str
    winner_id: Optional[str]
    winner_name: Optional[str]
    prize_amount: str
    transaction_id: Optional[str]


@router.post("/{lottery_id}/winner", response_model=LotteryWinnerResponse)
async def select_winner(
    lottery_id: str,
    body: SelectWinnerRequest,
    admin: AdminPrincipal = Depends(require_permission(Permission.LOTTERY)),
    service: LotterySettlement = Depends(get_lottery_settlement),
):
    """Finish the lottery and credit the prize to the winner's winnings."""
    lottery, entry = await service.select_winner(lottery_id, body.user_id, admin_id=admin.admin_id)
    return LotteryWinnerResponse(
        id=lottery.id,
        status=lottery.status.value,
        winner_id=lottery.winner_id,
        winner_name=lottery.winner_name,
        prize_amount=str(lottery.prize_amount),
        transaction_id=entry.transaction.id if entry else None,
    )
