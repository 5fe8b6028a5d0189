"""Tournament result and cancellation endpoints.

Both operations settle participant by participant. When some
participants fail the response is 207 with the full summary, and
re-posting retries only what did not go through.
"""

from typing import Optional, Union

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from arena_admin.api.deps import (
    get_match_cancellation,
    get_tournament_settlement,
    require_permission,
)
from arena_admin.services import (
    MatchCancellation,
    ParticipantResult,
    TournamentSettlement,
    Winners,
)
from arena_admin.utils.jwt import AdminPrincipal
from arena_admin.utils.permissions import Permission

router = APIRouter()


# ============================================================
# Pydantic Models
# ============================================================


class ParticipantKills(BaseModel):
    participant_id: str
    kills: int = Field(ge=0)


class WinnerPicks(BaseModel):
    """Participant ids for solo, slot numbers for duo/squad."""

    first: Optional[Union[int, str]] = None
    second: Optional[Union[int, str]] = None
    third: Optional[Union[int, str]] = None


class AnnounceResultRequest(BaseModel):
    participants: list[ParticipantKills] = []
    winners: WinnerPicks = WinnerPicks()


def _pick(value: Optional[Union[int, str]]) -> Optional[str]:
    return None if value is None else str(value)


# ============================================================
# Endpoints
# ============================================================


@router.post("/{tournament_id}/results")
async def announce_result(
    tournament_id: str,
    body: AnnounceResultRequest,
    admin: AdminPrincipal = Depends(require_permission(Permission.TOURNAMENTS)),
    service: TournamentSettlement = Depends(get_tournament_settlement),
):
    """Announce or correct a tournament result."""
    summary = await service.announce_result(
        tournament_id,
        [ParticipantResult(p.participant_id, p.kills) for p in body.participants],
        Winners(
            first=_pick(body.winners.first),
            second=_pick(body.winners.second),
            third=_pick(body.winners.third),
        ),
        admin_id=admin.admin_id,
    )
    summary.raise_for_failures()
    return summary.to_dict()


@router.post("/{tournament_id}/cancel")
async def cancel_match(
    tournament_id: str,
    admin: AdminPrincipal = Depends(require_permission(Permission.TOURNAMENTS)),
    service: MatchCancellation = Depends(get_match_cancellation),
):
    """Cancel a tournament and refund entry fees."""
    summary = await service.cancel_match(tournament_id, admin_id=admin.admin_id)
    summary.raise_for_failures()
    return summary.to_dict()
