"""
Player routes: the resolved roster+guest list, injuries, absences, guests
and stat corrections.
"""
import logging
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from matchday.api.common import PlayerView, parse_key, player_view, player_views
from matchday.core.database import get_db
from matchday.core.errors import NotFoundError
from matchday.repositories import AbsenceRepository, GuestPlayerRepository, MatchRepository, PlayerRepository
from matchday.services.formations import POSITION_MIDFIELDER
from matchday.services.identity import PlayerOrigin, UnifiedPlayer, resolve_players
from matchday.services.roster import RosterService, grouped_by_position

logger = logging.getLogger(__name__)

router = APIRouter(tags=["players"])


class GuestCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    position: str = Field(POSITION_MIDFIELDER, description="Keeper, Verdediger, Middenvelder or Aanvaller")


class AbsenceResponse(BaseModel):
    match_id: int
    player_id: int
    absent: bool


class StatUpdate(BaseModel):
    value: int = Field(..., ge=0)


class StatResponse(BaseModel):
    player: str
    field: str
    value: int


@router.get("/teams/{team_id}/players", response_model=List[PlayerView])
async def list_players(
    team_id: int,
    match_id: Optional[int] = Query(None, description="Include this match's guests and absences"),
    db: Session = Depends(get_db),
):
    """
    Resolved player list: roster players (deduplicated by name) followed by
    the match's guests, with per-match availability.
    """
    roster = PlayerRepository(db).find_by_team(team_id)
    guests = []
    absences: List[int] = []
    if match_id is not None:
        match = MatchRepository(db).find_by_id(match_id)
        if match is None or match.team_id != team_id:
            raise NotFoundError("Match", match_id)
        guests = GuestPlayerRepository(db).find_by_match(match_id)
        absences = AbsenceRepository(db).player_ids_for_match(match_id)

    return player_views(resolve_players(roster, guests), absences)


@router.get("/teams/{team_id}/players/by-position", response_model=Dict[str, List[PlayerView]])
async def players_by_position(team_id: int, db: Session = Depends(get_db)):
    """Roster grouped by position, longest-benched first within each group."""
    players = resolve_players(PlayerRepository(db).find_by_team(team_id))
    return {
        position: player_views(members)
        for position, members in grouped_by_position(players).items()
    }


@router.post("/players/{player_id}/injury/toggle", response_model=PlayerView)
async def toggle_injury(player_id: int, db: Session = Depends(get_db)):
    player = await RosterService(db).toggle_injury(player_id)
    return player_view(UnifiedPlayer.from_record(player, PlayerOrigin.ROSTER))


@router.post("/matches/{match_id}/absences/{player_id}/toggle", response_model=AbsenceResponse)
async def toggle_absence(match_id: int, player_id: int, db: Session = Depends(get_db)):
    absent = await RosterService(db).toggle_absence(match_id, player_id)
    return AbsenceResponse(match_id=match_id, player_id=player_id, absent=absent)


@router.post("/matches/{match_id}/guests", response_model=PlayerView, status_code=201)
async def add_guest(match_id: int, request: GuestCreate, db: Session = Depends(get_db)):
    guest = await RosterService(db).add_guest(match_id, request.name, request.position)
    return player_view(UnifiedPlayer.from_record(guest, PlayerOrigin.GUEST))


@router.delete("/guests/{guest_id}", status_code=204)
async def remove_guest(guest_id: int, db: Session = Depends(get_db)):
    await RosterService(db).remove_guest(guest_id)


@router.put("/players/{player_key}/stats/{field}", response_model=StatResponse)
async def update_stat(player_key: str, field: str, request: StatUpdate, db: Session = Depends(get_db)):
    """Correct one cumulative stat, e.g. PUT /players/roster:7/stats/goals."""
    key = parse_key(player_key)
    record = await RosterService(db).update_stat(key, field, request.value)
    return StatResponse(player=key.token, field=field, value=getattr(record, field))
