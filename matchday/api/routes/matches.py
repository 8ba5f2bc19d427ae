"""
Match routes: fixtures, lineup, substitution rounds, extra substitutions,
finalize and score.
"""
import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from matchday.api.common import PlayerView, parse_key, parse_optional_key, player_views
from matchday.core.database import get_db
from matchday.services.finalizer import MatchFinalizer
from matchday.services.formations import position_category
from matchday.services.matches import MatchService
from matchday.services.session import MatchSession
from matchday.services.substitutions import RoundDraft, SubstitutionRound, SubstitutionScheduler

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/matches", tags=["matches"])


# Request/Response models
class MatchCreate(BaseModel):
    team_id: int
    match_date: date
    opponent: str = Field(..., min_length=1, max_length=255)
    home_away: str = Field("home", description="home or away")
    game_format: Optional[str] = Field(None, description="Defaults to the team's format")
    formation: Optional[str] = None
    substitution_scheme_id: Optional[int] = None


class MatchUpdate(BaseModel):
    match_date: Optional[date] = None
    opponent: Optional[str] = Field(None, min_length=1, max_length=255)
    home_away: Optional[str] = None
    formation: Optional[str] = None
    substitution_scheme_id: Optional[int] = None


class MatchSummary(BaseModel):
    id: int
    team_id: int
    match_date: date
    opponent: str
    home_away: str
    game_format: str
    formation: Optional[str]
    substitution_scheme_id: Optional[int]
    status: str
    goals_for: Optional[int]
    goals_against: Optional[int]


class LineupSlot(BaseModel):
    position: int = Field(..., ge=0, description="Formation slot index")
    player: str = Field(..., description="Player key, e.g. roster:7 or guest:3")


class LineupUpdate(BaseModel):
    formation: Optional[str] = None
    slots: List[LineupSlot] = Field(default_factory=list)


class LineupSlotView(BaseModel):
    position: int
    category: str
    player: Optional[str]


class LineupResponse(BaseModel):
    match_id: int
    formation: str
    slots: List[LineupSlotView]
    rejected: List[LineupSlot] = Field(default_factory=list)


class PairModel(BaseModel):
    player_out: Optional[str] = None
    player_in: Optional[str] = None


class RoundUpdate(BaseModel):
    minute: Optional[int] = Field(None, ge=0, description="Required for free-form rounds")
    pairs: List[PairModel] = Field(default_factory=list)


class RoundView(BaseModel):
    round_number: int
    minute: Optional[int]
    pairs: List[PairModel]


class EligibilityResponse(BaseModel):
    round_number: int
    minute: Optional[int]
    outgoing: List[str]
    incoming: List[str]


class ExtraSubstitutionCreate(BaseModel):
    minute: int = Field(..., ge=0)
    player_out: str
    player_in: str


class ExtraSubstitutionView(BaseModel):
    id: int
    minute: int
    player_out: str
    player_in: str


class FinalizeRequest(BaseModel):
    apply_stats: bool = True


class FinalizeResponse(BaseModel):
    match_id: int
    status: str
    finalized_at: Optional[datetime]
    minutes: Dict[str, int]
    bench_minutes: Dict[str, int]


class ScoreUpdate(BaseModel):
    goals_for: int = Field(..., ge=0)
    goals_against: int = Field(..., ge=0)


class MatchOverview(BaseModel):
    id: int
    team_id: int
    match_date: date
    opponent: str
    home_away: str
    game_format: str
    status: str
    goals_for: Optional[int]
    goals_against: Optional[int]
    duration: int
    free_form: bool
    scheme_minutes: List[int]
    lineup: LineupResponse
    players: List[PlayerView]
    rounds: List[RoundView]
    extras: List[ExtraSubstitutionView]


def _match_summary(match) -> MatchSummary:
    return MatchSummary(
        id=match.id,
        team_id=match.team_id,
        match_date=match.date,
        opponent=match.opponent,
        home_away=match.home_away,
        game_format=match.game_format,
        formation=match.formation,
        substitution_scheme_id=match.substitution_scheme_id,
        status=match.status,
        goals_for=match.goals_for,
        goals_against=match.goals_against,
    )


def _lineup_response(session: MatchSession, rejected: Optional[List[LineupSlot]] = None) -> LineupResponse:
    slots = [
        LineupSlotView(
            position=index,
            category=position_category(session.match.game_format, session.formation, index),
            player=key.token if key else None,
        )
        for index, key in enumerate(session.lineup.slots)
    ]
    return LineupResponse(
        match_id=session.match_id,
        formation=session.formation,
        slots=slots,
        rejected=rejected or [],
    )


def _round_view(rnd: SubstitutionRound) -> RoundView:
    return RoundView(
        round_number=rnd.round_number,
        minute=rnd.minute,
        pairs=[
            PairModel(
                player_out=p.player_out.token if p.player_out else None,
                player_in=p.player_in.token if p.player_in else None,
            )
            for p in rnd.pairs
        ],
    )


def _draft_from_request(draft: RoundDraft, request: RoundUpdate) -> RoundDraft:
    if request.minute is not None:
        draft.minute = request.minute
    draft.pairs = []
    for pair in request.pairs:
        draft.add_pair(parse_optional_key(pair.player_out), parse_optional_key(pair.player_in))
    return draft


@router.get("", response_model=List[MatchSummary])
async def list_matches(team_id: int = Query(...), db: Session = Depends(get_db)):
    return [_match_summary(m) for m in await MatchService(db).list_matches(team_id)]


@router.post("", response_model=MatchSummary, status_code=201)
async def create_match(request: MatchCreate, db: Session = Depends(get_db)):
    match = await MatchService(db).create_match(
        request.team_id,
        request.match_date,
        request.opponent,
        home_away=request.home_away,
        game_format=request.game_format,
        formation=request.formation,
        substitution_scheme_id=request.substitution_scheme_id,
    )
    return _match_summary(match)


@router.patch("/{match_id}", response_model=MatchSummary)
async def update_match(match_id: int, request: MatchUpdate, db: Session = Depends(get_db)):
    """Change fixture details of a draft match. Only the fields sent are touched."""
    match = await MatchService(db).update_match(match_id, **request.model_dump(exclude_unset=True))
    return _match_summary(match)


@router.delete("/{match_id}", status_code=204)
async def delete_match(match_id: int, db: Session = Depends(get_db)):
    await MatchService(db).delete_match(match_id)


@router.get("/{match_id}", response_model=MatchOverview)
async def get_match(match_id: int, db: Session = Depends(get_db)):
    """Full match state: lineup, players, rounds and extra substitutions."""
    session = await MatchSession.load(db, match_id)
    scheduler = SubstitutionScheduler(session)
    match = session.match
    return MatchOverview(
        id=match.id,
        team_id=match.team_id,
        match_date=match.date,
        opponent=match.opponent,
        home_away=match.home_away,
        game_format=match.game_format,
        status=match.status,
        goals_for=match.goals_for,
        goals_against=match.goals_against,
        duration=session.duration,
        free_form=scheduler.is_free_form,
        scheme_minutes=session.scheme_minutes,
        lineup=_lineup_response(session),
        players=player_views(session.players, session.absences),
        rounds=[_round_view(r) for r in scheduler.rounds()],
        extras=[
            ExtraSubstitutionView(
                id=e.id, minute=e.minute, player_out=e.player_out.token, player_in=e.player_in.token
            )
            for e in scheduler.extra_events()
        ],
    )


@router.put("/{match_id}/lineup", response_model=LineupResponse)
async def save_lineup(match_id: int, request: LineupUpdate, db: Session = Depends(get_db)):
    """
    Replace the starting lineup.

    Slots that cannot be filled (unknown or unavailable player, slot taken,
    player already placed) are skipped and echoed back in `rejected`.
    """
    session = await MatchSession.load(db, match_id)
    session.ensure_editable("save lineup")

    session.lineup.clear()
    rejected = []
    for slot in request.slots:
        player = session.player(parse_key(slot.player))
        if not session.lineup.assign(player, slot.position):
            rejected.append(slot)

    await session.save_lineup(request.formation)
    return _lineup_response(session, rejected)


@router.get("/{match_id}/substitutions/rounds", response_model=List[RoundView])
async def list_rounds(match_id: int, db: Session = Depends(get_db)):
    session = await MatchSession.load(db, match_id)
    return [_round_view(r) for r in SubstitutionScheduler(session).rounds()]


@router.get("/{match_id}/substitutions/eligible", response_model=EligibilityResponse)
async def eligible_players(
    match_id: int,
    round_number: Optional[int] = Query(None, description="Omit to open a new free-form round"),
    minute: Optional[int] = Query(None, ge=0),
    db: Session = Depends(get_db),
):
    """Who may go off and come on in a round, given everything before it."""
    session = await MatchSession.load(db, match_id)
    scheduler = SubstitutionScheduler(session)
    draft = scheduler.open_round(round_number, minute)
    empty = RoundDraft(draft.round_number, draft.minute)
    return EligibilityResponse(
        round_number=draft.round_number,
        minute=draft.minute,
        outgoing=[k.token for k in scheduler.eligible_outgoing(empty)],
        incoming=[k.token for k in scheduler.eligible_incoming(empty)],
    )


@router.post("/{match_id}/substitutions/rounds", response_model=RoundView, status_code=201)
async def create_round(match_id: int, request: RoundUpdate, db: Session = Depends(get_db)):
    """Open and commit a new free-form round."""
    session = await MatchSession.load(db, match_id)
    scheduler = SubstitutionScheduler(session)
    draft = _draft_from_request(scheduler.open_round(None, request.minute), request)
    return _round_view(await scheduler.commit_round(draft))


@router.put("/{match_id}/substitutions/rounds/{round_number}", response_model=RoundView)
async def commit_round(match_id: int, round_number: int, request: RoundUpdate, db: Session = Depends(get_db)):
    """Replace all pairs of a round. An empty pair list deletes the round."""
    session = await MatchSession.load(db, match_id)
    scheduler = SubstitutionScheduler(session)
    draft = _draft_from_request(scheduler.open_round(round_number, request.minute), request)
    return _round_view(await scheduler.commit_round(draft))


@router.post("/{match_id}/substitutions/extra", response_model=ExtraSubstitutionView, status_code=201)
async def record_extra(match_id: int, request: ExtraSubstitutionCreate, db: Session = Depends(get_db)):
    session = await MatchSession.load(db, match_id)
    event = await SubstitutionScheduler(session).record_extra(
        request.minute, parse_key(request.player_out), parse_key(request.player_in)
    )
    return ExtraSubstitutionView(
        id=event.id, minute=event.minute, player_out=event.player_out.token, player_in=event.player_in.token
    )


@router.delete("/{match_id}/substitutions/extra/{substitution_id}", status_code=204)
async def remove_extra(match_id: int, substitution_id: int, db: Session = Depends(get_db)):
    session = await MatchSession.load(db, match_id)
    await SubstitutionScheduler(session).remove_extra(substitution_id)


@router.post("/{match_id}/finalize", response_model=FinalizeResponse)
async def finalize_match(
    match_id: int,
    request: Optional[FinalizeRequest] = None,
    db: Session = Depends(get_db),
):
    """Lock the match and add every participant's minutes to their stats."""
    request = request or FinalizeRequest()
    session = await MatchSession.load(db, match_id)
    report = await MatchFinalizer(db).finalize(session, apply_stats=request.apply_stats)
    return FinalizeResponse(
        match_id=match_id,
        status=session.match.status,
        finalized_at=session.match.finalized_at,
        minutes={key.token: report.played(key) for key in report.participants()},
        bench_minutes={key.token: report.bench(key) for key in report.participants()},
    )


@router.put("/{match_id}/score")
async def update_score(match_id: int, request: ScoreUpdate, db: Session = Depends(get_db)):
    match = await MatchFinalizer(db).update_score(match_id, request.goals_for, request.goals_against)
    return {
        "match_id": match.id,
        "goals_for": match.goals_for,
        "goals_against": match.goals_against,
        "status": match.status,
    }
