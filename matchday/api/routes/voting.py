"""
Voting routes: votes, podium, payouts and credit balances.
"""
import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from matchday.api.common import parse_key
from matchday.core.database import get_db
from matchday.core.errors import ValidationError
from matchday.services.credits import CreditLedger
from matchday.services.voting import VOTER_ACCOUNT, VOTER_PLAYER, PodiumEntry, Voter, VotingService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["voting"])


class VoterModel(BaseModel):
    voter_kind: str = Field(..., description="player or account")
    voter_ref: str = Field(..., min_length=1, max_length=64)

    def to_voter(self) -> Voter:
        if self.voter_kind == VOTER_PLAYER:
            if not self.voter_ref.isdigit():
                raise ValidationError("A player voter reference must be a roster player id")
            return Voter.player(int(self.voter_ref))
        if self.voter_kind == VOTER_ACCOUNT:
            return Voter.account(self.voter_ref)
        raise ValidationError(f"Unknown voter kind {self.voter_kind!r}")


class VoteCreate(VoterModel):
    candidate: str = Field(..., description="Player key, e.g. roster:7 or guest:3")


class VoteResponse(BaseModel):
    id: int
    match_id: int
    candidate: str
    created_at: datetime


class PodiumEntryView(BaseModel):
    player: str
    votes: int
    rank: int
    reward: int


class CandidateView(BaseModel):
    player: str
    name: str
    votes: int
    is_self: bool


class VotingOverview(BaseModel):
    match_id: int
    is_open: bool
    deadline: Optional[date]
    days_remaining: int
    has_voted: bool
    voted_for: Optional[str]
    candidates: List[CandidateView]


class PayoutView(BaseModel):
    match_id: int
    podium: List[PodiumEntryView]
    paid: Dict[int, int]


class BalanceResponse(BaseModel):
    team_id: int
    player_id: int
    balance: int


class SpendRequest(BaseModel):
    amount: int = Field(..., gt=0)
    target_player_id: Optional[int] = None
    stat_changes: Dict[str, int] = Field(
        default_factory=dict, description="Stat deltas for the target; one credit per point moved"
    )


def _podium_view(entries: List[PodiumEntry]) -> List[PodiumEntryView]:
    return [
        PodiumEntryView(player=e.key.token, votes=e.votes, rank=e.rank, reward=e.reward)
        for e in entries
    ]


@router.post("/matches/{match_id}/votes", response_model=VoteResponse, status_code=201)
async def submit_vote(match_id: int, request: VoteCreate, db: Session = Depends(get_db)):
    """Cast the one vote a voter has for a finalized match."""
    vote = await VotingService(db).submit_vote(match_id, request.to_voter(), parse_key(request.candidate))
    return VoteResponse(
        id=vote.id,
        match_id=vote.match_id,
        candidate=f"{vote.candidate_origin}:{vote.candidate_id}",
        created_at=vote.created_at,
    )


@router.get("/matches/{match_id}/votes/overview", response_model=VotingOverview)
async def voting_overview(
    match_id: int,
    voter_kind: str = Query(...),
    voter_ref: str = Query(...),
    db: Session = Depends(get_db),
):
    voter = VoterModel(voter_kind=voter_kind, voter_ref=voter_ref).to_voter()
    overview = await VotingService(db).voting_overview(match_id, voter)
    return VotingOverview(
        match_id=overview["match_id"],
        is_open=overview["is_open"],
        deadline=overview["deadline"],
        days_remaining=overview["days_remaining"],
        has_voted=overview["has_voted"],
        voted_for=overview["voted_for"].token if overview["voted_for"] else None,
        candidates=[
            CandidateView(player=c["key"].token, name=c["name"], votes=c["votes"], is_self=c["is_self"])
            for c in overview["candidates"]
        ],
    )


@router.get("/matches/{match_id}/podium", response_model=List[PodiumEntryView])
async def get_podium(match_id: int, db: Session = Depends(get_db)):
    return _podium_view(await VotingService(db).podium(match_id))


@router.post("/teams/{team_id}/payouts", response_model=List[PayoutView])
async def run_payouts(team_id: int, db: Session = Depends(get_db)):
    """Pay out every match of the team whose voting window has closed."""
    results = await VotingService(db).run_payouts(team_id)
    return [
        PayoutView(match_id=r.match_id, podium=_podium_view(r.podium), paid=r.paid)
        for r in results
    ]


@router.get("/teams/{team_id}/players/{player_id}/credits", response_model=BalanceResponse)
async def get_balance(team_id: int, player_id: int, db: Session = Depends(get_db)):
    balance = await CreditLedger(db).get_balance(team_id, player_id)
    return BalanceResponse(team_id=team_id, player_id=player_id, balance=balance)


@router.post("/teams/{team_id}/players/{player_id}/credits/spend", response_model=BalanceResponse)
async def spend_credits(team_id: int, player_id: int, request: SpendRequest, db: Session = Depends(get_db)):
    balance = await CreditLedger(db).spend(
        team_id, player_id, request.amount, request.target_player_id, stat_changes=request.stat_changes or None
    )
    return BalanceResponse(team_id=team_id, player_id=player_id, balance=balance)
