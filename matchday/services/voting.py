"""
Player-of-the-match voting and podium payouts.

Once a match is finalized, every team member gets one vote for a player
who took part in it. Voting stays open from the finalization date through
the following VOTING_PERIOD_DAYS days.

After the window closes the podium is paid out lazily: the first time
`run_payouts` looks at the team, each closed and unpaid match claims its
`credits_awarded` flag with a conditional update and, in the same
transaction, appends a ledger entry per rewarded roster player. A concurrent
second run finds the flag already taken and pays nothing.

Podium ranking shares ranks on ties:

    votes  X=3 Y=3 Z=1, rewards [5, 3, 2]
    ->     X rank 1 +5, Y rank 1 +5, Z rank 3 +2
"""
import logging
from collections import Counter
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Sequence

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from matchday.core.config import settings
from matchday.core.errors import NotFoundError, PersistenceError, VoteRejectedError
from matchday.core.logging import match_context
from matchday.models import Match, Vote
from matchday.repositories import MatchRepository, PlayerRepository, VoteRepository
from matchday.services.credits import CreditLedger
from matchday.services.identity import PlayerKey
from matchday.services.session import MatchSession

logger = logging.getLogger(__name__)

VOTER_PLAYER = "player"
VOTER_ACCOUNT = "account"

PODIUM_PLACES = 3


@dataclass(frozen=True)
class Voter:
    """Who cast a vote: a roster player or a logged-in account."""
    kind: str
    ref: str

    @classmethod
    def player(cls, player_id: int) -> "Voter":
        return cls(VOTER_PLAYER, str(player_id))

    @classmethod
    def account(cls, account_id: str) -> "Voter":
        return cls(VOTER_ACCOUNT, str(account_id))

    @property
    def player_key(self) -> Optional[PlayerKey]:
        if self.kind != VOTER_PLAYER:
            return None
        return PlayerKey.roster(int(self.ref))


@dataclass(frozen=True)
class VoteTally:
    key: PlayerKey
    votes: int


@dataclass(frozen=True)
class PodiumEntry:
    key: PlayerKey
    votes: int
    rank: int
    reward: int


@dataclass
class PayoutResult:
    match_id: int
    podium: List[PodiumEntry]
    paid: Dict[int, int]  # roster player id -> credits


def _today() -> date:
    # finalized_at is stored in UTC
    return datetime.utcnow().date()


def voting_deadline(match: Match) -> Optional[date]:
    """Last day on which votes are accepted, or None before finalization."""
    if not match.is_finalized or match.finalized_at is None:
        return None
    return match.finalized_at.date() + timedelta(days=settings.VOTING_PERIOD_DAYS)


def is_voting_open(match: Match, today: Optional[date] = None) -> bool:
    deadline = voting_deadline(match)
    if deadline is None:
        return False
    today = today or _today()
    return match.finalized_at.date() <= today <= deadline


def is_voting_closed(match: Match, today: Optional[date] = None) -> bool:
    """True once the window has passed; a draft match is neither open nor closed."""
    deadline = voting_deadline(match)
    return deadline is not None and (today or _today()) > deadline


def tally_votes(candidates: Iterable[PlayerKey]) -> List[VoteTally]:
    """Vote counts, highest first; ties ordered by key for a stable display."""
    counts = Counter(candidates)
    return [
        VoteTally(key, votes)
        for key, votes in sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))
    ]


def compute_podium(
    candidates: Iterable[PlayerKey],
    rewards: Sequence[int],
    places: int = PODIUM_PLACES,
) -> List[PodiumEntry]:
    """
    Rank voted candidates, sharing rank and reward within a tie.

    Each tied group takes the reward at the current rank index, then the
    index advances by the size of the group. Ranks past the reward table pay 0.
    """
    tallies = tally_votes(candidates)
    podium: List[PodiumEntry] = []
    rank_index = 0
    position = 0

    while rank_index < places and position < len(tallies):
        count = tallies[position].votes
        group = [t for t in tallies[position:] if t.votes == count]
        reward = rewards[rank_index] if rank_index < len(rewards) else 0
        for tally in group:
            podium.append(PodiumEntry(tally.key, tally.votes, rank_index + 1, reward))
        rank_index += len(group)
        position += len(group)

    return podium


def vote_candidate(vote: Vote) -> PlayerKey:
    return PlayerKey.of(vote.candidate_origin, vote.candidate_id)


class VotingService:
    """Vote intake, podium views and lazy payouts."""

    def __init__(self, db: Session):
        self.db = db
        self.matches = MatchRepository(db)
        self.votes = VoteRepository(db)
        self.players = PlayerRepository(db)
        self.ledger = CreditLedger(db)

    async def participants(self, session: MatchSession) -> List[PlayerKey]:
        """Starters plus everyone brought on during the match."""
        keys = list(session.starters)
        for row in session.substitutions:
            key = PlayerKey.of(row.player_in_origin, row.player_in_id)
            if key not in keys:
                keys.append(key)
        return keys

    async def submit_vote(
        self,
        match_id: int,
        voter: Voter,
        candidate: PlayerKey,
        today: Optional[date] = None,
    ) -> Vote:
        """
        Record one vote.

        Raises:
            NotFoundError: no such match
            VoteRejectedError: window closed, unknown voter, duplicate,
                self-vote or non-participant candidate
            PersistenceError: store failure
        """
        session = await MatchSession.load(self.db, match_id)
        match = session.match

        with match_context(match_id):
            if not is_voting_open(match, today):
                raise VoteRejectedError(VoteRejectedError.WINDOW_CLOSED, "Voting is not open for this match")
            if not self._is_team_voter(voter, match):
                raise VoteRejectedError(
                    VoteRejectedError.UNKNOWN_VOTER, f"{voter.kind}:{voter.ref} is not on this team's roster"
                )
            if voter.player_key is not None and voter.player_key == candidate:
                raise VoteRejectedError(VoteRejectedError.SELF_VOTE, "You cannot vote for yourself")
            if candidate not in await self.participants(session):
                raise VoteRejectedError(
                    VoteRejectedError.NOT_PARTICIPANT, f"{candidate} did not play in this match"
                )
            if self.votes.find_voter_vote(match_id, voter.kind, voter.ref) is not None:
                raise VoteRejectedError(VoteRejectedError.DUPLICATE, "You already voted for this match")

            try:
                vote = self.votes.create(
                    match_id=match_id,
                    voter_kind=voter.kind,
                    voter_ref=voter.ref,
                    candidate_origin=candidate.origin.value,
                    candidate_id=candidate.id,
                )
                self.votes.save()
            except IntegrityError as e:
                # Lost a race against the same voter's concurrent request
                self.votes.rollback()
                raise VoteRejectedError(VoteRejectedError.DUPLICATE, "You already voted for this match") from e
            except SQLAlchemyError as e:
                self.votes.rollback()
                logger.error(f"Error saving vote: {e}", exc_info=True)
                raise PersistenceError("submit vote", e) from e

            logger.info(f"Vote by {voter.kind}:{voter.ref} for {candidate}")
            return vote

    def _is_team_voter(self, voter: Voter, match: Match) -> bool:
        # Accounts are authenticated upstream; player voters must be on the roster
        if voter.kind != VOTER_PLAYER:
            return voter.kind == VOTER_ACCOUNT and bool(voter.ref)
        if not voter.ref.isdigit():
            return False
        player = self.players.find_by_id(int(voter.ref))
        return player is not None and player.team_id == match.team_id

    async def podium(self, match_id: int) -> List[PodiumEntry]:
        if self.matches.find_by_id(match_id) is None:
            raise NotFoundError("Match", match_id)
        candidates = [vote_candidate(v) for v in self.votes.find_by_match(match_id)]
        return compute_podium(candidates, settings.PODIUM_REWARDS)

    async def voting_overview(self, match_id: int, voter: Voter, today: Optional[date] = None) -> dict:
        """Everything a voting screen needs for one voter."""
        session = await MatchSession.load(self.db, match_id)
        today = today or _today()
        votes = self.votes.find_by_match(match_id)
        counts = Counter(vote_candidate(v) for v in votes)
        own = next((v for v in votes if v.voter_kind == voter.kind and v.voter_ref == voter.ref), None)
        deadline = voting_deadline(session.match)

        candidates = []
        for key in await self.participants(session):
            player = session.player(key)
            candidates.append({
                "key": key,
                "name": player.name if player else str(key),
                "votes": counts.get(key, 0),
                "is_self": voter.player_key == key,
            })

        return {
            "match_id": match_id,
            "is_open": is_voting_open(session.match, today),
            "deadline": deadline,
            "days_remaining": max(0, (deadline - today).days) if deadline else 0,
            "has_voted": own is not None,
            "voted_for": vote_candidate(own) if own else None,
            "candidates": candidates,
        }

    async def run_payouts(self, team_id: int, today: Optional[date] = None) -> List[PayoutResult]:
        """
        Pay out every closed, unpaid match of a team.

        Safe to call from any number of clients at once; each match pays at
        most once.

        Raises:
            PersistenceError: store failure (the failing match stays unpaid)
        """
        today = today or _today()
        results = []
        for match in self.matches.find_pending_payouts(team_id):
            if not is_voting_closed(match, today):
                continue
            result = await self._pay_match(match)
            if result is not None:
                results.append(result)
        return results

    async def _pay_match(self, match: Match) -> Optional[PayoutResult]:
        match_id = match.id
        team_id = match.team_id

        with match_context(match_id):
            try:
                if not self.matches.claim_payout(match_id):
                    self.matches.rollback()
                    logger.debug("Payout already claimed")
                    return None

                candidates = [vote_candidate(v) for v in self.votes.find_by_match(match_id)]
                podium = compute_podium(candidates, settings.PODIUM_REWARDS)
                paid: Dict[int, int] = {}
                for entry in podium:
                    if entry.reward <= 0 or entry.key.is_guest:
                        continue
                    self.ledger.award(team_id, entry.key.id, entry.reward, match_id=match_id)
                    paid[entry.key.id] = entry.reward

                self.matches.save()
            except IntegrityError as e:
                self.matches.rollback()
                logger.warning(f"Payout collided with a concurrent run; skipped: {e}")
                return None
            except SQLAlchemyError as e:
                self.matches.rollback()
                logger.error(f"Error paying out match: {e}", exc_info=True)
                raise PersistenceError("podium payout", e) from e

            logger.info(f"Paid podium for match {match_id}: {paid or 'no votes'}")
            return PayoutResult(match_id, podium, paid)
