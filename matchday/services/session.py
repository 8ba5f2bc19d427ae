"""
Match-scoped engine context.

A `MatchSession` bundles everything the engine needs to reason about one
match: the match row, the resolved player set, the absence list, the lineup
draft and the committed substitution history. It is passed explicitly into
the scheduler and the finalizer instead of living in shared mutable state.

Another client may change the same match between two calls. Callers refresh
the session after their own writes and before any decision that depends on
persisted state (eligibility, finalize); the engine services do this
themselves where it matters.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from matchday.core.errors import MatchLockedError, NotFoundError
from matchday.models import Match, Substitution
from matchday.repositories import (
    MatchRepository,
    PlayerRepository,
    GuestPlayerRepository,
    AbsenceRepository,
    SubstitutionRepository,
)
from matchday.services.formations import formation_size, match_duration, normalize_formation
from matchday.services.identity import PlayerKey, UnifiedPlayer, resolve_players, index_players
from matchday.services.lineup import LineupService, LineupState

logger = logging.getLogger(__name__)


class MatchSession:
    """Snapshot of one match plus the draft lineup being edited."""

    def __init__(self, db: Session, match: Match):
        self.db = db
        self.match = match
        self.players: List[UnifiedPlayer] = []
        self.index: Dict[PlayerKey, UnifiedPlayer] = {}
        self.absences: List[int] = []
        self.lineup: LineupState = LineupState(formation_size(match.game_format))
        self.substitutions: List[Substitution] = []

    @classmethod
    async def load(cls, db: Session, match_id: int) -> "MatchSession":
        """
        Load a match and everything hanging off it.

        Raises:
            NotFoundError: no such match
        """
        match = MatchRepository(db).find_by_id(match_id)
        if match is None:
            raise NotFoundError("Match", match_id)
        session = cls(db, match)
        await session.refresh()
        return session

    async def refresh(self) -> None:
        """Re-read players, absences, lineup and substitutions from the store."""
        self.db.refresh(self.match)

        roster = PlayerRepository(self.db).find_by_team(self.match.team_id)
        guests = GuestPlayerRepository(self.db).find_by_match(self.match.id)
        self.players = resolve_players(roster, guests)
        self.index = index_players(self.players)

        self.absences = AbsenceRepository(self.db).player_ids_for_match(self.match.id)
        self.lineup = await LineupService(self.db).load_lineup(self.match, self.index, self.absences)
        self.substitutions = SubstitutionRepository(self.db).find_by_match(self.match.id)

        logger.debug(
            f"Loaded match {self.match.id}: {len(self.players)} players, "
            f"{len(self.lineup.occupants())} starters, {len(self.substitutions)} substitutions"
        )

    # ------------------------------------------------------------------
    # Derived views
    # ------------------------------------------------------------------

    @property
    def match_id(self) -> int:
        return self.match.id

    @property
    def duration(self) -> int:
        return match_duration(self.match.game_format)

    @property
    def formation(self) -> str:
        return normalize_formation(self.match.formation, self.match.game_format)

    @property
    def is_finalized(self) -> bool:
        return self.match.is_finalized

    @property
    def scheme_minutes(self) -> List[int]:
        """Trigger minutes of the match's scheme; empty means free-form."""
        scheme = self.match.scheme
        return list(scheme.minutes or []) if scheme is not None else []

    @property
    def starters(self) -> List[PlayerKey]:
        return self.lineup.occupants()

    def player(self, key: PlayerKey) -> Optional[UnifiedPlayer]:
        return self.index.get(key)

    def ensure_editable(self, action: str) -> None:
        """Raise MatchLockedError if the match no longer accepts structural edits."""
        if self.is_finalized:
            raise MatchLockedError(self.match.id, action)

    async def save_lineup(self, formation: Optional[str] = None) -> None:
        """Persist the draft lineup, then reload so later decisions see the stored state."""
        self.ensure_editable("save lineup")
        await LineupService(self.db).save_lineup(self.match, self.lineup, formation)
        await self.refresh()
