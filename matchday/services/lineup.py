"""
Lineup assignment state and persistence.

`LineupState` is the in-memory draft of a starting lineup: one cell per
formation slot, each empty or holding one `PlayerKey`. It refuses bad
assignments silently (returns False) rather than raising, since the caller
is expected to pre-filter choices and only needs to know whether the
placement happened.

`LineupService` loads and saves the draft. Saving replaces every lineup row
of the match in one transaction (delete then insert), and is refused when
the new starters no longer fit the committed substitution rounds.
"""
import logging
from typing import Collection, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from matchday.core.errors import MatchLockedError, PersistenceError, SubstitutionValidationError
from matchday.core.logging import match_context
from matchday.models import Match
from matchday.repositories import LineupRepository, SubstitutionRepository
from matchday.services.availability import is_available
from matchday.services.formations import formation_size, normalize_formation
from matchday.services.identity import PlayerKey, UnifiedPlayer
from matchday.services.timeline import events_from_rows, find_conflicts

logger = logging.getLogger(__name__)


class LineupState:
    """Formation slot -> occupant mapping with one-slot-per-player enforcement."""

    def __init__(self, size: int, absences: Collection[int] = ()):
        self.size = size
        self.absences = set(absences)
        self.slots: List[Optional[PlayerKey]] = [None] * size

    def assign(self, player: Optional[UnifiedPlayer], slot: int) -> bool:
        """
        Place a player in an empty slot.

        No-op (returns False) when the slot is out of range or taken, the
        player is unavailable, or the player already holds another slot.
        """
        if player is None or not 0 <= slot < self.size:
            return False
        current = self.slot_of(player.key)
        if current == slot:
            return True
        if current is not None:
            return False
        if self.slots[slot] is not None:
            return False
        if not is_available(player, self.absences):
            return False
        self.slots[slot] = player.key
        return True

    def unassign(self, slot: int) -> Optional[PlayerKey]:
        """Clear a slot, returning whoever held it."""
        if not 0 <= slot < self.size:
            return None
        previous = self.slots[slot]
        self.slots[slot] = None
        return previous

    def is_occupied(self, key: PlayerKey) -> bool:
        return key in self.slots

    def slot_of(self, key: PlayerKey) -> Optional[int]:
        for index, occupant in enumerate(self.slots):
            if occupant == key:
                return index
        return None

    def occupants(self) -> List[PlayerKey]:
        """Starting players in slot order."""
        return [key for key in self.slots if key is not None]

    def clear(self) -> None:
        self.slots = [None] * self.size

    def resize(self, size: int) -> None:
        """Change formation size; players in dropped slots leave the lineup."""
        if size < self.size:
            self.slots = self.slots[:size]
        else:
            self.slots = self.slots + [None] * (size - self.size)
        self.size = size

    def _place(self, key: PlayerKey, slot: int) -> None:
        # Restoring persisted rows: availability may have changed since saving
        if 0 <= slot < self.size and self.slots[slot] is None and not self.is_occupied(key):
            self.slots[slot] = key

    def __repr__(self):
        filled = sum(1 for k in self.slots if k is not None)
        return f"LineupState(size={self.size}, filled={filled})"


class LineupService:
    """Loads and saves starting lineups."""

    def __init__(self, db: Session):
        self.db = db
        self.lineups = LineupRepository(db)

    async def load_lineup(
        self,
        match: Match,
        players: Dict[PlayerKey, UnifiedPlayer],
        absences: Collection[int] = (),
    ) -> LineupState:
        """
        Rebuild the lineup draft of a match.

        Rows pointing at players outside the resolved set (a deleted guest,
        a suppressed duplicate) are skipped.
        """
        state = LineupState(formation_size(match.game_format), absences)
        for row in self.lineups.find_by_match(match.id):
            key = PlayerKey.of(row.player_origin, row.player_id)
            if key not in players:
                logger.warning(f"Lineup row for unknown player {key} in match {match.id}; skipped")
                continue
            state._place(key, row.position)
        return state

    async def save_lineup(
        self,
        match: Match,
        state: LineupState,
        formation: Optional[str] = None,
    ) -> None:
        """
        Persist the draft, replacing all lineup rows of the match.

        Raises:
            MatchLockedError: match already finalized
            SubstitutionValidationError: a committed round takes off a player
                who would no longer be on the pitch, or brings on a starter
            PersistenceError: store failure (nothing is changed)
        """
        if match.is_finalized:
            raise MatchLockedError(match.id, "save lineup")

        events = events_from_rows(SubstitutionRepository(self.db).find_by_match(match.id))
        conflicts = find_conflicts(state.occupants(), events)
        if conflicts:
            logger.info(f"Rejected lineup for match {match.id}: {'; '.join(conflicts)}")
            raise SubstitutionValidationError(conflicts)

        with match_context(match.id):
            try:
                if formation is not None:
                    match.formation = normalize_formation(formation, match.game_format)

                self.lineups.delete_for_match(match.id)
                self.lineups.create_many([
                    {
                        "match_id": match.id,
                        "position": slot,
                        "player_origin": key.origin.value,
                        "player_id": key.id,
                    }
                    for slot, key in enumerate(state.slots)
                    if key is not None
                ])
                self.lineups.save()
            except SQLAlchemyError as e:
                self.lineups.rollback()
                logger.error(f"Error saving lineup: {e}", exc_info=True)
                raise PersistenceError("save lineup", e) from e

            logger.info(f"Saved lineup with {len(state.occupants())} starters")
