"""
Roster management: injuries, absences, guest players and stat corrections.
"""
import logging
from datetime import datetime
from typing import Dict, Iterable, List, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from matchday.core.errors import MatchLockedError, NotFoundError, PersistenceError, ValidationError
from matchday.models import GuestPlayer, Player
from matchday.repositories import (
    AbsenceRepository,
    GuestPlayerRepository,
    MatchRepository,
    PlayerRepository,
    find_by_key,
)
from matchday.services.formations import POSITION_ORDER, POSITION_MIDFIELDER
from matchday.services.identity import PlayerKey, UnifiedPlayer

logger = logging.getLogger(__name__)

# Cumulative stat columns shared by roster and guest players
EDITABLE_STATS = (
    "goals", "assists", "minutes_played", "bench_minutes", "appearances", "yellow_cards", "red_cards",
)


def set_stat(record: Union[Player, GuestPlayer], field: str, value: int) -> None:
    """Overwrite one cumulative stat. Does not commit."""
    if field not in EDITABLE_STATS:
        raise ValidationError(f"Unknown stat {field!r}")
    if value < 0:
        raise ValidationError(f"{field} cannot be negative")
    setattr(record, field, value)
    record.updated_at = datetime.utcnow()


def grouped_by_position(players: Iterable[UnifiedPlayer]) -> Dict[str, List[UnifiedPlayer]]:
    """
    Group players by their preferred position for selection lists.

    Groups follow keeper/defence/midfield/attack order (unknown positions
    last); within a group, whoever sat on the bench longest comes first.
    """
    groups: Dict[str, List[UnifiedPlayer]] = {position: [] for position in POSITION_ORDER}
    for player in players:
        groups.setdefault(player.position, []).append(player)
    for members in groups.values():
        members.sort(key=lambda p: (-p.stats.bench_minutes, p.name))
    return {position: members for position, members in groups.items() if members}


class RosterService:
    def __init__(self, db: Session):
        self.db = db
        self.players = PlayerRepository(db)
        self.guests = GuestPlayerRepository(db)
        self.matches = MatchRepository(db)
        self.absences = AbsenceRepository(db)

    async def toggle_injury(self, player_id: int) -> Player:
        """Flip the injured flag of a roster player. Guests cannot be marked injured."""
        player = self.players.find_by_id(player_id)
        if player is None:
            raise NotFoundError("Player", player_id)

        player.injured = not player.injured
        player.updated_at = datetime.utcnow()
        self._save("toggle injury")
        logger.info(f"Player {player_id} injured={player.injured}")
        return player

    async def update_stat(self, key: PlayerKey, field: str, value: int) -> Union[Player, GuestPlayer]:
        """
        Correct a cumulative stat of a roster or guest player.

        Allowed after finalization: stats are corrected, not the match.

        Raises:
            NotFoundError: no such player
            ValidationError: unknown stat or negative value
        """
        record = find_by_key(self.db, key.origin.value, key.id)
        if record is None:
            raise NotFoundError("Player", key)

        set_stat(record, field, value)
        self._save("update stat")
        logger.info(f"Set {field}={value} for {key}")
        return record

    async def add_guest(self, match_id: int, name: str, position: str = POSITION_MIDFIELDER) -> GuestPlayer:
        """Create a guest player for one draft match."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("A guest needs a name")
        if position not in POSITION_ORDER:
            raise ValidationError(f"Unknown position {position!r}")
        self._editable_match(match_id, "add guest")

        guest = self.guests.create(match_id=match_id, name=name, position=position)
        self._save("add guest")
        logger.info(f"Added guest {guest.id} ({name}) to match {match_id}")
        return guest

    async def remove_guest(self, guest_id: int) -> None:
        guest = self.guests.find_by_id(guest_id)
        if guest is None:
            raise NotFoundError("Guest player", guest_id)
        self._editable_match(guest.match_id, "remove guest")

        self.guests.delete(guest_id)
        self._save("remove guest")
        logger.info(f"Removed guest {guest_id}")

    async def toggle_absence(self, match_id: int, player_id: int) -> bool:
        """
        Report a roster player absent for a match, or withdraw the report.

        Returns:
            True if the player is now absent
        """
        match = self._editable_match(match_id, "toggle absence")
        player = self.players.find_by_id(player_id)
        if player is None or player.team_id != match.team_id:
            raise NotFoundError("Player", player_id)

        existing = self.absences.find_for_player(match_id, player_id)
        if existing is not None:
            self.absences.delete(existing.id)
        else:
            self.absences.create(match_id=match_id, player_id=player_id)
        self._save("toggle absence")
        return existing is None

    def _editable_match(self, match_id: int, action: str):
        match = self.matches.find_by_id(match_id)
        if match is None:
            raise NotFoundError("Match", match_id)
        if match.is_finalized:
            raise MatchLockedError(match_id, action)
        return match

    def _save(self, operation: str) -> None:
        try:
            self.players.save()
        except SQLAlchemyError as e:
            self.players.rollback()
            logger.error(f"Error during {operation}: {e}", exc_info=True)
            raise PersistenceError(operation, e) from e
