"""
Repositories for the two player collections.

Roster players and guest players are stored separately and their ids come
from independent sequences; lookups that cross the two go through
`find_by_key`, which takes an (origin, id) pair.
"""
from typing import Optional, List

from matchday.models import Player, GuestPlayer, ORIGIN_ROSTER, ORIGIN_GUEST
from matchday.repositories.base import BaseRepository


class PlayerRepository(BaseRepository[Player]):
    """Repository for season roster players."""

    def __init__(self, db):
        super().__init__(Player, db)

    def find_by_team(self, team_id: int) -> List[Player]:
        """All roster players of a team, ordered by id."""
        return self.query().filter(Player.team_id == team_id).order_by(Player.id).all()


class GuestPlayerRepository(BaseRepository[GuestPlayer]):
    """Repository for match-scoped guest players."""

    def __init__(self, db):
        super().__init__(GuestPlayer, db)

    def find_by_match(self, match_id: int) -> List[GuestPlayer]:
        return self.query().filter(GuestPlayer.match_id == match_id).order_by(GuestPlayer.id).all()


def find_by_key(db, origin: str, player_id: int) -> Optional[Player | GuestPlayer]:
    """Load the record behind a composite (origin, id) player identity."""
    if origin == ORIGIN_ROSTER:
        return PlayerRepository(db).find_by_id(player_id)
    if origin == ORIGIN_GUEST:
        return GuestPlayerRepository(db).find_by_id(player_id)
    raise ValueError(f"Unknown player origin: {origin!r}")
