"""
Repository layer for data access.

Usage:
    from matchday.repositories import MatchRepository
    from matchday.core.database import SessionLocal

    db = SessionLocal()
    match = MatchRepository(db).find_by_id(12)
    db.close()
"""

from matchday.repositories.base import BaseRepository
from matchday.repositories.player_repository import (
    PlayerRepository,
    GuestPlayerRepository,
    find_by_key,
)
from matchday.repositories.match_repository import (
    MatchRepository,
    AbsenceRepository,
    LineupRepository,
    SchemeRepository,
)
from matchday.repositories.substitution_repository import SubstitutionRepository
from matchday.repositories.vote_repository import VoteRepository, CreditLedgerRepository

__all__ = [
    "BaseRepository",
    "PlayerRepository",
    "GuestPlayerRepository",
    "find_by_key",
    "MatchRepository",
    "AbsenceRepository",
    "LineupRepository",
    "SchemeRepository",
    "SubstitutionRepository",
    "VoteRepository",
    "CreditLedgerRepository",
]
