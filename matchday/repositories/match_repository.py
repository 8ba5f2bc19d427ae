"""
Match Repository: matches, absences, lineups and substitution schemes.

Usage:
    repo = MatchRepository(db)
    match = repo.find_by_id(12)
    pending = repo.find_pending_payouts(team_id=1)
"""
from typing import Optional, List

from matchday.models import (
    Match, MatchAbsence, LineupEntry, SubstitutionScheme, STATUS_FINALIZED
)
from matchday.repositories.base import BaseRepository


class MatchRepository(BaseRepository[Match]):
    """Repository for match records."""

    def __init__(self, db):
        super().__init__(Match, db)

    def find_by_team(self, team_id: int) -> List[Match]:
        """All matches of a team, most recent first."""
        return self.query().filter(Match.team_id == team_id).order_by(Match.date.desc()).all()

    def find_pending_payouts(self, team_id: int) -> List[Match]:
        """Finalized matches whose voting payout has not run yet."""
        return self.query().filter(
            Match.team_id == team_id,
            Match.status == STATUS_FINALIZED,
            Match.credits_awarded == False,  # noqa: E712
        ).order_by(Match.date).all()

    def claim_payout(self, match_id: int) -> bool:
        """
        Atomically flip credits_awarded from False to True.

        Returns:
            True if this caller flipped the flag, False if it was already set
        """
        changed = self.update_where(
            {"credits_awarded": True},
            Match.id == match_id,
            Match.credits_awarded == False,  # noqa: E712
        )
        return changed == 1


class AbsenceRepository(BaseRepository[MatchAbsence]):
    """Repository for per-match absence reports."""

    def __init__(self, db):
        super().__init__(MatchAbsence, db)

    def player_ids_for_match(self, match_id: int) -> List[int]:
        return [a.player_id for a in self.where(MatchAbsence.match_id == match_id)]

    def find_for_player(self, match_id: int, player_id: int) -> Optional[MatchAbsence]:
        return self.where_first(
            MatchAbsence.match_id == match_id,
            MatchAbsence.player_id == player_id,
        )


class LineupRepository(BaseRepository[LineupEntry]):
    """Repository for starting lineup rows."""

    def __init__(self, db):
        super().__init__(LineupEntry, db)

    def find_by_match(self, match_id: int) -> List[LineupEntry]:
        return self.query().filter(LineupEntry.match_id == match_id).order_by(LineupEntry.position).all()

    def delete_for_match(self, match_id: int) -> int:
        return self.delete_where(LineupEntry.match_id == match_id)


class SchemeRepository(BaseRepository[SubstitutionScheme]):
    """Repository for substitution schemes."""

    def __init__(self, db):
        super().__init__(SubstitutionScheme, db)
