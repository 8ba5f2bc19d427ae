"""
Repositories for votes and the credit ledger.
"""
from typing import Optional, List
from sqlalchemy import func

from matchday.models import Vote, CreditLedgerEntry
from matchday.repositories.base import BaseRepository


class VoteRepository(BaseRepository[Vote]):
    """Repository for peer votes."""

    def __init__(self, db):
        super().__init__(Vote, db)

    def find_by_match(self, match_id: int) -> List[Vote]:
        return self.query().filter(Vote.match_id == match_id).order_by(Vote.id).all()

    def find_voter_vote(self, match_id: int, voter_kind: str, voter_ref: str) -> Optional[Vote]:
        return self.where_first(
            Vote.match_id == match_id,
            Vote.voter_kind == voter_kind,
            Vote.voter_ref == voter_ref,
        )


class CreditLedgerRepository(BaseRepository[CreditLedgerEntry]):
    """Repository for the append-only credit ledger."""

    def __init__(self, db):
        super().__init__(CreditLedgerEntry, db)

    def has_entries(self, team_id: int, player_id: int) -> bool:
        return self.exists_where(
            CreditLedgerEntry.team_id == team_id,
            CreditLedgerEntry.player_id == player_id,
        )

    def balance(self, team_id: int, player_id: int) -> int:
        """Running sum of a player's deltas within a team."""
        total = self.db.query(func.coalesce(func.sum(CreditLedgerEntry.delta), 0)).filter(
            CreditLedgerEntry.team_id == team_id,
            CreditLedgerEntry.player_id == player_id,
        ).scalar()
        return int(total or 0)

    def history(self, team_id: int, player_id: int) -> List[CreditLedgerEntry]:
        return self.query().filter(
            CreditLedgerEntry.team_id == team_id,
            CreditLedgerEntry.player_id == player_id,
        ).order_by(CreditLedgerEntry.id).all()
