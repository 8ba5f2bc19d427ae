"""
Substitution Repository.

Rounds are never updated in place: committing a round deletes every row of
that round and inserts the new set in the same transaction.
"""
from typing import List

from matchday.models import Substitution
from matchday.repositories.base import BaseRepository


class SubstitutionRepository(BaseRepository[Substitution]):
    """Repository for substitution events."""

    def __init__(self, db):
        super().__init__(Substitution, db)

    def find_by_match(self, match_id: int) -> List[Substitution]:
        return self.query().filter(Substitution.match_id == match_id).order_by(
            Substitution.minute, Substitution.round_number, Substitution.id
        ).all()

    def find_round(self, match_id: int, round_number: int) -> List[Substitution]:
        return self.query().filter(
            Substitution.match_id == match_id,
            Substitution.round_number == round_number,
            Substitution.is_extra == False,  # noqa: E712
        ).order_by(Substitution.id).all()

    def delete_round(self, match_id: int, round_number: int) -> int:
        return self.delete_where(
            Substitution.match_id == match_id,
            Substitution.round_number == round_number,
            Substitution.is_extra == False,  # noqa: E712
        )
