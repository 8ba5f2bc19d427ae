"""
Credit ledger service.

Credits are never stored as a mutable balance. Every movement is an
appended ledger row and a balance is the sum of a player's rows within one
team. A player's first balance lookup opens their account with the starting
grant.

Spending buys stat changes: each point a target player's stat moves, up or
down, costs one credit, and the stat change is stored in the same transaction
as the debit.
"""
import logging
from typing import Dict, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from matchday.core.config import settings
from matchday.core.errors import InsufficientCreditsError, NotFoundError, PersistenceError, ValidationError
from matchday.models import CreditLedgerEntry, Player, REASON_INITIAL, REASON_PODIUM, REASON_SPEND
from matchday.repositories import CreditLedgerRepository, PlayerRepository
from matchday.services.roster import set_stat

logger = logging.getLogger(__name__)


class CreditLedger:
    """Balances, grants and spending for roster players."""

    def __init__(self, db: Session):
        self.db = db
        self.entries = CreditLedgerRepository(db)
        self.players = PlayerRepository(db)

    def open_account(self, team_id: int, player_id: int) -> bool:
        """
        Append the starting grant if the player has no ledger rows yet.

        Does not commit; callers fold it into their own transaction.

        Returns:
            True if the account was opened by this call
        """
        if self.entries.has_entries(team_id, player_id):
            return False
        self.entries.create(
            team_id=team_id,
            player_id=player_id,
            delta=settings.INITIAL_CREDIT_BALANCE,
            reason=REASON_INITIAL,
        )
        self.entries.flush()
        logger.info(f"Opened credit account for player {player_id} with {settings.INITIAL_CREDIT_BALANCE}")
        return True

    def award(self, team_id: int, player_id: int, amount: int, match_id: Optional[int] = None) -> CreditLedgerEntry:
        """Append a podium reward. Does not commit."""
        self.open_account(team_id, player_id)
        entry = self.entries.create(
            team_id=team_id,
            player_id=player_id,
            delta=amount,
            reason=REASON_PODIUM,
            match_id=match_id,
        )
        self.entries.flush()
        return entry

    async def get_balance(self, team_id: int, player_id: int) -> int:
        """
        Current balance, opening the account on first access.

        Raises:
            NotFoundError: player is not on this team's roster
            PersistenceError: store failure
        """
        self._require_member(team_id, player_id)
        self._ensure_account(team_id, player_id)
        return self.entries.balance(team_id, player_id)

    async def spend(
        self,
        team_id: int,
        player_id: int,
        amount: int,
        target_player_id: Optional[int] = None,
        stat_changes: Optional[Dict[str, int]] = None,
    ) -> int:
        """
        Spend credits, optionally changing a target player's stats.

        Args:
            stat_changes: stat -> delta applied to the target; the amount
                must equal the total number of points moved

        Returns:
            The balance after spending

        Raises:
            ValidationError: non-positive amount, bad stat change or a cost
                that does not match the changes
            InsufficientCreditsError: balance too low; nothing is written
            NotFoundError: player is not on this team's roster
            PersistenceError: store failure
        """
        if amount <= 0:
            raise ValidationError("Amount to spend must be positive")
        self._require_member(team_id, player_id)
        target = None
        if stat_changes:
            if target_player_id is None:
                raise ValidationError("Stat changes need a target player")
            cost = sum(abs(delta) for delta in stat_changes.values())
            if cost != amount:
                raise ValidationError(f"These stat changes cost {cost} credits, not {amount}")
            target = self._require_member(team_id, target_player_id)

        self._ensure_account(team_id, player_id)
        balance = self.entries.balance(team_id, player_id)
        if balance < amount:
            raise InsufficientCreditsError(balance, amount)

        try:
            if target is not None:
                for field, delta in stat_changes.items():
                    set_stat(target, field, (getattr(target, field, None) or 0) + delta)

            self.entries.create(
                team_id=team_id,
                player_id=player_id,
                delta=-amount,
                reason=REASON_SPEND,
                target_player_id=target_player_id,
            )
            self.entries.save()
        except ValidationError:
            self.entries.rollback()
            raise
        except SQLAlchemyError as e:
            self.entries.rollback()
            raise PersistenceError("spend credits", e) from e

        if target is not None:
            logger.info(f"Player {player_id} spent {amount} credits on {target_player_id}: {stat_changes}")
        else:
            logger.info(f"Player {player_id} spent {amount} credits")
        return balance - amount

    async def history(self, team_id: int, player_id: int) -> List[CreditLedgerEntry]:
        self._require_member(team_id, player_id)
        return self.entries.history(team_id, player_id)

    def _ensure_account(self, team_id: int, player_id: int) -> None:
        try:
            if self.open_account(team_id, player_id):
                self.entries.save()
        except IntegrityError:
            # A concurrent first lookup wrote the starting grant
            self.entries.rollback()
            logger.debug(f"Credit account for player {player_id} was opened concurrently")
        except SQLAlchemyError as e:
            self.entries.rollback()
            raise PersistenceError("open credit account", e) from e

    def _require_member(self, team_id: int, player_id: int) -> Player:
        player = self.players.find_by_id(player_id)
        if player is None or player.team_id != team_id:
            raise NotFoundError("Player", player_id)
        return player
