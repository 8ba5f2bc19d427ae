"""Tests for the append-only credit ledger."""
from unittest.mock import patch

import pytest
from sqlalchemy.exc import IntegrityError

from matchday.core.errors import InsufficientCreditsError, NotFoundError, ValidationError
from matchday.models import CreditLedgerEntry, Team, Player, REASON_INITIAL, REASON_SPEND
from matchday.services.credits import CreditLedger


def entries(db_session, player_id):
    return db_session.query(CreditLedgerEntry).filter_by(player_id=player_id).order_by(CreditLedgerEntry.id).all()


class TestCreditLedger:

    @pytest.mark.asyncio
    async def test_first_access_opens_account(self, db_session, team, roster):
        ledger = CreditLedger(db_session)

        assert await ledger.get_balance(team.id, roster[0].id) == 10
        assert await ledger.get_balance(team.id, roster[0].id) == 10

        rows = entries(db_session, roster[0].id)
        assert [(r.delta, r.reason) for r in rows] == [(10, REASON_INITIAL)]

    @pytest.mark.asyncio
    async def test_spend_appends_negative_entry(self, db_session, team, roster):
        ledger = CreditLedger(db_session)

        balance = await ledger.spend(team.id, roster[0].id, 4, target_player_id=roster[1].id)

        assert balance == 6
        assert await ledger.get_balance(team.id, roster[0].id) == 6
        spend = entries(db_session, roster[0].id)[-1]
        assert (spend.delta, spend.reason, spend.target_player_id) == (-4, REASON_SPEND, roster[1].id)

    @pytest.mark.asyncio
    async def test_overspend_is_rejected(self, db_session, team, roster):
        ledger = CreditLedger(db_session)
        await ledger.get_balance(team.id, roster[0].id)

        with pytest.raises(InsufficientCreditsError) as exc_info:
            await ledger.spend(team.id, roster[0].id, 11)

        assert (exc_info.value.balance, exc_info.value.requested) == (10, 11)
        assert len(entries(db_session, roster[0].id)) == 1

    @pytest.mark.asyncio
    async def test_non_positive_amount_is_rejected(self, db_session, team, roster):
        with pytest.raises(ValidationError):
            await CreditLedger(db_session).spend(team.id, roster[0].id, 0)

    @pytest.mark.asyncio
    async def test_player_from_other_team(self, db_session, team, roster):
        other = Team(name="Other", game_format="7v7")
        db_session.add(other)
        db_session.commit()

        with pytest.raises(NotFoundError):
            await CreditLedger(db_session).get_balance(other.id, roster[0].id)

    @pytest.mark.asyncio
    async def test_balances_are_per_team(self, db_session, team, roster):
        other = Team(name="Other", game_format="7v7")
        db_session.add(other)
        db_session.flush()
        transfer = Player(team_id=other.id, name="Nieuw")
        db_session.add(transfer)
        db_session.commit()
        ledger = CreditLedger(db_session)

        await ledger.spend(team.id, roster[0].id, 3)

        assert await ledger.get_balance(other.id, transfer.id) == 10
        assert await ledger.get_balance(team.id, roster[0].id) == 7

    @pytest.mark.asyncio
    async def test_history(self, db_session, team, roster):
        ledger = CreditLedger(db_session)
        await ledger.spend(team.id, roster[0].id, 2)

        history = await ledger.history(team.id, roster[0].id)

        assert [e.delta for e in history] == [10, -2]

    @pytest.mark.asyncio
    async def test_starting_grant_is_unique(self, db_session, team, roster):
        await CreditLedger(db_session).get_balance(team.id, roster[0].id)

        db_session.add(CreditLedgerEntry(team_id=team.id, player_id=roster[0].id, delta=10, reason=REASON_INITIAL))
        with pytest.raises(IntegrityError):
            db_session.commit()
        db_session.rollback()

    @pytest.mark.asyncio
    async def test_concurrently_opened_account_is_not_granted_twice(self, db_session, team, roster):
        ledger = CreditLedger(db_session)
        await ledger.get_balance(team.id, roster[0].id)

        # Another request opened the account between the check and the insert
        with patch.object(ledger.entries, "has_entries", return_value=False):
            assert await ledger.get_balance(team.id, roster[0].id) == 10

        assert [r.reason for r in entries(db_session, roster[0].id)] == [REASON_INITIAL]


class TestSpendOnStats:

    @pytest.mark.asyncio
    async def test_stat_change_and_debit_are_stored_together(self, db_session, team, roster):
        roster[1].goals = 2
        db_session.commit()
        ledger = CreditLedger(db_session)

        balance = await ledger.spend(
            team.id, roster[0].id, 3, target_player_id=roster[1].id, stat_changes={"goals": 2, "red_cards": 1}
        )

        assert balance == 7
        db_session.expire_all()
        target = db_session.get(Player, roster[1].id)
        assert (target.goals, target.red_cards) == (4, 1)
        assert entries(db_session, roster[0].id)[-1].target_player_id == roster[1].id

    @pytest.mark.asyncio
    async def test_lowering_a_stat_costs_too(self, db_session, team, roster):
        roster[1].yellow_cards = 2
        db_session.commit()

        balance = await CreditLedger(db_session).spend(
            team.id, roster[0].id, 2, target_player_id=roster[1].id, stat_changes={"yellow_cards": -2}
        )

        assert balance == 8
        assert db_session.get(Player, roster[1].id).yellow_cards == 0

    @pytest.mark.asyncio
    async def test_amount_must_match_points_moved(self, db_session, team, roster):
        with pytest.raises(ValidationError):
            await CreditLedger(db_session).spend(
                team.id, roster[0].id, 1, target_player_id=roster[1].id, stat_changes={"goals": 2}
            )

        assert db_session.get(Player, roster[1].id).goals == 0
        assert entries(db_session, roster[0].id) == []

    @pytest.mark.asyncio
    async def test_stat_changes_need_a_target(self, db_session, team, roster):
        with pytest.raises(ValidationError):
            await CreditLedger(db_session).spend(team.id, roster[0].id, 1, stat_changes={"goals": 1})

    @pytest.mark.asyncio
    async def test_stat_below_zero_writes_nothing(self, db_session, team, roster):
        ledger = CreditLedger(db_session)

        with pytest.raises(ValidationError):
            await ledger.spend(team.id, roster[0].id, 1, target_player_id=roster[1].id, stat_changes={"goals": -1})

        assert await ledger.get_balance(team.id, roster[0].id) == 10
        assert len(entries(db_session, roster[0].id)) == 1

    @pytest.mark.asyncio
    async def test_insufficient_balance_leaves_stats_alone(self, db_session, team, roster):
        with pytest.raises(InsufficientCreditsError):
            await CreditLedger(db_session).spend(
                team.id, roster[0].id, 11, target_player_id=roster[1].id, stat_changes={"goals": 11}
            )

        db_session.expire_all()
        assert db_session.get(Player, roster[1].id).goals == 0

    @pytest.mark.asyncio
    async def test_target_from_other_team(self, db_session, team, roster):
        other = Team(name="Other", game_format="7v7")
        db_session.add(other)
        db_session.flush()
        stranger = Player(team_id=other.id, name="Vreemde")
        db_session.add(stranger)
        db_session.commit()

        with pytest.raises(NotFoundError):
            await CreditLedger(db_session).spend(
                team.id, roster[0].id, 1, target_player_id=stranger.id, stat_changes={"goals": 1}
            )
