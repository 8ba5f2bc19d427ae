"""Tests for the availability filter and lineup assignment state."""
import pytest

from matchday.core.errors import MatchLockedError, SubstitutionValidationError
from matchday.models import LineupEntry
from matchday.services.availability import available_players, bench_players, is_available
from matchday.services.identity import PlayerKey, PlayerOrigin, UnifiedPlayer
from matchday.services.lineup import LineupService, LineupState
from matchday.services.session import MatchSession
from matchday.services.substitutions import SubstitutionScheduler


def roster_player(id, injured=False):
    return UnifiedPlayer(PlayerKey(PlayerOrigin.ROSTER, id), f"Roster {id}", "Middenvelder", injured)


def guest_player(id, injured=False):
    return UnifiedPlayer(PlayerKey(PlayerOrigin.GUEST, id), f"Guest {id}", "Aanvaller", injured)


class TestAvailability:

    def test_none_is_unavailable(self):
        assert not is_available(None, [])

    def test_injured_is_unavailable(self):
        assert not is_available(roster_player(1, injured=True), [])
        assert not is_available(guest_player(1, injured=True), [])

    def test_absent_roster_player_is_unavailable(self):
        assert not is_available(roster_player(4), [4])
        assert is_available(roster_player(5), [4])

    def test_guest_never_checked_against_absences(self):
        """Guest 4 is available even though roster player 4 is absent."""
        assert is_available(guest_player(4), [4])

    def test_available_and_bench_players(self):
        players = [roster_player(1), roster_player(2), roster_player(3, injured=True), guest_player(2)]

        assert [p.key for p in available_players(players, [2])] == [PlayerKey.roster(1), PlayerKey.guest(2)]
        assert [p.key for p in bench_players(players, [], {PlayerKey.roster(1)})] == [
            PlayerKey.roster(2), PlayerKey.guest(2)
        ]


class TestLineupState:

    def test_assign_to_empty_slot(self):
        state = LineupState(3)

        assert state.assign(roster_player(1), 0)
        assert state.slots == [PlayerKey.roster(1), None, None]

    def test_occupied_slot_is_noop(self):
        state = LineupState(3)
        state.assign(roster_player(1), 0)

        assert not state.assign(roster_player(2), 0)
        assert state.slots[0] == PlayerKey.roster(1)

    def test_player_in_two_slots_is_noop(self):
        state = LineupState(3)
        state.assign(roster_player(1), 0)

        assert not state.assign(roster_player(1), 1)
        assert state.occupants() == [PlayerKey.roster(1)]

    def test_reassigning_same_slot_is_accepted(self):
        state = LineupState(3)
        state.assign(roster_player(1), 0)

        assert state.assign(roster_player(1), 0)

    def test_guest_and_roster_with_same_id_both_fit(self):
        state = LineupState(3)

        assert state.assign(roster_player(7), 0)
        assert state.assign(guest_player(7), 1)

    @pytest.mark.parametrize("slot", [-1, 3, 10])
    def test_out_of_range_slot_is_noop(self, slot):
        state = LineupState(3)

        assert not state.assign(roster_player(1), slot)
        assert state.occupants() == []

    def test_unavailable_player_is_noop(self):
        state = LineupState(3, absences=[2])

        assert not state.assign(roster_player(2), 0)
        assert not state.assign(roster_player(3, injured=True), 0)
        assert not state.assign(None, 0)
        assert state.assign(guest_player(2), 0)

    def test_unassign_returns_previous_occupant(self):
        state = LineupState(2)
        state.assign(roster_player(1), 1)

        assert state.unassign(1) == PlayerKey.roster(1)
        assert state.unassign(1) is None
        assert state.slot_of(PlayerKey.roster(1)) is None

    def test_resize_drops_trailing_slots(self):
        state = LineupState(3)
        state.assign(roster_player(1), 2)
        state.resize(2)

        assert state.slots == [None, None]
        state.resize(4)
        assert state.size == 4


class TestLineupPersistence:

    @pytest.mark.asyncio
    async def test_save_and_reload(self, db_session, roster, make_match, add_guest):
        match = make_match()
        guest = add_guest(match, "Kees Gast")
        session = await MatchSession.load(db_session, match.id)

        assert session.lineup.assign(session.player(PlayerKey.roster(roster[0].id)), 0)
        assert session.lineup.assign(session.player(PlayerKey.guest(guest.id)), 1)
        await session.save_lineup("4-4-2-plat")

        reloaded = await MatchSession.load(db_session, match.id)
        assert reloaded.starters == [PlayerKey.roster(roster[0].id), PlayerKey.guest(guest.id)]
        assert reloaded.formation == "4-4-2-plat"

    @pytest.mark.asyncio
    async def test_save_replaces_previous_rows(self, db_session, roster, make_match, set_lineup, keys):
        match = make_match()
        set_lineup(match, keys(roster[:3]))
        session = await MatchSession.load(db_session, match.id)

        session.lineup.clear()
        session.lineup.assign(session.player(PlayerKey.roster(roster[5].id)), 4)
        await session.save_lineup()

        rows = db_session.query(LineupEntry).filter_by(match_id=match.id).all()
        assert [(r.position, r.player_id) for r in rows] == [(4, roster[5].id)]

    @pytest.mark.asyncio
    async def test_unknown_lineup_rows_are_skipped(self, db_session, roster, make_match, set_lineup):
        match = make_match()
        set_lineup(match, [PlayerKey.roster(roster[0].id), PlayerKey.guest(999)])

        session = await MatchSession.load(db_session, match.id)

        assert session.starters == [PlayerKey.roster(roster[0].id)]

    @pytest.mark.asyncio
    async def test_finalized_match_rejects_save(self, db_session, roster, make_match, finalize_directly):
        from datetime import datetime

        match = make_match()
        finalize_directly(match, datetime(2026, 9, 12, 12, 0))
        session = await MatchSession.load(db_session, match.id)

        with pytest.raises(MatchLockedError):
            await LineupService(db_session).save_lineup(session.match, session.lineup)

    @pytest.mark.asyncio
    async def test_lineup_must_fit_committed_rounds(self, db_session, roster, make_match, set_lineup, keys):
        squad = keys(roster)
        match = make_match(scheme_minutes=[30])
        set_lineup(match, squad[:11])
        session = await MatchSession.load(db_session, match.id)
        scheduler = SubstitutionScheduler(session)
        draft = scheduler.open_round(1)
        draft.add_pair(squad[0], squad[11])
        await scheduler.commit_round(draft)

        # Round 1 takes squad[0] off; they can no longer leave the lineup
        session.lineup.unassign(0)
        session.lineup.assign(session.player(squad[12]), 0)

        with pytest.raises(SubstitutionValidationError, match="Round 1"):
            await session.save_lineup()

        rows = db_session.query(LineupEntry).filter_by(match_id=match.id).all()
        assert sorted(r.player_id for r in rows) == sorted(k.id for k in squad[:11])

    @pytest.mark.asyncio
    async def test_lineup_may_change_players_untouched_by_rounds(
        self, db_session, roster, make_match, set_lineup, keys
    ):
        squad = keys(roster)
        match = make_match(scheme_minutes=[30])
        set_lineup(match, squad[:11])
        session = await MatchSession.load(db_session, match.id)
        scheduler = SubstitutionScheduler(session)
        draft = scheduler.open_round(1)
        draft.add_pair(squad[0], squad[11])
        await scheduler.commit_round(draft)

        session.lineup.unassign(5)
        session.lineup.assign(session.player(squad[12]), 5)
        await session.save_lineup()

        assert squad[12] in session.starters
