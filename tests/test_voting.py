"""Tests for player-of-the-match voting, podium ranking and payouts."""
from datetime import date, datetime

import pytest

from matchday.core.errors import NotFoundError, VoteRejectedError
from matchday.models import CreditLedgerEntry, Match, Player, Team, Vote, REASON_PODIUM
from matchday.services.identity import PlayerKey
from matchday.services.voting import (
    Voter,
    VotingService,
    compute_podium,
    is_voting_open,
    tally_votes,
    voting_deadline,
)

X, Y, Z, W = (PlayerKey.roster(i) for i in range(1, 5))

FINALIZED_AT = datetime(2026, 9, 12, 20, 30)
DURING_WINDOW = date(2026, 9, 14)
AFTER_WINDOW = date(2026, 9, 17)


class TestPodium:

    def test_tally_orders_by_votes(self):
        tallies = tally_votes([Y, X, Y, Z, Y, X])

        assert [(t.key, t.votes) for t in tallies] == [(Y, 3), (X, 2), (Z, 1)]

    def test_tie_for_first_shares_reward(self):
        podium = compute_podium([X, X, X, Y, Y, Y, Z], [5, 3, 2])

        assert [(e.key, e.rank, e.reward) for e in podium] == [(X, 1, 5), (Y, 1, 5), (Z, 3, 2)]

    def test_short_reward_table_pays_zero(self):
        podium = compute_podium([X, X, X, Y, Y, Y, Z], [5, 3])

        assert podium[-1].key == Z
        assert podium[-1].rank == 3
        assert podium[-1].reward == 0

    def test_tie_for_second_shares_rank(self):
        podium = compute_podium([X, X, X, Y, Z, W, Y, Z, W, PlayerKey.roster(9)], [5, 3, 2])

        assert [(e.key, e.rank, e.reward) for e in podium] == [
            (X, 1, 5), (Y, 2, 3), (Z, 2, 3), (W, 2, 3)
        ]

    def test_no_votes_no_podium(self):
        assert compute_podium([], [5, 3, 2]) == []

    def test_guest_and_roster_with_same_id_counted_apart(self):
        podium = compute_podium([PlayerKey.guest(1), X, X], [5, 3, 2])

        assert [(e.key, e.votes) for e in podium] == [(X, 2), (PlayerKey.guest(1), 1)]


class TestVotingWindow:

    def test_window_is_inclusive(self, db_session, make_match, finalize_directly):
        match = finalize_directly(make_match(), FINALIZED_AT)

        assert voting_deadline(match) == date(2026, 9, 16)
        assert is_voting_open(match, date(2026, 9, 12))
        assert is_voting_open(match, date(2026, 9, 16))
        assert not is_voting_open(match, date(2026, 9, 17))
        assert not is_voting_open(match, date(2026, 9, 11))

    def test_draft_match_is_closed(self, db_session, make_match):
        match = make_match()

        assert voting_deadline(match) is None
        assert not is_voting_open(match, DURING_WINDOW)


@pytest.fixture
def played_match(db_session, roster, make_match, set_lineup, add_substitution, add_guest, finalize_directly):
    """5v5 match: roster[0..3] + a guest start, roster[4] comes on. roster[5] never plays."""
    match = make_match(scheme_minutes=[], game_format="5v5")
    guest = add_guest(match, "Kees Gast")
    keys = [PlayerKey.roster(p.id) for p in roster]
    set_lineup(match, keys[:4] + [PlayerKey.guest(guest.id)])
    add_substitution(match, 20, keys[0], keys[4])
    finalize_directly(match, FINALIZED_AT)
    return match, keys, PlayerKey.guest(guest.id)


def vote_count(db_session, match_id):
    return db_session.query(Vote).filter_by(match_id=match_id).count()


class TestSubmitVote:

    @pytest.mark.asyncio
    async def test_vote_for_participant(self, db_session, played_match):
        match, keys, _ = played_match
        service = VotingService(db_session)

        vote = await service.submit_vote(match.id, Voter.player(keys[1].id), keys[4], today=DURING_WINDOW)

        assert (vote.candidate_origin, vote.candidate_id) == ("roster", keys[4].id)
        assert vote_count(db_session, match.id) == 1

    @pytest.mark.asyncio
    async def test_non_participant_is_rejected(self, db_session, played_match):
        match, keys, _ = played_match

        with pytest.raises(VoteRejectedError) as exc_info:
            await VotingService(db_session).submit_vote(
                match.id, Voter.player(keys[1].id), keys[5], today=DURING_WINDOW
            )

        assert exc_info.value.reason == VoteRejectedError.NOT_PARTICIPANT
        assert vote_count(db_session, match.id) == 0

    @pytest.mark.asyncio
    async def test_self_vote_is_rejected(self, db_session, played_match):
        match, keys, _ = played_match

        with pytest.raises(VoteRejectedError) as exc_info:
            await VotingService(db_session).submit_vote(
                match.id, Voter.player(keys[1].id), keys[1], today=DURING_WINDOW
            )

        assert exc_info.value.reason == VoteRejectedError.SELF_VOTE

    @pytest.mark.asyncio
    async def test_vote_for_guest_with_own_numeric_id_is_allowed(self, db_session, played_match):
        match, keys, guest_key = played_match
        voter = Voter.player(guest_key.id)

        await VotingService(db_session).submit_vote(match.id, voter, guest_key, today=DURING_WINDOW)

        assert vote_count(db_session, match.id) == 1

    @pytest.mark.asyncio
    async def test_voter_outside_roster_is_rejected(self, db_session, played_match):
        match, keys, _ = played_match
        service = VotingService(db_session)

        for player_id in (9001, 9002, 9003):
            with pytest.raises(VoteRejectedError) as exc_info:
                await service.submit_vote(match.id, Voter.player(player_id), keys[1], today=DURING_WINDOW)
            assert exc_info.value.reason == VoteRejectedError.UNKNOWN_VOTER

        assert vote_count(db_session, match.id) == 0

    @pytest.mark.asyncio
    async def test_voter_from_other_team_is_rejected(self, db_session, played_match):
        match, keys, _ = played_match
        other = Team(name="Other", game_format="7v7")
        db_session.add(other)
        db_session.flush()
        outsider = Player(team_id=other.id, name="Buitenstaander")
        db_session.add(outsider)
        db_session.commit()

        with pytest.raises(VoteRejectedError) as exc_info:
            await VotingService(db_session).submit_vote(
                match.id, Voter.player(outsider.id), keys[1], today=DURING_WINDOW
            )

        assert exc_info.value.reason == VoteRejectedError.UNKNOWN_VOTER
        assert vote_count(db_session, match.id) == 0

    @pytest.mark.asyncio
    async def test_second_vote_is_rejected(self, db_session, played_match):
        match, keys, guest_key = played_match
        service = VotingService(db_session)
        voter = Voter.account("3f6c1a2e-account")

        await service.submit_vote(match.id, voter, keys[2], today=DURING_WINDOW)
        with pytest.raises(VoteRejectedError) as exc_info:
            await service.submit_vote(match.id, voter, guest_key, today=DURING_WINDOW)

        assert exc_info.value.reason == VoteRejectedError.DUPLICATE
        assert vote_count(db_session, match.id) == 1

    @pytest.mark.asyncio
    async def test_closed_window_is_rejected(self, db_session, played_match):
        match, keys, _ = played_match

        with pytest.raises(VoteRejectedError) as exc_info:
            await VotingService(db_session).submit_vote(
                match.id, Voter.player(keys[1].id), keys[2], today=AFTER_WINDOW
            )

        assert exc_info.value.reason == VoteRejectedError.WINDOW_CLOSED

    @pytest.mark.asyncio
    async def test_unfinalized_match_is_rejected(self, db_session, roster, make_match, set_lineup):
        match = make_match(game_format="5v5")
        set_lineup(match, [PlayerKey.roster(p.id) for p in roster[:5]])

        with pytest.raises(VoteRejectedError) as exc_info:
            await VotingService(db_session).submit_vote(
                match.id, Voter.player(roster[6].id), PlayerKey.roster(roster[0].id), today=DURING_WINDOW
            )

        assert exc_info.value.reason == VoteRejectedError.WINDOW_CLOSED

    @pytest.mark.asyncio
    async def test_unknown_match(self, db_session):
        with pytest.raises(NotFoundError):
            await VotingService(db_session).submit_vote(999, Voter.account("a"), X, today=DURING_WINDOW)

    @pytest.mark.asyncio
    async def test_overview(self, db_session, played_match):
        match, keys, _ = played_match
        service = VotingService(db_session)
        voter = Voter.player(keys[1].id)
        await service.submit_vote(match.id, voter, keys[4], today=DURING_WINDOW)

        overview = await service.voting_overview(match.id, voter, today=DURING_WINDOW)

        assert overview["is_open"]
        assert overview["days_remaining"] == 2
        assert overview["has_voted"] and overview["voted_for"] == keys[4]
        by_key = {c["key"]: c for c in overview["candidates"]}
        assert len(by_key) == 6
        assert by_key[keys[4]]["votes"] == 1
        assert by_key[keys[1]]["is_self"]


async def cast(service, match, votes):
    """votes: list of (voter ref, candidate key)."""
    for ref, candidate in votes:
        await service.submit_vote(match.id, Voter.account(ref), candidate, today=DURING_WINDOW)


def podium_entries(db_session, match_id):
    return db_session.query(CreditLedgerEntry).filter_by(match_id=match_id, reason=REASON_PODIUM).all()


class TestPayouts:

    @pytest.mark.asyncio
    async def test_tie_payout(self, db_session, team, played_match):
        match, keys, _ = played_match
        service = VotingService(db_session)
        await cast(service, match, [
            ("a1", keys[1]), ("a2", keys[1]), ("a3", keys[1]),
            ("a4", keys[2]), ("a5", keys[2]), ("a6", keys[2]),
            ("a7", keys[3]),
        ])

        results = await service.run_payouts(team.id, today=AFTER_WINDOW)

        assert len(results) == 1
        assert results[0].paid == {keys[1].id: 5, keys[2].id: 5, keys[3].id: 2}
        balances = {
            pid: await service.ledger.get_balance(team.id, pid) for pid in (keys[1].id, keys[2].id, keys[3].id)
        }
        assert balances == {keys[1].id: 15, keys[2].id: 15, keys[3].id: 12}

    @pytest.mark.asyncio
    async def test_payout_is_idempotent(self, db_session, team, played_match):
        match, keys, _ = played_match
        service = VotingService(db_session)
        await cast(service, match, [("a1", keys[1]), ("a2", keys[2])])

        first = await service.run_payouts(team.id, today=AFTER_WINDOW)
        second = await service.run_payouts(team.id, today=AFTER_WINDOW)

        assert len(first) == 1
        assert second == []
        assert len(podium_entries(db_session, match.id)) == 2

    @pytest.mark.asyncio
    async def test_claimed_flag_blocks_payout(self, db_session, team, played_match):
        """A run that lost the race to another client pays nothing."""
        match, keys, _ = played_match
        service = VotingService(db_session)
        await cast(service, match, [("a1", keys[1])])
        stored = db_session.get(Match, match.id)

        assert service.matches.claim_payout(match.id)
        db_session.commit()

        assert await service._pay_match(stored) is None
        assert podium_entries(db_session, match.id) == []

    @pytest.mark.asyncio
    async def test_no_payout_while_window_open(self, db_session, team, played_match):
        match, keys, _ = played_match
        service = VotingService(db_session)
        await cast(service, match, [("a1", keys[1])])

        assert await service.run_payouts(team.id, today=date(2026, 9, 16)) == []
        db_session.refresh(match)
        assert not match.credits_awarded

    @pytest.mark.asyncio
    async def test_zero_votes_still_sets_flag(self, db_session, team, played_match):
        match, _, _ = played_match

        results = await VotingService(db_session).run_payouts(team.id, today=AFTER_WINDOW)

        assert results[0].podium == [] and results[0].paid == {}
        db_session.refresh(match)
        assert match.credits_awarded

    @pytest.mark.asyncio
    async def test_guest_is_ranked_but_not_paid(self, db_session, team, played_match):
        match, keys, guest_key = played_match
        service = VotingService(db_session)
        await cast(service, match, [("a1", guest_key), ("a2", guest_key), ("a3", keys[2])])

        result = (await service.run_payouts(team.id, today=AFTER_WINDOW))[0]

        assert [(e.key, e.rank) for e in result.podium] == [(guest_key, 1), (keys[2], 2)]
        assert result.paid == {keys[2].id: 3}
