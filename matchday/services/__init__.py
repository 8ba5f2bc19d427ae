"""
Engine services.

Usage:
    from matchday.services import MatchSession, SubstitutionScheduler

    session = await MatchSession.load(db, match_id)
    scheduler = SubstitutionScheduler(session)
    draft = scheduler.open_round(1)
"""
from matchday.services.identity import PlayerKey, PlayerOrigin, UnifiedPlayer, resolve_players
from matchday.services.availability import is_available, available_players, bench_players
from matchday.services.lineup import LineupState, LineupService
from matchday.services.session import MatchSession
from matchday.services.substitutions import (
    SubstitutionPair,
    SubstitutionRound,
    SubstitutionEvent,
    RoundDraft,
    SubstitutionScheduler,
)
from matchday.services.finalizer import MatchFinalizer, MinutesReport, PlayerMinutes, calculate_minutes
from matchday.services.credits import CreditLedger
from matchday.services.voting import Voter, VotingService, PodiumEntry, compute_podium, tally_votes
from matchday.services.matches import MatchService
from matchday.services.roster import RosterService, grouped_by_position

__all__ = [
    "PlayerKey",
    "PlayerOrigin",
    "UnifiedPlayer",
    "resolve_players",
    "is_available",
    "available_players",
    "bench_players",
    "LineupState",
    "LineupService",
    "MatchSession",
    "SubstitutionPair",
    "SubstitutionRound",
    "SubstitutionEvent",
    "RoundDraft",
    "SubstitutionScheduler",
    "MatchFinalizer",
    "MinutesReport",
    "PlayerMinutes",
    "calculate_minutes",
    "CreditLedger",
    "Voter",
    "VotingService",
    "PodiumEntry",
    "compute_podium",
    "tally_votes",
    "MatchService",
    "RosterService",
    "grouped_by_position",
]
