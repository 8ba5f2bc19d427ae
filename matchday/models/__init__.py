"""
Database models.

Usage:
    from matchday.models import Player, GuestPlayer, Match
"""
from matchday.models.models import (
    Base,
    Team,
    Player,
    GuestPlayer,
    SubstitutionScheme,
    Match,
    MatchAbsence,
    LineupEntry,
    Substitution,
    Vote,
    CreditLedgerEntry,
    ORIGIN_ROSTER,
    ORIGIN_GUEST,
    STATUS_DRAFT,
    STATUS_FINALIZED,
    REASON_INITIAL,
    REASON_PODIUM,
    REASON_SPEND,
)

__all__ = [
    "Base",
    "Team",
    "Player",
    "GuestPlayer",
    "SubstitutionScheme",
    "Match",
    "MatchAbsence",
    "LineupEntry",
    "Substitution",
    "Vote",
    "CreditLedgerEntry",
    "ORIGIN_ROSTER",
    "ORIGIN_GUEST",
    "STATUS_DRAFT",
    "STATUS_FINALIZED",
    "REASON_INITIAL",
    "REASON_PODIUM",
    "REASON_SPEND",
]
