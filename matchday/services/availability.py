"""
Availability filter.

`is_available` is the single predicate consulted by lineup assignment and
by substitution eligibility. A player is available when not injured and not
reported absent for the match. Absence reports only exist for roster
players, so a guest is never matched against the absence list (a guest id
could collide numerically with an absent roster id).
"""
from typing import Collection, Iterable, List

from matchday.services.identity import UnifiedPlayer, PlayerKey


def is_available(player: UnifiedPlayer | None, absences: Collection[int]) -> bool:
    """
    Check whether a player may be put on the pitch for this match.

    Args:
        player: Unified player, or None for an empty selection
        absences: Roster player ids reported absent for the match

    Returns:
        True if the player can be assigned or brought on
    """
    if player is None or player.injured:
        return False
    if player.is_guest:
        return True
    return player.key.id not in absences


def available_players(players: Iterable[UnifiedPlayer], absences: Collection[int]) -> List[UnifiedPlayer]:
    return [p for p in players if is_available(p, absences)]


def bench_players(
    players: Iterable[UnifiedPlayer],
    absences: Collection[int],
    occupied: Collection[PlayerKey],
) -> List[UnifiedPlayer]:
    """Available players not holding a lineup slot."""
    return [p for p in players if p.key not in occupied and is_available(p, absences)]
