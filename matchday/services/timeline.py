"""
Substitution timeline replay.

Committed substitutions are replayed from the starting lineup in timeline
order:

    (minute, regular before extra, round number, insertion id)

An event only moves players when its outgoing player is on the pitch at that
point and its incoming player is not; otherwise it is skipped whole, so the
number of players on the pitch never changes. The scheduler, the lineup
editor and the minutes calculator all read the match through these
functions.
"""
from dataclasses import dataclass
from typing import Collection, Iterable, List, Optional, Set, Tuple

from matchday.models import Substitution
from matchday.services.identity import PlayerKey


@dataclass(frozen=True)
class SubstitutionEvent:
    """Committed substitution, detached from its database row."""
    round_number: int
    minute: int
    player_out: PlayerKey
    player_in: PlayerKey
    is_extra: bool = False
    id: int = 0

    @classmethod
    def from_row(cls, row: Substitution) -> "SubstitutionEvent":
        return cls(
            round_number=row.round_number,
            minute=row.minute,
            player_out=PlayerKey.of(row.player_out_origin, row.player_out_id),
            player_in=PlayerKey.of(row.player_in_origin, row.player_in_id),
            is_extra=bool(row.is_extra),
            id=row.id or 0,
        )

    @property
    def sort_key(self) -> Tuple[int, int, int, int]:
        return (self.minute, 1 if self.is_extra else 0, self.round_number, self.id)


def sort_events(events: Iterable[SubstitutionEvent]) -> List[SubstitutionEvent]:
    return sorted(events, key=lambda e: e.sort_key)


def events_from_rows(rows: Iterable[Substitution]) -> List[SubstitutionEvent]:
    return sort_events(SubstitutionEvent.from_row(row) for row in rows)


def applies(event: SubstitutionEvent, on_pitch: Collection[PlayerKey]) -> bool:
    return event.player_out in on_pitch and event.player_in not in on_pitch


def replay_pitch(
    starters: Iterable[PlayerKey],
    events: Iterable[SubstitutionEvent],
) -> Tuple[Set[PlayerKey], Set[PlayerKey]]:
    """
    Apply events in timeline order to the starting lineup.

    Returns:
        (players on the pitch afterwards, players who left the pitch at some point)
    """
    on_pitch = set(starters)
    left_pitch: Set[PlayerKey] = set()
    for event in sort_events(events):
        if not applies(event, on_pitch):
            continue
        on_pitch.discard(event.player_out)
        left_pitch.add(event.player_out)
        on_pitch.add(event.player_in)
    return on_pitch, left_pitch


def find_conflicts(
    starters: Iterable[PlayerKey],
    events: Iterable[SubstitutionEvent],
    after: Optional[Tuple[int, int, int]] = None,
) -> List[str]:
    """
    Check that regular rounds alternate in/out consistently with the pitch.

    Only rounds placed after `after` (a (minute, 0, round number) timeline
    position) are reported when it is given. Extra substitutions are applied
    leniently: they move players but are never reported.
    """
    conflicts = []
    on_pitch = set(starters)
    for event in sort_events(events):
        if not event.is_extra and (after is None or event.sort_key[:3] > after):
            if event.player_out not in on_pitch:
                conflicts.append(
                    f"Round {event.round_number}: {event.player_out} is not on the pitch at minute {event.minute}"
                )
            if event.player_in in on_pitch:
                conflicts.append(
                    f"Round {event.round_number}: {event.player_in} is already on the pitch at minute {event.minute}"
                )
        if applies(event, on_pitch):
            on_pitch.discard(event.player_out)
            on_pitch.add(event.player_in)
    return conflicts
