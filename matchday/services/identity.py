"""
Identity resolution across roster and guest players.

Roster players (season-long) and guest players (one match) are stored in
different tables whose integer ids are drawn from independent sequences, so
roster player 7 and guest player 7 are two different people. Everything
downstream (lineup, substitutions, minutes, votes) identifies a player by a
`PlayerKey(origin, id)` and never by a bare id.

Merge policy:
1. Roster records sharing a display name collapse to the lowest id
2. A guest whose display name matches a roster player is dropped; the
   roster player wins so selection lists never show two identical names
3. No guest data at all degrades to the roster alone
"""
import logging
import re
import unicodedata
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional

from matchday.models import ORIGIN_ROSTER, ORIGIN_GUEST

logger = logging.getLogger(__name__)


class PlayerOrigin(str, Enum):
    ROSTER = ORIGIN_ROSTER
    GUEST = ORIGIN_GUEST


@dataclass(frozen=True, order=True)
class PlayerKey:
    """Composite player identity. Equality and hashing use both fields."""
    origin: PlayerOrigin
    id: int

    @classmethod
    def roster(cls, player_id: int) -> "PlayerKey":
        return cls(PlayerOrigin.ROSTER, player_id)

    @classmethod
    def guest(cls, player_id: int) -> "PlayerKey":
        return cls(PlayerOrigin.GUEST, player_id)

    @classmethod
    def of(cls, origin: str, player_id: int) -> "PlayerKey":
        return cls(PlayerOrigin(origin), int(player_id))

    @classmethod
    def parse(cls, token: str) -> "PlayerKey":
        """
        Parse the string form produced by `token`.

        Examples:
            >>> PlayerKey.parse("guest:3")
            PlayerKey(origin=<PlayerOrigin.GUEST: 'guest'>, id=3)
        """
        origin, _, raw_id = token.partition(":")
        if not raw_id:
            raise ValueError(f"Invalid player key: {token!r}")
        return cls.of(origin, int(raw_id))

    @property
    def token(self) -> str:
        return f"{self.origin.value}:{self.id}"

    @property
    def is_guest(self) -> bool:
        return self.origin is PlayerOrigin.GUEST

    def __str__(self) -> str:
        return self.token


@dataclass
class PlayerStats:
    goals: int = 0
    assists: int = 0
    minutes_played: int = 0
    bench_minutes: int = 0
    appearances: int = 0
    yellow_cards: int = 0
    red_cards: int = 0


@dataclass
class UnifiedPlayer:
    """Read-only view of a roster or guest player under its composite key."""
    key: PlayerKey
    name: str
    position: str
    injured: bool = False
    stats: PlayerStats = field(default_factory=PlayerStats)
    guest_match_id: Optional[int] = None

    @property
    def is_guest(self) -> bool:
        return self.key.is_guest

    @classmethod
    def from_record(cls, record, origin: PlayerOrigin) -> "UnifiedPlayer":
        """Build from a Player or GuestPlayer row (or anything shaped like one)."""
        stats = PlayerStats(
            goals=record.goals or 0,
            assists=record.assists or 0,
            minutes_played=record.minutes_played or 0,
            bench_minutes=record.bench_minutes or 0,
            appearances=record.appearances or 0,
            yellow_cards=record.yellow_cards or 0,
            red_cards=record.red_cards or 0,
        )
        return cls(
            key=PlayerKey(origin, record.id),
            name=record.name,
            position=record.position,
            injured=bool(record.injured),
            stats=stats,
            guest_match_id=getattr(record, "match_id", None) if origin is PlayerOrigin.GUEST else None,
        )


def normalize_name(name: str) -> str:
    """
    Normalize a display name for collision checks.

    Folds accents and case, drops punctuation and collapses whitespace.

    Examples:
        >>> normalize_name("  Daan  de Vries ")
        'daan de vries'
        >>> normalize_name("Zoë")
        'zoe'
    """
    if not name:
        return ""
    decomposed = unicodedata.normalize("NFKD", name)
    name = "".join(c for c in decomposed if not unicodedata.combining(c))
    name = re.sub(r"[^\w\s]", "", name.casefold())
    return " ".join(name.split())


def resolve_players(
    roster: Iterable,
    guests: Optional[Iterable] = None,
) -> List[UnifiedPlayer]:
    """
    Merge roster and guest records into one collision-free player list.

    Args:
        roster: Player rows (or objects with the same attributes)
        guests: GuestPlayer rows for one match, or None

    Returns:
        Roster players (ordered by id) followed by surviving guests (ordered by id)
    """
    by_name: Dict[str, UnifiedPlayer] = {}
    for record in sorted(roster, key=lambda r: r.id):
        normalized = normalize_name(record.name)
        if normalized in by_name:
            logger.debug(
                f"Dropping duplicate roster record {record.id} ({record.name}); "
                f"keeping {by_name[normalized].key}"
            )
            continue
        by_name[normalized] = UnifiedPlayer.from_record(record, PlayerOrigin.ROSTER)

    merged: List[UnifiedPlayer] = list(by_name.values())
    roster_names = set(by_name)

    for record in sorted(guests or [], key=lambda r: r.id):
        normalized = normalize_name(record.name)
        if normalized in roster_names:
            logger.info(f"Guest {record.id} ({record.name}) shadows a roster player; suppressed")
            continue
        merged.append(UnifiedPlayer.from_record(record, PlayerOrigin.GUEST))

    return merged


def index_players(players: Iterable[UnifiedPlayer]) -> Dict[PlayerKey, UnifiedPlayer]:
    """Key a player list by composite identity."""
    return {p.key: p for p in players}
