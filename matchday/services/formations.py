"""
Game formats and formation templates.

A game format (`4v4` .. `11v11`) fixes the number of formation slots and the
match duration. A formation name such as `4-3-3-aanvallend` spreads the
outfield slots over defence, midfield and attack; slot 0 is the keeper in
every format that plays with one.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional

from matchday.core.config import settings

POSITION_KEEPER = "Keeper"
POSITION_DEFENDER = "Verdediger"
POSITION_MIDFIELDER = "Middenvelder"
POSITION_FORWARD = "Aanvaller"

POSITION_ORDER = [POSITION_KEEPER, POSITION_DEFENDER, POSITION_MIDFIELDER, POSITION_FORWARD]

_LINE_CATEGORIES = [POSITION_DEFENDER, POSITION_MIDFIELDER, POSITION_FORWARD]


@dataclass(frozen=True)
class GameFormat:
    players: int
    periods: int
    match_duration: int  # minutes


GAME_FORMATS: Dict[str, GameFormat] = {
    "4v4": GameFormat(players=4, periods=3, match_duration=45),
    "5v5": GameFormat(players=5, periods=2, match_duration=40),
    "6v6": GameFormat(players=6, periods=2, match_duration=50),
    "7v7": GameFormat(players=7, periods=2, match_duration=60),
    "8v8": GameFormat(players=8, periods=2, match_duration=60),
    "9v9": GameFormat(players=9, periods=2, match_duration=60),
    "11v11": GameFormat(players=11, periods=2, match_duration=90),
}

DEFAULT_FORMATIONS: Dict[str, str] = {
    "4v4": "2-2",
    "5v5": "2-2",
    "6v6": "2-2-1",
    "7v7": "2-3-1",
    "8v8": "3-3-1",
    "9v9": "3-3-2",
    "11v11": "4-3-3-aanvallend",
}

FORMATIONS: Dict[str, List[str]] = {
    "11v11": ["4-3-3-aanvallend", "4-3-3-verdedigend", "4-4-2-plat", "4-4-2-ruit", "3-4-3", "5-3-2"],
    "4v4": ["2-2", "1-2-1"],
    "5v5": ["2-2", "1-2-1"],
    "6v6": ["2-2-1", "1-3-1"],
    "7v7": ["2-3-1", "3-2-1"],
    "8v8": ["3-3-1", "2-3-2"],
    "9v9": ["3-3-2", "2-3-3"],
}

# Formats played without a keeper: slot 0 is an ordinary outfield slot
FORMATS_WITHOUT_KEEPER = {"4v4"}


def get_game_format(game_format: Optional[str]) -> GameFormat:
    """Look up a format, falling back to the configured default."""
    return GAME_FORMATS.get(game_format or "", GAME_FORMATS[settings.DEFAULT_GAME_FORMAT])


def formation_size(game_format: Optional[str]) -> int:
    return get_game_format(game_format).players


def match_duration(game_format: Optional[str]) -> int:
    return get_game_format(game_format).match_duration


def normalize_formation(formation: Optional[str], game_format: Optional[str] = None) -> str:
    """Return `formation` if it belongs to the format, else the format's default."""
    game_format = game_format if game_format in GAME_FORMATS else settings.DEFAULT_GAME_FORMAT
    if not formation or formation not in FORMATIONS[game_format]:
        return DEFAULT_FORMATIONS[game_format]
    return formation


def position_category(game_format: str, formation: str, slot: int) -> str:
    """
    Geometric role of a formation slot.

    Examples:
        >>> position_category("11v11", "4-3-3-aanvallend", 0)
        'Keeper'
        >>> position_category("11v11", "4-3-3-aanvallend", 5)
        'Middenvelder'
        >>> position_category("4v4", "2-2", 0)
        'Verdediger'
    """
    has_keeper = game_format not in FORMATS_WITHOUT_KEEPER
    if has_keeper and slot == 0:
        return POSITION_KEEPER

    idx = slot - (1 if has_keeper else 0)
    lines = [int(part) for part in formation.split("-") if part.isdigit()]

    cumulative = 0
    for i, line_size in enumerate(lines):
        cumulative += line_size
        if idx < cumulative:
            return _LINE_CATEGORIES[i] if i < len(_LINE_CATEGORIES) else POSITION_FORWARD
    return POSITION_FORWARD
