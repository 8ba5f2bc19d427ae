"""
Helpers shared by the route modules: player-key parsing, player views and
the mapping from engine errors to HTTP responses.
"""
import logging
from typing import Collection, List, Optional

from fastapi import Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from matchday.core.errors import (
    EngineError,
    MatchLockedError,
    NotFoundError,
    PersistenceError,
    ValidationError,
    VoteRejectedError,
)
from matchday.services.availability import is_available
from matchday.services.identity import PlayerKey, UnifiedPlayer

logger = logging.getLogger(__name__)


class PlayerView(BaseModel):
    """A roster or guest player as shown in selection lists."""
    key: str
    origin: str
    id: int
    name: str
    position: str
    injured: bool
    available: bool
    minutes_played: int
    bench_minutes: int
    appearances: int


def parse_key(token: str) -> PlayerKey:
    """Parse "roster:7" / "guest:3"; malformed tokens are a validation error."""
    try:
        return PlayerKey.parse(token)
    except ValueError as e:
        raise ValidationError(f"Invalid player key {token!r}") from e


def parse_optional_key(token: Optional[str]) -> Optional[PlayerKey]:
    return parse_key(token) if token else None


def player_view(player: UnifiedPlayer, absences: Collection[int] = ()) -> PlayerView:
    return PlayerView(
        key=player.key.token,
        origin=player.key.origin.value,
        id=player.key.id,
        name=player.name,
        position=player.position,
        injured=player.injured,
        available=is_available(player, absences),
        minutes_played=player.stats.minutes_played,
        bench_minutes=player.stats.bench_minutes,
        appearances=player.stats.appearances,
    )


def player_views(players: List[UnifiedPlayer], absences: Collection[int] = ()) -> List[PlayerView]:
    return [player_view(p, absences) for p in players]


def status_for(error: EngineError) -> int:
    if isinstance(error, ValidationError):
        return 422
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, MatchLockedError):
        return 409
    if isinstance(error, PersistenceError):
        return 503
    return 500


async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Translate engine errors into JSON error bodies."""
    status_code = status_for(exc)
    body = {"detail": str(exc), "error": type(exc).__name__}
    if isinstance(exc, ValidationError):
        body["errors"] = exc.errors
    if isinstance(exc, VoteRejectedError):
        body["reason"] = exc.reason

    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected ({status_code}): {exc}")
    return JSONResponse(status_code=status_code, content=body)
