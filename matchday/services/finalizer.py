"""
Minutes calculation and match finalization.

Minutes are computed by replaying the substitution timeline from kickoff:
every starter opens an on-pitch interval at minute 0, an outgoing player
closes theirs at the substitution minute, an incoming player opens a new one,
and whatever is still open closes at the final whistle. A player can hold
several intervals (off at 60, back on at 75).

Finalizing writes the minutes into the players' cumulative stats and flips
the match to finalized in one transaction. Transient store errors retry the
whole transaction; anything else rolls it back and surfaces as
PersistenceError.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.exc import OperationalError, SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from matchday.core.config import settings
from matchday.core.errors import (
    MatchLockedError,
    NotFoundError,
    PersistenceError,
    SubstitutionValidationError,
    ValidationError,
)
from matchday.core.logging import match_context
from matchday.models import Match, STATUS_DRAFT, STATUS_FINALIZED
from matchday.repositories import MatchRepository, find_by_key
from matchday.services.identity import PlayerKey
from matchday.services.session import MatchSession
from matchday.services.timeline import (
    SubstitutionEvent,
    applies,
    events_from_rows,
    find_conflicts,
    sort_events,
)

logger = logging.getLogger(__name__)


@dataclass
class PlayerMinutes:
    key: PlayerKey
    started: bool = False
    intervals: List[Tuple[int, int]] = field(default_factory=list)

    @property
    def played(self) -> int:
        return sum(end - start for start, end in self.intervals)


@dataclass
class MinutesReport:
    """Per-participant minutes for one match."""
    duration: int
    players: Dict[PlayerKey, PlayerMinutes] = field(default_factory=dict)

    def played(self, key: PlayerKey) -> int:
        entry = self.players.get(key)
        return entry.played if entry else 0

    def bench(self, key: PlayerKey) -> int:
        return max(0, self.duration - self.played(key))

    def participants(self) -> List[PlayerKey]:
        return list(self.players)


def calculate_minutes(
    starters: Iterable[PlayerKey],
    events: Iterable[SubstitutionEvent],
    duration: int,
) -> MinutesReport:
    """
    Replay the match and measure every participant's time on the pitch.

    Participants are the starters plus anyone brought on. Minutes are
    clamped to [0, duration]. An event whose outgoing player is not on the
    pitch, or whose incoming player already is, is skipped.

    Example:
        >>> a, b = PlayerKey.roster(1), PlayerKey.roster(2)
        >>> report = calculate_minutes([a], [SubstitutionEvent(1, 60, a, b)], 90)
        >>> report.played(a), report.played(b), report.bench(b)
        (60, 30, 60)
    """
    report = MinutesReport(duration=duration)
    on_since: Dict[PlayerKey, int] = {}

    for key in starters:
        report.players[key] = PlayerMinutes(key, started=True)
        on_since[key] = 0

    for event in sort_events(events):
        minute = min(max(event.minute, 0), duration)
        if not applies(event, on_since):
            logger.debug(f"Substitution at {minute} skipped: {event.player_out} -> {event.player_in}")
            continue
        start = on_since.pop(event.player_out)
        report.players[event.player_out].intervals.append((start, minute))
        report.players.setdefault(event.player_in, PlayerMinutes(event.player_in))
        on_since[event.player_in] = minute

    for key, start in on_since.items():
        report.players[key].intervals.append((start, duration))

    return report


class MatchFinalizer:
    """Locks a match and credits its participants' minutes."""

    def __init__(self, db: Session):
        self.db = db
        self.matches = MatchRepository(db)

    async def finalize(
        self,
        session: MatchSession,
        apply_stats: bool = True,
        now: Optional[datetime] = None,
    ) -> MinutesReport:
        """
        Finalize a match.

        Args:
            session: Match session; refreshed before computing
            apply_stats: Add minutes, bench minutes and an appearance to
                every participant's cumulative stats
            now: Finalization timestamp (defaults to utcnow)

        Returns:
            The minutes report that was applied

        Raises:
            MatchLockedError: the match is already finalized
            SubstitutionValidationError: committed rounds do not fit the
                starting lineup
            PersistenceError: the transaction failed; nothing was written
        """
        await session.refresh()
        session.ensure_editable("finalize")

        events = events_from_rows(session.substitutions)
        conflicts = find_conflicts(session.starters, events)
        if conflicts:
            logger.info(f"Refused to finalize match {session.match_id}: {'; '.join(conflicts)}")
            raise SubstitutionValidationError(conflicts)

        report = calculate_minutes(session.starters, events, session.duration)
        now = now or datetime.utcnow()

        with match_context(session.match_id):
            try:
                await self._commit_finalization(session.match, report, apply_stats, now)
            except MatchLockedError:
                raise
            except SQLAlchemyError as e:
                logger.error(f"Error finalizing match: {e}", exc_info=True)
                raise PersistenceError("finalize match", e) from e

            logger.info(
                f"Finalized match with {len(report.players)} participants "
                f"(stats {'applied' if apply_stats else 'skipped'})"
            )

        await session.refresh()
        return report

    @retry(
        stop=stop_after_attempt(settings.FINALIZE_MAX_ATTEMPTS),
        wait=wait_exponential(multiplier=0.1, min=0.1, max=1),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    async def _commit_finalization(
        self,
        match: Match,
        report: MinutesReport,
        apply_stats: bool,
        now: datetime,
    ) -> None:
        """One attempt: claim the status flip, apply stats, commit or roll back."""
        try:
            claimed = self.matches.update_where(
                {"status": STATUS_FINALIZED, "finalized_at": now, "updated_at": now},
                Match.id == match.id,
                Match.status == STATUS_DRAFT,
            )
            if not claimed:
                raise MatchLockedError(match.id, "finalize")

            if apply_stats:
                for key, minutes in report.players.items():
                    record = find_by_key(self.db, key.origin.value, key.id)
                    if record is None:
                        logger.warning(f"Participant {key} no longer exists; stats skipped")
                        continue
                    record.minutes_played = (record.minutes_played or 0) + minutes.played
                    record.bench_minutes = (record.bench_minutes or 0) + report.bench(key)
                    record.appearances = (record.appearances or 0) + 1
                    record.updated_at = now

            self.matches.save()
        except (SQLAlchemyError, MatchLockedError) as e:
            self.matches.rollback()
            if isinstance(e, OperationalError):
                logger.warning(f"Transient error finalizing match {match.id}, retrying: {e}")
            raise

    async def update_score(self, match_id: int, goals_for: int, goals_against: int) -> Match:
        """
        Record the final score. Allowed before and after finalization.

        Raises:
            ValidationError: negative goal count
            NotFoundError: no such match
            PersistenceError: store failure
        """
        if goals_for < 0 or goals_against < 0:
            raise ValidationError("Goal counts cannot be negative")

        match = self.matches.find_by_id(match_id)
        if match is None:
            raise NotFoundError("Match", match_id)

        try:
            match.goals_for = goals_for
            match.goals_against = goals_against
            match.updated_at = datetime.utcnow()
            self.matches.save()
        except SQLAlchemyError as e:
            self.matches.rollback()
            raise PersistenceError("update score", e) from e

        self.matches.refresh(match)
        logger.info(f"Score of match {match_id} set to {goals_for}-{goals_against}")
        return match
