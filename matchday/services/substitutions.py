"""
Substitution scheduler.

A match substitutes under one of two timing policies, picked by its scheme:

- Fixed: the scheme lists trigger minutes; round r happens at minutes[r-1]
  and rounds 1..N are the only ones that exist.
- Free-form: the scheme is empty (or missing); the manager opens as many
  rounds as needed, each with its own minute. Rounds are numbered in
  creation order (next number = highest existing + 1) but shown by minute.

A round holds any number of simultaneous (out, in) pairs. Who may go off or
come on in a round is derived by replaying every earlier event from the
starting lineup, so a player can leave and later come back on.

Extra substitutions sit outside the round structure (round number 0,
`is_extra`). They only need a distinct in and out player, but they still
move players on and off the pitch when later rounds are replayed.

Replay and timeline ordering live in `matchday.services.timeline`, shared
with the lineup editor and the minutes calculator.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from sqlalchemy.exc import SQLAlchemyError

from matchday.core.errors import NotFoundError, PersistenceError, SubstitutionValidationError
from matchday.core.logging import match_context
from matchday.repositories import SubstitutionRepository
from matchday.services.availability import bench_players, is_available
from matchday.services.identity import PlayerKey
from matchday.services.session import MatchSession
from matchday.services.timeline import (
    SubstitutionEvent,
    events_from_rows,
    find_conflicts,
    replay_pitch,
)

logger = logging.getLogger(__name__)

EXTRA_ROUND_NUMBER = 0


@dataclass(frozen=True)
class SubstitutionPair:
    player_out: Optional[PlayerKey] = None
    player_in: Optional[PlayerKey] = None

    @property
    def is_complete(self) -> bool:
        return self.player_out is not None and self.player_in is not None


@dataclass
class SubstitutionRound:
    round_number: int
    minute: Optional[int]
    pairs: List[SubstitutionPair] = field(default_factory=list)


@dataclass
class RoundDraft:
    """Editable copy of one round. Nothing is stored until `commit_round`."""
    round_number: int
    minute: Optional[int]
    pairs: List[SubstitutionPair] = field(default_factory=list)
    is_new: bool = False

    def add_pair(self, player_out: Optional[PlayerKey] = None, player_in: Optional[PlayerKey] = None) -> int:
        self.pairs.append(SubstitutionPair(player_out, player_in))
        return len(self.pairs) - 1

    def update_pair(self, index: int, *, player_out=..., player_in=...) -> None:
        """Change one side (or both) of a pair; pass None to clear a side."""
        current = self.pairs[index]
        self.pairs[index] = SubstitutionPair(
            current.player_out if player_out is ... else player_out,
            current.player_in if player_in is ... else player_in,
        )

    def remove_pair(self, index: int) -> None:
        del self.pairs[index]

    def used_out(self, exclude_pair: Optional[int] = None) -> Set[PlayerKey]:
        return {
            p.player_out for i, p in enumerate(self.pairs)
            if p.player_out is not None and i != exclude_pair
        }

    def used_in(self, exclude_pair: Optional[int] = None) -> Set[PlayerKey]:
        return {
            p.player_in for i, p in enumerate(self.pairs)
            if p.player_in is not None and i != exclude_pair
        }


class SubstitutionScheduler:
    """Round editing and validation for one match."""

    def __init__(self, session: MatchSession):
        self.session = session
        self.repo = SubstitutionRepository(session.db)

    # ------------------------------------------------------------------
    # Policy
    # ------------------------------------------------------------------

    @property
    def is_free_form(self) -> bool:
        return not self.session.scheme_minutes

    def events(self) -> List[SubstitutionEvent]:
        return events_from_rows(self.session.substitutions)

    def regular_events(self) -> List[SubstitutionEvent]:
        return [e for e in self.events() if not e.is_extra]

    def extra_events(self) -> List[SubstitutionEvent]:
        return [e for e in self.events() if e.is_extra]

    def next_round_number(self) -> int:
        """Free-form numbering: one past the highest round ever created."""
        return max((e.round_number for e in self.regular_events()), default=0) + 1

    def scheduled_minute(self, round_number: int) -> int:
        minutes = self.session.scheme_minutes
        if not 1 <= round_number <= len(minutes):
            raise SubstitutionValidationError(
                f"Round {round_number} does not exist; this scheme has {len(minutes)} rounds"
            )
        return minutes[round_number - 1]

    def rounds(self) -> List[SubstitutionRound]:
        """
        Committed rounds in display order.

        Fixed schemes list every scheduled round, empty or not. Free-form
        rounds are ordered by minute.
        """
        grouped: dict[int, SubstitutionRound] = {}
        for event in self.regular_events():
            rnd = grouped.setdefault(event.round_number, SubstitutionRound(event.round_number, event.minute))
            rnd.pairs.append(SubstitutionPair(event.player_out, event.player_in))

        if self.is_free_form:
            return sorted(grouped.values(), key=lambda r: (r.minute, r.round_number))

        return [
            grouped.get(number, SubstitutionRound(number, minute))
            for number, minute in enumerate(self.session.scheme_minutes, start=1)
        ]

    # ------------------------------------------------------------------
    # Drafts & eligibility
    # ------------------------------------------------------------------

    def open_round(self, round_number: Optional[int] = None, minute: Optional[int] = None) -> RoundDraft:
        """
        Load a round into an editable draft.

        Fixed schemes require an existing round number and take the minute
        from the scheme. Free-form rounds open a new number when none is
        given, and may carry a new minute for an existing round.
        """
        if not self.is_free_form:
            if round_number is None:
                raise SubstitutionValidationError("A round number is required for a fixed substitution scheme")
            minute = self.scheduled_minute(round_number)
        elif round_number is None:
            return RoundDraft(self.next_round_number(), minute, [], is_new=True)

        existing = [e for e in self.regular_events() if e.round_number == round_number]
        if self.is_free_form and not existing and round_number != self.next_round_number():
            raise NotFoundError("Substitution round", round_number)
        if minute is None and existing:
            minute = existing[0].minute

        pairs = [SubstitutionPair(e.player_out, e.player_in) for e in existing]
        return RoundDraft(round_number, minute, pairs, is_new=not existing)

    def _prior_events(self, draft: RoundDraft) -> List[SubstitutionEvent]:
        """Events strictly before the draft's round on the timeline."""
        if draft.minute is None:
            # Unplaced free-form round: treat as after everything else
            return [e for e in self.events() if e.is_extra or e.round_number != draft.round_number]
        round_key = (draft.minute, 0, draft.round_number)
        return [
            e for e in self.events()
            if (e.is_extra or e.round_number != draft.round_number) and e.sort_key[:3] < round_key
        ]

    def _pitch_before(self, draft: RoundDraft) -> Tuple[Set[PlayerKey], Set[PlayerKey]]:
        return replay_pitch(self.session.starters, self._prior_events(draft))

    def eligible_outgoing(self, draft: RoundDraft, exclude_pair: Optional[int] = None) -> List[PlayerKey]:
        """
        Players on the pitch as of this round, minus those already going off
        in another pair of the draft.
        """
        on_pitch, _ = self._pitch_before(draft)
        eligible = on_pitch - draft.used_out(exclude_pair)
        return sorted(eligible)

    def eligible_incoming(self, draft: RoundDraft, exclude_pair: Optional[int] = None) -> List[PlayerKey]:
        """
        Available bench players plus available players who already went off,
        minus the players on the pitch and those already coming on in the draft.
        """
        on_pitch, left_pitch = self._pitch_before(draft)
        bench = {
            p.key for p in bench_players(
                self.session.players, self.session.absences, set(self.session.starters)
            )
        }
        returning = {
            key for key in left_pitch
            if is_available(self.session.player(key), self.session.absences)
        }
        eligible = (bench | returning) - on_pitch - draft.used_in(exclude_pair)
        return sorted(eligible)

    # ------------------------------------------------------------------
    # Commits
    # ------------------------------------------------------------------

    def validate_round(self, draft: RoundDraft) -> List[str]:
        """Every reason the draft cannot be committed; empty when it can."""
        errors: List[str] = []

        if draft.minute is None:
            errors.append("A minute is required for this substitution round")
        elif not 0 <= draft.minute <= self.session.duration:
            errors.append(f"Minute {draft.minute} is outside the match (0-{self.session.duration})")

        if not all(p.is_complete for p in draft.pairs):
            errors.append("Every substitution needs both an outgoing and an incoming player")
            return errors

        outs = [p.player_out for p in draft.pairs]
        ins = [p.player_in for p in draft.pairs]
        if len(set(outs)) != len(outs):
            errors.append("A player can only be substituted off once per round")
        if len(set(ins)) != len(ins):
            errors.append("A player can only be brought on once per round")
        if any(p.player_out == p.player_in for p in draft.pairs):
            errors.append("A player cannot replace themselves")
        if errors or draft.minute is None:
            return errors

        eligible_out = set(self.eligible_outgoing(RoundDraft(draft.round_number, draft.minute)))
        eligible_in = set(self.eligible_incoming(RoundDraft(draft.round_number, draft.minute)))
        for pair in draft.pairs:
            if pair.player_out not in eligible_out:
                errors.append(f"{pair.player_out} is not on the pitch at minute {draft.minute}")
            if pair.player_in not in eligible_in:
                errors.append(f"{pair.player_in} cannot come on at minute {draft.minute}")
        if errors:
            return errors

        # Later rounds were validated against the old version of this round
        candidate = [
            e for e in self.events()
            if e.is_extra or e.round_number != draft.round_number
        ] + [
            SubstitutionEvent(draft.round_number, draft.minute, p.player_out, p.player_in)
            for p in draft.pairs
        ]
        errors.extend(find_conflicts(
            self.session.starters, candidate, after=(draft.minute, 0, draft.round_number)
        ))
        return errors

    async def commit_round(self, draft: RoundDraft) -> SubstitutionRound:
        """
        Validate and store a round, replacing whatever was stored for it.

        An empty draft deletes the round.

        Raises:
            MatchLockedError: match already finalized
            SubstitutionValidationError: draft rejected; nothing written
            PersistenceError: store failure; nothing written
        """
        await self.session.refresh()
        self.session.ensure_editable("commit substitution round")

        if not self.is_free_form:
            draft.minute = self.scheduled_minute(draft.round_number)

        with match_context(self.session.match_id):
            errors = self.validate_round(draft)
            if errors:
                logger.info(f"Rejected substitution round {draft.round_number}: {'; '.join(errors)}")
                raise SubstitutionValidationError(errors)

            try:
                self.repo.delete_round(self.session.match_id, draft.round_number)
                self.repo.create_many([
                    {
                        "match_id": self.session.match_id,
                        "round_number": draft.round_number,
                        "minute": draft.minute,
                        "player_out_origin": pair.player_out.origin.value,
                        "player_out_id": pair.player_out.id,
                        "player_in_origin": pair.player_in.origin.value,
                        "player_in_id": pair.player_in.id,
                        "is_extra": False,
                    }
                    for pair in draft.pairs
                ])
                self.repo.save()
            except SQLAlchemyError as e:
                self.repo.rollback()
                logger.error(f"Error saving substitution round {draft.round_number}: {e}", exc_info=True)
                raise PersistenceError("commit substitution round", e) from e

            logger.info(
                f"Committed substitution round {draft.round_number} at minute {draft.minute} "
                f"with {len(draft.pairs)} pairs"
            )

        await self.session.refresh()
        return SubstitutionRound(draft.round_number, draft.minute, list(draft.pairs))

    async def record_extra(self, minute: int, player_out: PlayerKey, player_in: PlayerKey) -> SubstitutionEvent:
        """
        Store an ad-hoc substitution outside the scheduled rounds.

        Only basic sanity is checked: distinct, known players and a minute
        inside the match.
        """
        await self.session.refresh()
        self.session.ensure_editable("record extra substitution")

        errors = []
        if player_out is None or player_in is None:
            errors.append("Every substitution needs both an outgoing and an incoming player")
        elif player_out == player_in:
            errors.append("A player cannot replace themselves")
        else:
            for key in (player_out, player_in):
                if self.session.player(key) is None:
                    errors.append(f"Unknown player {key}")
        if not 0 <= minute <= self.session.duration:
            errors.append(f"Minute {minute} is outside the match (0-{self.session.duration})")
        if errors:
            raise SubstitutionValidationError(errors)

        with match_context(self.session.match_id):
            try:
                row = self.repo.create(
                    match_id=self.session.match_id,
                    round_number=EXTRA_ROUND_NUMBER,
                    minute=minute,
                    player_out_origin=player_out.origin.value,
                    player_out_id=player_out.id,
                    player_in_origin=player_in.origin.value,
                    player_in_id=player_in.id,
                    is_extra=True,
                )
                self.repo.save()
            except SQLAlchemyError as e:
                self.repo.rollback()
                logger.error(f"Error saving extra substitution: {e}", exc_info=True)
                raise PersistenceError("record extra substitution", e) from e

            event = SubstitutionEvent.from_row(row)
            logger.info(f"Recorded extra substitution at minute {minute}: {player_out} -> {player_in}")

        await self.session.refresh()
        return event

    async def remove_extra(self, substitution_id: int) -> None:
        """Delete one extra substitution."""
        await self.session.refresh()
        self.session.ensure_editable("remove extra substitution")

        row = self.repo.find_by_id(substitution_id)
        if row is None or row.match_id != self.session.match_id or not row.is_extra:
            raise NotFoundError("Extra substitution", substitution_id)

        try:
            self.repo.delete(substitution_id)
            self.repo.save()
        except SQLAlchemyError as e:
            self.repo.rollback()
            raise PersistenceError("remove extra substitution", e) from e

        await self.session.refresh()
