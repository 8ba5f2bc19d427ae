"""
Engine error taxonomy.

- ValidationError: caller-correctable, raised before any state is mutated
- MatchLockedError: structural edit attempted on a finalized match
- NotFoundError: a referenced match/player/round does not exist
- PersistenceError: the store failed; prior committed state is untouched

Double-assignment and identity collisions are not errors at all: the
lineup state refuses them silently.
"""
from typing import Iterable, Optional


class EngineError(Exception):
    """Base class for every error the engine reports upward."""


class ValidationError(EngineError):
    """Input rejected without touching persisted state."""

    def __init__(self, errors: Iterable[str] | str):
        if isinstance(errors, str):
            errors = [errors]
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


class SubstitutionValidationError(ValidationError):
    """A substitution round or extra substitution failed validation."""


class VoteRejectedError(ValidationError):
    """A vote was refused. `reason` is a stable machine-readable code."""

    WINDOW_CLOSED = "window_closed"
    DUPLICATE = "duplicate_vote"
    SELF_VOTE = "self_vote"
    NOT_PARTICIPANT = "not_participant"
    UNKNOWN_VOTER = "unknown_voter"

    def __init__(self, reason: str, message: str):
        self.reason = reason
        super().__init__(message)


class InsufficientCreditsError(ValidationError):
    """Spending more credits than the ledger balance holds."""

    def __init__(self, balance: int, requested: int):
        self.balance = balance
        self.requested = requested
        super().__init__(f"Balance {balance} does not cover {requested} credits")


class MatchLockedError(EngineError):
    """Lineup or substitution edit on a finalized match."""

    def __init__(self, match_id: int, action: Optional[str] = None):
        self.match_id = match_id
        detail = f" ({action})" if action else ""
        super().__init__(f"Match {match_id} is finalized and can no longer be edited{detail}")


class NotFoundError(EngineError):
    """Referenced record does not exist."""

    def __init__(self, entity: str, identifier: object):
        self.entity = entity
        self.identifier = identifier
        super().__init__(f"{entity} {identifier} not found")


class PersistenceError(EngineError):
    """The underlying store failed; the operation was rolled back."""

    def __init__(self, operation: str, cause: Optional[BaseException] = None):
        self.operation = operation
        self.cause = cause
        message = f"Persistence failure during {operation}"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)
