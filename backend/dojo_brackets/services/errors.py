"""
Domain errors for bracket generation, progression and standings.

Every error carries a machine-readable ``kind`` and the id of the affected
entity so a caller can decide whether to retry, show it to an operator, or
abort. Routes never build these; the exception handler in main.py maps them
to HTTP responses.
"""
from typing import Any, Dict, Optional, Union

EntityId = Union[int, str, None]


class BracketError(Exception):
    status_code = 400
    kind = "BRACKET_ERROR"
    retryable = False

    def __init__(self, message: str, entity_id: EntityId = None, kind: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.entity_id = entity_id
        if kind is not None:
            self.kind = kind

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind,
            "entity_id": self.entity_id,
            "message": self.message,
            "retryable": self.retryable,
        }


class NotFoundError(BracketError):
    status_code = 404
    kind = "NOT_FOUND"


class ValidationError(BracketError):
    """Rejected synchronously; no state was mutated."""

    status_code = 422
    kind = "VALIDATION"


class StateConflictError(BracketError):
    """Conflicting concurrent or state-dependent operation; safe to retry later."""

    status_code = 409
    kind = "STATE_CONFLICT"
    retryable = True


class StandingsNotFinalError(BracketError):
    status_code = 409
    kind = "STANDINGS_NOT_FINAL"


class BracketIntegrityError(BracketError):
    """Internal invariant violated (data corruption). Fatal, never user-facing."""

    status_code = 500
    kind = "INTEGRITY"
