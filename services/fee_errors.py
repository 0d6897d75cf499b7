"""Typed errors raised by the fee ledger engine.

Every error carries a ``kind`` plus the offending ``field`` or ``entity_id`` so
callers can render a specific message. None of them subclass ``ValueError``:
raised from inside a pydantic validator they propagate unchanged.
"""
from typing import Any, Dict, Optional


class FeeError(Exception):
    kind = "fee_error"

    def __init__(self, message: str, field: Optional[str] = None, entity_id: Any = None):
        super().__init__(message)
        self.message = message
        self.field = field
        self.entity_id = entity_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "detail": self.message,
            "kind": self.kind,
            "field": self.field,
            "entity_id": self.entity_id,
        }


class ValidationError(FeeError):
    """Malformed input: negative amounts, missing references, empty reasons."""
    kind = "validation_error"


class NotFoundError(FeeError):
    kind = "not_found"


class ConflictError(FeeError):
    """Locked structure edits, over-payments, exhausted transaction retries."""
    kind = "conflict"


class StateError(FeeError):
    """Operation not allowed in the ledger's current state."""
    kind = "state_error"
