"""Roster-level error types.

WHY: Callers (CLI, HTTP API) need to tell a rejected operation (empty
required field) apart from other failures so they can report it to the
operator without treating it as a crash.

RULES:
- ValidationError: operation rejected, state unchanged, no side effects
- NotFound: available to callers that want to raise on unknown ids;
  RosterStore itself treats unknown ids as no-ops
"""

from __future__ import annotations


class ValidationError(ValueError):
    """Raised when a required field is empty.

    RULES:
    - field names the offending input (e.g. "name", "description")
    """

    def __init__(self, field: str, message: str | None = None) -> None:
        self.field = field
        super().__init__(message or "{} must not be empty".format(field))


class NotFound(LookupError):
    """Raised by callers when an id does not exist in the roster."""

    def __init__(self, kind: str, item_id: str) -> None:
        self.kind = kind
        self.item_id = item_id
        super().__init__("{} not found: {}".format(kind, item_id))
