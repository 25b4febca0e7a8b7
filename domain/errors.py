"""
Domain: error taxonomy for the lead lifecycle.

Every lifecycle operation either succeeds completely or raises one of these
exceptions without modifying the Lead.

- InvalidTransition: the (status, action) pair is not in the transition table.
- LeadAlreadyInProgress: assignment attempted on an accepted lead.
- Forbidden: the actor lacks the role or ownership the action requires.
- Conflict: a concurrent transition on the same Lead won the race.
- ValidationError: a required field is missing or malformed (field-level detail).
- NotFound: the referenced lead, user or update does not exist.
- StoreError: the persistence backend failed; callers may retry the fetch.
- NotificationDeliveryFailure: delivery exhausted its retries. Never raised to
  lifecycle callers; recorded on the Update and logged.
"""

from __future__ import annotations

from typing import Dict, Mapping, Optional


class LeadLifecycleError(Exception):
    """Base class for all lifecycle errors."""


class InvalidTransition(LeadLifecycleError):
    def __init__(self, message: str, *, status: Optional[str] = None, action: Optional[str] = None):
        super().__init__(message)
        self.status = status
        self.action = action


class LeadAlreadyInProgress(InvalidTransition):
    pass


class Forbidden(LeadLifecycleError):
    pass


class Conflict(LeadLifecycleError):
    def __init__(self, message: str, *, lead_id: Optional[int] = None):
        super().__init__(message)
        self.lead_id = lead_id


class ValidationError(LeadLifecycleError):
    def __init__(self, message: str, fields: Optional[Mapping[str, str]] = None):
        super().__init__(message)
        self.fields: Dict[str, str] = dict(fields or {})

    @classmethod
    def for_field(cls, field: str, problem: str) -> "ValidationError":
        return cls(f"{field}: {problem}", {field: problem})


class NotFound(LeadLifecycleError):
    pass


class StoreError(LeadLifecycleError):
    pass


class NotificationDeliveryFailure(LeadLifecycleError):
    def __init__(self, message: str, *, update_id: Optional[int] = None, attempts: int = 0):
        super().__init__(message)
        self.update_id = update_id
        self.attempts = attempts


__all__ = [
    "LeadLifecycleError",
    "InvalidTransition",
    "LeadAlreadyInProgress",
    "Forbidden",
    "Conflict",
    "ValidationError",
    "NotFound",
    "StoreError",
    "NotificationDeliveryFailure",
]
