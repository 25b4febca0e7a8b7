"""
Domain: Lead entity.

A Lead tracks a spotted property from submission to sale or closure.

Contract rules implemented here:
- status is one of new, assigned, in_progress, completed, closed.
- completed and closed are terminal.
- agreed_commission_amount / spotter_commission_amount are set iff status == completed.
- accepted_at is set iff is_accepted is true.
- agent_id is set whenever status is assigned, in_progress or completed.
- closed_at is set iff the lead is terminal.
- All timestamps are UTC.

The entity is frozen. Transitions (domain/lifecycle.py) return new instances with
`version` incremented; the store uses `version` for optimistic concurrency.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple

from .time import require_optional_utc_timestamp, require_utc_timestamp


class LeadStatus(str, Enum):
    NEW = "new"
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CLOSED = "closed"

    @property
    def is_terminal(self) -> bool:
        return self in (LeadStatus.COMPLETED, LeadStatus.CLOSED)

    @property
    def is_active(self) -> bool:
        """Statuses the agency dashboard counts as active work."""
        return self in (LeadStatus.NEW, LeadStatus.ASSIGNED, LeadStatus.IN_PROGRESS)

    @property
    def label(self) -> str:
        """Human readable label, e.g. 'In progress'."""
        return self.value.replace("_", " ").capitalize()


_STATUSES_REQUIRING_AGENT = (LeadStatus.ASSIGNED, LeadStatus.IN_PROGRESS, LeadStatus.COMPLETED)


@dataclass(frozen=True, slots=True)
class LeadImage:
    image: str
    description: str = ""


@dataclass(frozen=True, slots=True)
class Lead:
    """
    Pure domain entity for a Lead.

    spotter_id and agency_id are fixed at submission. notes_text and images are
    read-only through the lifecycle.
    """

    id: int
    spotter_id: str
    agency_id: str
    created_at: datetime
    status: LeadStatus = LeadStatus.NEW
    is_accepted: bool = False
    agent_id: Optional[str] = None
    requested_agent_id: Optional[str] = None

    # Reported property / owner details
    first_name: str = ""
    last_name: str = ""
    email: Optional[str] = None
    phone: Optional[str] = None
    street_address: Optional[str] = None
    suburb: Optional[str] = None
    notes_text: str = ""
    images: Tuple[LeadImage, ...] = field(default_factory=tuple)

    # Outcome
    final_price: Optional[Decimal] = None
    agreed_commission_amount: Optional[Decimal] = None
    spotter_commission_amount: Optional[Decimal] = None
    failure_reason: Optional[str] = None

    # Lifecycle timestamps
    assigned_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
    closed_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    version: int = 1

    def __post_init__(self) -> None:
        require_utc_timestamp("created_at", self.created_at)
        require_optional_utc_timestamp("assigned_at", self.assigned_at)
        require_optional_utc_timestamp("accepted_at", self.accepted_at)
        require_optional_utc_timestamp("closed_at", self.closed_at)
        require_optional_utc_timestamp("updated_at", self.updated_at)

        if self.version < 1:
            raise ValueError("version must be >= 1")

        completed = self.status == LeadStatus.COMPLETED
        has_commission = (
            self.agreed_commission_amount is not None or self.spotter_commission_amount is not None
        )
        if completed and (self.agreed_commission_amount is None or self.spotter_commission_amount is None):
            raise ValueError("completed leads must carry both commission amounts")
        if has_commission and not completed:
            raise ValueError("commission amounts are only set on completed leads")

        if self.is_accepted != (self.accepted_at is not None):
            raise ValueError("accepted_at must be set iff is_accepted is true")

        if self.status in _STATUSES_REQUIRING_AGENT and self.agent_id is None:
            raise ValueError(f"status {self.status.value} requires an assigned agent")

        if self.status.is_terminal != (self.closed_at is not None):
            raise ValueError("closed_at must be set iff the lead is completed or closed")

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def is_assigned_to(self, agent_id: str) -> bool:
        return self.agent_id is not None and self.agent_id == agent_id


__all__ = ["Lead", "LeadImage", "LeadStatus"]
