"""
Domain: lead lifecycle transition table.

Contract excerpts implemented here:

    From         Action    Actor                To
    new          assign    agency admin         assigned
    assigned     assign    agency admin         assigned   (reassignment supersedes)
    assigned     accept    assigned agent       in_progress
    assigned     reject    assigned agent       closed     (or new, under the reopen policy)
    in_progress  complete  assigned agent       completed
    in_progress  fail      assigned agent       closed

Checks run in a fixed order so the outcome for a given request is predictable:

1. actor role and active flag                  -> Forbidden
2. (status, action) present in the table       -> InvalidTransition
3. ownership (agency admin / assigned agent)   -> Forbidden
4. required fields                             -> ValidationError

Every function here is pure: it returns a new Lead (version + 1) and never
mutates its input. Persistence and notifications live in
services/lifecycle_service.py.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

from .errors import Forbidden, InvalidTransition, LeadAlreadyInProgress, ValidationError
from .lead import Lead, LeadStatus
from .time import require_utc_timestamp
from .user import User, UserRole


class LeadAction(str, Enum):
    ASSIGN = "assign"
    ACCEPT = "accept"
    REJECT = "reject"
    COMPLETE = "complete"
    FAIL = "fail"


class RejectionPolicy(str, Enum):
    """What a rejected assignment does to the lead."""

    CLOSE = "close"
    REOPEN = "reopen"


TRANSITIONS: Mapping[Tuple[LeadStatus, LeadAction], LeadStatus] = {
    (LeadStatus.NEW, LeadAction.ASSIGN): LeadStatus.ASSIGNED,
    (LeadStatus.ASSIGNED, LeadAction.ASSIGN): LeadStatus.ASSIGNED,
    (LeadStatus.ASSIGNED, LeadAction.ACCEPT): LeadStatus.IN_PROGRESS,
    (LeadStatus.ASSIGNED, LeadAction.REJECT): LeadStatus.CLOSED,
    (LeadStatus.IN_PROGRESS, LeadAction.COMPLETE): LeadStatus.COMPLETED,
    (LeadStatus.IN_PROGRESS, LeadAction.FAIL): LeadStatus.CLOSED,
}

ACTION_ROLES: Mapping[LeadAction, UserRole] = {
    LeadAction.ASSIGN: UserRole.AGENCY_ADMIN,
    LeadAction.ACCEPT: UserRole.AGENT,
    LeadAction.REJECT: UserRole.AGENT,
    LeadAction.COMPLETE: UserRole.AGENT,
    LeadAction.FAIL: UserRole.AGENT,
}

CommissionFunction = Callable[[Decimal], Tuple[Decimal, Decimal]]

# Digits allowed before the decimal point of a sale price.
MAX_PRICE_DIGITS = 13


@dataclass(frozen=True, slots=True)
class LeadEvent:
    """
    Audit record of one applied transition.

    One event is appended per successful transition; reassignment records the
    superseded agent in previous_agent_id.
    """

    lead_id: int
    action: LeadAction
    actor_id: str
    from_status: LeadStatus
    to_status: LeadStatus
    occurred_at: datetime
    agent_id: Optional[str] = None
    previous_agent_id: Optional[str] = None
    notes: Optional[str] = None
    id: Optional[int] = None

    def __post_init__(self) -> None:
        require_utc_timestamp("occurred_at", self.occurred_at)


def target_status(
    status: LeadStatus,
    action: LeadAction,
    rejection_policy: RejectionPolicy = RejectionPolicy.CLOSE,
) -> LeadStatus:
    """Resolve the destination status, or raise InvalidTransition."""

    if action == LeadAction.ASSIGN and status == LeadStatus.IN_PROGRESS:
        raise LeadAlreadyInProgress(
            "Lead has been accepted and is in progress; it can only be completed or failed",
            status=status.value,
            action=action.value,
        )

    target = TRANSITIONS.get((status, action))
    if target is None:
        raise InvalidTransition(
            f"Cannot {action.value} a lead with status '{status.value}'",
            status=status.value,
            action=action.value,
        )

    if action == LeadAction.REJECT and rejection_policy == RejectionPolicy.REOPEN:
        return LeadStatus.NEW
    return target


def allowed_actions(status: LeadStatus) -> Tuple[LeadAction, ...]:
    return tuple(action for (source, action) in TRANSITIONS if source == status)


def authorize(lead: Lead, actor: User, action: LeadAction, rejection_policy: RejectionPolicy) -> LeadStatus:
    """
    Run the role, state and ownership checks for `action` and return the target status.
    """

    required_role = ACTION_ROLES[action]
    if actor.role != required_role:
        raise Forbidden(f"Only users with role '{required_role.value}' may {action.value} leads")
    if not actor.is_active:
        raise Forbidden("Inactive users cannot act on leads")

    target = target_status(lead.status, action, rejection_policy)

    if action == LeadAction.ASSIGN:
        if not actor.administers(lead.agency_id):
            raise Forbidden("Lead does not belong to the admin's agency")
    else:
        if not lead.is_assigned_to(actor.id):
            raise Forbidden("Only the assigned agent may act on this lead")
        if lead.is_accepted and action in (LeadAction.ACCEPT, LeadAction.REJECT):
            raise InvalidTransition(
                "Assignment has already been accepted", status=lead.status.value, action=action.value
            )

    return target


def parse_final_price(value: Any) -> Decimal:
    """Parse a positive, finite sale price. Strings that parse as decimals are accepted."""

    if value is None or value == "":
        raise ValidationError.for_field("final_price", "This field is required.")
    if isinstance(value, bool):
        raise ValidationError.for_field("final_price", "A valid number is required.")
    try:
        price = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError.for_field("final_price", "A valid number is required.")
    if not price.is_finite():
        raise ValidationError.for_field("final_price", "A valid number is required.")
    if price <= 0:
        raise ValidationError.for_field("final_price", "Must be greater than zero.")
    if price.adjusted() >= MAX_PRICE_DIGITS:
        raise ValidationError.for_field(
            "final_price", f"Ensure that there are no more than {MAX_PRICE_DIGITS} digits before the decimal point."
        )
    return price


def require_reason(reason: Optional[str]) -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise ValidationError.for_field("reason", "This field may not be blank.")
    return cleaned


def _advance(lead: Lead, at: datetime, **changes: Any) -> Lead:
    require_utc_timestamp("at", at)
    return replace(lead, updated_at=at, version=lead.version + 1, **changes)


def assign(lead: Lead, actor: User, agent: User, *, at: datetime) -> Lead:
    """Assign (or reassign) the lead to `agent`."""

    authorize(lead, actor, LeadAction.ASSIGN, RejectionPolicy.CLOSE)

    problems: Dict[str, str] = {}
    if not agent.can_receive_assignments():
        problems["agent_id"] = "Agent is not active." if agent.is_agent() else "User is not an agent."
    elif agent.agency_id != actor.agency_id:
        problems["agent_id"] = "Agent does not belong to your agency."
    if problems:
        raise ValidationError("Invalid assignment target", problems)

    return _advance(lead, at, status=LeadStatus.ASSIGNED, agent_id=agent.id, assigned_at=at)


def accept(lead: Lead, actor: User, *, at: datetime) -> Lead:
    authorize(lead, actor, LeadAction.ACCEPT, RejectionPolicy.CLOSE)
    return _advance(lead, at, status=LeadStatus.IN_PROGRESS, is_accepted=True, accepted_at=at)


def reject(
    lead: Lead,
    actor: User,
    *,
    at: datetime,
    rejection_policy: RejectionPolicy = RejectionPolicy.CLOSE,
) -> Lead:
    target = authorize(lead, actor, LeadAction.REJECT, rejection_policy)
    closed_at = at if target.is_terminal else None
    return _advance(lead, at, status=target, agent_id=None, closed_at=closed_at)


def complete(
    lead: Lead,
    actor: User,
    final_price: Any,
    commission: CommissionFunction,
    *,
    at: datetime,
) -> Lead:
    """
    Mark the lead completed.

    `commission` is called exactly once, after every check has passed.
    """

    authorize(lead, actor, LeadAction.COMPLETE, RejectionPolicy.CLOSE)
    price = parse_final_price(final_price)
    agreed, spotter = commission(price)
    return _advance(
        lead,
        at,
        status=LeadStatus.COMPLETED,
        final_price=price,
        agreed_commission_amount=agreed,
        spotter_commission_amount=spotter,
        closed_at=at,
    )


def fail(lead: Lead, actor: User, reason: Optional[str], *, at: datetime) -> Lead:
    authorize(lead, actor, LeadAction.FAIL, RejectionPolicy.CLOSE)
    cleaned = require_reason(reason)
    return _advance(lead, at, status=LeadStatus.CLOSED, failure_reason=cleaned, closed_at=at)


def event_for(
    before: Lead,
    after: Lead,
    action: LeadAction,
    actor: User,
    notes: Optional[str] = None,
) -> LeadEvent:
    return LeadEvent(
        lead_id=after.id,
        action=action,
        actor_id=actor.id,
        from_status=before.status,
        to_status=after.status,
        occurred_at=after.updated_at or after.created_at,
        agent_id=after.agent_id,
        previous_agent_id=before.agent_id if before.agent_id != after.agent_id else None,
        notes=notes,
    )


__all__ = [
    "ACTION_ROLES",
    "TRANSITIONS",
    "LeadAction",
    "LeadEvent",
    "RejectionPolicy",
    "accept",
    "allowed_actions",
    "assign",
    "authorize",
    "complete",
    "event_for",
    "fail",
    "parse_final_price",
    "reject",
    "require_reason",
    "target_status",
]
