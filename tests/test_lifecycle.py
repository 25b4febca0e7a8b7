"""
Tests for `domain/lifecycle.py`.

Covers contract rules:
- Only the (status, action) pairs in the transition table are allowed.
- Checks run role -> state -> ownership -> fields.
- Transitions are pure: the input lead is never modified; version increments.
- Commission is computed once, only after every check passes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from decimal import Decimal
from itertools import product

import pytest

from domain import lifecycle
from domain.errors import Forbidden, InvalidTransition, LeadAlreadyInProgress, ValidationError
from domain.lead import Lead, LeadStatus
from domain.lifecycle import LeadAction, RejectionPolicy
from domain.user import User, UserRole

T0 = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
T1 = T0 + timedelta(hours=1)

ADMIN = User(id="admin-1", email="admin@example.com", role=UserRole.AGENCY_ADMIN, agency_id="AG1")
OTHER_ADMIN = User(id="admin-2", email="other@example.com", role=UserRole.AGENCY_ADMIN, agency_id="AG2")
A7 = User(id="A7", email="a7@example.com", role=UserRole.AGENT, agency_id="AG1")
A8 = User(id="A8", email="a8@example.com", role=UserRole.AGENT, agency_id="AG1")
B1 = User(id="B1", email="b1@example.com", role=UserRole.AGENT, agency_id="AG2")
SPOTTER = User(id="S1", email="s1@example.com", role=UserRole.SPOTTER)


def _fixed_commission(price: Decimal):
    return Decimal("10.00"), Decimal("1.00")


def _lead_in(status: LeadStatus) -> Lead:
    """A lead in `status`, assigned to A7 where the status requires an agent."""

    fields = dict(id=42, spotter_id="S1", agency_id="AG1", created_at=T0, status=status)
    if status in (LeadStatus.ASSIGNED, LeadStatus.IN_PROGRESS, LeadStatus.COMPLETED):
        fields.update(agent_id="A7", assigned_at=T0)
    if status in (LeadStatus.IN_PROGRESS, LeadStatus.COMPLETED):
        fields.update(is_accepted=True, accepted_at=T0)
    if status == LeadStatus.COMPLETED:
        fields.update(
            final_price=Decimal("100"),
            agreed_commission_amount=Decimal("5.00"),
            spotter_commission_amount=Decimal("0.50"),
        )
    if status.is_terminal:
        fields["closed_at"] = T0
    return Lead(**fields)


def _apply(lead: Lead, action: LeadAction) -> Lead:
    if action == LeadAction.ASSIGN:
        return lifecycle.assign(lead, ADMIN, A8, at=T1)
    if action == LeadAction.ACCEPT:
        return lifecycle.accept(lead, A7, at=T1)
    if action == LeadAction.REJECT:
        return lifecycle.reject(lead, A7, at=T1)
    if action == LeadAction.COMPLETE:
        return lifecycle.complete(lead, A7, "1000", _fixed_commission, at=T1)
    return lifecycle.fail(lead, A7, "Owner withdrew", at=T1)


@pytest.mark.parametrize("status,action", list(product(LeadStatus, LeadAction)))
def test_only_table_transitions_are_allowed(status: LeadStatus, action: LeadAction) -> None:
    """Verify every (status, action) pair either follows the table or raises InvalidTransition."""

    lead = _lead_in(status)
    expected = lifecycle.TRANSITIONS.get((status, action))

    if expected is None:
        with pytest.raises(InvalidTransition):
            _apply(lead, action)
        return

    updated = _apply(lead, action)
    assert updated.status == expected
    assert updated.version == lead.version + 1
    assert updated.updated_at == T1


def test_transitions_do_not_modify_input() -> None:
    lead = _lead_in(LeadStatus.ASSIGNED)

    accepted = lifecycle.accept(lead, A7, at=T1)

    assert lead.status == LeadStatus.ASSIGNED
    assert lead.version == 1
    assert accepted is not lead


def test_assign_sets_agent_and_timestamp() -> None:
    lead = _lead_in(LeadStatus.NEW)

    assigned = lifecycle.assign(lead, ADMIN, A7, at=T1)

    assert assigned.status == LeadStatus.ASSIGNED
    assert assigned.agent_id == "A7"
    assert assigned.assigned_at == T1


def test_reassign_replaces_agent_and_refreshes_assigned_at() -> None:
    lead = _lead_in(LeadStatus.ASSIGNED)

    reassigned = lifecycle.assign(lead, ADMIN, A8, at=T1)

    assert reassigned.status == LeadStatus.ASSIGNED
    assert reassigned.agent_id == "A8"
    assert reassigned.assigned_at == T1


def test_assign_in_progress_raises_lead_already_in_progress() -> None:
    lead = _lead_in(LeadStatus.IN_PROGRESS)

    with pytest.raises(LeadAlreadyInProgress):
        lifecycle.assign(lead, ADMIN, A8, at=T1)


def test_role_is_checked_before_state() -> None:
    """Verify a spotter gets Forbidden even where the state would also be invalid."""

    with pytest.raises(Forbidden):
        lifecycle.complete(_lead_in(LeadStatus.NEW), SPOTTER, "1000", _fixed_commission, at=T1)

    with pytest.raises(Forbidden):
        lifecycle.assign(_lead_in(LeadStatus.CLOSED), A7, A8, at=T1)


def test_state_is_checked_before_ownership() -> None:
    """Verify a wrong-state action by a non-owner reports the invalid transition."""

    with pytest.raises(InvalidTransition):
        lifecycle.complete(_lead_in(LeadStatus.ASSIGNED), A8, "1000", _fixed_commission, at=T1)


def test_ownership_is_checked_before_fields() -> None:
    """Verify a missing reason from a non-assigned agent reports Forbidden."""

    with pytest.raises(Forbidden):
        lifecycle.fail(_lead_in(LeadStatus.IN_PROGRESS), A8, "", at=T1)


def test_admin_of_another_agency_cannot_assign() -> None:
    with pytest.raises(Forbidden):
        lifecycle.assign(_lead_in(LeadStatus.NEW), OTHER_ADMIN, B1, at=T1)


def test_inactive_actor_is_forbidden() -> None:
    inactive = User(id="A7", email="a7@example.com", role=UserRole.AGENT, agency_id="AG1", is_active=False)

    with pytest.raises(Forbidden):
        lifecycle.accept(_lead_in(LeadStatus.ASSIGNED), inactive, at=T1)


@pytest.mark.parametrize(
    "agent",
    [
        B1,
        User(id="A9", email="a9@example.com", role=UserRole.AGENT, agency_id="AG1", is_active=False),
        SPOTTER,
    ],
)
def test_assign_target_must_be_active_agent_of_same_agency(agent: User) -> None:
    with pytest.raises(ValidationError) as exc_info:
        lifecycle.assign(_lead_in(LeadStatus.NEW), ADMIN, agent, at=T1)

    assert "agent_id" in exc_info.value.fields


def test_accept_sets_acceptance_fields() -> None:
    accepted = lifecycle.accept(_lead_in(LeadStatus.ASSIGNED), A7, at=T1)

    assert accepted.status == LeadStatus.IN_PROGRESS
    assert accepted.is_accepted is True
    assert accepted.accepted_at == T1


def test_reject_closes_and_clears_agent_by_default() -> None:
    rejected = lifecycle.reject(_lead_in(LeadStatus.ASSIGNED), A7, at=T1)

    assert rejected.status == LeadStatus.CLOSED
    assert rejected.agent_id is None
    assert rejected.closed_at == T1
    assert rejected.assigned_at == T0


def test_reject_under_reopen_policy_returns_lead_to_new() -> None:
    reopened = lifecycle.reject(_lead_in(LeadStatus.ASSIGNED), A7, at=T1, rejection_policy=RejectionPolicy.REOPEN)

    assert reopened.status == LeadStatus.NEW
    assert reopened.agent_id is None
    assert reopened.closed_at is None

    # The reopened lead can be assigned again.
    assert lifecycle.assign(reopened, ADMIN, A8, at=T1).agent_id == "A8"


def test_complete_computes_commission_once() -> None:
    calls = []

    def commission(price: Decimal):
        calls.append(price)
        return Decimal("25000.00"), Decimal("2500.00")

    completed = lifecycle.complete(_lead_in(LeadStatus.IN_PROGRESS), A7, "500000", commission, at=T1)

    assert calls == [Decimal("500000")]
    assert completed.status == LeadStatus.COMPLETED
    assert completed.final_price == Decimal("500000")
    assert completed.agreed_commission_amount == Decimal("25000.00")
    assert completed.spotter_commission_amount == Decimal("2500.00")
    assert completed.closed_at == T1


def test_commission_is_not_computed_when_checks_fail() -> None:
    calls = []

    def commission(price: Decimal):
        calls.append(price)
        return Decimal("1.00"), Decimal("0.10")

    with pytest.raises(Forbidden):
        lifecycle.complete(_lead_in(LeadStatus.IN_PROGRESS), A8, "500000", commission, at=T1)
    with pytest.raises(ValidationError):
        lifecycle.complete(_lead_in(LeadStatus.IN_PROGRESS), A7, "abc", commission, at=T1)

    assert calls == []


@pytest.mark.parametrize("reason", [None, "", "   "])
def test_fail_requires_reason(reason) -> None:
    with pytest.raises(ValidationError) as exc_info:
        lifecycle.fail(_lead_in(LeadStatus.IN_PROGRESS), A7, reason, at=T1)

    assert exc_info.value.fields == {"reason": "This field may not be blank."}


def test_fail_stores_trimmed_reason_without_commission() -> None:
    failed = lifecycle.fail(_lead_in(LeadStatus.IN_PROGRESS), A7, "  Owner withdrew ", at=T1)

    assert failed.status == LeadStatus.CLOSED
    assert failed.failure_reason == "Owner withdrew"
    assert failed.agreed_commission_amount is None
    assert failed.spotter_commission_amount is None


@pytest.mark.parametrize(
    "value", [None, "", "abc", "-5", "0", True, "NaN", "Infinity", 0, "1e30", "10000000000000", 10**20]
)
def test_parse_final_price_rejects_invalid_values(value) -> None:
    with pytest.raises(ValidationError) as exc_info:
        lifecycle.parse_final_price(value)

    assert "final_price" in exc_info.value.fields


@pytest.mark.parametrize(
    "value,expected",
    [
        ("500000", Decimal("500000")),
        (" 1234.50 ", Decimal("1234.50")),
        (750000, Decimal("750000")),
        ("9999999999999.99", Decimal("9999999999999.99")),
    ],
)
def test_parse_final_price_accepts_decimal_strings_and_numbers(value, expected: Decimal) -> None:
    assert lifecycle.parse_final_price(value) == expected


def test_allowed_actions() -> None:
    assert lifecycle.allowed_actions(LeadStatus.NEW) == (LeadAction.ASSIGN,)
    assert set(lifecycle.allowed_actions(LeadStatus.ASSIGNED)) == {
        LeadAction.ASSIGN,
        LeadAction.ACCEPT,
        LeadAction.REJECT,
    }
    assert lifecycle.allowed_actions(LeadStatus.COMPLETED) == ()


def test_event_for_records_previous_agent_on_reassignment() -> None:
    before = _lead_in(LeadStatus.ASSIGNED)
    after = lifecycle.assign(before, ADMIN, A8, at=T1)

    event = lifecycle.event_for(before, after, LeadAction.ASSIGN, ADMIN, "swap")

    assert event.from_status == LeadStatus.ASSIGNED
    assert event.to_status == LeadStatus.ASSIGNED
    assert event.agent_id == "A8"
    assert event.previous_agent_id == "A7"
    assert event.occurred_at == T1
    assert event.notes == "swap"
