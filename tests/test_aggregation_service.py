"""
Tests for `services/aggregation_service.py`.

Covers contract rules:
- total equals the number of leads.
- The status buckets partition the leads exactly.
- Stats are recomputed from the store on every call.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.lead import Lead, LeadStatus
from repositories.memory import InMemoryLeadRepository
from services.aggregation_service import AggregationService, LeadStats, compute_lead_stats

T0 = datetime(2025, 1, 1, 0, 0, 0, tzinfo=timezone.utc)


def _lead(lead_id: int, status: LeadStatus, spotter_id: str = "S1", agency_id: str = "AG1",
          agent_id: str = "A7") -> Lead:
    created_at = T0 + timedelta(minutes=lead_id)
    fields = dict(id=lead_id, spotter_id=spotter_id, agency_id=agency_id, created_at=created_at, status=status)
    if status in (LeadStatus.ASSIGNED, LeadStatus.IN_PROGRESS, LeadStatus.COMPLETED):
        fields.update(agent_id=agent_id, assigned_at=created_at)
    if status in (LeadStatus.IN_PROGRESS, LeadStatus.COMPLETED):
        fields.update(is_accepted=True, accepted_at=created_at)
    if status == LeadStatus.COMPLETED:
        fields.update(
            final_price=Decimal("100000"),
            agreed_commission_amount=Decimal("5000.00"),
            spotter_commission_amount=Decimal("500.00"),
        )
    if status.is_terminal:
        fields["closed_at"] = created_at
    return Lead(**fields)


def test_empty_collection() -> None:
    stats = compute_lead_stats([])

    assert stats == LeadStats()
    assert stats.active == 0


@pytest.mark.parametrize("seed", [1, 7, 42])
def test_buckets_partition_the_leads(seed: int) -> None:
    rng = random.Random(seed)
    statuses = [rng.choice(list(LeadStatus)) for _ in range(rng.randint(1, 60))]
    leads = [_lead(i + 1, status) for i, status in enumerate(statuses)]

    stats = compute_lead_stats(leads)

    assert stats.total == len(leads)
    assert stats.new + stats.assigned + stats.in_progress + stats.completed + stats.closed == stats.total
    assert stats.in_progress == statuses.count(LeadStatus.IN_PROGRESS)
    assert stats.active == stats.new + stats.assigned + stats.in_progress


def test_as_dict_includes_active() -> None:
    stats = compute_lead_stats([_lead(1, LeadStatus.NEW), _lead(2, LeadStatus.COMPLETED)])

    assert stats.as_dict() == {
        "total": 2,
        "new": 1,
        "assigned": 0,
        "in_progress": 0,
        "completed": 1,
        "closed": 0,
        "active": 1,
    }


def test_role_views_count_their_own_leads() -> None:
    repo = InMemoryLeadRepository()
    repo.insert(_lead(1, LeadStatus.NEW, spotter_id="S1"))
    repo.insert(_lead(2, LeadStatus.ASSIGNED, spotter_id="S1", agent_id="A7"))
    repo.insert(_lead(3, LeadStatus.IN_PROGRESS, spotter_id="S2", agent_id="A7"))
    repo.insert(_lead(4, LeadStatus.COMPLETED, spotter_id="S2", agent_id="A8"))
    repo.insert(_lead(5, LeadStatus.CLOSED, spotter_id="S1", agency_id="AG2"))
    service = AggregationService(repo)

    assert service.stats_for_spotter("S1") == LeadStats(total=3, new=1, assigned=1, closed=1)
    assert service.stats_for_agent("A7") == LeadStats(total=2, assigned=1, in_progress=1)
    assert service.stats_for_agency("AG1") == LeadStats(total=4, new=1, assigned=1, in_progress=1, completed=1)


def test_stats_are_fresh_on_every_call() -> None:
    repo = InMemoryLeadRepository()
    service = AggregationService(repo)
    assert service.stats_for_agency("AG1").total == 0

    repo.insert(_lead(1, LeadStatus.NEW))

    assert service.stats_for_agency("AG1").total == 1
