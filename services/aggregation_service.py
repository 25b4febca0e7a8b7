"""
Aggregation service: per-role lead statistics.

`compute_lead_stats` is a pure function over a lead collection, recomputed on
every fetch (no cached counters). The spotter, agent and agency dashboards all
use it; they differ only in which leads are passed in.

Contract:
- total == len(leads)
- the five status buckets partition the leads exactly
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterable

from domain.lead import Lead, LeadStatus
from repositories.lead_repository import LeadRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class LeadStats:
    total: int = 0
    new: int = 0
    assigned: int = 0
    in_progress: int = 0
    completed: int = 0
    closed: int = 0

    @property
    def active(self) -> int:
        """Leads still being worked: new + assigned + in_progress."""
        return self.new + self.assigned + self.in_progress

    def as_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["active"] = self.active
        return data


def compute_lead_stats(leads: Iterable[Lead]) -> LeadStats:
    counts: Counter[LeadStatus] = Counter()
    total = 0
    for lead in leads:
        counts[lead.status] += 1
        total += 1
    return LeadStats(
        total=total,
        new=counts[LeadStatus.NEW],
        assigned=counts[LeadStatus.ASSIGNED],
        in_progress=counts[LeadStatus.IN_PROGRESS],
        completed=counts[LeadStatus.COMPLETED],
        closed=counts[LeadStatus.CLOSED],
    )


class AggregationService:
    """Fetches a role's lead set and aggregates it. Reads take no locks."""

    def __init__(self, leads: LeadRepository) -> None:
        self._leads = leads

    def stats_for_spotter(self, spotter_id: str) -> LeadStats:
        return compute_lead_stats(self._leads.list_by_spotter(spotter_id))

    def stats_for_agent(self, agent_id: str) -> LeadStats:
        return compute_lead_stats(self._leads.list_by_agent(agent_id))

    def stats_for_agency(self, agency_id: str) -> LeadStats:
        stats = compute_lead_stats(self._leads.list_by_agency(agency_id))
        logger.debug("Agency %s stats: %s", agency_id, stats)
        return stats


__all__ = ["AggregationService", "LeadStats", "compute_lead_stats"]
