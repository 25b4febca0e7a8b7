"""
Lead repository (persistence).

This module provides *only* persistence operations for the Lead entity and its
event history. No lifecycle rules belong here; the one guarantee it adds is the
optimistic concurrency check in `save`:

- `save(lead, expected_version)` writes only if the stored row still carries
  `expected_version`. Otherwise another transition won the race and `Conflict`
  is raised; nothing is written.

A Lead with `id == 0` is unsaved; `insert` assigns the real id.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, List, Mapping, Optional, Protocol

from postgrest.exceptions import APIError  # type: ignore[import-not-found]

from domain.errors import Conflict, NotFound, StoreError
from domain.lead import Lead, LeadImage, LeadStatus
from domain.lifecycle import LeadAction, LeadEvent
from domain.time import parse_utc_datetime, to_iso_utc

# Supabase table names.
# Keep these aligned with your database schema.
_LEADS_TABLE: str = "leads"
_LEAD_EVENTS_TABLE: str = "lead_events"


class LeadRepository(Protocol):
    def get(self, lead_id: int) -> Optional[Lead]: ...

    def insert(self, lead: Lead) -> Lead: ...

    def save(self, lead: Lead, expected_version: int) -> Lead: ...

    def list_by_spotter(self, spotter_id: str) -> List[Lead]: ...

    def list_by_agent(self, agent_id: str, statuses: Optional[Iterable[LeadStatus]] = None) -> List[Lead]: ...

    def list_by_agency(self, agency_id: str) -> List[Lead]: ...

    def append_event(self, event: LeadEvent) -> LeadEvent: ...

    def list_events(self, lead_id: int) -> List[LeadEvent]: ...


def _decimal_or_none(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _decimal_to_text(value: Optional[Decimal]) -> Optional[str]:
    return None if value is None else str(value)


def lead_to_row(lead: Lead) -> dict[str, Any]:
    """Convert a domain Lead to a Supabase row payload (id excluded)."""

    return {
        "status": lead.status.value,
        "is_accepted": lead.is_accepted,
        "spotter_id": lead.spotter_id,
        "agency_id": lead.agency_id,
        "agent_id": lead.agent_id,
        "requested_agent_id": lead.requested_agent_id,

        # Reported property / owner
        "first_name": lead.first_name,
        "last_name": lead.last_name,
        "email": lead.email,
        "phone": lead.phone,
        "street_address": lead.street_address,
        "suburb": lead.suburb,
        "notes_text": lead.notes_text,
        "images": [{"image": img.image, "description": img.description} for img in lead.images],

        # Outcome (numeric columns accept decimal strings without float rounding)
        "final_price": _decimal_to_text(lead.final_price),
        "agreed_commission_amount": _decimal_to_text(lead.agreed_commission_amount),
        "spotter_commission_amount": _decimal_to_text(lead.spotter_commission_amount),
        "failure_reason": lead.failure_reason,

        # Timestamps
        "created_at": to_iso_utc(lead.created_at),
        "assigned_at": to_iso_utc(lead.assigned_at),
        "accepted_at": to_iso_utc(lead.accepted_at),
        "closed_at": to_iso_utc(lead.closed_at),
        "updated_at": to_iso_utc(lead.updated_at),

        "version": lead.version,
    }


def row_to_lead(row: Mapping[str, Any]) -> Lead:
    """Convert a Supabase row into a domain Lead."""

    created_at = parse_utc_datetime(row["created_at"])
    if created_at is None:
        raise ValueError("lead row is missing created_at")

    return Lead(
        id=int(row["id"]),
        status=LeadStatus(str(row["status"])),
        is_accepted=bool(row.get("is_accepted", False)),
        spotter_id=str(row["spotter_id"]),
        agency_id=str(row["agency_id"]),
        agent_id=row.get("agent_id"),
        requested_agent_id=row.get("requested_agent_id"),
        first_name=row.get("first_name") or "",
        last_name=row.get("last_name") or "",
        email=row.get("email"),
        phone=row.get("phone"),
        street_address=row.get("street_address"),
        suburb=row.get("suburb"),
        notes_text=row.get("notes_text") or "",
        images=tuple(
            LeadImage(image=str(img.get("image", "")), description=str(img.get("description") or ""))
            for img in (row.get("images") or [])
        ),
        final_price=_decimal_or_none(row.get("final_price")),
        agreed_commission_amount=_decimal_or_none(row.get("agreed_commission_amount")),
        spotter_commission_amount=_decimal_or_none(row.get("spotter_commission_amount")),
        failure_reason=row.get("failure_reason"),
        created_at=created_at,
        assigned_at=parse_utc_datetime(row.get("assigned_at")),
        accepted_at=parse_utc_datetime(row.get("accepted_at")),
        closed_at=parse_utc_datetime(row.get("closed_at")),
        updated_at=parse_utc_datetime(row.get("updated_at")),
        version=int(row.get("version") or 1),
    )


def event_to_row(event: LeadEvent) -> dict[str, Any]:
    return {
        "lead_id": event.lead_id,
        "action": event.action.value,
        "actor_id": event.actor_id,
        "from_status": event.from_status.value,
        "to_status": event.to_status.value,
        "agent_id": event.agent_id,
        "previous_agent_id": event.previous_agent_id,
        "notes": event.notes,
        "occurred_at": to_iso_utc(event.occurred_at),
    }


def row_to_event(row: Mapping[str, Any]) -> LeadEvent:
    occurred_at = parse_utc_datetime(row["occurred_at"])
    if occurred_at is None:
        raise ValueError("lead event row is missing occurred_at")
    return LeadEvent(
        id=int(row["id"]) if row.get("id") is not None else None,
        lead_id=int(row["lead_id"]),
        action=LeadAction(str(row["action"])),
        actor_id=str(row["actor_id"]),
        from_status=LeadStatus(str(row["from_status"])),
        to_status=LeadStatus(str(row["to_status"])),
        agent_id=row.get("agent_id"),
        previous_agent_id=row.get("previous_agent_id"),
        notes=row.get("notes"),
        occurred_at=occurred_at,
    )


def _rows(response: Any, action: str) -> List[Mapping[str, Any]]:
    error = getattr(response, "error", None)
    if error:
        raise StoreError(f"Failed to {action}: {error}")
    return list(getattr(response, "data", None) or [])


class SupabaseLeadRepository:
    """Lead persistence backed by the Supabase `leads` and `lead_events` tables."""

    def __init__(self, client: Any) -> None:
        self._client = client

    def _execute(self, query: Any, action: str) -> List[Mapping[str, Any]]:
        try:
            response = query.execute()
        except APIError as e:
            raise StoreError(f"Failed to {action}: {e}") from e
        return _rows(response, action)

    def get(self, lead_id: int) -> Optional[Lead]:
        rows = self._execute(
            self._client.table(_LEADS_TABLE).select("*").eq("id", lead_id).limit(1),
            "fetch lead",
        )
        if not rows:
            return None
        return row_to_lead(rows[0])

    def insert(self, lead: Lead) -> Lead:
        rows = self._execute(
            self._client.table(_LEADS_TABLE).insert(lead_to_row(lead)),
            "insert lead",
        )
        if not rows:
            raise StoreError("Failed to insert lead: no row returned")
        return row_to_lead(rows[0])

    def save(self, lead: Lead, expected_version: int) -> Lead:
        """
        Conditionally update the lead row.

        The filter on `version` makes the write a compare-and-set: PostgREST returns
        the updated rows, so an empty result means the version moved on (Conflict)
        or the row never existed (NotFound).
        """

        rows = self._execute(
            self._client.table(_LEADS_TABLE)
            .update(lead_to_row(lead))
            .eq("id", lead.id)
            .eq("version", expected_version),
            "update lead",
        )
        if rows:
            return row_to_lead(rows[0])

        if self.get(lead.id) is None:
            raise NotFound(f"Lead not found: {lead.id}")
        raise Conflict(
            f"Lead {lead.id} was modified concurrently; refetch and retry",
            lead_id=lead.id,
        )

    def _list(self, column: str, value: str, statuses: Optional[Iterable[LeadStatus]] = None) -> List[Lead]:
        query = self._client.table(_LEADS_TABLE).select("*").eq(column, value)
        if statuses is not None:
            query = query.in_("status", [s.value for s in statuses])
        query = query.order("created_at", desc=True).order("id", desc=True)
        return [row_to_lead(row) for row in self._execute(query, "list leads")]

    def list_by_spotter(self, spotter_id: str) -> List[Lead]:
        return self._list("spotter_id", spotter_id)

    def list_by_agent(self, agent_id: str, statuses: Optional[Iterable[LeadStatus]] = None) -> List[Lead]:
        return self._list("agent_id", agent_id, statuses)

    def list_by_agency(self, agency_id: str) -> List[Lead]:
        return self._list("agency_id", agency_id)

    def append_event(self, event: LeadEvent) -> LeadEvent:
        rows = self._execute(
            self._client.table(_LEAD_EVENTS_TABLE).insert(event_to_row(event)),
            "record lead event",
        )
        return row_to_event(rows[0]) if rows else event

    def list_events(self, lead_id: int) -> List[LeadEvent]:
        rows = self._execute(
            self._client.table(_LEAD_EVENTS_TABLE)
            .select("*")
            .eq("lead_id", lead_id)
            .order("occurred_at")
            .order("id"),
            "list lead events",
        )
        return [row_to_event(row) for row in rows]


__all__ = [
    "LeadRepository",
    "SupabaseLeadRepository",
    "event_to_row",
    "lead_to_row",
    "row_to_event",
    "row_to_lead",
]
