"""
In-memory repositories.

Process-local implementations of the lead, user and update repositories, used
when LEAD_STORE_BACKEND=memory (local development, demos) and by the test-suite.
They honour the same contracts as the Supabase repositories, including the
compare-and-set on `InMemoryLeadRepository.save`.

Entities are frozen dataclasses, so stored instances are shared, never copied.
"""

from __future__ import annotations

import itertools
import threading
from dataclasses import replace
from typing import Dict, Iterable, List, Optional

from domain.errors import Conflict, NotFound
from domain.lead import Lead, LeadStatus
from domain.lifecycle import LeadEvent
from domain.update import DeliveryStatus, Update
from domain.user import Agency, User, UserRole


def _newest_first(leads: Iterable[Lead]) -> List[Lead]:
    return sorted(leads, key=lambda lead: (lead.created_at, lead.id), reverse=True)


class InMemoryLeadRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._leads: Dict[int, Lead] = {}
        self._events: List[LeadEvent] = []
        self._event_ids = itertools.count(1)

    def get(self, lead_id: int) -> Optional[Lead]:
        return self._leads.get(lead_id)

    def insert(self, lead: Lead) -> Lead:
        with self._lock:
            lead_id = lead.id or max(self._leads, default=0) + 1
            if lead_id in self._leads:
                raise Conflict(f"Lead {lead_id} already exists", lead_id=lead_id)
            stored = replace(lead, id=lead_id)
            self._leads[lead_id] = stored
            return stored

    def save(self, lead: Lead, expected_version: int) -> Lead:
        with self._lock:
            current = self._leads.get(lead.id)
            if current is None:
                raise NotFound(f"Lead not found: {lead.id}")
            if current.version != expected_version:
                raise Conflict(
                    f"Lead {lead.id} was modified concurrently; refetch and retry",
                    lead_id=lead.id,
                )
            self._leads[lead.id] = lead
            return lead

    def list_by_spotter(self, spotter_id: str) -> List[Lead]:
        return _newest_first(lead for lead in list(self._leads.values()) if lead.spotter_id == spotter_id)

    def list_by_agent(self, agent_id: str, statuses: Optional[Iterable[LeadStatus]] = None) -> List[Lead]:
        wanted = set(statuses) if statuses is not None else None
        return _newest_first(
            lead
            for lead in list(self._leads.values())
            if lead.agent_id == agent_id and (wanted is None or lead.status in wanted)
        )

    def list_by_agency(self, agency_id: str) -> List[Lead]:
        return _newest_first(lead for lead in list(self._leads.values()) if lead.agency_id == agency_id)

    def append_event(self, event: LeadEvent) -> LeadEvent:
        with self._lock:
            stored = replace(event, id=next(self._event_ids))
            self._events.append(stored)
            return stored

    def list_events(self, lead_id: int) -> List[LeadEvent]:
        return [event for event in list(self._events) if event.lead_id == lead_id]


class InMemoryUserRepository:
    """Users, agencies and a token -> user id table."""

    def __init__(self) -> None:
        self._users: Dict[str, User] = {}
        self._agencies: Dict[str, Agency] = {}
        self._tokens: Dict[str, str] = {}

    def add_agency(self, agency: Agency) -> Agency:
        self._agencies[agency.id] = agency
        return agency

    def add_user(self, user: User, token: Optional[str] = None) -> User:
        self._users[user.id] = user
        if token:
            self._tokens[token] = user.id
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        return self._users.get(user_id)

    def get_user_by_token(self, token: str) -> Optional[User]:
        user_id = self._tokens.get(token)
        return self._users.get(user_id) if user_id else None

    def get_agency(self, agency_id: str) -> Optional[Agency]:
        return self._agencies.get(agency_id)

    def list_agents(self, agency_id: str) -> List[User]:
        return [u for u in self._users.values() if u.agency_id == agency_id and u.role == UserRole.AGENT]

    def list_agency_admins(self, agency_id: str) -> List[User]:
        return [u for u in self._users.values() if u.agency_id == agency_id and u.role == UserRole.AGENCY_ADMIN]

    def set_active(self, user_id: str, is_active: bool) -> User:
        current = self._users.get(user_id)
        if current is None:
            raise NotFound(f"User not found: {user_id}")
        updated = replace(current, is_active=is_active)
        self._users[user_id] = updated
        return updated


class InMemoryUpdateRepository:
    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._updates: Dict[int, Update] = {}

    def insert(self, update: Update) -> Update:
        with self._lock:
            stored = replace(update, id=update.id or max(self._updates, default=0) + 1)
            self._updates[stored.id] = stored
            return stored

    def _merge(self, update_id: int, **columns: object) -> Update:
        with self._lock:
            current = self._updates.get(update_id)
            if current is None:
                raise NotFound(f"Update not found: {update_id}")
            merged = replace(current, **columns)
            self._updates[update_id] = merged
            return merged

    def save_delivery(self, update: Update) -> Update:
        return self._merge(
            update.id,
            delivery_status=update.delivery_status,
            delivery_attempts=update.delivery_attempts,
            last_attempt_at=update.last_attempt_at,
            delivered_at=update.delivered_at,
            last_error=update.last_error,
        )

    def save_read(self, update: Update) -> Update:
        return self._merge(update.id, read_at=update.read_at)

    def get(self, update_id: int) -> Optional[Update]:
        return self._updates.get(update_id)

    def list_for_user(self, user_id: str) -> List[Update]:
        return sorted(
            (u for u in list(self._updates.values()) if u.recipient_id == user_id),
            key=lambda u: (u.created_at, u.id),
            reverse=True,
        )

    def list_failed(self, max_attempts: int) -> List[Update]:
        return sorted(
            (
                u
                for u in list(self._updates.values())
                if u.delivery_status == DeliveryStatus.FAILED and u.delivery_attempts < max_attempts
            ),
            key=lambda u: u.created_at,
        )


__all__ = ["InMemoryLeadRepository", "InMemoryUpdateRepository", "InMemoryUserRepository"]
