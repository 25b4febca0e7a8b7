"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, services and api packages.

Fixtures build an in-memory platform:
- agency AG1 with admin "admin-1", agents "A7" and "A8" and an inactive agent "A9"
- agency AG2 with admin "admin-2" and agent "B1"
- spotters "S1" and "S2"
Every user's bearer token is "token-<id>".
"""

from __future__ import annotations

import sys
import threading
from datetime import date, datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List

import pytest

# Add the project root to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.lead import Lead  # noqa: E402
from domain.update import Update  # noqa: E402
from domain.user import Agency, User, UserRole  # noqa: E402
from repositories.memory import (  # noqa: E402
    InMemoryLeadRepository,
    InMemoryUpdateRepository,
    InMemoryUserRepository,
)
from services.commission_service import CommissionCalculator  # noqa: E402
from services.lifecycle_service import LeadLifecycleEngine  # noqa: E402
from services.notification_service import NotificationDispatcher  # noqa: E402

T0 = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class StepClock:
    """Deterministic UTC clock; every call advances one minute."""

    def __init__(self, start: datetime = T0) -> None:
        self._now = start
        self._lock = threading.Lock()

    def __call__(self) -> datetime:
        with self._lock:
            self._now += timedelta(minutes=1)
            return self._now


class RecordingChannel:
    """Notification channel that records deliveries and can fail on demand."""

    name = "recording"

    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.delivered: List[Update] = []
        self.calls = 0

    def deliver(self, update: Update) -> None:
        self.calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("channel unavailable")
        self.delivered.append(update)


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def users() -> InMemoryUserRepository:
    repo = InMemoryUserRepository()
    repo.add_agency(Agency(id="AG1", name="Harbour Realty", license_valid_until=date(2026, 6, 30)))
    repo.add_agency(Agency(id="AG2", name="Inland Estates"))

    people = [
        User(id="admin-1", email="admin1@example.com", role=UserRole.AGENCY_ADMIN, first_name="Ada",
             last_name="Admin", agency_id="AG1"),
        User(id="A7", email="a7@example.com", role=UserRole.AGENT, first_name="Alex", last_name="Seven",
             agency_id="AG1"),
        User(id="A8", email="a8@example.com", role=UserRole.AGENT, first_name="Blair", last_name="Eight",
             agency_id="AG1"),
        User(id="A9", email="a9@example.com", role=UserRole.AGENT, first_name="Casey", last_name="Nine",
             agency_id="AG1", is_active=False),
        User(id="admin-2", email="admin2@example.com", role=UserRole.AGENCY_ADMIN, first_name="Drew",
             last_name="Boss", agency_id="AG2"),
        User(id="B1", email="b1@example.com", role=UserRole.AGENT, first_name="Eden", last_name="Bee",
             agency_id="AG2"),
        User(id="S1", email="s1@example.com", role=UserRole.SPOTTER, first_name="Sam", last_name="Spotter"),
        User(id="S2", email="s2@example.com", role=UserRole.SPOTTER, first_name="Kit", last_name="Finder"),
    ]
    for person in people:
        repo.add_user(person, token=f"token-{person.id}")
    return repo


@pytest.fixture
def leads() -> InMemoryLeadRepository:
    return InMemoryLeadRepository()


@pytest.fixture
def updates() -> InMemoryUpdateRepository:
    return InMemoryUpdateRepository()


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def dispatcher(updates, channel, clock) -> NotificationDispatcher:
    """Synchronous dispatcher that never sleeps."""

    return NotificationDispatcher(updates, channel, workers=0, sleep=lambda _: None, clock=clock)


@pytest.fixture
def engine(leads, users, dispatcher, clock) -> LeadLifecycleEngine:
    return LeadLifecycleEngine(leads, users, dispatcher, CommissionCalculator(), clock=clock)


@pytest.fixture
def actor(users) -> Callable[[str], User]:
    """Look up a seeded user by id."""

    def _actor(user_id: str) -> User:
        user = users.get_user(user_id)
        assert user is not None, user_id
        return user

    return _actor


@pytest.fixture
def lead_42(leads) -> Lead:
    """A `new` lead #42 from spotter S1 for agency AG1."""

    return leads.insert(
        Lead(
            id=42,
            spotter_id="S1",
            agency_id="AG1",
            created_at=T0,
            first_name="Jane",
            last_name="Owner",
            phone="0400 000 000",
            suburb="Newtown",
        )
    )
