"""
Tests for the REST API.

The app runs against in-memory repositories: `get_container` is overridden with
a container built from a memory-backend Settings and the shared fixtures.
"""

from __future__ import annotations

from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from api.dependencies import build_container, get_container
from api.errors import status_code_for, to_http_exception
from api.main import app
from config import Settings
from conftest import T0
from domain.errors import Conflict, LeadAlreadyInProgress, StoreError, ValidationError
from domain.lead import Lead


def _auth(user_id: str) -> dict:
    return {"Authorization": f"Bearer token-{user_id}"}


@pytest.fixture
def container(leads, users, updates, channel):
    settings = Settings(lead_store_backend="memory", notification_workers=0, notification_retry_base_delay=0)
    return build_container(settings, leads=leads, users=users, updates=updates, channel=channel)


@pytest.fixture
def client(container):
    app.dependency_overrides[get_container] = lambda: container
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def test_health(client) -> None:
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer nope"}, {"Authorization": "Basic abc"}])
def test_requests_without_valid_token_are_unauthorized(client, lead_42, headers) -> None:
    response = client.get("/api/leads/42/", headers=headers)

    assert response.status_code == 401
    assert response.json()["detail"]["error"] == "Unauthorized"


def test_full_lifecycle_over_http(client, lead_42) -> None:
    response = client.patch("/api/leads/42/assign/", json={"agent_id": "A7"}, headers=_auth("admin-1"))
    assert response.status_code == 200
    assert response.json()["status"] == "assigned"
    assert response.json()["agent_id"] == "A7"

    response = client.patch("/api/leads/42/accept/", json={"action": "accept"}, headers=_auth("A7"))
    assert response.status_code == 200
    assert response.json()["status"] == "in_progress"
    assert response.json()["allowed_actions"] == ["complete", "fail"]

    response = client.patch("/api/leads/42/complete/", json={"final_price": "500000"}, headers=_auth("A7"))
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "completed"
    assert body["agreed_commission_amount"] == "25000.00"
    assert body["spotter_commission_amount"] == "2500.00"

    history = client.get("/api/leads/42/history/", headers=_auth("S1")).json()
    assert [event["action"] for event in history] == ["assign", "accept", "complete"]


def test_invalid_transition_is_409(client, lead_42) -> None:
    client.patch("/api/leads/42/assign/", json={"agent_id": "A7"}, headers=_auth("admin-1"))

    response = client.patch("/api/leads/42/complete/", json={"final_price": "1"}, headers=_auth("A7"))

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "InvalidTransition"
    assert response.json()["detail"]["status"] == "assigned"


def test_reassigning_accepted_lead_is_409(client, lead_42) -> None:
    client.patch("/api/leads/42/assign/", json={"agent_id": "A7"}, headers=_auth("admin-1"))
    client.patch("/api/leads/42/accept/", json={"action": "accept"}, headers=_auth("A7"))

    response = client.patch("/api/leads/42/assign/", json={"agent_id": "A8"}, headers=_auth("admin-1"))

    assert response.status_code == 409
    assert response.json()["detail"]["error"] == "LeadAlreadyInProgress"


def test_other_agent_is_forbidden(client, lead_42) -> None:
    client.patch("/api/leads/42/assign/", json={"agent_id": "A7"}, headers=_auth("admin-1"))
    client.patch("/api/leads/42/accept/", json={"action": "accept"}, headers=_auth("A7"))

    response = client.patch("/api/leads/42/complete/", json={"final_price": "500000"}, headers=_auth("A8"))

    assert response.status_code == 403
    assert client.get("/api/leads/42/", headers=_auth("A7")).json()["status"] == "in_progress"


def test_fail_without_reason_is_422_with_field_detail(client, lead_42) -> None:
    client.patch("/api/leads/42/assign/", json={"agent_id": "A7"}, headers=_auth("admin-1"))
    client.patch("/api/leads/42/accept/", json={"action": "accept"}, headers=_auth("A7"))

    response = client.patch("/api/leads/42/fail/", json={"reason": ""}, headers=_auth("A7"))

    assert response.status_code == 422
    assert response.json()["detail"]["fields"] == {"reason": "This field may not be blank."}


def test_huge_final_price_is_422_and_lead_unchanged(client, lead_42) -> None:
    client.patch("/api/leads/42/assign/", json={"agent_id": "A7"}, headers=_auth("admin-1"))
    client.patch("/api/leads/42/accept/", json={"action": "accept"}, headers=_auth("A7"))

    response = client.patch("/api/leads/42/complete/", json={"final_price": "1e30"}, headers=_auth("A7"))

    assert response.status_code == 422
    assert "final_price" in response.json()["detail"]["fields"]
    lead = client.get("/api/leads/42/", headers=_auth("A7")).json()
    assert lead["status"] == "in_progress"
    assert lead["final_price"] is None


def test_unknown_lead_is_404(client) -> None:
    response = client.get("/api/leads/999/", headers=_auth("admin-1"))

    assert response.status_code == 404
    assert response.json()["detail"]["error"] == "NotFound"


def test_submit_lead(client) -> None:
    response = client.post(
        "/api/leads/submit/",
        json={"first_name": "Jane", "last_name": "Owner", "phone": "0400 000 000", "agency_id": "AG1"},
        headers=_auth("S1"),
    )

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "new"
    assert body["spotter_id"] == "S1"
    assert body["agency_id"] == "AG1"


def test_spotter_listing_is_paginated(client, leads) -> None:
    for lead_id in range(1, 26):
        leads.insert(Lead(id=lead_id, spotter_id="S1", agency_id="AG1", created_at=T0 + timedelta(minutes=lead_id)))

    first = client.get("/api/leads/spotter/S1/", headers=_auth("S1")).json()
    assert first["count"] == 25
    assert len(first["results"]) == 20
    assert first["results"][0]["id"] == 25
    assert first["previous"] is None
    assert first["next"].endswith("page=2")

    second = client.get(first["next"], headers=_auth("S1")).json()
    assert len(second["results"]) == 5
    assert second["next"] is None
    assert second["previous"] is not None

    assert client.get("/api/leads/spotter/S1/?page=3", headers=_auth("S1")).status_code == 404
    assert client.get("/api/leads/spotter/S1/?page_size=500", headers=_auth("S1")).status_code == 422


def test_listing_other_spotter_is_forbidden(client, lead_42) -> None:
    assert client.get("/api/leads/spotter/S1/", headers=_auth("S2")).status_code == 403


def test_agent_listing_show_all(client, lead_42) -> None:
    client.patch("/api/leads/42/assign/", json={"agent_id": "A7"}, headers=_auth("admin-1"))
    client.patch("/api/leads/42/accept/", json={"action": "accept"}, headers=_auth("A7"))
    client.patch("/api/leads/42/complete/", json={"final_price": "410000"}, headers=_auth("A7"))

    assert client.get("/api/leads/agent/A7/", headers=_auth("A7")).json()["count"] == 0
    assert client.get("/api/leads/agent/A7/?show_all=true", headers=_auth("A7")).json()["count"] == 1


def test_stats_endpoints(client, lead_42) -> None:
    client.patch("/api/leads/42/assign/", json={"agent_id": "A7"}, headers=_auth("admin-1"))

    agency = client.get("/api/leads/agency/AG1/stats/", headers=_auth("admin-1")).json()
    agent = client.get("/api/leads/agent/A7/stats/", headers=_auth("A7")).json()
    spotter = client.get("/api/leads/spotter/S1/stats/", headers=_auth("S1")).json()

    assert agency == {"total": 1, "new": 0, "assigned": 1, "in_progress": 0, "completed": 0, "closed": 0, "active": 1}
    assert agent["assigned"] == 1
    assert spotter["total"] == 1
    assert client.get("/api/leads/agency/AG1/stats/", headers=_auth("admin-2")).status_code == 403


def test_updates_inbox_and_mark_read(client, lead_42) -> None:
    client.patch("/api/leads/42/assign/", json={"agent_id": "A7"}, headers=_auth("admin-1"))

    inbox = client.get("/api/updates/user/A7/", headers=_auth("A7")).json()
    assert inbox["count"] == 1
    update = inbox["results"][0]
    assert update["update_type"] == "ASSIGNMENT"
    assert update["delivery_status"] == "delivered"
    assert update["is_read"] is False

    assert client.patch(f"/api/updates/{update['id']}/read/", headers=_auth("A8")).status_code == 403
    marked = client.patch(f"/api/updates/{update['id']}/read/", headers=_auth("A7"))
    assert marked.status_code == 200
    assert marked.json()["is_read"] is True

    assert client.get("/api/updates/user/A7/", headers=_auth("A8")).status_code == 403


def test_notify_endpoint(client, lead_42) -> None:
    response = client.post(
        "/api/leads/42/notify/",
        json={"template_name": "lead_status", "variables": {"message": "Photos received"}},
        headers=_auth("admin-1"),
    )

    assert response.status_code == 201
    assert response.json()["recipient_id"] == "S1"
    assert response.json()["message"] == "Photos received"


def test_agency_roster(client) -> None:
    response = client.get("/api/users/agencies/AG1/agents/", headers=_auth("admin-1"))

    assert response.status_code == 200
    body = response.json()
    assert body["total_agents"] == 3
    assert body["active_agents"] == 2
    assert body["agency_name"] == "Harbour Realty"
    assert body["license_valid_until"] == "2026-06-30"
    assert client.get("/api/users/agencies/AG1/agents/", headers=_auth("A7")).status_code == 403


def test_deactivate_and_reactivate_agent(client, lead_42) -> None:
    response = client.patch("/api/users/A7/deactivate/", headers=_auth("admin-1"))
    assert response.status_code == 200
    assert response.json()["is_active"] is False

    assigned = client.patch("/api/leads/42/assign/", json={"agent_id": "A7"}, headers=_auth("admin-1"))
    assert assigned.status_code == 422
    assert assigned.json()["detail"]["fields"] == {"agent_id": "Agent is not active."}

    roster = client.get("/api/users/agencies/AG1/agents/", headers=_auth("admin-1")).json()
    assert roster["active_agents"] == 1

    response = client.patch("/api/users/A7/reactivate/", headers=_auth("admin-1"))
    assert response.status_code == 200
    assert response.json()["is_active"] is True
    assert client.patch("/api/leads/42/assign/", json={"agent_id": "A7"}, headers=_auth("admin-1")).status_code == 200


def test_agent_management_permissions(client) -> None:
    assert client.patch("/api/users/A7/deactivate/", headers=_auth("admin-2")).status_code == 403
    assert client.patch("/api/users/A7/deactivate/", headers=_auth("A8")).status_code == 403
    assert client.patch("/api/users/S1/deactivate/", headers=_auth("admin-1")).status_code == 404
    assert client.patch("/api/users/A9/reactivate/", headers=_auth("admin-2")).status_code == 403


def test_error_mapping() -> None:
    conflict = to_http_exception(Conflict("lost race", lead_id=42))
    assert conflict.status_code == 409
    assert conflict.detail["retryable"] is True

    assert status_code_for(LeadAlreadyInProgress("busy")) == 409
    assert status_code_for(StoreError("down")) == 503
    assert to_http_exception(ValidationError.for_field("x", "bad")).detail["fields"] == {"x": "bad"}
