"""Tests for API middleware: correlation ID, acting identity, client origin."""

import pytest
from httpx import AsyncClient

from change_control.api.middleware import parse_actor
from change_control.domain.models.identity import Role
from change_control.governance.audit_models import AuditAction, AuditQuery


async def test_correlation_id_generated(async_client: AsyncClient):
    """When X-Correlation-ID is not sent, response has a generated correlation ID."""
    r = await async_client.get("/health")
    assert r.status_code == 200
    assert len(r.headers["X-Correlation-ID"]) > 0


async def test_correlation_id_preserved_when_passed(async_client: AsyncClient):
    """When X-Correlation-ID is sent, the same value is returned in response."""
    correlation_id = "my-correlation-123"
    r = await async_client.get("/health", headers={"X-Correlation-ID": correlation_id})
    assert r.headers.get("X-Correlation-ID") == correlation_id
    assert r.json()["correlation_id"] == correlation_id


async def test_error_responses_carry_correlation_id(async_client: AsyncClient):
    r = await async_client.get("/requests/")
    assert r.status_code == 401
    assert "X-Correlation-ID" in r.headers


@pytest.mark.parametrize(
    "actor_id,role",
    [(None, "Manager"), ("  ", "Manager"), ("mgr-1", None), ("mgr-1", "Superuser"), ("mgr-1", "manager")],
)
def test_parse_actor_rejects_malformed(actor_id, role):
    assert parse_actor(actor_id, role) is None


def test_parse_actor():
    actor = parse_actor(" mgr-1 ", "Manager")
    assert actor.identity_id == "mgr-1"
    assert actor.role == Role.MANAGER


async def test_missing_actor_is_unauthenticated(async_client: AsyncClient, container):
    r = await async_client.post("/requests/", json={"title": "x"}, headers={"X-Actor-Role": "Manager"})
    assert r.status_code == 400  # payload is checked before identity

    r = await async_client.get("/requests/stats")
    assert r.status_code == 401
    body = r.json()
    assert body["ok"] is False
    assert body["error_kind"] == "Forbidden"
    assert body["details"]["reason"] == "NotAuthenticated"


async def test_origin_recorded_in_audit(async_client: AsyncClient, container, employee_headers, request_payload):
    headers = employee_headers | {
        "X-Forwarded-For": "203.0.113.9, 10.0.0.1",
        "User-Agent": "change-cli/1.0",
        "X-Correlation-ID": "corr-42",
    }
    r = await async_client.post("/requests/", json=request_payload, headers=headers)
    assert r.status_code == 201

    [record] = await container.audit_trail.query(AuditQuery(action=AuditAction.REQUEST_CREATED))
    assert record.actor_id == "emp-1"
    assert record.ip_address == "203.0.113.9"
    assert record.user_agent == "change-cli/1.0"
    assert record.correlation_id == "corr-42"
