"""Governance tests: audit record completeness, immutability, best-effort append, query and export."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest

from change_control.governance.audit_logger import AuditTrail
from change_control.governance.audit_models import AuditAction, AuditQuery, AuditRecord, ClientOrigin
from change_control.infrastructure.memory.audit_repository_memory import InMemoryAuditRepository


@pytest.fixture
def audit_repository():
    repo = AsyncMock()
    repo.append = AsyncMock(side_effect=lambda record: record.record_id)
    return repo


@pytest.fixture
def audit_logger():
    return MagicMock()


@pytest.fixture
def trail(audit_repository, audit_logger):
    return AuditTrail(audit_repository, logger=audit_logger)


async def test_audit_fields_completeness(trail, audit_repository, origin):
    """Must include who, what, subject, where, when (UTC) and details."""
    record_id = await trail.log_action(
        actor_id="mgr-1",
        action=AuditAction.REQUEST_APPROVED,
        origin=origin,
        request_id="req-1",
        details={"from_status": "Pending", "to_status": "Approved"},
    )
    assert audit_repository.append.await_count == 1
    record = audit_repository.append.call_args[0][0]
    assert isinstance(record, AuditRecord)
    assert record_id == record.record_id
    assert record.actor_id == "mgr-1"
    assert record.action == AuditAction.REQUEST_APPROVED
    assert record.request_id == "req-1"
    assert record.ip_address == "198.51.100.4"
    assert record.user_agent == "pytest"
    assert record.correlation_id == "corr-1"
    assert record.timestamp_utc.tzinfo == timezone.utc
    d = record.to_dict()
    assert d["action"] == "REQUEST_APPROVED"
    assert d["details"] == {"from_status": "Pending", "to_status": "Approved"}


async def test_missing_origin_recorded_as_unknown(trail, audit_repository):
    await trail.log_action(actor_id=None, action=AuditAction.ACCESS_DENIED)
    record = audit_repository.append.call_args[0][0]
    assert record.ip_address == "unknown"
    assert record.actor_id is None


async def test_audit_record_immutability(trail, audit_repository):
    details = {"nested": {"k": "v"}}
    await trail.log_action(actor_id="adm-1", action=AuditAction.ADMIN_ACTION, details=details)
    record = audit_repository.append.call_args[0][0]
    with pytest.raises(AttributeError):
        record.actor_id = "other"  # type: ignore[misc]
    with pytest.raises(TypeError):
        record.details["k"] = "v"  # type: ignore[index]
    # The caller's dict is copied, not captured.
    details["nested"]["k"] = "changed"
    assert record.details["nested"]["k"] == "v"


async def test_append_failure_is_logged_not_raised(trail, audit_repository, audit_logger):
    audit_repository.append = AsyncMock(side_effect=RuntimeError("disk full"))
    result = await trail.log_action(actor_id="mgr-1", action=AuditAction.REQUEST_APPROVED, request_id="req-1")
    assert result is None
    audit_logger.error.assert_called_once()
    assert audit_logger.error.call_args[0][0] == "audit_append_failed"
    assert audit_logger.error.call_args[1]["extra"]["request_id"] == "req-1"


async def test_query_newest_first_with_filters():
    start = datetime(2026, 10, 1, tzinfo=timezone.utc)
    ticks = iter(start + timedelta(minutes=i) for i in range(10))
    trail = AuditTrail(InMemoryAuditRepository(), clock=lambda: next(ticks))
    await trail.log_action(actor_id="emp-1", action=AuditAction.REQUEST_CREATED, request_id="req-1")
    await trail.log_action(actor_id="mgr-1", action=AuditAction.REQUEST_APPROVED, request_id="req-1")
    await trail.log_action(actor_id="emp-1", action=AuditAction.REQUEST_CREATED, request_id="req-2")

    records = await trail.query(AuditQuery())
    assert [r.request_id for r in records] == ["req-2", "req-1", "req-1"]
    assert [r.action for r in records][1] == AuditAction.REQUEST_APPROVED

    created = await trail.query(AuditQuery(action=AuditAction.REQUEST_CREATED))
    assert len(created) == 2
    assert await trail.count(AuditQuery(actor_id="emp-1")) == 2
    windowed = await trail.query(AuditQuery(start=start + timedelta(minutes=1), end=start + timedelta(minutes=1)))
    assert [r.actor_id for r in windowed] == ["mgr-1"]
    page = await trail.query(AuditQuery(offset=1, limit=1))
    assert [r.action for r in page] == [AuditAction.REQUEST_APPROVED]


async def test_export_bounded_and_flat():
    trail = AuditTrail(InMemoryAuditRepository(), export_max_records=3)
    for i in range(5):
        await trail.log_action(
            actor_id="emp-1",
            action=AuditAction.REQUEST_CREATED,
            origin=ClientOrigin(ip_address="10.0.0.1"),
            request_id=f"req-{i}",
            details={"n": i},
        )
    rows = await trail.export(AuditQuery(offset=2, limit=1))
    assert len(rows) == 3
    assert rows[0]["request_id"] == "req-4"
    assert rows[0]["details"] == '{"n": 4}'
    assert all(isinstance(value, str) for row in rows for value in row.values())
    assert trail.export_max_records == 3
