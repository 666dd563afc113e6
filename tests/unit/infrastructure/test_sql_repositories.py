"""SQLAlchemy adapters against in-memory SQLite (aiosqlite): round trips, compare-and-set, filters, aggregates."""

from datetime import datetime, timedelta, timezone

import pytest

from change_control.application.identity_repository import IdentityFilter
from change_control.application.request_lifecycle import RequestLifecycle
from change_control.application.request_repository import RequestFilter
from change_control.domain.exceptions import InvalidTransitionError, NotFoundError
from change_control.domain.models.identity import Identity, Role
from change_control.domain.models.request import ChangeRequest, ChangeType, Priority, RequestStatus, RiskLevel
from change_control.governance.audit_logger import AuditTrail
from change_control.governance.audit_models import AuditAction, AuditQuery, AuditRecord
from change_control.infrastructure.database.audit_repository_db import DbAuditRepository
from change_control.infrastructure.database.identity_repository_db import DbIdentityRepository
from change_control.infrastructure.database.request_repository_db import DbRequestRepository
from change_control.infrastructure.database.session import build_engine, build_session_factory, init_models
from change_control.infrastructure.memory.audit_repository_memory import InMemoryAuditRepository

BASE = datetime(2026, 10, 10, 8, 30, tzinfo=timezone.utc)


@pytest.fixture
async def session_factory():
    engine = build_engine("sqlite+aiosqlite://")
    await init_models(engine)
    yield build_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def requests_db(session_factory):
    return DbRequestRepository(session_factory)


def _request(request_id: str, *, created_at: datetime = BASE, title: str = "Rotate TLS certificates", **overrides):
    values = dict(
        request_id=request_id,
        title=title,
        description="Rotate certificates on all edge proxies.",
        change_type=ChangeType.SECURITY,
        risk_level=RiskLevel.MEDIUM,
        created_by="emp-1",
        status=RequestStatus.PENDING,
        created_at=created_at,
        updated_at=created_at,
        affected_departments=("Ops",),
        planned_start_date=created_at + timedelta(days=2),
        planned_end_date=created_at + timedelta(days=3),
    )
    values.update(overrides)
    return ChangeRequest(**values)


async def test_request_round_trip(requests_db):
    original = _request("req-1", priority=Priority.HIGH)
    await requests_db.insert(original)
    loaded = await requests_db.find_by_id("req-1")
    assert loaded == original
    assert loaded.created_at.tzinfo is not None
    assert await requests_db.find_by_id("missing") is None


async def test_compare_and_set(requests_db):
    original = _request("req-1")
    await requests_db.insert(original)
    approved = original.transition_to(RequestStatus.APPROVED, at=BASE + timedelta(hours=1), decided_by="mgr-1")

    assert await requests_db.compare_and_set(approved, expected_version=1)
    # Same expected version again: the stored row is now at version 2.
    rejected = original.transition_to(
        RequestStatus.REJECTED, at=BASE, decided_by="mgr-2", rejection_reason="Second writer loses"
    )
    assert not await requests_db.compare_and_set(rejected, expected_version=1)

    stored = await requests_db.find_by_id("req-1")
    assert stored.status == RequestStatus.APPROVED
    assert stored.approved_by == "mgr-1"
    assert stored.version == 2


async def test_delete_with_expected_version(requests_db):
    await requests_db.insert(_request("req-1"))
    assert not await requests_db.delete_by_id("req-1", expected_version=7)
    assert await requests_db.delete_by_id("req-1", expected_version=1)
    assert not await requests_db.delete_by_id("req-1")


async def test_filters_and_ordering(requests_db):
    await requests_db.insert(_request("req-1", created_at=BASE))
    await requests_db.insert(_request("req-2", created_at=BASE + timedelta(hours=1), title="Replace 100% of core switches"))
    await requests_db.insert(
        _request("req-3", created_at=BASE + timedelta(hours=2), created_by="emp-2", change_type=ChangeType.NETWORK)
    )

    newest_first = await requests_db.find_by_filter(RequestFilter())
    assert [r.request_id for r in newest_first] == ["req-3", "req-2", "req-1"]
    assert await requests_db.count_by_filter(RequestFilter(created_by="emp-1")) == 2
    assert await requests_db.count_by_filter(RequestFilter(change_type=ChangeType.NETWORK)) == 1
    assert await requests_db.count_by_filter(RequestFilter(statuses=frozenset())) == 0

    searched = await requests_db.find_by_filter(RequestFilter(search="CORE Switch"))
    assert [r.request_id for r in searched] == ["req-2"]
    # LIKE wildcards in the search term are matched literally.
    assert await requests_db.count_by_filter(RequestFilter(search="100%")) == 1
    assert await requests_db.count_by_filter(RequestFilter(search="%")) == 1

    ranged = await requests_db.find_by_filter(
        RequestFilter(created_from=BASE + timedelta(minutes=30), created_to=BASE + timedelta(minutes=90))
    )
    assert [r.request_id for r in ranged] == ["req-2"]
    page = await requests_db.find_by_filter(RequestFilter(), offset=1, limit=1)
    assert [r.request_id for r in page] == ["req-2"]


async def test_aggregates(requests_db):
    await requests_db.insert(_request("req-1", created_at=BASE))
    await requests_db.insert(_request("req-2", created_at=BASE + timedelta(days=1), risk_level=RiskLevel.HIGH))
    await requests_db.insert(_request("req-3", created_at=BASE + timedelta(days=1, hours=2)))

    assert await requests_db.aggregate_by_field("risk_level", RequestFilter()) == {"Medium": 2, "High": 1}
    assert await requests_db.aggregate_by_field("created_day", RequestFilter()) == {
        "2026-10-10": 1,
        "2026-10-11": 2,
    }
    with pytest.raises(ValueError):
        await requests_db.aggregate_by_field("title", RequestFilter())


async def test_identity_repository(session_factory):
    repo = DbIdentityRepository(session_factory)
    admin = Identity(
        identity_id="adm-1",
        role=Role.ADMIN,
        name="System Administrator",
        email="admin@example.com",
        employee_id="EMP-0007",
        created_at=BASE,
        updated_at=BASE,
    )
    await repo.insert(admin, "pbkdf2_sha256$10000$salt$hash")

    assert (await repo.find_by_email("ADMIN@example.com")).identity_id == "adm-1"
    assert await repo.max_employee_number() == 7
    assert await repo.credential_hash("adm-1") == "pbkdf2_sha256$10000$salt$hash"

    saved = await repo.save(admin.with_changes(is_active=False, updated_at=BASE + timedelta(days=1)))
    assert not saved.is_active
    assert await repo.aggregate_by_field("is_active", IdentityFilter()) == {"false": 1}
    assert await repo.count_by_filter(IdentityFilter(role=Role.ADMIN, is_active=False)) == 1

    with pytest.raises(NotFoundError):
        await repo.save(admin.with_changes(identity_id="missing"))
    assert await repo.delete_by_id("adm-1")
    assert await repo.find_by_id("adm-1") is None


async def test_audit_repository_newest_first(session_factory):
    ticks = iter(BASE + timedelta(seconds=i) for i in range(10))
    trail = AuditTrail(DbAuditRepository(session_factory), clock=lambda: next(ticks))
    await trail.log_action(actor_id="emp-1", action=AuditAction.REQUEST_CREATED, request_id="req-1")
    await trail.log_action(
        actor_id="mgr-1", action=AuditAction.REQUEST_APPROVED, request_id="req-1", details={"to_status": "Approved"}
    )

    records = await trail.query(AuditQuery())
    assert [r.action for r in records] == [AuditAction.REQUEST_APPROVED, AuditAction.REQUEST_CREATED]
    assert records[0].details == {"to_status": "Approved"}
    assert records[0].timestamp_utc == BASE + timedelta(seconds=1)
    assert await trail.count(AuditQuery(actor_id="emp-1")) == 1


async def test_lifecycle_on_sql_backend(session_factory, employee, manager, request_payload):
    requests = DbRequestRepository(session_factory)
    trail = AuditTrail(DbAuditRepository(session_factory))
    lifecycle = RequestLifecycle(requests, trail)

    request = await lifecycle.submit(employee, request_payload)
    approved = await lifecycle.approve(manager, request.request_id)
    assert approved.status == RequestStatus.APPROVED
    with pytest.raises(InvalidTransitionError):
        await lifecycle.approve(manager, request.request_id)
    stored = await requests.find_by_id(request.request_id)
    assert stored.status == RequestStatus.APPROVED
    assert stored.approved_by == manager.identity_id
    assert await trail.count(AuditQuery(request_id=request.request_id)) == 3


async def test_audit_timestamp_ties_follow_append_order(session_factory):
    memory = InMemoryAuditRepository()
    sql = DbAuditRepository(session_factory)
    for record_id in ("rec-b", "rec-c", "rec-a"):
        record = AuditRecord(
            record_id=record_id,
            actor_id="mgr-1",
            action=AuditAction.REQUEST_APPROVED,
            ip_address="10.0.0.1",
            timestamp_utc=BASE,
        )
        await memory.append(record)
        await sql.append(record)

    expected = ["rec-a", "rec-c", "rec-b"]
    assert [r.record_id for r in await memory.query(AuditQuery())] == expected
    assert [r.record_id for r in await sql.query(AuditQuery())] == expected
    assert [r.record_id for r in await sql.query(AuditQuery(offset=1, limit=1))] == ["rec-c"]
