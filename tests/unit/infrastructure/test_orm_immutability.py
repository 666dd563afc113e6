"""Audit rows are append-only: ORM listeners raise before SQL is emitted, triggers reject raw SQL."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import delete, select, text, update
from sqlalchemy.exc import DBAPIError

from change_control.governance.audit_models import AuditAction, AuditQuery, AuditRecord
from change_control.governance.exceptions import ImmutableRecordError
from change_control.infrastructure.database.audit_repository_db import DbAuditRepository
from change_control.infrastructure.database.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from change_control.infrastructure.database.models import AuditRecordRow
from change_control.infrastructure.database.session import build_engine, build_session_factory, init_models


@pytest.fixture
async def stored():
    engine = build_engine("sqlite+aiosqlite://")
    await init_models(engine)
    factory = build_session_factory(engine)
    repo = DbAuditRepository(factory)
    record = AuditRecord(
        record_id="rec-1",
        actor_id="mgr-1",
        action=AuditAction.REQUEST_APPROVED,
        ip_address="10.0.0.1",
        timestamp_utc=datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc),
        request_id="req-1",
        details={"to_status": "Approved"},
    )
    await repo.append(record)
    yield factory, repo
    await engine.dispose()


async def _assert_untouched(repo):
    [record] = await repo.query(AuditQuery())
    assert record.actor_id == "mgr-1"
    assert record.action == AuditAction.REQUEST_APPROVED


async def test_update_of_loaded_row_rejected(stored):
    factory, repo = stored
    async with factory() as session:
        row = (await session.execute(select(AuditRecordRow).where(AuditRecordRow.id == "rec-1"))).scalar_one()
        row.actor_id = "intruder"
        with pytest.raises(ImmutableRecordError) as exc_info:
            await session.commit()
    assert exc_info.value.record_id == "rec-1"
    assert exc_info.value.operation == "update"
    await _assert_untouched(repo)


async def test_delete_of_loaded_row_rejected(stored):
    factory, repo = stored
    async with factory() as session:
        row = (await session.execute(select(AuditRecordRow).where(AuditRecordRow.id == "rec-1"))).scalar_one()
        await session.delete(row)
        with pytest.raises(ImmutableRecordError):
            await session.commit()
    await _assert_untouched(repo)


@pytest.mark.parametrize(
    "statement",
    [
        update(AuditRecordRow).where(AuditRecordRow.id == "rec-1").values(actor_id="intruder"),
        delete(AuditRecordRow).where(AuditRecordRow.id == "rec-1"),
    ],
)
async def test_bulk_statements_rejected(stored, statement):
    factory, repo = stored
    async with factory() as session:
        with pytest.raises(ImmutableRecordError):
            await session.execute(statement)
    await _assert_untouched(repo)


@pytest.mark.parametrize(
    "statement",
    [
        update(AuditRecordRow.__table__).values(actor_id="intruder"),
        delete(AuditRecordRow.__table__),
    ],
)
async def test_table_statements_rejected(stored, statement):
    factory, repo = stored
    async with factory() as session:
        with pytest.raises(ImmutableRecordError) as exc_info:
            await session.execute(statement)
            await session.commit()
    assert exc_info.value.record_id == "*"
    await _assert_untouched(repo)


@pytest.mark.parametrize(
    "sql",
    [
        "UPDATE audit_records SET actor_id = 'intruder' WHERE id = 'rec-1'",
        "DELETE FROM audit_records WHERE id = 'rec-1'",
    ],
)
async def test_raw_sql_rejected_by_trigger(stored, sql):
    factory, repo = stored
    async with factory() as session:
        with pytest.raises(DBAPIError, match="append-only"):
            await session.execute(text(sql))
            await session.commit()
    await _assert_untouched(repo)


async def test_trigger_holds_without_orm_listeners(stored):
    factory, repo = stored
    unregister_immutability_listeners()
    try:
        async with factory() as session:
            with pytest.raises(DBAPIError):
                await session.execute(
                    update(AuditRecordRow).where(AuditRecordRow.id == "rec-1").values(actor_id="intruder")
                )
                await session.commit()
    finally:
        register_immutability_listeners()
    await _assert_untouched(repo)
