"""DB-backed append-only audit repository. Insert and select only; update/delete raise ImmutableRecordError."""

from typing import Any, List

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from change_control.governance.audit_models import AuditAction, AuditQuery, AuditRecord
from change_control.governance.audit_repository import AppendOnlyStore
from change_control.infrastructure.database.immutability import register_immutability_listeners
from change_control.infrastructure.database.models import AuditRecordRow, as_utc


def _to_domain(row: AuditRecordRow) -> AuditRecord:
    return AuditRecord(
        record_id=row.id,
        actor_id=row.actor_id,
        action=AuditAction(row.action),
        ip_address=row.ip_address,
        timestamp_utc=as_utc(row.timestamp_utc),
        request_id=row.request_id,
        target_identity_id=row.target_identity_id,
        user_agent=row.user_agent,
        correlation_id=row.correlation_id,
        details=row.details,
    )


def _conditions(query: AuditQuery) -> List[Any]:
    conditions: List[Any] = []
    if query.actor_id is not None:
        conditions.append(AuditRecordRow.actor_id == query.actor_id)
    if query.action is not None:
        conditions.append(AuditRecordRow.action == query.action.value)
    if query.request_id is not None:
        conditions.append(AuditRecordRow.request_id == query.request_id)
    if query.target_identity_id is not None:
        conditions.append(AuditRecordRow.target_identity_id == query.target_identity_id)
    if query.start is not None:
        conditions.append(AuditRecordRow.timestamp_utc >= query.start)
    if query.end is not None:
        conditions.append(AuditRecordRow.timestamp_utc <= query.end)
    return conditions


class DbAuditRepository(AppendOnlyStore):
    """Implements AuditRepository. Installs the ORM immutability listeners on construction."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory
        register_immutability_listeners()

    async def append(self, record: AuditRecord) -> str:
        row = AuditRecordRow(
            id=record.record_id,
            actor_id=record.actor_id,
            action=record.action.value,
            request_id=record.request_id,
            target_identity_id=record.target_identity_id,
            ip_address=record.ip_address,
            user_agent=record.user_agent,
            correlation_id=record.correlation_id,
            details=record.to_dict()["details"],
            timestamp_utc=record.timestamp_utc,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return record.record_id

    async def query(self, query: AuditQuery) -> List[AuditRecord]:
        stmt = (
            select(AuditRecordRow)
            .where(*_conditions(query))
            .order_by(AuditRecordRow.timestamp_utc.desc(), AuditRecordRow.seq.desc())
            .offset(query.offset)
            .limit(query.limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(row) for row in result.scalars().all()]

    async def count(self, query: AuditQuery) -> int:
        stmt = select(func.count()).select_from(AuditRecordRow).where(*_conditions(query))
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())
