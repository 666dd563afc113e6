"""DB-backed request repository. Status writes are UPDATE ... WHERE id = ? AND version = ?."""

from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from change_control.application.request_repository import AGGREGATE_FIELDS, RequestFilter
from change_control.domain.models.request import (
    ChangeRequest,
    ChangeType,
    Environment,
    Priority,
    RequestStatus,
    RiskLevel,
)
from change_control.infrastructure.database.models import RequestRow, as_utc


def _to_row_values(request: ChangeRequest) -> Dict[str, Any]:
    return {
        "id": request.request_id,
        "title": request.title,
        "description": request.description,
        "justification": request.justification,
        "change_type": request.change_type.value,
        "risk_level": request.risk_level.value,
        "environment": request.environment.value if request.environment else None,
        "planned_start_date": request.planned_start_date,
        "planned_end_date": request.planned_end_date,
        "implementation_plan": request.implementation_plan,
        "rollback_plan": request.rollback_plan,
        "testing_plan": request.testing_plan,
        "impact_assessment": request.impact_assessment,
        "affected_departments": list(request.affected_departments),
        "priority": request.priority.value,
        "status": request.status.value,
        "created_by": request.created_by,
        "approved_by": request.approved_by,
        "decided_at": request.decided_at,
        "rejection_reason": request.rejection_reason,
        "created_at": request.created_at,
        "updated_at": request.updated_at,
        "version": request.version,
    }


def _to_domain(row: RequestRow) -> ChangeRequest:
    return ChangeRequest(
        request_id=row.id,
        title=row.title,
        description=row.description,
        justification=row.justification,
        change_type=ChangeType(row.change_type),
        risk_level=RiskLevel(row.risk_level),
        environment=Environment(row.environment) if row.environment else None,
        planned_start_date=as_utc(row.planned_start_date),
        planned_end_date=as_utc(row.planned_end_date),
        implementation_plan=row.implementation_plan,
        rollback_plan=row.rollback_plan,
        testing_plan=row.testing_plan,
        impact_assessment=row.impact_assessment,
        affected_departments=tuple(row.affected_departments or ()),
        priority=Priority(row.priority),
        status=RequestStatus(row.status),
        created_by=row.created_by,
        approved_by=row.approved_by,
        decided_at=as_utc(row.decided_at),
        rejection_reason=row.rejection_reason,
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
        version=row.version,
    )


def _conditions(request_filter: RequestFilter) -> List[Any]:
    conditions: List[Any] = []
    if request_filter.created_by is not None:
        conditions.append(RequestRow.created_by == request_filter.created_by)
    if request_filter.statuses is not None:
        conditions.append(RequestRow.status.in_(sorted(s.value for s in request_filter.statuses)))
    if request_filter.change_type is not None:
        conditions.append(RequestRow.change_type == request_filter.change_type.value)
    if request_filter.risk_level is not None:
        conditions.append(RequestRow.risk_level == request_filter.risk_level.value)
    if request_filter.priority is not None:
        conditions.append(RequestRow.priority == request_filter.priority.value)
    if request_filter.created_from is not None:
        conditions.append(RequestRow.created_at >= request_filter.created_from)
    if request_filter.created_to is not None:
        conditions.append(RequestRow.created_at <= request_filter.created_to)
    if request_filter.search:
        conditions.append(
            or_(
                RequestRow.title.icontains(request_filter.search, autoescape=True),
                RequestRow.description.icontains(request_filter.search, autoescape=True),
            )
        )
    return conditions


class DbRequestRepository:
    """Persists change requests to the change_requests table. Implements RequestRepository protocol."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def find_by_id(self, request_id: str) -> Optional[ChangeRequest]:
        async with self._session_factory() as session:
            row = await session.get(RequestRow, request_id)
            return _to_domain(row) if row is not None else None

    async def insert(self, request: ChangeRequest) -> ChangeRequest:
        async with self._session_factory() as session:
            session.add(RequestRow(**_to_row_values(request)))
            await session.commit()
        return request

    async def compare_and_set(self, request: ChangeRequest, expected_version: int) -> bool:
        values = _to_row_values(request)
        values.pop("id")
        stmt = (
            update(RequestRow)
            .where(RequestRow.id == request.request_id, RequestRow.version == expected_version)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1

    async def delete_by_id(self, request_id: str, expected_version: Optional[int] = None) -> bool:
        stmt = delete(RequestRow).where(RequestRow.id == request_id)
        if expected_version is not None:
            stmt = stmt.where(RequestRow.version == expected_version)
        stmt = stmt.execution_options(synchronize_session=False)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1

    async def find_by_filter(
        self,
        request_filter: RequestFilter,
        offset: int = 0,
        limit: int = 50,
    ) -> List[ChangeRequest]:
        stmt = (
            select(RequestRow)
            .where(*_conditions(request_filter))
            .order_by(RequestRow.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(row) for row in result.scalars().all()]

    async def count_by_filter(self, request_filter: RequestFilter) -> int:
        stmt = select(func.count()).select_from(RequestRow).where(*_conditions(request_filter))
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def aggregate_by_field(self, field: str, request_filter: RequestFilter) -> Dict[str, int]:
        if field not in AGGREGATE_FIELDS:
            raise ValueError(f"Cannot aggregate requests by '{field}'")
        if field == "created_day":
            key = func.date(RequestRow.created_at)
        else:
            key = getattr(RequestRow, field)
        stmt = (
            select(key, func.count())
            .select_from(RequestRow)
            .where(*_conditions(request_filter))
            .group_by(key)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return {
                value.isoformat() if hasattr(value, "isoformat") else str(value): int(count)
                for value, count in result.all()
            }
