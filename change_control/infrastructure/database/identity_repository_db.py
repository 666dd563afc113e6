"""DB-backed identity repository. Persists identities and their credential hashes to the identities table."""

from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker

from change_control.application.identity_repository import IDENTITY_AGGREGATE_FIELDS, IdentityFilter
from change_control.domain.exceptions import NotFoundError
from change_control.domain.models.identity import Identity, Role, parse_employee_number
from change_control.infrastructure.database.models import IdentityRow, as_utc


def _to_domain(row: IdentityRow) -> Identity:
    return Identity(
        identity_id=row.id,
        role=Role(row.role),
        is_active=bool(row.is_active),
        name=row.name,
        email=row.email,
        employee_id=row.employee_id,
        department=row.department or "",
        notification_email=row.notification_email or "",
        created_at=as_utc(row.created_at),
        updated_at=as_utc(row.updated_at),
    )


def _profile_values(identity: Identity) -> Dict[str, Any]:
    return {
        "name": identity.name,
        "email": identity.email,
        "role": identity.role.value,
        "is_active": identity.is_active,
        "employee_id": identity.employee_id,
        "department": identity.department,
        "notification_email": identity.notification_email,
        "updated_at": identity.updated_at or identity.created_at,
    }


def _conditions(identity_filter: IdentityFilter) -> List[Any]:
    conditions: List[Any] = []
    if identity_filter.role is not None:
        conditions.append(IdentityRow.role == identity_filter.role.value)
    if identity_filter.is_active is not None:
        conditions.append(IdentityRow.is_active == identity_filter.is_active)
    if identity_filter.search:
        conditions.append(
            or_(
                IdentityRow.name.icontains(identity_filter.search, autoescape=True),
                IdentityRow.email.icontains(identity_filter.search, autoescape=True),
                IdentityRow.employee_id.icontains(identity_filter.search, autoescape=True),
            )
        )
    return conditions


class DbIdentityRepository:
    """Implements IdentityRepository protocol. One session per call."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self._session_factory = session_factory

    async def find_by_id(self, identity_id: str) -> Optional[Identity]:
        async with self._session_factory() as session:
            row = await session.get(IdentityRow, identity_id)
            return _to_domain(row) if row is not None else None

    async def find_by_email(self, email: str) -> Optional[Identity]:
        stmt = select(IdentityRow).where(IdentityRow.email == email.strip().lower())
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            row = result.scalar_one_or_none()
            return _to_domain(row) if row is not None else None

    async def insert(self, identity: Identity, credential_hash: str) -> Identity:
        row = IdentityRow(
            id=identity.identity_id,
            credential_hash=credential_hash,
            created_at=identity.created_at,
            **_profile_values(identity),
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        return identity

    async def save(self, identity: Identity) -> Identity:
        stmt = (
            update(IdentityRow)
            .where(IdentityRow.id == identity.identity_id)
            .values(**_profile_values(identity))
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        if result.rowcount != 1:
            raise NotFoundError("Identity", identity.identity_id)
        return identity

    async def delete_by_id(self, identity_id: str) -> bool:
        stmt = (
            delete(IdentityRow)
            .where(IdentityRow.id == identity_id)
            .execution_options(synchronize_session=False)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1

    async def find_by_filter(
        self,
        identity_filter: IdentityFilter,
        offset: int = 0,
        limit: int = 50,
    ) -> List[Identity]:
        stmt = (
            select(IdentityRow)
            .where(*_conditions(identity_filter))
            .order_by(IdentityRow.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_domain(row) for row in result.scalars().all()]

    async def count_by_filter(self, identity_filter: IdentityFilter) -> int:
        stmt = select(func.count()).select_from(IdentityRow).where(*_conditions(identity_filter))
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return int(result.scalar_one())

    async def aggregate_by_field(self, field: str, identity_filter: IdentityFilter) -> Dict[str, int]:
        if field not in IDENTITY_AGGREGATE_FIELDS:
            raise ValueError(f"Cannot aggregate identities by '{field}'")
        key = getattr(IdentityRow, field)
        stmt = (
            select(key, func.count())
            .select_from(IdentityRow)
            .where(*_conditions(identity_filter))
            .group_by(key)
        )
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            counts: Dict[str, int] = {}
            for value, count in result.all():
                label = ("true" if value else "false") if field == "is_active" else str(value)
                counts[label] = int(count)
            return counts

    async def max_employee_number(self) -> int:
        stmt = select(IdentityRow.employee_id).where(IdentityRow.employee_id.is_not(None))
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            numbers = [parse_employee_number(value) for value in result.scalars().all()]
        return max((n for n in numbers if n is not None), default=0)

    async def credential_hash(self, identity_id: str) -> Optional[str]:
        stmt = select(IdentityRow.credential_hash).where(IdentityRow.id == identity_id)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalar_one_or_none()
