"""Audit repository protocol and append-only capability restriction. Infrastructure implements it."""

import logging
from typing import Any, List, Protocol

from change_control.governance.audit_models import AuditQuery, AuditRecord
from change_control.governance.exceptions import ImmutableRecordError

logger = logging.getLogger(__name__)


class AuditRepository(Protocol):
    """Protocol for persisting immutable audit records. Exposes no mutation entry point."""

    async def append(self, record: AuditRecord) -> str:
        """Persist a new record and return its id."""
        ...

    async def query(self, query: AuditQuery) -> List[AuditRecord]:
        """Records matching the filters, newest first, paginated by offset/limit."""
        ...

    async def count(self, query: AuditQuery) -> int:
        """Number of records matching the filters (pagination ignored)."""
        ...


class AppendOnlyStore:
    """
    Base for audit storage adapters. Any update or delete reaching the adapter is
    rejected with ImmutableRecordError before touching the store, whatever the caller.
    """

    entity_type = "AuditRecord"

    def _reject(self, record_id: Any, operation: str) -> ImmutableRecordError:
        logger.error(
            "immutability_violation_blocked",
            extra={
                "entity_type": self.entity_type,
                "entity_id": str(record_id),
                "operation": operation,
            },
        )
        return ImmutableRecordError(str(record_id), operation)

    async def update(self, record_id: str, **changes: Any) -> None:
        raise self._reject(record_id, "update")

    async def replace(self, record: AuditRecord) -> None:
        raise self._reject(record.record_id, "update")

    async def delete(self, record_id: str) -> None:
        raise self._reject(record_id, "delete")

    async def delete_many(self, query: AuditQuery) -> None:
        raise self._reject("*", "delete")
