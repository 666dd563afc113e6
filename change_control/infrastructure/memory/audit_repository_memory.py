"""In-process append-only audit store. Update and delete entry points always raise ImmutableRecordError."""

import asyncio
from typing import List, Tuple

from change_control.governance.audit_models import AuditQuery, AuditRecord
from change_control.governance.audit_repository import AppendOnlyStore


class InMemoryAuditRepository(AppendOnlyStore):
    """Implements AuditRepository. Records are frozen values; the store only ever grows."""

    def __init__(self) -> None:
        self._records: List[AuditRecord] = []
        self._lock = asyncio.Lock()

    async def append(self, record: AuditRecord) -> str:
        async with self._lock:
            self._records.append(record)
        return record.record_id

    async def query(self, query: AuditQuery) -> List[AuditRecord]:
        matching = self._newest_first(query)
        return [record for _, record in matching[query.offset : query.offset + query.limit]]

    async def count(self, query: AuditQuery) -> int:
        return sum(1 for record in self._records if query.matches(record))

    def _newest_first(self, query: AuditQuery) -> List[Tuple[int, AuditRecord]]:
        # Insertion order breaks timestamp ties so later appends sort first.
        indexed = [(i, r) for i, r in enumerate(self._records) if query.matches(r)]
        indexed.sort(key=lambda item: (item[1].timestamp_utc, item[0]), reverse=True)
        return indexed

    def __len__(self) -> int:
        return len(self._records)
