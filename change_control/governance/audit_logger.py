"""Immutable audit trail for every security-relevant action. No FastAPI."""

import logging
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional

from change_control.application.storage import DEFAULT_STORAGE_TIMEOUT_SECONDS, call_storage
from change_control.governance.audit_models import (
    AuditAction,
    AuditQuery,
    AuditRecord,
    ClientOrigin,
)
from change_control.governance.audit_repository import AuditRepository

DEFAULT_EXPORT_MAX_RECORDS = 10000


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class AuditTrail:
    """
    Writes immutable audit records via repository and reads them back newest first.
    Appends are best-effort: a failed append is logged and swallowed so the
    triggering operation's outcome is unaffected.
    """

    def __init__(
        self,
        repository: AuditRepository,
        *,
        export_max_records: int = DEFAULT_EXPORT_MAX_RECORDS,
        timeout_seconds: float = DEFAULT_STORAGE_TIMEOUT_SECONDS,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._repository = repository
        self._export_max = export_max_records
        self._timeout = timeout_seconds
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock

    @property
    def export_max_records(self) -> int:
        return self._export_max

    async def append(self, record: AuditRecord) -> Optional[str]:
        """Persist record. Returns its id, or None if the append failed (failure is logged, never raised)."""
        try:
            return await call_storage("audit.append", self._repository.append(record), self._timeout)
        except Exception as e:
            self._logger.error(
                "audit_append_failed",
                extra={
                    "record_id": record.record_id,
                    "action": record.action.value,
                    "actor_id": record.actor_id,
                    "request_id": record.request_id,
                    "error": str(e),
                },
            )
            return None

    async def log_action(
        self,
        *,
        actor_id: Optional[str],
        action: AuditAction,
        origin: Optional[ClientOrigin] = None,
        request_id: Optional[str] = None,
        target_identity_id: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> Optional[str]:
        """Build and append one record. Timestamp is UTC."""
        origin = origin or ClientOrigin()
        try:
            record = AuditRecord(
                record_id=str(uuid.uuid4()),
                actor_id=actor_id,
                action=action,
                ip_address=origin.ip_address,
                user_agent=origin.user_agent,
                correlation_id=origin.correlation_id,
                timestamp_utc=self._clock(),
                request_id=request_id,
                target_identity_id=target_identity_id,
                details=details,
            )
        except Exception as e:
            self._logger.error(
                "audit_record_build_failed",
                extra={"action": action.value, "actor_id": actor_id, "error": str(e)},
            )
            return None
        return await self.append(record)

    async def query(self, query: AuditQuery) -> List[AuditRecord]:
        """Records matching filters, newest first. Raises StorageUnavailableError on timeout."""
        return await call_storage("audit.query", self._repository.query(query), self._timeout)

    async def count(self, query: AuditQuery) -> int:
        return await call_storage("audit.count", self._repository.count(query), self._timeout)

    async def export(self, query: AuditQuery) -> List[Dict[str, Optional[str]]]:
        """Flattened rows for every match, newest first, never more than export_max_records. Pagination is ignored."""
        bounded = replace(query, offset=0, limit=self._export_max)
        records = await self.query(bounded)
        return [record.to_row() for record in records[: self._export_max]]
