"""Administration: system analytics, scoped request statistics and audit log access."""

import logging
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from change_control.application.authorization import enforce_permission
from change_control.application.identity_repository import IdentityFilter, IdentityRepository
from change_control.application.request_lifecycle import scope_filter
from change_control.application.request_repository import RequestFilter, RequestRepository
from change_control.application.results import Page
from change_control.application.storage import DEFAULT_STORAGE_TIMEOUT_SECONDS, call_storage
from change_control.domain.models.identity import Identity
from change_control.domain.models.request import APPROVED_FAMILY, RequestStatus
from change_control.governance.audit_logger import AuditTrail
from change_control.governance.audit_models import AuditAction, AuditQuery, AuditRecord, ClientOrigin
from change_control.security.rbac import Action, AuthorizationPolicy

RECENT_ACTIVITY_DAYS = 30
TREND_DAYS = 7
MAX_AUDIT_PAGE_SIZE = 200
EXPORT_AUDIT_LOGS = "EXPORT_AUDIT_LOGS"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _rate(part: int, total: int) -> float:
    """Percentage with two decimals; 0.0 when there is nothing to divide."""
    if total <= 0:
        return 0.0
    return round(part / total * 100, 2)


def _approved_count(by_status: Dict[str, int]) -> int:
    return sum(by_status.get(status.value, 0) for status in APPROVED_FAMILY)


class AdministrationService:
    """Admin-only analytics and audit log listing/export; request statistics for any authenticated actor."""

    def __init__(
        self,
        requests: RequestRepository,
        identities: IdentityRepository,
        audit_trail: AuditTrail,
        policy: Optional[AuthorizationPolicy] = None,
        *,
        storage_timeout_seconds: float = DEFAULT_STORAGE_TIMEOUT_SECONDS,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._requests = requests
        self._identities = identities
        self._audit = audit_trail
        self._policy = policy or AuthorizationPolicy()
        self._timeout = storage_timeout_seconds
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock

    async def analytics(
        self,
        actor: Optional[Identity],
        origin: Optional[ClientOrigin] = None,
    ) -> Dict[str, Any]:
        await enforce_permission(
            self._policy, self._audit, self._logger, actor, Action.VIEW_ANALYTICS, origin
        )
        everything = RequestFilter()
        by_status = await self._aggregate_requests("status", everything)
        by_type = await self._aggregate_requests("change_type", everything)
        recent = await call_storage(
            "requests.count_by_filter",
            self._requests.count_by_filter(
                RequestFilter(created_from=self._clock() - timedelta(days=RECENT_ACTIVITY_DAYS))
            ),
            self._timeout,
        )
        by_role = await call_storage(
            "identities.aggregate_by_field",
            self._identities.aggregate_by_field("role", IdentityFilter()),
            self._timeout,
        )
        active = await call_storage(
            "identities.count_by_filter",
            self._identities.count_by_filter(IdentityFilter(is_active=True)),
            self._timeout,
        )

        total_requests = sum(by_status.values())
        approved = _approved_count(by_status)
        rejected = by_status.get(RequestStatus.REJECTED.value, 0)
        total_users = sum(by_role.values())
        return {
            "requests": {
                "total": total_requests,
                "pending": by_status.get(RequestStatus.PENDING.value, 0),
                "approved": approved,
                "rejected": rejected,
                "recent_count": recent,
                "by_type": by_type,
                "by_status": by_status,
            },
            "users": {
                "total": total_users,
                "active": active,
                "inactive": total_users - active,
                "by_role": by_role,
            },
            "metrics": {
                "approval_rate": _rate(approved, total_requests),
                "rejection_rate": _rate(rejected, total_requests),
            },
        }

    async def request_statistics(
        self,
        actor: Optional[Identity],
        origin: Optional[ClientOrigin] = None,
    ) -> Dict[str, Any]:
        """
        Distributions, 7-day creation trend and summary counts over the actor's read scope.
        total_workforce counts active identities system-wide; active_changes counts
        In Progress requests within the scope.
        """
        if actor is None or not actor.is_active:
            await enforce_permission(
                self._policy, self._audit, self._logger, actor, Action.READ_REQUEST, origin
            )
        scoped = scope_filter(self._policy, actor)
        by_status = await self._aggregate_requests("status", scoped)
        by_type = await self._aggregate_requests("change_type", scoped)
        by_risk = await self._aggregate_requests("risk_level", scoped)

        today = self._clock().astimezone(timezone.utc).replace(hour=0, minute=0, second=0, microsecond=0)
        window_start = today - timedelta(days=TREND_DAYS - 1)
        trend_counts = await self._aggregate_requests(
            "created_day", replace(scoped, created_from=window_start)
        )
        trends: List[Dict[str, Any]] = []
        for offset in range(TREND_DAYS):
            day = (window_start + timedelta(days=offset)).date().isoformat()
            trends.append({"date": day, "count": trend_counts.get(day, 0)})

        total_workforce = await call_storage(
            "identities.count_by_filter",
            self._identities.count_by_filter(IdentityFilter(is_active=True)),
            self._timeout,
        )

        return {
            "status_distribution": by_status,
            "type_distribution": by_type,
            "risk_distribution": by_risk,
            "trends": trends,
            "total_workforce": total_workforce,
            "active_changes": by_status.get(RequestStatus.IN_PROGRESS.value, 0),
            "summary": {
                "total": sum(by_status.values()),
                "pending": by_status.get(RequestStatus.PENDING.value, 0),
                "approved": _approved_count(by_status),
                "rejected": by_status.get(RequestStatus.REJECTED.value, 0),
                "in_progress": by_status.get(RequestStatus.IN_PROGRESS.value, 0),
                "completed": by_status.get(RequestStatus.COMPLETED.value, 0),
            },
        }

    async def list_audit_logs(
        self,
        actor: Optional[Identity],
        query: Optional[AuditQuery] = None,
        origin: Optional[ClientOrigin] = None,
    ) -> Page[AuditRecord]:
        """Paginated audit records, newest first."""
        await enforce_permission(
            self._policy, self._audit, self._logger, actor, Action.VIEW_AUDIT_LOG, origin
        )
        query = query or AuditQuery()
        limit = min(max(query.limit, 1), MAX_AUDIT_PAGE_SIZE)
        offset = max(query.offset, 0)
        bounded = replace(query, offset=offset, limit=limit)
        records = await self._audit.query(bounded)
        total = await self._audit.count(bounded)
        return Page(items=records, total=total, offset=offset, limit=limit)

    async def export_audit_logs(
        self,
        actor: Optional[Identity],
        query: Optional[AuditQuery] = None,
        origin: Optional[ClientOrigin] = None,
    ) -> List[Dict[str, Optional[str]]]:
        """Flat rows for every matching record up to the export cap. Emits ADMIN_ACTION."""
        await enforce_permission(
            self._policy, self._audit, self._logger, actor, Action.EXPORT_AUDIT_LOG, origin
        )
        query = query or AuditQuery()
        rows = await self._audit.export(query)
        await self._audit.log_action(
            actor_id=actor.identity_id,
            action=AuditAction.ADMIN_ACTION,
            origin=origin,
            details={"action": EXPORT_AUDIT_LOGS, "record_count": len(rows)},
        )
        self._logger.info(
            "audit_logs_exported",
            extra={"actor_id": actor.identity_id, "record_count": len(rows)},
        )
        return rows

    async def _aggregate_requests(self, field: str, request_filter: RequestFilter) -> Dict[str, int]:
        return await call_storage(
            "requests.aggregate_by_field",
            self._requests.aggregate_by_field(field, request_filter),
            self._timeout,
        )
