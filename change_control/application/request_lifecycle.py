"""Request lifecycle service: guarded status transitions with one audit record per outcome."""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from change_control.application.exceptions import StorageUnavailableError
from change_control.application.notifications import LifecycleNotifier, NotificationPublisher
from change_control.application.request_repository import RequestFilter, RequestRepository
from change_control.application.results import Page
from change_control.application.storage import DEFAULT_STORAGE_TIMEOUT_SECONDS, call_storage
from change_control.domain.exceptions import InvalidTransitionError, NotFoundError
from change_control.domain.models.identity import Identity
from change_control.domain.models.request import ChangeRequest, RequestStatus
from change_control.domain.validators.request_validator import (
    Payload,
    validate_rejection_reason,
    validate_request_create,
    validate_request_update,
)
from change_control.governance.audit_logger import AuditTrail
from change_control.governance.audit_models import AuditAction, ClientOrigin
from change_control.security.exceptions import ForbiddenError
from change_control.security.rbac import Action, AuthorizationPolicy, DenialReason, PolicyDecision

MAX_PAGE_SIZE = 100

_DELETE_INVALID_STATE = "only pending requests deletable by non-admins"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def scope_filter(
    policy: AuthorizationPolicy,
    actor: Identity,
    request_filter: Optional[RequestFilter] = None,
) -> RequestFilter:
    """Intersect a caller filter with the actor role's read scope."""
    scope = policy.read_scope(actor.role)
    return (request_filter or RequestFilter()).narrowed(
        created_by=actor.identity_id if scope.own_only else None,
        statuses=scope.statuses,
    )


def _actor_id(actor: Optional[Identity]) -> Optional[str]:
    return actor.identity_id if actor is not None else None


class RequestLifecycle:
    """
    Owns the request status. Every operation that reaches the policy check writes exactly
    one audit record: the success tag, ACCESS_DENIED, or OPERATION_FAILED.
    Payload validation runs first and is not audited. Status writes are compare-and-set
    on the request version, so of two racing transitions exactly one wins.
    """

    def __init__(
        self,
        repository: RequestRepository,
        audit_trail: AuditTrail,
        policy: Optional[AuthorizationPolicy] = None,
        *,
        publisher: Optional[NotificationPublisher] = None,
        storage_timeout_seconds: float = DEFAULT_STORAGE_TIMEOUT_SECONDS,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._repository = repository
        self._audit = audit_trail
        self._policy = policy or AuthorizationPolicy()
        self._timeout = storage_timeout_seconds
        self._logger = logger or logging.getLogger(__name__)
        self._notifier = LifecycleNotifier(publisher, self._logger)
        self._clock = clock

    # ------------------------------------------------------------------
    # Create and read
    # ------------------------------------------------------------------

    async def submit(
        self,
        creator: Optional[Identity],
        payload: Payload,
        origin: Optional[ClientOrigin] = None,
    ) -> ChangeRequest:
        """Create a Pending request owned by creator. Emits REQUEST_CREATED."""
        data = validate_request_create(payload)
        decision = self._policy.decide_for(creator, Action.CREATE_REQUEST)
        if not decision.allowed:
            await self._record_denial(creator, decision, origin)
            raise self._denial_error(decision)

        now = self._clock()
        request = ChangeRequest(
            request_id=str(uuid.uuid4()),
            title=data.title,
            description=data.description,
            change_type=data.change_type,
            risk_level=data.risk_level,
            environment=data.environment,
            justification=data.justification,
            planned_start_date=data.planned_start_date,
            planned_end_date=data.planned_end_date,
            implementation_plan=data.implementation_plan,
            rollback_plan=data.rollback_plan,
            testing_plan=data.testing_plan,
            impact_assessment=data.impact_assessment,
            affected_departments=tuple(data.affected_departments),
            priority=data.priority,
            created_by=creator.identity_id,
            status=RequestStatus.PENDING,
            created_at=now,
            updated_at=now,
        )
        try:
            stored = await call_storage("requests.insert", self._repository.insert(request), self._timeout)
        except StorageUnavailableError as e:
            await self._record_failure(creator, Action.CREATE_REQUEST, origin, None, e)
            raise

        await self._audit.log_action(
            actor_id=creator.identity_id,
            action=AuditAction.REQUEST_CREATED,
            origin=origin,
            request_id=stored.request_id,
            details={
                "title": stored.title,
                "change_type": stored.change_type.value,
                "risk_level": stored.risk_level.value,
                "priority": stored.priority.value,
            },
        )
        self._logger.info(
            "request_created",
            extra={"request_id": stored.request_id, "actor_id": creator.identity_id},
        )
        await self._notifier.notify("created", stored, creator.identity_id)
        return stored

    async def get(
        self,
        actor: Optional[Identity],
        request_id: str,
        origin: Optional[ClientOrigin] = None,
    ) -> ChangeRequest:
        """Return the request if the actor's read scope covers it. Allowed reads are not audited."""
        request = await self._load(actor, Action.READ_REQUEST, request_id, origin)
        decision = self._policy.decide_for(
            actor, Action.READ_REQUEST, request.status, owner_id=request.created_by
        )
        if not decision.allowed:
            await self._record_denial(actor, decision, origin, request)
            raise ForbiddenError(
                "Not authorized to view this request",
                reason=decision.reason.value if decision.reason else None,
                action=Action.READ_REQUEST.value,
                required_roles=decision.required_roles,
            )
        return request

    async def list(
        self,
        actor: Optional[Identity],
        request_filter: Optional[RequestFilter] = None,
        offset: int = 0,
        limit: int = 20,
        origin: Optional[ClientOrigin] = None,
    ) -> Page[ChangeRequest]:
        """Requests within the actor's read scope matching request_filter, newest first."""
        if actor is None or not actor.is_active:
            decision = self._policy.decide(None, Action.READ_REQUEST)
            await self._record_denial(actor, decision, origin)
            raise self._denial_error(decision)

        scoped = self.scoped_filter(actor, request_filter)
        offset = max(offset, 0)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        try:
            items = await call_storage(
                "requests.find_by_filter",
                self._repository.find_by_filter(scoped, offset, limit),
                self._timeout,
            )
            total = await call_storage(
                "requests.count_by_filter",
                self._repository.count_by_filter(scoped),
                self._timeout,
            )
        except StorageUnavailableError as e:
            await self._record_failure(actor, Action.READ_REQUEST, origin, None, e)
            raise
        return Page(items=list(items), total=total, offset=offset, limit=limit)

    def scoped_filter(self, actor: Identity, request_filter: Optional[RequestFilter]) -> RequestFilter:
        return scope_filter(self._policy, actor, request_filter)

    # ------------------------------------------------------------------
    # Content update
    # ------------------------------------------------------------------

    async def update(
        self,
        actor: Optional[Identity],
        request_id: str,
        payload: Payload,
        origin: Optional[ClientOrigin] = None,
    ) -> ChangeRequest:
        """Replace content fields. Status, approver and decision fields are never writable here."""
        fields = validate_request_update(payload)
        request = await self._load(actor, Action.UPDATE_REQUEST, request_id, origin)

        decision = self._policy.decide_for(
            actor, Action.UPDATE_REQUEST, request.status, owner_id=request.created_by
        )
        if not decision.allowed:
            await self._record_denial(actor, decision, origin, request)
            raise self._denial_error(decision, request)

        candidate = request.with_content(fields, at=self._clock())
        await self._write(actor, Action.UPDATE_REQUEST, request, candidate, origin)
        await self._audit.log_action(
            actor_id=actor.identity_id,
            action=AuditAction.REQUEST_UPDATED,
            origin=origin,
            request_id=request.request_id,
            details={"updated_fields": sorted(fields), "status": request.status.value},
        )
        self._logger.info(
            "request_updated",
            extra={"request_id": request.request_id, "actor_id": actor.identity_id},
        )
        await self._notifier.notify("updated", candidate, actor.identity_id)
        return candidate

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    async def approve(
        self,
        actor: Optional[Identity],
        request_id: str,
        origin: Optional[ClientOrigin] = None,
    ) -> ChangeRequest:
        """Pending -> Approved. Manager only. Records approver and decision time."""
        return await self._transition(
            actor,
            request_id,
            Action.APPROVE_REQUEST,
            RequestStatus.APPROVED,
            AuditAction.REQUEST_APPROVED,
            origin,
        )

    async def reject(
        self,
        actor: Optional[Identity],
        request_id: str,
        reason: Optional[str],
        origin: Optional[ClientOrigin] = None,
    ) -> ChangeRequest:
        """Pending -> Rejected. The reason is checked before anything else."""
        trimmed = validate_rejection_reason(reason)
        return await self._transition(
            actor,
            request_id,
            Action.REJECT_REQUEST,
            RequestStatus.REJECTED,
            AuditAction.REQUEST_REJECTED,
            origin,
            rejection_reason=trimmed,
            details={"rejection_reason": trimmed},
        )

    async def send_to_audit(
        self,
        actor: Optional[Identity],
        request_id: str,
        origin: Optional[ClientOrigin] = None,
    ) -> ChangeRequest:
        return await self._transition(
            actor,
            request_id,
            Action.SEND_TO_AUDIT,
            RequestStatus.SENT_TO_AUDIT,
            AuditAction.REQUEST_SENT_TO_AUDIT,
            origin,
        )

    async def start_implementation(
        self,
        actor: Optional[Identity],
        request_id: str,
        origin: Optional[ClientOrigin] = None,
    ) -> ChangeRequest:
        return await self._transition(
            actor,
            request_id,
            Action.START_IMPLEMENTATION,
            RequestStatus.IN_PROGRESS,
            AuditAction.REQUEST_STARTED,
            origin,
        )

    async def complete(
        self,
        actor: Optional[Identity],
        request_id: str,
        origin: Optional[ClientOrigin] = None,
    ) -> ChangeRequest:
        return await self._transition(
            actor,
            request_id,
            Action.COMPLETE_REQUEST,
            RequestStatus.COMPLETED,
            AuditAction.REQUEST_COMPLETED,
            origin,
        )

    async def cancel(
        self,
        actor: Optional[Identity],
        request_id: str,
        reason: Optional[str] = None,
        origin: Optional[ClientOrigin] = None,
    ) -> ChangeRequest:
        details = {"reason": reason.strip()} if reason and reason.strip() else None
        return await self._transition(
            actor,
            request_id,
            Action.CANCEL_REQUEST,
            RequestStatus.CANCELLED,
            AuditAction.REQUEST_CANCELLED,
            origin,
            details=details,
        )

    async def resolve_audit(
        self,
        actor: Optional[Identity],
        request_id: str,
        origin: Optional[ClientOrigin] = None,
    ) -> ChangeRequest:
        """Sent to Audit -> Solved. Auditor (Client) or Admin."""
        return await self._transition(
            actor,
            request_id,
            Action.RESOLVE_AUDIT,
            RequestStatus.SOLVED,
            AuditAction.REQUEST_SOLVED,
            origin,
        )

    async def delete(
        self,
        actor: Optional[Identity],
        request_id: str,
        origin: Optional[ClientOrigin] = None,
    ) -> ChangeRequest:
        """Remove a request: its creator while Pending, or an Admin in any status. Returns the removed request."""
        request = await self._load(actor, Action.DELETE_REQUEST, request_id, origin)
        decision = self._policy.decide_for(
            actor, Action.DELETE_REQUEST, request.status, owner_id=request.created_by
        )
        if not decision.allowed:
            await self._record_denial(actor, decision, origin, request)
            if decision.reason == DenialReason.INVALID_STATE_FOR_ACTION:
                raise InvalidTransitionError(
                    f"Cannot delete request with status '{request.status.value}': {_DELETE_INVALID_STATE}",
                    current_status=request.status.value,
                    expected_statuses=decision.required_statuses,
                )
            raise self._denial_error(decision, request)

        try:
            removed = await call_storage(
                "requests.delete_by_id",
                self._repository.delete_by_id(request.request_id, request.version),
                self._timeout,
            )
        except StorageUnavailableError as e:
            await self._record_failure(actor, Action.DELETE_REQUEST, origin, request, e)
            raise
        if not removed:
            await self._lost_race(actor, Action.DELETE_REQUEST, request, origin)

        await self._audit.log_action(
            actor_id=actor.identity_id,
            action=AuditAction.REQUEST_DELETED,
            origin=origin,
            request_id=request.request_id,
            details={"title": request.title, "status": request.status.value},
        )
        self._logger.info(
            "request_deleted",
            extra={"request_id": request.request_id, "actor_id": actor.identity_id},
        )
        await self._notifier.notify("deleted", request, actor.identity_id)
        return request

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _transition(
        self,
        actor: Optional[Identity],
        request_id: str,
        action: Action,
        target: RequestStatus,
        success_tag: AuditAction,
        origin: Optional[ClientOrigin],
        *,
        rejection_reason: Optional[str] = None,
        details: Optional[Mapping[str, Any]] = None,
    ) -> ChangeRequest:
        request = await self._load(actor, action, request_id, origin)
        decision = self._policy.decide_for(actor, action, request.status, owner_id=request.created_by)
        if not decision.allowed:
            await self._record_denial(actor, decision, origin, request)
            raise self._denial_error(decision, request)

        try:
            updated = request.transition_to(
                target,
                at=self._clock(),
                decided_by=actor.identity_id,
                rejection_reason=rejection_reason,
            )
        except InvalidTransitionError as e:
            await self._record_denial(
                actor,
                PolicyDecision.deny(action, DenialReason.INVALID_STATE_FOR_ACTION, e.message),
                origin,
                request,
            )
            raise

        await self._write(actor, action, request, updated, origin)

        audit_details: Dict[str, Any] = {
            "from_status": request.status.value,
            "to_status": updated.status.value,
        }
        if details:
            audit_details.update(details)
        await self._audit.log_action(
            actor_id=actor.identity_id,
            action=success_tag,
            origin=origin,
            request_id=updated.request_id,
            details=audit_details,
        )
        self._logger.info(
            success_tag.value.lower(),
            extra={
                "request_id": updated.request_id,
                "actor_id": actor.identity_id,
                "from_status": request.status.value,
                "to_status": updated.status.value,
            },
        )
        await self._notifier.notify(
            success_tag.value.replace("REQUEST_", "").lower(), updated, actor.identity_id
        )
        return updated

    async def _load(
        self,
        actor: Optional[Identity],
        action: Action,
        request_id: str,
        origin: Optional[ClientOrigin],
    ) -> ChangeRequest:
        try:
            request = await call_storage(
                "requests.find_by_id", self._repository.find_by_id(request_id), self._timeout
            )
        except StorageUnavailableError as e:
            await self._record_failure(actor, action, origin, None, e, request_id=request_id)
            raise
        if request is None:
            raise NotFoundError("Request", request_id)
        return request

    async def _write(
        self,
        actor: Identity,
        action: Action,
        current: ChangeRequest,
        updated: ChangeRequest,
        origin: Optional[ClientOrigin],
    ) -> None:
        try:
            written = await call_storage(
                "requests.compare_and_set",
                self._repository.compare_and_set(updated, current.version),
                self._timeout,
            )
        except StorageUnavailableError as e:
            await self._record_failure(actor, action, origin, current, e)
            raise
        if not written:
            await self._lost_race(actor, action, current, origin)

    async def _lost_race(
        self,
        actor: Identity,
        action: Action,
        stale: ChangeRequest,
        origin: Optional[ClientOrigin],
    ) -> None:
        """Another writer got there first. Records the denial against the fresh state and raises."""
        try:
            fresh = await call_storage(
                "requests.find_by_id", self._repository.find_by_id(stale.request_id), self._timeout
            )
        except StorageUnavailableError:
            fresh = stale
        self._logger.warning(
            "request_concurrent_modification",
            extra={
                "request_id": stale.request_id,
                "actor_id": actor.identity_id,
                "action": action.value,
                "expected_version": stale.version,
            },
        )
        if fresh is None:
            decision = PolicyDecision.deny(
                action,
                DenialReason.INVALID_STATE_FOR_ACTION,
                "Request was removed concurrently",
            )
            await self._record_denial(actor, decision, origin, stale, concurrent=True)
            raise NotFoundError("Request", stale.request_id)

        decision = self._policy.decide_for(actor, action, fresh.status, owner_id=fresh.created_by)
        if decision.allowed:
            decision = PolicyDecision.deny(
                action,
                DenialReason.INVALID_STATE_FOR_ACTION,
                f"Request was modified concurrently; current status '{fresh.status.value}'",
            )
        await self._record_denial(actor, decision, origin, fresh, concurrent=True)
        raise InvalidTransitionError(
            decision.message,
            current_status=fresh.status.value,
            expected_statuses=decision.required_statuses,
        )

    @staticmethod
    def _denial_error(decision: PolicyDecision, request: Optional[ChangeRequest] = None) -> Exception:
        """InvalidStateForAction becomes InvalidTransitionError; every other denial is Forbidden."""
        if decision.reason == DenialReason.INVALID_STATE_FOR_ACTION and request is not None:
            return InvalidTransitionError(
                decision.message,
                current_status=request.status.value,
                expected_statuses=decision.required_statuses,
            )
        return ForbiddenError(
            decision.message,
            reason=decision.reason.value if decision.reason else None,
            action=decision.action.value,
            required_roles=decision.required_roles,
        )

    async def _record_denial(
        self,
        actor: Optional[Identity],
        decision: PolicyDecision,
        origin: Optional[ClientOrigin],
        request: Optional[ChangeRequest] = None,
        *,
        concurrent: bool = False,
    ) -> None:
        details: Dict[str, Any] = {
            "attempted_action": decision.action.value,
            "reason": decision.reason.value if decision.reason else None,
            "message": decision.message,
        }
        if request is not None:
            details["current_status"] = request.status.value
        if concurrent:
            details["concurrent_modification"] = True
        self._logger.warning(
            "access_denied",
            extra={
                "actor_id": _actor_id(actor),
                "action": decision.action.value,
                "reason": details["reason"],
                "request_id": request.request_id if request else None,
            },
        )
        await self._audit.log_action(
            actor_id=_actor_id(actor),
            action=AuditAction.ACCESS_DENIED,
            origin=origin,
            request_id=request.request_id if request else None,
            details=details,
        )

    async def _record_failure(
        self,
        actor: Optional[Identity],
        action: Action,
        origin: Optional[ClientOrigin],
        request: Optional[ChangeRequest],
        error: Exception,
        *,
        request_id: Optional[str] = None,
    ) -> None:
        subject = request.request_id if request is not None else request_id
        self._logger.error(
            "operation_failed",
            extra={
                "actor_id": _actor_id(actor),
                "action": action.value,
                "request_id": subject,
                "error": str(error),
            },
        )
        await self._audit.log_action(
            actor_id=_actor_id(actor),
            action=AuditAction.OPERATION_FAILED,
            origin=origin,
            request_id=subject,
            details={"attempted_action": action.value, "error": str(error)},
        )
