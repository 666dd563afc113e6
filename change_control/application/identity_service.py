"""Identity provisioning: admin-only identity management with explicit construction steps."""

import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from change_control.application.authorization import enforce_permission
from change_control.application.exceptions import StorageUnavailableError
from change_control.application.identity_repository import IdentityFilter, IdentityRepository
from change_control.application.results import Page
from change_control.application.storage import DEFAULT_STORAGE_TIMEOUT_SECONDS, call_storage
from change_control.domain.exceptions import DomainValidationError, NotFoundError
from change_control.domain.models.identity import Identity, format_employee_id
from change_control.domain.validators.request_validator import (
    Payload,
    validate_identity_create,
    validate_identity_update,
)
from change_control.governance.audit_logger import AuditTrail
from change_control.governance.audit_models import AuditAction, ClientOrigin
from change_control.security.credentials import CredentialHasher, Pbkdf2CredentialHasher
from change_control.security.rbac import Action, AuthorizationPolicy

MAX_PAGE_SIZE = 100


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class IdentityProvisioningService:
    """
    Create, update, activate/deactivate, delete and list identities. Admin only.
    Employee number assignment and credential hashing happen here, before insert.
    """

    def __init__(
        self,
        repository: IdentityRepository,
        audit_trail: AuditTrail,
        policy: Optional[AuthorizationPolicy] = None,
        *,
        hasher: Optional[CredentialHasher] = None,
        storage_timeout_seconds: float = DEFAULT_STORAGE_TIMEOUT_SECONDS,
        logger: Optional[logging.Logger] = None,
        clock: Callable[[], datetime] = _utc_now,
    ) -> None:
        self._repository = repository
        self._audit = audit_trail
        self._policy = policy or AuthorizationPolicy()
        self._hasher = hasher or Pbkdf2CredentialHasher()
        self._timeout = storage_timeout_seconds
        self._logger = logger or logging.getLogger(__name__)
        self._clock = clock
        self._create_lock = asyncio.Lock()

    async def create(
        self,
        actor: Optional[Identity],
        payload: Payload,
        origin: Optional[ClientOrigin] = None,
    ) -> Identity:
        data = validate_identity_create(payload)
        await self._authorize(actor, origin)

        try:
            # Employee numbers are sequential; serialize lookup and insert within this process.
            async with self._create_lock:
                existing = await call_storage(
                    "identities.find_by_email", self._repository.find_by_email(data.email), self._timeout
                )
                if existing is not None:
                    raise DomainValidationError("User with this email already exists")
                highest = await call_storage(
                    "identities.max_employee_number", self._repository.max_employee_number(), self._timeout
                )
                credential_hash = await asyncio.to_thread(self._hasher.hash, data.password)
                now = self._clock()
                identity = Identity(
                    identity_id=str(uuid.uuid4()),
                    role=data.role,
                    is_active=True,
                    name=data.name,
                    email=data.email,
                    employee_id=format_employee_id(highest + 1),
                    department=data.department,
                    notification_email=data.notification_email or "",
                    created_at=now,
                    updated_at=now,
                )
                stored = await call_storage(
                    "identities.insert", self._repository.insert(identity, credential_hash), self._timeout
                )
        except StorageUnavailableError as e:
            await self._record_failure(actor, "create_identity", origin, None, e)
            raise

        await self._audit.log_action(
            actor_id=actor.identity_id,
            action=AuditAction.USER_CREATED,
            origin=origin,
            target_identity_id=stored.identity_id,
            details={
                "created_user_email": stored.email,
                "created_user_role": stored.role.value,
                "employee_id": stored.employee_id,
            },
        )
        self._logger.info(
            "identity_created",
            extra={"identity_id": stored.identity_id, "actor_id": actor.identity_id},
        )
        return stored

    async def update(
        self,
        actor: Optional[Identity],
        identity_id: str,
        payload: Payload,
        origin: Optional[ClientOrigin] = None,
    ) -> Identity:
        """Apply profile changes. is_active changes are audited as USER_ACTIVATED / USER_DEACTIVATED."""
        fields = validate_identity_update(payload)
        await self._authorize(actor, origin, target_identity_id=identity_id)
        try:
            identity = await self._load(identity_id)
            if "email" in fields and fields["email"] != identity.email:
                holder = await call_storage(
                    "identities.find_by_email", self._repository.find_by_email(fields["email"]), self._timeout
                )
                if holder is not None and holder.identity_id != identity_id:
                    raise DomainValidationError("User with this email already exists")
            updated = identity.with_changes(**fields, updated_at=self._clock())
            stored = await call_storage("identities.save", self._repository.save(updated), self._timeout)
        except StorageUnavailableError as e:
            await self._record_failure(actor, "update_identity", origin, identity_id, e)
            raise

        if fields.get("is_active") is False:
            tag = AuditAction.USER_DEACTIVATED
        elif fields.get("is_active") is True:
            tag = AuditAction.USER_ACTIVATED
        else:
            tag = AuditAction.USER_UPDATED
        await self._audit.log_action(
            actor_id=actor.identity_id,
            action=tag,
            origin=origin,
            target_identity_id=identity_id,
            details={"updated_fields": _jsonable(fields)},
        )
        self._logger.info(
            tag.value.lower(),
            extra={"identity_id": identity_id, "actor_id": actor.identity_id},
        )
        return stored

    async def activate(
        self,
        actor: Optional[Identity],
        identity_id: str,
        origin: Optional[ClientOrigin] = None,
    ) -> Identity:
        return await self.update(actor, identity_id, {"is_active": True}, origin)

    async def deactivate(
        self,
        actor: Optional[Identity],
        identity_id: str,
        origin: Optional[ClientOrigin] = None,
    ) -> Identity:
        return await self.update(actor, identity_id, {"is_active": False}, origin)

    async def delete(
        self,
        actor: Optional[Identity],
        identity_id: str,
        origin: Optional[ClientOrigin] = None,
    ) -> Identity:
        """Remove an identity. Its requests and audit records are kept. Admins cannot delete themselves."""
        if actor is not None and actor.identity_id == identity_id:
            raise DomainValidationError("Cannot delete your own account")
        await self._authorize(actor, origin, target_identity_id=identity_id)
        try:
            identity = await self._load(identity_id)
            removed = await call_storage(
                "identities.delete_by_id", self._repository.delete_by_id(identity_id), self._timeout
            )
        except StorageUnavailableError as e:
            await self._record_failure(actor, "delete_identity", origin, identity_id, e)
            raise
        if not removed:
            raise NotFoundError("Identity", identity_id)

        await self._audit.log_action(
            actor_id=actor.identity_id,
            action=AuditAction.USER_DELETED,
            origin=origin,
            target_identity_id=identity_id,
            details={"deleted_user_email": identity.email, "deleted_user_role": identity.role.value},
        )
        self._logger.info(
            "identity_deleted",
            extra={"identity_id": identity_id, "actor_id": actor.identity_id},
        )
        return identity

    async def get(
        self,
        actor: Optional[Identity],
        identity_id: str,
        origin: Optional[ClientOrigin] = None,
    ) -> Identity:
        await self._authorize(actor, origin, target_identity_id=identity_id)
        return await self._load(identity_id)

    async def list(
        self,
        actor: Optional[Identity],
        identity_filter: Optional[IdentityFilter] = None,
        offset: int = 0,
        limit: int = 20,
        origin: Optional[ClientOrigin] = None,
    ) -> Page[Identity]:
        await self._authorize(actor, origin)
        identity_filter = identity_filter or IdentityFilter()
        offset = max(offset, 0)
        limit = min(max(limit, 1), MAX_PAGE_SIZE)
        items = await call_storage(
            "identities.find_by_filter",
            self._repository.find_by_filter(identity_filter, offset, limit),
            self._timeout,
        )
        total = await call_storage(
            "identities.count_by_filter", self._repository.count_by_filter(identity_filter), self._timeout
        )
        return Page(items=list(items), total=total, offset=offset, limit=limit)

    async def _authorize(
        self,
        actor: Optional[Identity],
        origin: Optional[ClientOrigin],
        *,
        target_identity_id: Optional[str] = None,
    ) -> None:
        await enforce_permission(
            self._policy,
            self._audit,
            self._logger,
            actor,
            Action.MANAGE_IDENTITIES,
            origin,
            target_identity_id=target_identity_id,
        )

    async def _load(self, identity_id: str) -> Identity:
        identity = await call_storage(
            "identities.find_by_id", self._repository.find_by_id(identity_id), self._timeout
        )
        if identity is None:
            raise NotFoundError("Identity", identity_id)
        return identity

    async def _record_failure(
        self,
        actor: Identity,
        attempted: str,
        origin: Optional[ClientOrigin],
        identity_id: Optional[str],
        error: Exception,
    ) -> None:
        self._logger.error(
            "operation_failed",
            extra={"actor_id": actor.identity_id, "action": attempted, "error": str(error)},
        )
        await self._audit.log_action(
            actor_id=actor.identity_id,
            action=AuditAction.OPERATION_FAILED,
            origin=origin,
            target_identity_id=identity_id,
            details={"attempted_action": attempted, "error": str(error)},
        )


def _jsonable(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {key: getattr(value, "value", value) for key, value in fields.items()}
