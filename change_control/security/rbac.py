"""Role-based authorization policy for change requests. Pure and stateless. No FastAPI."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from change_control.domain.models.identity import Identity, Role
from change_control.domain.models.request import (
    ACTIVE_STATUSES,
    APPROVED_FAMILY,
    RequestStatus,
)
from change_control.security.exceptions import ForbiddenError


class Action(str, Enum):
    CREATE_REQUEST = "create_request"
    READ_REQUEST = "read_request"
    UPDATE_REQUEST = "update_request"
    APPROVE_REQUEST = "approve_request"
    REJECT_REQUEST = "reject_request"
    SEND_TO_AUDIT = "send_to_audit"
    START_IMPLEMENTATION = "start_implementation"
    COMPLETE_REQUEST = "complete_request"
    CANCEL_REQUEST = "cancel_request"
    RESOLVE_AUDIT = "resolve_audit"
    DELETE_REQUEST = "delete_request"
    MANAGE_IDENTITIES = "manage_identities"
    VIEW_ANALYTICS = "view_analytics"
    VIEW_AUDIT_LOG = "view_audit_log"
    EXPORT_AUDIT_LOG = "export_audit_log"


class DenialReason(str, Enum):
    NOT_AUTHENTICATED = "NotAuthenticated"
    ROLE_NOT_PERMITTED = "RoleNotPermitted"
    INVALID_STATE_FOR_ACTION = "InvalidStateForAction"
    NOT_OWNER = "NotOwner"


@dataclass(frozen=True)
class _Rule:
    """
    One row of the capability matrix.

    roles: roles allowed through the privileged path.
    role_statuses: per-role status restriction on the privileged path (None = any status).
    owner_statuses: statuses in which the creator may act (None = no owner path).
    """

    roles: FrozenSet[Role]
    role_statuses: Dict[Role, FrozenSet[RequestStatus]] = field(default_factory=dict)
    owner_statuses: Optional[FrozenSet[RequestStatus]] = None


_ALL_STATUSES: FrozenSet[RequestStatus] = frozenset(RequestStatus)
_PENDING = frozenset({RequestStatus.PENDING})

# Capability matrix:
# Action                Roles                       Status
# create_request        Employee, Manager, Admin    n/a
# read_request          Manager, Admin              any
#                       Client                      Approved, Completed, Sent to Audit
#                       creator                     any
# update_request        Manager, Admin              any
#                       creator                     Pending, Sent to Audit
# approve/reject        Manager                     Pending
# send_to_audit         Manager, Admin              Approved
# start_implementation  Manager, Admin              Approved
# complete_request      Manager, Admin              Approved, In Progress
# cancel_request        Manager, Admin              any active status
#                       creator                     Pending
# resolve_audit         Client, Admin               Sent to Audit
# delete_request        Admin                       any
#                       creator                     Pending
# identities/analytics/audit log: Admin only
_MATRIX: Dict[Action, _Rule] = {
    Action.CREATE_REQUEST: _Rule(roles=frozenset({Role.EMPLOYEE, Role.MANAGER, Role.ADMIN})),
    Action.READ_REQUEST: _Rule(
        roles=frozenset({Role.MANAGER, Role.ADMIN, Role.CLIENT}),
        role_statuses={Role.CLIENT: APPROVED_FAMILY},
        owner_statuses=_ALL_STATUSES,
    ),
    Action.UPDATE_REQUEST: _Rule(
        roles=frozenset({Role.MANAGER, Role.ADMIN}),
        owner_statuses=frozenset({RequestStatus.PENDING, RequestStatus.SENT_TO_AUDIT}),
    ),
    Action.APPROVE_REQUEST: _Rule(
        roles=frozenset({Role.MANAGER}),
        role_statuses={Role.MANAGER: _PENDING},
    ),
    Action.REJECT_REQUEST: _Rule(
        roles=frozenset({Role.MANAGER}),
        role_statuses={Role.MANAGER: _PENDING},
    ),
    Action.SEND_TO_AUDIT: _Rule(
        roles=frozenset({Role.MANAGER, Role.ADMIN}),
        role_statuses={
            Role.MANAGER: frozenset({RequestStatus.APPROVED}),
            Role.ADMIN: frozenset({RequestStatus.APPROVED}),
        },
    ),
    Action.START_IMPLEMENTATION: _Rule(
        roles=frozenset({Role.MANAGER, Role.ADMIN}),
        role_statuses={
            Role.MANAGER: frozenset({RequestStatus.APPROVED}),
            Role.ADMIN: frozenset({RequestStatus.APPROVED}),
        },
    ),
    Action.COMPLETE_REQUEST: _Rule(
        roles=frozenset({Role.MANAGER, Role.ADMIN}),
        role_statuses={
            Role.MANAGER: frozenset({RequestStatus.APPROVED, RequestStatus.IN_PROGRESS}),
            Role.ADMIN: frozenset({RequestStatus.APPROVED, RequestStatus.IN_PROGRESS}),
        },
    ),
    Action.CANCEL_REQUEST: _Rule(
        roles=frozenset({Role.MANAGER, Role.ADMIN}),
        role_statuses={Role.MANAGER: ACTIVE_STATUSES, Role.ADMIN: ACTIVE_STATUSES},
        owner_statuses=_PENDING,
    ),
    Action.RESOLVE_AUDIT: _Rule(
        roles=frozenset({Role.CLIENT, Role.ADMIN}),
        role_statuses={
            Role.CLIENT: frozenset({RequestStatus.SENT_TO_AUDIT}),
            Role.ADMIN: frozenset({RequestStatus.SENT_TO_AUDIT}),
        },
    ),
    Action.DELETE_REQUEST: _Rule(roles=frozenset({Role.ADMIN}), owner_statuses=_PENDING),
    Action.MANAGE_IDENTITIES: _Rule(roles=frozenset({Role.ADMIN})),
    Action.VIEW_ANALYTICS: _Rule(roles=frozenset({Role.ADMIN})),
    Action.VIEW_AUDIT_LOG: _Rule(roles=frozenset({Role.ADMIN})),
    Action.EXPORT_AUDIT_LOG: _Rule(roles=frozenset({Role.ADMIN})),
}


@dataclass(frozen=True)
class PolicyDecision:
    """Allow, or Deny with a typed reason and enough detail for the caller to understand why."""

    allowed: bool
    action: Action
    reason: Optional[DenialReason] = None
    message: str = ""
    required_roles: Tuple[str, ...] = ()
    required_statuses: Tuple[str, ...] = ()

    @classmethod
    def allow(cls, action: Action) -> "PolicyDecision":
        return cls(allowed=True, action=action)

    @classmethod
    def deny(
        cls,
        action: Action,
        reason: DenialReason,
        message: str,
        *,
        required_roles: Tuple[str, ...] = (),
        required_statuses: Tuple[str, ...] = (),
    ) -> "PolicyDecision":
        return cls(
            allowed=False,
            action=action,
            reason=reason,
            message=message,
            required_roles=required_roles,
            required_statuses=required_statuses,
        )

    def raise_if_denied(self) -> None:
        """Raise ForbiddenError for any denial."""
        if not self.allowed:
            raise ForbiddenError(
                self.message,
                reason=self.reason.value if self.reason else None,
                action=self.action.value,
                required_roles=self.required_roles,
            )


@dataclass(frozen=True)
class ReadScope:
    """Which requests a role may list: own only, and/or restricted to statuses."""

    own_only: bool = False
    statuses: Optional[FrozenSet[RequestStatus]] = None


def _sorted_values(items) -> Tuple[str, ...]:
    return tuple(sorted(item.value for item in items))


class AuthorizationPolicy:
    """
    Pure decision function over the capability matrix.
    Never writes audit records; the caller records both allow and deny outcomes.
    Evaluation order: authentication, role/ownership, then status.
    """

    def decide(
        self,
        role: Optional[Role],
        action: Action,
        current_status: Optional[RequestStatus] = None,
        *,
        is_owner: bool = False,
    ) -> PolicyDecision:
        rule = _MATRIX.get(action)
        if role is None:
            return PolicyDecision.deny(
                action,
                DenialReason.NOT_AUTHENTICATED,
                "Not authorized - no authenticated identity",
            )
        required_roles = _sorted_values(rule.roles) if rule else ()
        if rule is None:
            return PolicyDecision.deny(
                action,
                DenialReason.ROLE_NOT_PERMITTED,
                f"Role '{role.value}' is not permitted to perform '{action.value}'",
            )

        if role in rule.roles:
            allowed_statuses = rule.role_statuses.get(role)
            if allowed_statuses is None or current_status is None:
                return PolicyDecision.allow(action)
            if current_status in allowed_statuses:
                return PolicyDecision.allow(action)
            # Privileged path failed on status; the owner path may still apply.
            if is_owner and rule.owner_statuses and current_status in rule.owner_statuses:
                return PolicyDecision.allow(action)
            return self._invalid_state(action, current_status, allowed_statuses)

        if rule.owner_statuses is not None:
            if not is_owner:
                return PolicyDecision.deny(
                    action,
                    DenialReason.NOT_OWNER,
                    f"Not authorized to {_verb(action)} this request; "
                    f"only its creator or one of roles {', '.join(required_roles)} may",
                    required_roles=required_roles,
                )
            if current_status is None or current_status in rule.owner_statuses:
                return PolicyDecision.allow(action)
            return self._invalid_state(action, current_status, rule.owner_statuses)

        return PolicyDecision.deny(
            action,
            DenialReason.ROLE_NOT_PERMITTED,
            f"Role '{role.value}' is not permitted to perform '{action.value}'; "
            f"required role: {', '.join(required_roles)}",
            required_roles=required_roles,
        )

    def decide_for(
        self,
        actor: Optional[Identity],
        action: Action,
        current_status: Optional[RequestStatus] = None,
        *,
        owner_id: Optional[str] = None,
    ) -> PolicyDecision:
        """Decide for an acting identity. Missing or inactive identities are NotAuthenticated."""
        if actor is None or not actor.is_active:
            return self.decide(None, action, current_status)
        is_owner = owner_id is not None and owner_id == actor.identity_id
        return self.decide(actor.role, action, current_status, is_owner=is_owner)

    def check_permission(self, actor: Optional[Identity], action: Action) -> None:
        """Raises ForbiddenError if the actor's role may not perform a status-free action."""
        self.decide_for(actor, action).raise_if_denied()

    def read_scope(self, role: Role) -> ReadScope:
        if role in (Role.MANAGER, Role.ADMIN):
            return ReadScope()
        if role == Role.CLIENT:
            return ReadScope(statuses=APPROVED_FAMILY)
        return ReadScope(own_only=True)

    @staticmethod
    def _invalid_state(
        action: Action,
        current_status: RequestStatus,
        allowed: FrozenSet[RequestStatus],
    ) -> PolicyDecision:
        expected = _sorted_values(allowed)
        return PolicyDecision.deny(
            action,
            DenialReason.INVALID_STATE_FOR_ACTION,
            f"Cannot {_verb(action)} request with status '{current_status.value}'; "
            f"required status: {', '.join(expected)}",
            required_statuses=expected,
        )


def _verb(action: Action) -> str:
    return action.value.replace("_request", "").replace("_", " ")
