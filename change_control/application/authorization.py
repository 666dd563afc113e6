"""Status-free permission checks shared by the admin services. Denials are audited before raising."""

import logging
from typing import Optional

from change_control.domain.models.identity import Identity
from change_control.governance.audit_logger import AuditTrail
from change_control.governance.audit_models import AuditAction, ClientOrigin
from change_control.security.exceptions import ForbiddenError
from change_control.security.rbac import Action, AuthorizationPolicy


async def enforce_permission(
    policy: AuthorizationPolicy,
    audit_trail: AuditTrail,
    logger: logging.Logger,
    actor: Optional[Identity],
    action: Action,
    origin: Optional[ClientOrigin] = None,
    *,
    target_identity_id: Optional[str] = None,
) -> Identity:
    """Return the actor if allowed; otherwise write one ACCESS_DENIED record and raise ForbiddenError."""
    decision = policy.decide_for(actor, action)
    if decision.allowed:
        return actor
    actor_id = actor.identity_id if actor is not None else None
    reason = decision.reason.value if decision.reason else None
    logger.warning(
        "access_denied",
        extra={"actor_id": actor_id, "action": action.value, "reason": reason},
    )
    await audit_trail.log_action(
        actor_id=actor_id,
        action=AuditAction.ACCESS_DENIED,
        origin=origin,
        target_identity_id=target_identity_id,
        details={"attempted_action": action.value, "reason": reason, "message": decision.message},
    )
    raise ForbiddenError(
        decision.message,
        reason=reason,
        action=action.value,
        required_roles=decision.required_roles,
    )
