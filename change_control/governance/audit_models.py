"""Immutable audit record model. Domain-level immutability."""

import copy
import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

UNKNOWN_ORIGIN = "unknown"


class AuditAction(str, Enum):
    """Closed set of audited actions."""

    # Authentication (recorded by the boundary layer)
    ACCOUNT_CREATED = "ACCOUNT_CREATED"
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"
    LOGOUT = "LOGOUT"

    # Request lifecycle
    REQUEST_CREATED = "REQUEST_CREATED"
    REQUEST_UPDATED = "REQUEST_UPDATED"
    REQUEST_APPROVED = "REQUEST_APPROVED"
    REQUEST_REJECTED = "REQUEST_REJECTED"
    REQUEST_SENT_TO_AUDIT = "REQUEST_SENT_TO_AUDIT"
    REQUEST_STARTED = "REQUEST_STARTED"
    REQUEST_COMPLETED = "REQUEST_COMPLETED"
    REQUEST_CANCELLED = "REQUEST_CANCELLED"
    REQUEST_SOLVED = "REQUEST_SOLVED"
    REQUEST_DELETED = "REQUEST_DELETED"

    # Denials and failures of guarded operations
    ACCESS_DENIED = "ACCESS_DENIED"
    OPERATION_FAILED = "OPERATION_FAILED"

    # Identity management
    USER_CREATED = "USER_CREATED"
    USER_UPDATED = "USER_UPDATED"
    USER_DELETED = "USER_DELETED"
    USER_DEACTIVATED = "USER_DEACTIVATED"
    USER_ACTIVATED = "USER_ACTIVATED"
    ADMIN_ACTION = "ADMIN_ACTION"
    PASSWORD_CHANGED = "PASSWORD_CHANGED"
    PROFILE_UPDATED = "PROFILE_UPDATED"


@dataclass(frozen=True)
class ClientOrigin:
    """Network origin of the caller, copied onto every audit record."""

    ip_address: str = UNKNOWN_ORIGIN
    user_agent: Optional[str] = None
    correlation_id: Optional[str] = None


def _freeze_details(details: Optional[Mapping[str, Any]]) -> Optional[Mapping[str, Any]]:
    if details is None:
        return None
    return MappingProxyType(copy.deepcopy(dict(details)))


@dataclass(frozen=True)
class AuditRecord:
    """
    Immutable audit record: who (actor), what (action, subject), when (UTC), where (origin), details.
    details is deep-copied and exposed read-only.
    """

    record_id: str
    actor_id: Optional[str]
    action: AuditAction
    ip_address: str
    timestamp_utc: datetime
    request_id: Optional[str] = None
    target_identity_id: Optional[str] = None
    user_agent: Optional[str] = None
    correlation_id: Optional[str] = None
    details: Optional[Mapping[str, Any]] = field(default=None)

    def __post_init__(self) -> None:
        object.__setattr__(self, "details", _freeze_details(self.details))

    def to_dict(self) -> Dict[str, Any]:
        """Structured representation for JSON logging and API responses."""
        return {
            "record_id": self.record_id,
            "actor_id": self.actor_id,
            "action": self.action.value,
            "request_id": self.request_id,
            "target_identity_id": self.target_identity_id,
            "ip_address": self.ip_address,
            "user_agent": self.user_agent,
            "correlation_id": self.correlation_id,
            "details": copy.deepcopy(dict(self.details)) if self.details is not None else None,
            "timestamp_utc": self.timestamp_utc.isoformat(),
        }

    def to_row(self) -> Dict[str, Optional[str]]:
        """Flattened tabular projection for export: scalar columns only, details as JSON text."""
        return {
            "timestamp_utc": self.timestamp_utc.isoformat(),
            "record_id": self.record_id,
            "actor_id": self.actor_id or "",
            "action": self.action.value,
            "request_id": self.request_id or "",
            "target_identity_id": self.target_identity_id or "",
            "ip_address": self.ip_address,
            "user_agent": self.user_agent or "",
            "correlation_id": self.correlation_id or "",
            "details": json.dumps(dict(self.details), sort_keys=True, default=str)
            if self.details is not None
            else "",
        }


@dataclass(frozen=True)
class AuditQuery:
    """Filters for reading the audit trail. Results are ordered newest first."""

    actor_id: Optional[str] = None
    action: Optional[AuditAction] = None
    request_id: Optional[str] = None
    target_identity_id: Optional[str] = None
    start: Optional[datetime] = None
    end: Optional[datetime] = None
    offset: int = 0
    limit: int = 50

    def matches(self, record: AuditRecord) -> bool:
        if self.actor_id is not None and record.actor_id != self.actor_id:
            return False
        if self.action is not None and record.action != self.action:
            return False
        if self.request_id is not None and record.request_id != self.request_id:
            return False
        if self.target_identity_id is not None and record.target_identity_id != self.target_identity_id:
            return False
        if self.start is not None and record.timestamp_utc < self.start:
            return False
        if self.end is not None and record.timestamp_utc > self.end:
            return False
        return True
