"""Domain models. Pure business entities."""

from change_control.domain.models.identity import Identity, Role
from change_control.domain.models.request import (
    ACTIVE_STATUSES,
    APPROVED_FAMILY,
    TERMINAL_STATUSES,
    ChangeRequest,
    ChangeType,
    Environment,
    Priority,
    RequestStatus,
    RiskLevel,
)

__all__ = [
    "ACTIVE_STATUSES",
    "APPROVED_FAMILY",
    "TERMINAL_STATUSES",
    "ChangeRequest",
    "ChangeType",
    "Environment",
    "Identity",
    "Priority",
    "RequestStatus",
    "RiskLevel",
    "Role",
]
