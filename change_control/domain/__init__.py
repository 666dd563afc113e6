"""Domain layer: models, schemas, validators, exceptions. Pure business logic only."""

from change_control.domain.exceptions import (
    DomainError,
    DomainValidationError,
    InvalidTransitionError,
    NotFoundError,
)
from change_control.domain.models import (
    ChangeRequest,
    ChangeType,
    Environment,
    Identity,
    Priority,
    RequestStatus,
    RiskLevel,
    Role,
)
from change_control.domain.schemas import RequestCreate, RequestResponse, RequestUpdate

__all__ = [
    "ChangeRequest",
    "ChangeType",
    "DomainError",
    "DomainValidationError",
    "Environment",
    "Identity",
    "InvalidTransitionError",
    "NotFoundError",
    "Priority",
    "RequestCreate",
    "RequestResponse",
    "RequestStatus",
    "RequestUpdate",
    "RiskLevel",
    "Role",
]
