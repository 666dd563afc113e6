"""Boundary envelope for core operations: {ok, data} or {ok: false, error_kind, message}."""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, Generic, List, Optional, TypeVar

from change_control.application.exceptions import ApplicationError
from change_control.domain.exceptions import DomainError
from change_control.governance.exceptions import GovernanceError
from change_control.security.exceptions import SecurityError

T = TypeVar("T")

# Typed errors a caller can act on. Anything else is a bug and propagates.
EXPECTED_ERRORS = (DomainError, SecurityError, ApplicationError, GovernanceError)


@dataclass(frozen=True)
class Page(Generic[T]):
    items: List[T]
    total: int
    offset: int
    limit: int


@dataclass(frozen=True)
class OperationResult(Generic[T]):
    ok: bool
    data: Optional[T] = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    retryable: bool = False
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, data: Optional[T] = None) -> "OperationResult[T]":
        return cls(ok=True, data=data)

    @classmethod
    def failure(cls, error: Exception) -> "OperationResult[T]":
        return cls(
            ok=False,
            error_kind=getattr(error, "kind", type(error).__name__),
            message=getattr(error, "message", str(error)),
            retryable=bool(getattr(error, "retryable", False)),
            details=error_details(error),
        )

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {"ok": True, "data": self.data}
        envelope: Dict[str, Any] = {
            "ok": False,
            "error_kind": self.error_kind,
            "message": self.message,
        }
        if self.retryable:
            envelope["retryable"] = True
        if self.details:
            envelope["details"] = self.details
        return envelope


def error_details(error: Exception) -> Dict[str, Any]:
    """Structured extras carried by typed errors (statuses, denial reason, required roles)."""
    details: Dict[str, Any] = {}
    current_status = getattr(error, "current_status", None)
    if current_status is not None:
        details["current_status"] = current_status
    expected = getattr(error, "expected_statuses", ())
    if expected:
        details["expected_statuses"] = list(expected)
    reason = getattr(error, "reason", None)
    if reason:
        details["reason"] = reason
    required_roles = getattr(error, "required_roles", ())
    if required_roles:
        details["required_roles"] = list(required_roles)
    return details


async def run_operation(awaitable: Awaitable[T]) -> OperationResult[T]:
    """Await a core operation and wrap its outcome. Only typed errors become failure results."""
    try:
        return OperationResult.success(await awaitable)
    except EXPECTED_ERRORS as e:
        return OperationResult.failure(e)
