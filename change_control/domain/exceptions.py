"""Domain-specific exceptions. Pure domain layer, no infrastructure."""

from typing import Iterable, Optional


class DomainError(Exception):
    """Base for all domain-layer errors."""

    kind = "DomainError"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class DomainValidationError(DomainError):
    """Raised when domain validation rules are violated (payload-level)."""

    kind = "ValidationError"


class NotFoundError(DomainError):
    """Raised when a referenced Request or Identity does not exist."""

    kind = "NotFound"

    def __init__(self, entity: str, entity_id: str) -> None:
        self.entity = entity
        self.entity_id = entity_id
        super().__init__(f"{entity} not found: {entity_id}")


class InvalidTransitionError(DomainError):
    """Raised when a request status precondition is not met. Carries actual and expected status."""

    kind = "InvalidTransition"

    def __init__(
        self,
        message: str,
        *,
        current_status: Optional[str] = None,
        expected_statuses: Iterable[str] = (),
    ) -> None:
        self.current_status = current_status
        self.expected_statuses = tuple(expected_statuses)
        super().__init__(message)
