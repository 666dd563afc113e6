"""Governance-layer exceptions. Typed, no HTTP."""


class GovernanceError(Exception):
    """Base for all governance-layer errors."""

    kind = "GovernanceError"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ImmutableRecordError(GovernanceError):
    """Raised on any attempt to update or delete a stored audit record. Always a programming error."""

    kind = "ImmutableRecordError"

    def __init__(self, record_id: str, operation: str) -> None:
        self.record_id = record_id
        self.operation = operation
        super().__init__(
            f"Audit record {record_id} is immutable; {operation} is not permitted"
        )
