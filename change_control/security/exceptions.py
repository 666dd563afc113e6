"""Security-layer exceptions. Typed, no HTTP."""

from typing import Iterable, Optional


class SecurityError(Exception):
    """Base for all security-layer errors."""

    kind = "SecurityError"

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class ForbiddenError(SecurityError):
    """Raised when the authorization policy denies an action. Never retried."""

    kind = "Forbidden"

    def __init__(
        self,
        message: str,
        *,
        reason: Optional[str] = None,
        action: Optional[str] = None,
        required_roles: Iterable[str] = (),
    ) -> None:
        self.reason = reason
        self.action = action
        self.required_roles = tuple(required_roles)
        super().__init__(message)


class CredentialError(SecurityError):
    """Raised when a credential cannot be hashed or an encoded hash is malformed."""
