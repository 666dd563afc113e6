"""Application-layer exceptions. Do not reuse domain exceptions."""


class ApplicationError(Exception):
    """Base for all application-layer errors."""

    kind = "ApplicationError"
    retryable = False

    def __init__(self, message: str) -> None:
        self.message = message
        super().__init__(message)


class StorageUnavailableError(ApplicationError):
    """Raised when a storage call times out or the backend is unreachable. Safe to retry with backoff."""

    kind = "StorageUnavailable"
    retryable = True
