"""Bounded storage calls. Every repository call goes through call_storage so none can hang."""

import asyncio
import logging
from typing import Awaitable, TypeVar

from sqlalchemy.exc import InterfaceError, OperationalError

from change_control.application.exceptions import StorageUnavailableError

T = TypeVar("T")

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_TIMEOUT_SECONDS = 5.0

# Infrastructure faults treated as transient. Domain and governance errors pass through untouched.
_TRANSIENT_ERRORS = (OSError, OperationalError, InterfaceError)


async def call_storage(
    operation: str,
    awaitable: Awaitable[T],
    timeout_seconds: float = DEFAULT_STORAGE_TIMEOUT_SECONDS,
) -> T:
    """
    Await a storage call with a timeout. Timeouts and connection faults raise
    StorageUnavailableError (retryable); anything else propagates unchanged.
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        logger.warning(
            "storage_timeout",
            extra={"operation": operation, "timeout_seconds": timeout_seconds},
        )
        raise StorageUnavailableError(
            f"Storage call '{operation}' timed out after {timeout_seconds}s"
        ) from e
    except _TRANSIENT_ERRORS as e:
        logger.warning(
            "storage_unavailable",
            extra={"operation": operation, "error": str(e)},
        )
        raise StorageUnavailableError(f"Storage call '{operation}' failed: {e}") from e
