"""Best-effort lifecycle notifications. Publish failure never fails the primary operation."""

import logging
from typing import Any, Dict, Optional, Protocol

from change_control.domain.models.request import ChangeRequest

EXCHANGE_CHANGE_REQUESTS = "change_requests"


class NotificationPublisher(Protocol):
    async def publish(
        self,
        exchange_name: str,
        routing_key: str,
        message: Dict[str, Any],
        idempotency_key: str,
    ) -> None:
        ...


def routing_key(event: str) -> str:
    return f"request.{event}"


class LifecycleNotifier:
    """Publishes request.<event> messages; with no publisher configured it does nothing."""

    def __init__(
        self,
        publisher: Optional[NotificationPublisher],
        logger: Optional[logging.Logger] = None,
        exchange_name: str = EXCHANGE_CHANGE_REQUESTS,
    ) -> None:
        self._publisher = publisher
        self._logger = logger or logging.getLogger(__name__)
        self._exchange = exchange_name

    @property
    def enabled(self) -> bool:
        return self._publisher is not None

    async def notify(self, event: str, request: ChangeRequest, actor_id: Optional[str]) -> bool:
        """Returns True if the message was handed to the broker."""
        if self._publisher is None:
            return False
        message = {
            "event": event,
            "request_id": request.request_id,
            "title": request.title,
            "status": request.status.value,
            "created_by": request.created_by,
            "actor_id": actor_id,
            "version": request.version,
        }
        try:
            await self._publisher.publish(
                self._exchange,
                routing_key(event),
                message,
                f"{request.request_id}:{request.version}:{event}",
            )
        except Exception as e:
            self._logger.error(
                "notification_publish_failed",
                extra={
                    "request_id": request.request_id,
                    "routing_key": routing_key(event),
                    "error": str(e),
                },
            )
            # Do not re-raise: notification failure does not fail the transition.
            return False
        self._logger.info(
            "notification_published",
            extra={"request_id": request.request_id, "routing_key": routing_key(event)},
        )
        return True
