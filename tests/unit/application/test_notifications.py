"""LifecycleNotifier: routing keys, idempotency keys, best-effort publishing."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

from change_control.application.notifications import EXCHANGE_CHANGE_REQUESTS, LifecycleNotifier, routing_key
from change_control.domain.models.request import ChangeRequest, ChangeType, RequestStatus, RiskLevel


def _request() -> ChangeRequest:
    now = datetime.now(timezone.utc)
    return ChangeRequest(
        request_id="req-1",
        title="Patch kernel",
        description="Apply the latest kernel security patch.",
        change_type=ChangeType.INFRASTRUCTURE,
        risk_level=RiskLevel.LOW,
        created_by="emp-1",
        status=RequestStatus.PENDING,
        created_at=now,
        updated_at=now,
    )


def test_routing_key():
    assert routing_key("approved") == "request.approved"


async def test_publishes_to_change_requests_exchange(publisher):
    notifier = LifecycleNotifier(publisher, MagicMock())
    assert await notifier.notify("created", _request(), "emp-1")
    exchange, key, message, idempotency_key = publisher.publish.call_args[0]
    assert exchange == EXCHANGE_CHANGE_REQUESTS
    assert key == "request.created"
    assert message["status"] == "Pending"
    assert message["actor_id"] == "emp-1"
    assert idempotency_key == "req-1:1:created"


async def test_no_publisher_is_noop():
    notifier = LifecycleNotifier(None)
    assert not notifier.enabled
    assert not await notifier.notify("created", _request(), "emp-1")


async def test_publish_failure_logged_and_swallowed():
    publisher = AsyncMock()
    publisher.publish = AsyncMock(side_effect=ConnectionError("broker down"))
    logger = MagicMock()
    notifier = LifecycleNotifier(publisher, logger)
    assert not await notifier.notify("approved", _request(), "mgr-1")
    logger.error.assert_called_once()
    assert logger.error.call_args[0][0] == "notification_publish_failed"
    assert logger.error.call_args[1]["extra"]["routing_key"] == "request.approved"
