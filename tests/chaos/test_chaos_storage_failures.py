"""
Chaos: request storage hangs or faults mid-operation.
System must: bound every call, surface a retryable StorageUnavailableError, audit the failure, leave state untouched.
"""

import asyncio

import pytest

from change_control.application.exceptions import StorageUnavailableError
from change_control.application.request_lifecycle import RequestLifecycle
from change_control.application.results import run_operation
from change_control.domain.models.request import RequestStatus
from change_control.governance.audit_models import AuditAction, AuditQuery
from change_control.infrastructure.memory.request_repository_memory import InMemoryRequestRepository


class HangingReadRepository(InMemoryRequestRepository):
    """find_by_id never answers within the timeout."""

    hang = False

    async def find_by_id(self, request_id):
        if self.hang:
            await asyncio.sleep(5)
        return await super().find_by_id(request_id)


class FaultyWriteRepository(InMemoryRequestRepository):
    """compare_and_set fails like a dropped database connection."""

    async def compare_and_set(self, request, expected_version):
        raise OSError("connection reset by peer")


async def test_hanging_read_times_out_and_is_audited(audit_trail, employee, manager, request_payload):
    repo = HangingReadRepository()
    lifecycle = RequestLifecycle(repo, audit_trail, storage_timeout_seconds=0.05)
    request = await lifecycle.submit(employee, request_payload)

    repo.hang = True
    result = await run_operation(lifecycle.approve(manager, request.request_id))
    assert not result.ok
    assert result.error_kind == "StorageUnavailable"
    assert result.retryable

    [failed] = await audit_trail.query(AuditQuery(action=AuditAction.OPERATION_FAILED))
    assert failed.actor_id == manager.identity_id
    assert failed.request_id == request.request_id
    assert failed.details["attempted_action"] == "approve_request"


async def test_write_fault_leaves_request_unchanged(audit_trail, employee, manager, request_payload):
    repo = FaultyWriteRepository()
    lifecycle = RequestLifecycle(repo, audit_trail)
    request = await lifecycle.submit(employee, request_payload)

    with pytest.raises(StorageUnavailableError) as exc_info:
        await lifecycle.approve(manager, request.request_id)
    assert exc_info.value.retryable

    stored = await repo.find_by_id(request.request_id)
    assert stored.status == RequestStatus.PENDING
    assert stored.version == 1
    assert stored.approved_by is None
    actions = [r.action for r in await audit_trail.query(AuditQuery(request_id=request.request_id))]
    assert actions == [AuditAction.OPERATION_FAILED, AuditAction.REQUEST_CREATED]


async def test_hanging_list_is_audited(audit_trail, manager):
    class HangingListRepository(InMemoryRequestRepository):
        async def find_by_filter(self, request_filter, offset=0, limit=50):
            await asyncio.sleep(5)
            return []

    lifecycle = RequestLifecycle(HangingListRepository(), audit_trail, storage_timeout_seconds=0.05)
    with pytest.raises(StorageUnavailableError):
        await lifecycle.list(manager)
    [failed] = await audit_trail.query(AuditQuery())
    assert failed.action == AuditAction.OPERATION_FAILED
    assert failed.details["attempted_action"] == "read_request"
