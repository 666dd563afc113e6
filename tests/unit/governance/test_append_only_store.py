"""Append-only audit store: update and delete entry points are rejected and the record is unchanged."""

import pytest

from change_control.governance.audit_models import AuditAction, AuditQuery
from change_control.governance.exceptions import ImmutableRecordError


async def test_update_and_delete_rejected(audit_trail, audit_repository):
    record_id = await audit_trail.log_action(
        actor_id="mgr-1", action=AuditAction.REQUEST_APPROVED, request_id="req-1"
    )
    [original] = await audit_repository.query(AuditQuery())

    with pytest.raises(ImmutableRecordError) as exc_info:
        await audit_repository.update(record_id, actor_id="someone-else")
    assert exc_info.value.operation == "update"
    assert exc_info.value.record_id == record_id

    with pytest.raises(ImmutableRecordError):
        await audit_repository.replace(original)
    with pytest.raises(ImmutableRecordError) as exc_info:
        await audit_repository.delete(record_id)
    assert exc_info.value.operation == "delete"
    with pytest.raises(ImmutableRecordError):
        await audit_repository.delete_many(AuditQuery(actor_id="mgr-1"))

    [after] = await audit_repository.query(AuditQuery())
    assert after == original
    assert len(audit_repository) == 1


async def test_violation_logged(audit_repository, caplog):
    with caplog.at_level("ERROR"):
        with pytest.raises(ImmutableRecordError):
            await audit_repository.delete("rec-1")
    assert any(r.getMessage() == "immutability_violation_blocked" for r in caplog.records)
