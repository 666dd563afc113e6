"""
ORM-level append-only enforcement for audit records.

Mapper before_update / before_delete listeners fire before any SQL is emitted for a
loaded AuditRecordRow; the session do_orm_execute listener catches ORM-enabled bulk
update/delete statements aimed at AuditRecordRow or its Table. Both raise
ImmutableRecordError and abort the flush or statement. Raw SQL is left to the
database triggers in triggers.py.
"""

import logging

from sqlalchemy import event
from sqlalchemy.orm import Session

from change_control.governance.exceptions import ImmutableRecordError
from change_control.infrastructure.database.models import AuditRecordRow

logger = logging.getLogger(__name__)


def _blocked(entity_id: str, operation: str) -> ImmutableRecordError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "AuditRecord",
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ImmutableRecordError(entity_id, operation)


def _check_audit_record_update(mapper, connection, target):
    raise _blocked(str(target.id), "update")


def _check_audit_record_delete(mapper, connection, target):
    raise _blocked(str(target.id), "delete")


def _targets_audit_table(orm_execute_state) -> bool:
    if any(m.class_ is AuditRecordRow for m in orm_execute_state.all_mappers):
        return True
    table = getattr(orm_execute_state.statement, "table", None)
    return getattr(table, "name", None) == AuditRecordRow.__tablename__


def _check_bulk_statement(orm_execute_state):
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return
    if _targets_audit_table(orm_execute_state):
        raise _blocked("*", "update" if orm_execute_state.is_update else "delete")


def register_immutability_listeners() -> None:
    """Install the listeners. Idempotent; call once before any database operation."""
    if not event.contains(AuditRecordRow, "before_update", _check_audit_record_update):
        event.listen(AuditRecordRow, "before_update", _check_audit_record_update)
    if not event.contains(AuditRecordRow, "before_delete", _check_audit_record_delete):
        event.listen(AuditRecordRow, "before_delete", _check_audit_record_delete)
    if not event.contains(Session, "do_orm_execute", _check_bulk_statement):
        event.listen(Session, "do_orm_execute", _check_bulk_statement)


def unregister_immutability_listeners() -> None:
    """Remove the listeners. Tests only."""
    for target, name, fn in (
        (AuditRecordRow, "before_update", _check_audit_record_update),
        (AuditRecordRow, "before_delete", _check_audit_record_delete),
        (Session, "do_orm_execute", _check_bulk_statement),
    ):
        if event.contains(target, name, fn):
            event.remove(target, name, fn)
