"""Governance: append-only audit trail. No FastAPI."""

from change_control.governance.audit_logger import AuditTrail
from change_control.governance.audit_models import (
    AuditAction,
    AuditQuery,
    AuditRecord,
    ClientOrigin,
)
from change_control.governance.audit_repository import AppendOnlyStore, AuditRepository
from change_control.governance.exceptions import GovernanceError, ImmutableRecordError

__all__ = [
    "AppendOnlyStore",
    "AuditAction",
    "AuditQuery",
    "AuditRecord",
    "AuditRepository",
    "AuditTrail",
    "ClientOrigin",
    "GovernanceError",
    "ImmutableRecordError",
]
