"""Shared fixtures: acting identities, a valid submission payload, in-memory stores and services."""

from unittest.mock import AsyncMock

import pytest

from change_control.application.request_lifecycle import RequestLifecycle
from change_control.domain.models.identity import Identity, Role
from change_control.governance.audit_logger import AuditTrail
from change_control.governance.audit_models import ClientOrigin
from change_control.infrastructure.memory.audit_repository_memory import InMemoryAuditRepository
from change_control.infrastructure.memory.request_repository_memory import InMemoryRequestRepository


def _payload():
    return {
        "title": "Upgrade database cluster",
        "description": "Upgrade the primary PostgreSQL cluster to version 16.",
        "change_type": "Database",
        "risk_level": "High",
        "environment": "Production",
        "planned_start_date": "2026-11-01T10:00:00Z",
        "planned_end_date": "2026-11-01T12:00:00Z",
        "implementation_plan": "Upgrade replicas one by one, then fail over.",
        "rollback_plan": "Fail back to the previous primary.",
        "testing_plan": "Run the regression suite against staging first.",
        "justification": "Current version reaches end of support.",
        "impact_assessment": "Short read-only window for reporting.",
        "affected_departments": ["Engineering", "Finance"],
        "priority": "High",
    }


@pytest.fixture
def request_payload():
    return _payload()


@pytest.fixture
def employee():
    return Identity(identity_id="emp-1", role=Role.EMPLOYEE)


@pytest.fixture
def other_employee():
    return Identity(identity_id="emp-2", role=Role.EMPLOYEE)


@pytest.fixture
def manager():
    return Identity(identity_id="mgr-1", role=Role.MANAGER)


@pytest.fixture
def admin():
    return Identity(identity_id="adm-1", role=Role.ADMIN)


@pytest.fixture
def auditor():
    """The Client role acts as external auditor."""
    return Identity(identity_id="cli-1", role=Role.CLIENT)


@pytest.fixture
def origin():
    return ClientOrigin(ip_address="198.51.100.4", user_agent="pytest", correlation_id="corr-1")


@pytest.fixture
def audit_repository():
    return InMemoryAuditRepository()


@pytest.fixture
def audit_trail(audit_repository):
    return AuditTrail(audit_repository)


@pytest.fixture
def request_repository():
    return InMemoryRequestRepository()


@pytest.fixture
def publisher():
    """Mock broker publisher so tests never connect to RabbitMQ."""
    p = AsyncMock()
    p.publish = AsyncMock(return_value=None)
    return p


@pytest.fixture
def lifecycle(request_repository, audit_trail, publisher):
    return RequestLifecycle(request_repository, audit_trail, publisher=publisher)
