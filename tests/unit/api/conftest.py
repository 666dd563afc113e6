"""Fixtures for API unit tests: in-memory service container, mock publisher, AsyncClient, actor headers."""

from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from change_control.config.settings import AppSettings
from change_control.main import app


@pytest.fixture
def mock_publisher():
    """Mock RabbitMQ publisher so tests do not connect to real broker."""
    p = AsyncMock()
    p.publish = AsyncMock(return_value=True)
    return p


@pytest.fixture
def container(mock_publisher):
    from change_control.api.dependencies import build_container

    settings = AppSettings(storage_backend="memory", credential_hash_iterations=10000, rabbitmq_url="")
    return build_container(settings, publisher=mock_publisher)


@pytest.fixture
def app_with_overrides(container):
    """App wired to a fresh in-memory container per test."""
    from change_control.api import dependencies

    app.dependency_overrides[dependencies.get_container] = lambda: container
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
async def async_client(app_with_overrides):
    """Async HTTP client for testing; uses overridden app."""
    transport = ASGITransport(app=app_with_overrides)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def actor_headers(actor_id: str, role: str) -> dict:
    return {"X-Actor-ID": actor_id, "X-Actor-Role": role}


@pytest.fixture
def employee_headers():
    return actor_headers("emp-1", "Employee")


@pytest.fixture
def other_employee_headers():
    return actor_headers("emp-2", "Employee")


@pytest.fixture
def manager_headers():
    return actor_headers("mgr-1", "Manager")


@pytest.fixture
def admin_headers():
    return actor_headers("adm-1", "Admin")


@pytest.fixture
def auditor_headers():
    return actor_headers("cli-1", "Client")
