"""FastAPI dependency injection: service container, acting identity, client origin."""

import logging
from dataclasses import dataclass
from typing import Annotated, Optional

from fastapi import Depends, Request

from change_control.application.admin_service import AdministrationService
from change_control.application.identity_service import IdentityProvisioningService
from change_control.application.notifications import NotificationPublisher
from change_control.application.request_lifecycle import RequestLifecycle
from change_control.config.settings import AppSettings, get_settings
from change_control.domain.models.identity import Identity
from change_control.governance.audit_logger import AuditTrail
from change_control.governance.audit_models import ClientOrigin
from change_control.infrastructure.database.audit_repository_db import DbAuditRepository
from change_control.infrastructure.database.identity_repository_db import DbIdentityRepository
from change_control.infrastructure.database.request_repository_db import DbRequestRepository
from change_control.infrastructure.database.session import get_session_factory
from change_control.infrastructure.memory.audit_repository_memory import InMemoryAuditRepository
from change_control.infrastructure.memory.identity_repository_memory import InMemoryIdentityRepository
from change_control.infrastructure.memory.request_repository_memory import InMemoryRequestRepository
from change_control.infrastructure.messaging.rabbitmq_publisher import RabbitMQPublisher
from change_control.security.credentials import Pbkdf2CredentialHasher
from change_control.security.rbac import AuthorizationPolicy


@dataclass
class ServiceContainer:
    lifecycle: RequestLifecycle
    identities: IdentityProvisioningService
    administration: AdministrationService
    audit_trail: AuditTrail
    publisher: Optional[NotificationPublisher] = None


def build_container(
    settings: AppSettings,
    *,
    publisher: Optional[NotificationPublisher] = None,
) -> ServiceContainer:
    """Wire repositories and services for the configured storage backend."""
    if settings.storage_backend == "database":
        session_factory = get_session_factory()
        requests = DbRequestRepository(session_factory)
        identities = DbIdentityRepository(session_factory)
        audit_repository = DbAuditRepository(session_factory)
    else:
        requests = InMemoryRequestRepository()
        identities = InMemoryIdentityRepository()
        audit_repository = InMemoryAuditRepository()

    if publisher is None and settings.rabbitmq_url:
        publisher = RabbitMQPublisher(settings.rabbitmq_url)

    timeout = settings.storage_timeout_seconds
    policy = AuthorizationPolicy()
    audit_trail = AuditTrail(
        audit_repository,
        export_max_records=settings.audit_export_max_records,
        timeout_seconds=timeout,
        logger=logging.getLogger("change_control.audit"),
    )
    return ServiceContainer(
        lifecycle=RequestLifecycle(
            requests,
            audit_trail,
            policy,
            publisher=publisher,
            storage_timeout_seconds=timeout,
            logger=logging.getLogger("change_control.lifecycle"),
        ),
        identities=IdentityProvisioningService(
            identities,
            audit_trail,
            policy,
            hasher=Pbkdf2CredentialHasher(iterations=settings.credential_hash_iterations),
            storage_timeout_seconds=timeout,
            logger=logging.getLogger("change_control.identities"),
        ),
        administration=AdministrationService(
            requests,
            identities,
            audit_trail,
            policy,
            storage_timeout_seconds=timeout,
            logger=logging.getLogger("change_control.admin"),
        ),
        audit_trail=audit_trail,
        publisher=publisher,
    )


_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """Return singleton service container."""
    global _container
    if _container is None:
        _container = build_container(get_settings())
    return _container


def get_request_lifecycle(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> RequestLifecycle:
    return container.lifecycle


def get_identity_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> IdentityProvisioningService:
    return container.identities


def get_administration_service(
    container: Annotated[ServiceContainer, Depends(get_container)],
) -> AdministrationService:
    return container.administration


def get_actor(request: Request) -> Optional[Identity]:
    """Acting identity from request.state (set by middleware). None when unauthenticated."""
    return getattr(request.state, "actor", None)


def get_origin(request: Request) -> ClientOrigin:
    """Client origin from request.state (set by middleware)."""
    return getattr(request.state, "origin", None) or ClientOrigin()
