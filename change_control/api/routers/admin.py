"""Admin API router: identity management, analytics, audit log listing and export."""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Query

from change_control.api.dependencies import (
    get_actor,
    get_administration_service,
    get_identity_service,
    get_origin,
)
from change_control.api.responses import respond
from change_control.application.admin_service import AdministrationService
from change_control.application.identity_repository import IdentityFilter
from change_control.application.identity_service import IdentityProvisioningService
from change_control.application.results import Page, run_operation
from change_control.domain.models.identity import Identity, Role
from change_control.domain.schemas.identity import IdentityResponse
from change_control.governance.audit_models import AuditAction, AuditQuery, AuditRecord, ClientOrigin

router = APIRouter()

Actor = Annotated[Optional[Identity], Depends(get_actor)]
Origin = Annotated[ClientOrigin, Depends(get_origin)]
Identities = Annotated[IdentityProvisioningService, Depends(get_identity_service)]
Administration = Annotated[AdministrationService, Depends(get_administration_service)]


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def serialize_identity(identity: Identity) -> Dict[str, Any]:
    return IdentityResponse.from_domain(identity).model_dump(mode="json")


def serialize_identity_page(page: Page[Identity]) -> Dict[str, Any]:
    return {
        "items": [serialize_identity(i) for i in page.items],
        "total": page.total,
        "offset": page.offset,
        "limit": page.limit,
    }


def serialize_audit_page(page: Page[AuditRecord]) -> Dict[str, Any]:
    return {
        "items": [record.to_dict() for record in page.items],
        "total": page.total,
        "offset": page.offset,
        "limit": page.limit,
    }


# ---------------------------------------------------------------------------
# Identities
# ---------------------------------------------------------------------------

@router.get("/users")
async def list_users(
    identities: Identities,
    actor: Actor,
    origin: Origin,
    role: Optional[Role] = None,
    is_active: Optional[bool] = None,
    search: Optional[str] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    identity_filter = IdentityFilter(role=role, is_active=is_active, search=search or None)
    result = await run_operation(
        identities.list(actor, identity_filter, (page - 1) * limit, limit, origin)
    )
    return respond(result, serialize_identity_page)


@router.post("/users")
async def create_user(
    identities: Identities,
    actor: Actor,
    origin: Origin,
    payload: Annotated[Dict[str, Any], Body()],
):
    result = await run_operation(identities.create(actor, payload, origin))
    return respond(result, serialize_identity, success_status=201)


@router.get("/users/{identity_id}")
async def get_user(identity_id: str, identities: Identities, actor: Actor, origin: Origin):
    return respond(await run_operation(identities.get(actor, identity_id, origin)), serialize_identity)


@router.patch("/users/{identity_id}")
async def update_user(
    identity_id: str,
    identities: Identities,
    actor: Actor,
    origin: Origin,
    payload: Annotated[Dict[str, Any], Body()],
):
    result = await run_operation(identities.update(actor, identity_id, payload, origin))
    return respond(result, serialize_identity)


@router.post("/users/{identity_id}/activate")
async def activate_user(identity_id: str, identities: Identities, actor: Actor, origin: Origin):
    result = await run_operation(identities.activate(actor, identity_id, origin))
    return respond(result, serialize_identity)


@router.post("/users/{identity_id}/deactivate")
async def deactivate_user(identity_id: str, identities: Identities, actor: Actor, origin: Origin):
    result = await run_operation(identities.deactivate(actor, identity_id, origin))
    return respond(result, serialize_identity)


@router.delete("/users/{identity_id}")
async def delete_user(identity_id: str, identities: Identities, actor: Actor, origin: Origin):
    result = await run_operation(identities.delete(actor, identity_id, origin))
    return respond(result, serialize_identity)


# ---------------------------------------------------------------------------
# Analytics and audit log
# ---------------------------------------------------------------------------

@router.get("/analytics")
async def analytics(administration: Administration, actor: Actor, origin: Origin):
    return respond(await run_operation(administration.analytics(actor, origin)))


@router.get("/audit-logs")
async def list_audit_logs(
    administration: Administration,
    actor: Actor,
    origin: Origin,
    action: Optional[AuditAction] = None,
    actor_id: Optional[str] = None,
    request_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
):
    query = AuditQuery(
        actor_id=actor_id,
        action=action,
        request_id=request_id,
        start=_utc(start_date),
        end=_utc(end_date),
        offset=(page - 1) * limit,
        limit=limit,
    )
    result = await run_operation(administration.list_audit_logs(actor, query, origin))
    return respond(result, serialize_audit_page)


@router.get("/audit-logs/export")
async def export_audit_logs(
    administration: Administration,
    actor: Actor,
    origin: Origin,
    action: Optional[AuditAction] = None,
    actor_id: Optional[str] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
):
    """Flat rows, newest first, bounded by the configured export cap."""
    query = AuditQuery(actor_id=actor_id, action=action, start=_utc(start_date), end=_utc(end_date))
    result = await run_operation(administration.export_audit_logs(actor, query, origin))
    return respond(result, lambda rows: {"rows": rows, "count": len(rows)})
