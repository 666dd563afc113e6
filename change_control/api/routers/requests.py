"""Requests API router: submit, list, stats, read, update, lifecycle transitions, delete."""

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Optional

from fastapi import APIRouter, Body, Depends, Query

from change_control.api.dependencies import (
    get_actor,
    get_administration_service,
    get_origin,
    get_request_lifecycle,
)
from change_control.api.responses import respond
from change_control.application.admin_service import AdministrationService
from change_control.application.request_lifecycle import RequestLifecycle
from change_control.application.request_repository import RequestFilter
from change_control.application.results import Page, run_operation
from change_control.domain.models.identity import Identity
from change_control.domain.models.request import (
    ChangeRequest,
    ChangeType,
    Priority,
    RequestStatus,
    RiskLevel,
)
from change_control.domain.schemas.request import (
    CancelRequestBody,
    RejectRequestBody,
    RequestResponse,
)
from change_control.governance.audit_models import ClientOrigin

router = APIRouter()

Actor = Annotated[Optional[Identity], Depends(get_actor)]
Origin = Annotated[ClientOrigin, Depends(get_origin)]
Lifecycle = Annotated[RequestLifecycle, Depends(get_request_lifecycle)]


def _utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def serialize_request(request: ChangeRequest) -> Dict[str, Any]:
    return RequestResponse.from_domain(request).model_dump(mode="json")


def serialize_page(page: Page[ChangeRequest]) -> Dict[str, Any]:
    return {
        "items": [serialize_request(r) for r in page.items],
        "total": page.total,
        "offset": page.offset,
        "limit": page.limit,
    }


@router.post("/")
async def submit_request(
    lifecycle: Lifecycle,
    actor: Actor,
    origin: Origin,
    payload: Annotated[Dict[str, Any], Body()],
):
    """Submit a change request. Always created Pending."""
    result = await run_operation(lifecycle.submit(actor, payload, origin))
    return respond(result, serialize_request, success_status=201)


@router.get("/")
async def list_requests(
    lifecycle: Lifecycle,
    actor: Actor,
    origin: Origin,
    status: Annotated[Optional[List[RequestStatus]], Query()] = None,
    change_type: Optional[ChangeType] = None,
    risk_level: Optional[RiskLevel] = None,
    priority: Optional[Priority] = None,
    search: Optional[str] = None,
    created_from: Optional[datetime] = None,
    created_to: Optional[datetime] = None,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
):
    """List requests within the caller's read scope, newest first."""
    request_filter = RequestFilter(
        statuses=frozenset(status) if status else None,
        change_type=change_type,
        risk_level=risk_level,
        priority=priority,
        search=search.strip() if search and search.strip() else None,
        created_from=_utc(created_from),
        created_to=_utc(created_to),
    )
    result = await run_operation(
        lifecycle.list(actor, request_filter, (page - 1) * limit, limit, origin)
    )
    return respond(result, serialize_page)


@router.get("/stats")
async def request_stats(
    administration: Annotated[AdministrationService, Depends(get_administration_service)],
    actor: Actor,
    origin: Origin,
):
    """Distributions and 7-day trend over the caller's read scope."""
    return respond(await run_operation(administration.request_statistics(actor, origin)))


@router.get("/{request_id}")
async def get_request(request_id: str, lifecycle: Lifecycle, actor: Actor, origin: Origin):
    return respond(await run_operation(lifecycle.get(actor, request_id, origin)), serialize_request)


@router.patch("/{request_id}")
async def update_request(
    request_id: str,
    lifecycle: Lifecycle,
    actor: Actor,
    origin: Origin,
    payload: Annotated[Dict[str, Any], Body()],
):
    """Update content fields. Status can only change through the transition endpoints."""
    result = await run_operation(lifecycle.update(actor, request_id, payload, origin))
    return respond(result, serialize_request)


@router.post("/{request_id}/approve")
async def approve_request(request_id: str, lifecycle: Lifecycle, actor: Actor, origin: Origin):
    return respond(await run_operation(lifecycle.approve(actor, request_id, origin)), serialize_request)


@router.post("/{request_id}/reject")
async def reject_request(
    request_id: str,
    lifecycle: Lifecycle,
    actor: Actor,
    origin: Origin,
    body: Optional[RejectRequestBody] = None,
):
    reason = body.rejection_reason if body else ""
    result = await run_operation(lifecycle.reject(actor, request_id, reason, origin))
    return respond(result, serialize_request)


@router.post("/{request_id}/start")
async def start_implementation(request_id: str, lifecycle: Lifecycle, actor: Actor, origin: Origin):
    result = await run_operation(lifecycle.start_implementation(actor, request_id, origin))
    return respond(result, serialize_request)


@router.post("/{request_id}/complete")
async def complete_request(request_id: str, lifecycle: Lifecycle, actor: Actor, origin: Origin):
    return respond(await run_operation(lifecycle.complete(actor, request_id, origin)), serialize_request)


@router.post("/{request_id}/cancel")
async def cancel_request(
    request_id: str,
    lifecycle: Lifecycle,
    actor: Actor,
    origin: Origin,
    body: Optional[CancelRequestBody] = None,
):
    reason = body.reason if body else None
    result = await run_operation(lifecycle.cancel(actor, request_id, reason, origin))
    return respond(result, serialize_request)


@router.post("/{request_id}/resolve")
async def resolve_audit(request_id: str, lifecycle: Lifecycle, actor: Actor, origin: Origin):
    """Mark an audited request Solved."""
    result = await run_operation(lifecycle.resolve_audit(actor, request_id, origin))
    return respond(result, serialize_request)


@router.delete("/{request_id}")
async def delete_request(request_id: str, lifecycle: Lifecycle, actor: Actor, origin: Origin):
    return respond(await run_operation(lifecycle.delete(actor, request_id, origin)), serialize_request)
