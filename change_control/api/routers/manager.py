"""Manager API router: route approved requests to audit."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends

from change_control.api.dependencies import get_actor, get_origin, get_request_lifecycle
from change_control.api.responses import respond
from change_control.api.routers.requests import serialize_request
from change_control.application.request_lifecycle import RequestLifecycle
from change_control.application.results import run_operation
from change_control.domain.models.identity import Identity
from change_control.governance.audit_models import ClientOrigin

router = APIRouter()


@router.post("/send-to-audit/{request_id}")
async def send_to_audit(
    request_id: str,
    lifecycle: Annotated[RequestLifecycle, Depends(get_request_lifecycle)],
    actor: Annotated[Optional[Identity], Depends(get_actor)],
    origin: Annotated[ClientOrigin, Depends(get_origin)],
):
    """Approved -> Sent to Audit."""
    result = await run_operation(lifecycle.send_to_audit(actor, request_id, origin))
    return respond(result, serialize_request)
