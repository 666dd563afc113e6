"""OperationResult to HTTP translation. The only place error kinds become status codes."""

from typing import Any, Callable, Optional

from fastapi.responses import JSONResponse

from change_control.application.results import OperationResult
from change_control.security.rbac import DenialReason

STATUS_BY_KIND = {
    "ValidationError": 400,
    "NotFound": 404,
    "Forbidden": 403,
    "InvalidTransition": 409,
    "StorageUnavailable": 503,
    "ImmutableRecordError": 500,
}


def status_for(result: OperationResult) -> int:
    if result.details.get("reason") == DenialReason.NOT_AUTHENTICATED.value:
        return 401
    return STATUS_BY_KIND.get(result.error_kind or "", 500)


def respond(
    result: OperationResult,
    serialize: Optional[Callable[[Any], Any]] = None,
    *,
    success_status: int = 200,
) -> JSONResponse:
    """Envelope {ok, data} on success, {ok: false, error_kind, message} on failure."""
    if result.ok:
        data = serialize(result.data) if serialize is not None else result.data
        return JSONResponse(status_code=success_status, content={"ok": True, "data": data})
    return JSONResponse(status_code=status_for(result), content=result.to_dict())
