"""API middleware: correlation ID, acting identity and client origin, access log."""

import logging
import uuid
from typing import Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from change_control.core.context import actor_id_ctx, correlation_id_ctx
from change_control.domain.models.identity import Identity, Role
from change_control.governance.audit_models import UNKNOWN_ORIGIN, ClientOrigin

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
ACTOR_ID_HEADER = "X-Actor-ID"
ACTOR_ROLE_HEADER = "X-Actor-Role"


def get_client_ip(request: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the socket peer."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = request.headers.get("X-Real-IP")
    if real_ip and real_ip.strip():
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_ORIGIN


def parse_actor(actor_id: Optional[str], role: Optional[str]) -> Optional[Identity]:
    """Identity asserted by the upstream authentication gateway, or None if absent or malformed."""
    if not actor_id or not actor_id.strip() or not role:
        return None
    try:
        parsed_role = Role(role.strip())
    except ValueError:
        return None
    return Identity(identity_id=actor_id.strip(), role=parsed_role)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Generate or preserve correlation ID; attach to request.state, response header, and logging context."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        correlation_id_ctx.set(correlation_id)

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class ActorContextMiddleware(BaseHTTPMiddleware):
    """Attach the acting identity (possibly None) and client origin to request.state."""

    async def dispatch(self, request: Request, call_next) -> Response:
        actor = parse_actor(
            request.headers.get(ACTOR_ID_HEADER),
            request.headers.get(ACTOR_ROLE_HEADER),
        )
        request.state.actor = actor
        request.state.origin = ClientOrigin(
            ip_address=get_client_ip(request),
            user_agent=request.headers.get("User-Agent"),
            correlation_id=getattr(request.state, "correlation_id", None),
        )
        actor_id_ctx.set(actor.identity_id if actor else None)
        return await call_next(request)


class AccessLogMiddleware(BaseHTTPMiddleware):
    """After response: log one structured access line (path, method, status_code, actor)."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        actor = getattr(request.state, "actor", None)
        logger.info(
            "request_access",
            extra={
                "path": request.url.path,
                "method": request.method,
                "status_code": response.status_code,
                "actor_role": actor.role.value if actor else None,
            },
        )
        return response
