# change_control/main.py

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from change_control.api.dependencies import get_container
from change_control.api.middleware import (
    AccessLogMiddleware,
    ActorContextMiddleware,
    CorrelationIdMiddleware,
)
from change_control.api.responses import status_for
from change_control.api.routers import admin, health, manager, requests
from change_control.application.exceptions import ApplicationError
from change_control.application.results import OperationResult
from change_control.config.logging import configure_logging
from change_control.config.settings import get_settings
from change_control.domain.exceptions import DomainError
from change_control.governance.exceptions import GovernanceError
from change_control.infrastructure.database.session import dispose_engine, get_engine, init_models
from change_control.security.exceptions import SecurityError

logger = logging.getLogger(__name__)

settings = get_settings()
configure_logging(settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI):
    if settings.storage_backend == "database":
        await init_models(get_engine())
        logger.info("database_initialized", extra={"database_url": settings.database_url.split("@")[-1]})
    yield
    publisher = get_container().publisher
    close = getattr(publisher, "close", None)
    if close is not None:
        await close()
    if settings.storage_backend == "database":
        await dispose_engine()


app = FastAPI(
    title=settings.app_name,
    version=settings.version,
    debug=settings.debug,
    lifespan=lifespan,
)

# Middleware order: last added runs first (outermost). Request flow: CorrelationId -> ActorContext -> AccessLog.
app.add_middleware(AccessLogMiddleware)
app.add_middleware(ActorContextMiddleware)
app.add_middleware(CorrelationIdMiddleware)


def _failure_response(exc: Exception) -> JSONResponse:
    result = OperationResult.failure(exc)
    return JSONResponse(status_code=status_for(result), content=result.to_dict())


@app.exception_handler(DomainError)
async def domain_error_handler(request, exc: DomainError):
    return _failure_response(exc)


@app.exception_handler(SecurityError)
async def security_error_handler(request, exc: SecurityError):
    return _failure_response(exc)


@app.exception_handler(ApplicationError)
async def application_error_handler(request, exc: ApplicationError):
    return _failure_response(exc)


@app.exception_handler(GovernanceError)
async def governance_error_handler(request, exc: GovernanceError):
    return _failure_response(exc)


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()) if part not in ("body", "query"))
    message = first.get("msg", "Invalid request")
    return JSONResponse(
        status_code=400,
        content={
            "ok": False,
            "error_kind": "ValidationError",
            "message": f"{location}: {message}" if location else message,
        },
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request, exc: Exception):
    logger.exception("unhandled_error", extra={"path": request.url.path})
    return JSONResponse(
        status_code=500,
        content={"ok": False, "error_kind": "InternalError", "message": "Internal server error"},
    )


# Routers: /health, /requests, /manager, /admin
app.include_router(health.router)
app.include_router(requests.router, prefix="/requests")
app.include_router(manager.router, prefix="/manager")
app.include_router(admin.router, prefix="/admin")
