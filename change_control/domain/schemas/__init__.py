"""Pydantic schemas for payload validation and read models."""

from change_control.domain.schemas.identity import (
    IdentityCreate,
    IdentityResponse,
    IdentityUpdate,
)
from change_control.domain.schemas.request import (
    CancelRequestBody,
    RejectRequestBody,
    RequestCreate,
    RequestResponse,
    RequestUpdate,
)

__all__ = [
    "CancelRequestBody",
    "IdentityCreate",
    "IdentityResponse",
    "IdentityUpdate",
    "RejectRequestBody",
    "RequestCreate",
    "RequestResponse",
    "RequestUpdate",
]
