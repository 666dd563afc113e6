"""Validators for payload rules. Pure functions, no infrastructure or DB access."""

from typing import Any, Dict, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from change_control.domain.exceptions import DomainValidationError
from change_control.domain.models.request import (
    REJECTION_REASON_MAX_LENGTH,
    REJECTION_REASON_MIN_LENGTH,
)
from change_control.domain.schemas.identity import IdentityCreate, IdentityUpdate
from change_control.domain.schemas.request import RequestCreate, RequestUpdate

M = TypeVar("M", bound=BaseModel)

Payload = Union[Mapping[str, Any], BaseModel, None]


def _format_errors(exc: ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "__root__")
        message = error.get("msg", "invalid value")
        parts.append(f"{location}: {message}" if location else message)
    return ", ".join(parts)


def parse_payload(schema: Type[M], payload: Payload) -> M:
    """Validate payload against schema. Raises DomainValidationError with all messages joined."""
    if isinstance(payload, schema):
        return payload
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(exclude_unset=True)
    if payload is None or not isinstance(payload, Mapping):
        raise DomainValidationError("Payload must be an object")
    try:
        return schema.model_validate(dict(payload))
    except ValidationError as e:
        raise DomainValidationError(_format_errors(e)) from e


def validate_request_create(payload: Payload) -> RequestCreate:
    """Validate a submission payload. Raises DomainValidationError if malformed."""
    return parse_payload(RequestCreate, payload)


def validate_request_update(payload: Payload) -> Dict[str, Any]:
    """Validate a partial update and return only the provided content fields."""
    model = parse_payload(RequestUpdate, payload)
    return model.model_dump(exclude_none=True)


def validate_rejection_reason(reason: Optional[str]) -> str:
    """Rejection reason must be 10-1000 characters after trimming. Returns the trimmed reason."""
    trimmed = (reason or "").strip()
    if len(trimmed) < REJECTION_REASON_MIN_LENGTH:
        raise DomainValidationError(
            "Please provide a detailed rejection reason "
            f"(at least {REJECTION_REASON_MIN_LENGTH} characters)"
        )
    if len(trimmed) > REJECTION_REASON_MAX_LENGTH:
        raise DomainValidationError(
            f"Rejection reason cannot exceed {REJECTION_REASON_MAX_LENGTH} characters"
        )
    return trimmed


def validate_identity_create(payload: Payload) -> IdentityCreate:
    return parse_payload(IdentityCreate, payload)


def validate_identity_update(payload: Payload) -> Dict[str, Any]:
    model = parse_payload(IdentityUpdate, payload)
    return model.model_dump(exclude_none=True)
