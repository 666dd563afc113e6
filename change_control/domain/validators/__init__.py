"""Domain validators. Pure validation functions."""

from change_control.domain.validators.request_validator import (
    parse_payload,
    validate_identity_create,
    validate_identity_update,
    validate_rejection_reason,
    validate_request_create,
    validate_request_update,
)

__all__ = [
    "parse_payload",
    "validate_identity_create",
    "validate_identity_update",
    "validate_rejection_reason",
    "validate_request_create",
    "validate_request_update",
]
