"""Security: authorization policy, credential hashing. No FastAPI."""

from change_control.security.credentials import CredentialHasher, Pbkdf2CredentialHasher
from change_control.security.rbac import (
    Action,
    AuthorizationPolicy,
    DenialReason,
    PolicyDecision,
    ReadScope,
)

__all__ = [
    "Action",
    "AuthorizationPolicy",
    "CredentialHasher",
    "DenialReason",
    "Pbkdf2CredentialHasher",
    "PolicyDecision",
    "ReadScope",
]
