"""PBKDF2 credential hashing used at identity provisioning time. No global state."""

import base64
import os
from typing import Protocol

from cryptography.exceptions import InvalidKey
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from change_control.security.exceptions import CredentialError

ALGORITHM = "pbkdf2_sha256"
DEFAULT_ITERATIONS = 480000
SALT_BYTES = 16
KEY_LENGTH = 32


class CredentialHasher(Protocol):
    """Turns a plaintext secret into an encoded hash. Injected into identity provisioning."""

    def hash(self, secret: str) -> str:
        ...

    def verify(self, secret: str, encoded: str) -> bool:
        ...


def _kdf(salt: bytes, iterations: int) -> PBKDF2HMAC:
    return PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )


def _b64(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii")


class Pbkdf2CredentialHasher:
    """
    PBKDF2-HMAC-SHA256 with a random per-secret salt.
    Encoded form: pbkdf2_sha256$<iterations>$<salt b64>$<hash b64>
    """

    def __init__(self, iterations: int = DEFAULT_ITERATIONS) -> None:
        if iterations < 1:
            raise CredentialError("iterations must be positive")
        self._iterations = iterations

    def hash(self, secret: str) -> str:
        if not secret:
            raise CredentialError("Cannot hash an empty secret")
        salt = os.urandom(SALT_BYTES)
        derived = _kdf(salt, self._iterations).derive(secret.encode("utf-8"))
        return f"{ALGORITHM}${self._iterations}${_b64(salt)}${_b64(derived)}"

    def verify(self, secret: str, encoded: str) -> bool:
        """Constant-time check of secret against an encoded hash. Raises CredentialError if malformed."""
        try:
            algorithm, iterations, salt_b64, hash_b64 = encoded.split("$")
            if algorithm != ALGORITHM:
                raise ValueError(f"unsupported algorithm {algorithm}")
            salt = base64.urlsafe_b64decode(salt_b64.encode("ascii"))
            expected = base64.urlsafe_b64decode(hash_b64.encode("ascii"))
            kdf = _kdf(salt, int(iterations))
        except ValueError as e:
            raise CredentialError(f"Malformed credential hash: {e}") from e
        try:
            kdf.verify(secret.encode("utf-8"), expected)
        except InvalidKey:
            return False
        return True
