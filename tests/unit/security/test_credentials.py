"""Credential hashing: PBKDF2 encode/verify, salts, malformed input."""

import pytest

from change_control.security.credentials import Pbkdf2CredentialHasher
from change_control.security.exceptions import CredentialError


@pytest.fixture
def hasher():
    return Pbkdf2CredentialHasher(iterations=10000)


def test_hash_then_verify(hasher):
    encoded = hasher.hash("correct horse battery")
    assert encoded.startswith("pbkdf2_sha256$10000$")
    assert "correct horse battery" not in encoded
    assert hasher.verify("correct horse battery", encoded)
    assert not hasher.verify("wrong password", encoded)


def test_same_secret_different_salt(hasher):
    assert hasher.hash("same-secret") != hasher.hash("same-secret")


def test_iterations_read_from_encoded_hash():
    encoded = Pbkdf2CredentialHasher(iterations=12000).hash("s3cretpass")
    assert Pbkdf2CredentialHasher(iterations=10000).verify("s3cretpass", encoded)


def test_empty_secret_rejected(hasher):
    with pytest.raises(CredentialError):
        hasher.hash("")


def test_malformed_hash_raises(hasher):
    with pytest.raises(CredentialError):
        hasher.verify("anything", "not-a-hash")
    with pytest.raises(CredentialError):
        hasher.verify("anything", "bcrypt$10$abc$def")


def test_invalid_iterations():
    with pytest.raises(CredentialError):
        Pbkdf2CredentialHasher(iterations=0)
