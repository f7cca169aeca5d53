# PBKDF2 password hashing for client secrets and resource owner passwords.
# Created: 2026-10-19
#
# Hashing is deterministic for a given (secret, salt, rounds, length, function),
# so credentials are verified by recomputing the hash and comparing it to the
# stored value. Salts are generated separately, only when provisioning.

from __future__ import annotations

import base64
import hashlib
import hmac
import secrets

__all__ = [
    "DEFAULT_HASH_FUNCTION",
    "DEFAULT_HASH_LENGTH",
    "DEFAULT_HASH_ROUNDS",
    "PasswordHasher",
    "generate_salt",
    "hash_password",
]

DEFAULT_HASH_ROUNDS = 1000
DEFAULT_HASH_LENGTH = 32
DEFAULT_HASH_FUNCTION = "sha256"


def hash_password(
    secret: str,
    salt: str,
    rounds: int = DEFAULT_HASH_ROUNDS,
    key_length: int = DEFAULT_HASH_LENGTH,
    hash_function: str = DEFAULT_HASH_FUNCTION,
) -> str:
    """Derive a base64-encoded PBKDF2-HMAC key from *secret* and *salt*.

    Raises ValueError for non-positive *rounds* / *key_length* or an
    unsupported *hash_function*.
    """
    if rounds <= 0:
        raise ValueError(f"rounds must be positive, got {rounds}")
    if key_length <= 0:
        raise ValueError(f"key_length must be positive, got {key_length}")

    derived = hashlib.pbkdf2_hmac(
        hash_function,
        secret.encode("utf-8"),
        salt.encode("utf-8"),
        rounds,
        dklen=key_length,
    )
    return base64.b64encode(derived).decode("ascii")


def generate_salt(length: int = 32) -> str:
    """Return a base64-encoded random salt built from *length* random bytes."""
    return base64.b64encode(secrets.token_bytes(length)).decode("ascii")


class PasswordHasher:
    """Hashes and verifies secrets with a fixed set of PBKDF2 parameters."""

    def __init__(
        self,
        rounds: int = DEFAULT_HASH_ROUNDS,
        key_length: int = DEFAULT_HASH_LENGTH,
        hash_function: str = DEFAULT_HASH_FUNCTION,
    ):
        if rounds <= 0:
            raise ValueError(f"rounds must be positive, got {rounds}")
        if key_length <= 0:
            raise ValueError(f"key_length must be positive, got {key_length}")
        if hash_function not in hashlib.algorithms_available:
            raise ValueError(f"Unsupported hash function: {hash_function}")
        self.rounds = rounds
        self.key_length = key_length
        self.hash_function = hash_function

    def hash(self, secret: str, salt: str) -> str:
        return hash_password(
            secret,
            salt,
            rounds=self.rounds,
            key_length=self.key_length,
            hash_function=self.hash_function,
        )

    def verify(self, secret: str, salt: str | None, hashed: str | None) -> bool:
        """Return True if *secret* hashes to *hashed* under *salt*."""
        if hashed is None:
            return False
        computed = self.hash(secret, salt or "")
        return hmac.compare_digest(computed.encode("utf-8"), hashed.encode("utf-8"))
