# Random token generation and token/code minting.
# Created: 2026-10-19

from __future__ import annotations

import secrets
import string
from datetime import UTC, datetime, timedelta

from gatekeeper.auth.models import TOKEN_TYPE_BEARER, AuthClient, AuthCode, AuthToken
from gatekeeper.auth.scopes import AuthScope

__all__ = [
    "TOKEN_LENGTH",
    "TOKEN_TYPE_BEARER",
    "issue_code",
    "issue_token",
    "random_token",
]

TOKEN_LENGTH = 32

# URL-safe alphabet (RFC 4648 section 5)
_ALPHABET = string.ascii_letters + string.digits + "-_"


def random_token(length: int = TOKEN_LENGTH) -> str:
    """Return a cryptographically random URL-safe string of exactly *length* chars."""
    if length <= 0:
        raise ValueError(f"length must be positive, got {length}")
    return "".join(secrets.choice(_ALPHABET) for _ in range(length))


def issue_token(
    owner_id: int | None,
    client_id: str,
    ttl_seconds: int,
    allow_refresh: bool = True,
    scopes: list[AuthScope] | None = None,
) -> AuthToken:
    now = datetime.now(UTC)
    return AuthToken(
        access_token=random_token(),
        refresh_token=random_token() if allow_refresh else None,
        token_type=TOKEN_TYPE_BEARER,
        issue_date=now,
        expiration_date=now + timedelta(seconds=ttl_seconds),
        resource_owner_identifier=owner_id,
        client_id=client_id,
        scopes=scopes,
    )


def issue_code(
    owner_id: int,
    client: AuthClient,
    ttl_seconds: int,
    scopes: list[AuthScope] | None = None,
) -> AuthCode:
    now = datetime.now(UTC)
    return AuthCode(
        code=random_token(),
        client_id=client.id,
        resource_owner_identifier=owner_id,
        issue_date=now,
        expiration_date=now + timedelta(seconds=ttl_seconds),
        requested_scopes=scopes,
    )
