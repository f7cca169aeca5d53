# Credential provisioning helpers.
# Created: 2026-10-19
#
# Builds client and resource owner records with a fresh salt and a hashed
# secret. The plaintext secret is never stored; callers show it once.

from __future__ import annotations

from collections.abc import Iterable

from gatekeeper.auth.hashing import PasswordHasher, generate_salt
from gatekeeper.auth.models import AuthClient, ResourceOwner
from gatekeeper.auth.scopes import AuthScope, parse_scopes


def generate_client(
    client_id: str,
    secret: str | None = None,
    redirect_uri: str | None = None,
    allowed_scopes: Iterable[AuthScope | str] | str | None = None,
    hasher: PasswordHasher | None = None,
) -> AuthClient:
    """Create an AuthClient. Without *secret* the client is public."""
    hasher = hasher or PasswordHasher()
    scopes = parse_scopes(allowed_scopes) if allowed_scopes is not None else None

    if secret is None:
        return AuthClient(id=client_id, redirect_uri=redirect_uri, allowed_scopes=scopes)

    salt = generate_salt()
    return AuthClient(
        id=client_id,
        redirect_uri=redirect_uri,
        hashed_secret=hasher.hash(secret, salt),
        salt=salt,
        allowed_scopes=scopes,
    )


def generate_resource_owner(
    owner_id: int,
    username: str,
    password: str,
    allowed_scopes: Iterable[AuthScope | str] | str | None = None,
    hasher: PasswordHasher | None = None,
) -> ResourceOwner:
    """Create a ResourceOwner. Without *allowed_scopes* the owner may grant any scope."""
    hasher = hasher or PasswordHasher()
    salt = generate_salt()
    return ResourceOwner(
        id=owner_id,
        username=username,
        hashed_password=hasher.hash(password, salt),
        salt=salt,
        allowed_scopes=parse_scopes(allowed_scopes) if allowed_scopes is not None else None,
    )
