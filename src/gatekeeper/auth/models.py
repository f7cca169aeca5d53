# OAuth2 data models.
# Created: 2026-10-19

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from gatekeeper.auth.credentials import BasicCredentials
from gatekeeper.auth.scopes import AuthScope, client_allows, format_scopes, verify_scopes

TOKEN_TYPE_BEARER = "bearer"


@dataclass
class AuthClient:
    """Registered OAuth2 client.

    A client without ``hashed_secret`` is public. A client without
    ``allowed_scopes`` does not use scopes at all; tokens issued to it carry
    no scopes.
    """

    id: str
    redirect_uri: str | None = None
    hashed_secret: str | None = None
    salt: str | None = None
    allowed_scopes: list[AuthScope] | None = None

    @property
    def is_public(self) -> bool:
        return self.hashed_secret is None

    @property
    def supports_scopes(self) -> bool:
        return self.allowed_scopes is not None

    def allows_scope(self, scope: AuthScope) -> bool:
        return client_allows(self, scope)


@dataclass
class ResourceOwner:
    """Credential fields of a user who can grant access to a client."""

    id: int
    username: str
    hashed_password: str
    salt: str
    allowed_scopes: list[AuthScope] | None = None  # None: any scope


@dataclass
class AuthToken:
    """Access token, with an optional refresh token."""

    access_token: str
    client_id: str
    issue_date: datetime
    expiration_date: datetime
    refresh_token: str | None = None
    token_type: str = TOKEN_TYPE_BEARER
    resource_owner_identifier: int | None = None
    scopes: list[AuthScope] | None = None

    @property
    def is_expired(self) -> bool:
        return datetime.now(UTC) > self.expiration_date

    @property
    def lifetime_seconds(self) -> int:
        return int((self.expiration_date - self.issue_date).total_seconds())

    def as_dict(self) -> dict[str, Any]:
        """OAuth2 token response body (RFC 6749 section 5.1)."""
        body: dict[str, Any] = {
            "access_token": self.access_token,
            "token_type": self.token_type,
            "expires_in": max(
                0, int((self.expiration_date - datetime.now(UTC)).total_seconds())
            ),
        }
        if self.refresh_token:
            body["refresh_token"] = self.refresh_token
        if self.scopes:
            body["scope"] = format_scopes(self.scopes)
        return body


@dataclass
class AuthCode:
    """Short-lived, single-use authorization code."""

    code: str
    client_id: str
    resource_owner_identifier: int
    issue_date: datetime
    expiration_date: datetime
    requested_scopes: list[AuthScope] | None = None
    has_been_exchanged: bool = False

    @property
    def is_expired(self) -> bool:
        return datetime.now(UTC) > self.expiration_date


@dataclass(frozen=True)
class Authorization:
    """Result of a successful verification. Never persisted."""

    client_id: str
    owner_id: int | None = None
    scopes: list[AuthScope] | None = None
    credentials: BasicCredentials | None = field(default=None, repr=False)

    def is_authorized_for_scope(self, scope: AuthScope | str) -> bool:
        if isinstance(scope, str):
            scope = AuthScope.parse(scope)
        return verify_scopes([scope], self.scopes)
