# OAuth2 schemas.
# Created: 2026-10-19

from __future__ import annotations

from pydantic import BaseModel

from gatekeeper.api.v1.schemas.common import APIResponse


class TokenResponse(BaseModel):
    """RFC 6749 section 5.1 token response."""

    access_token: str
    token_type: str = "bearer"
    expires_in: int
    refresh_token: str | None = None
    scope: str | None = None


class ErrorResponse(BaseModel):
    """RFC 6749 section 5.2 error response."""

    error: str


class TokenInfoResponse(APIResponse):
    """The authorization carried by a bearer token."""

    client_id: str
    owner_id: int | None = None
    scope: str | None = None
