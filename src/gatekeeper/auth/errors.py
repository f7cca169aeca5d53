# OAuth2 error taxonomy.
# Created: 2026-10-19
#
# AuthServerError carries an AuthRequestError reason plus the client the request
# was made for (None when the client could not be identified).

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from gatekeeper.auth.models import AuthClient


class AuthRequestError(str, Enum):
    """OAuth2 error codes (RFC 6749 section 5.2 and 4.1.2.1)."""

    INVALID_REQUEST = "invalid_request"
    INVALID_CLIENT = "invalid_client"
    INVALID_GRANT = "invalid_grant"
    INVALID_SCOPE = "invalid_scope"
    UNAUTHORIZED_CLIENT = "unauthorized_client"
    ACCESS_DENIED = "access_denied"

    # Only produced by the HTTP layer
    UNSUPPORTED_GRANT_TYPE = "unsupported_grant_type"
    UNSUPPORTED_RESPONSE_TYPE = "unsupported_response_type"
    SERVER_ERROR = "server_error"


class GatekeeperError(Exception):
    """Base exception for all gatekeeper errors."""

    pass


class AuthServerError(GatekeeperError):
    """A grant or verification request was rejected."""

    def __init__(self, reason: AuthRequestError, client: AuthClient | None = None):
        self.reason = reason
        self.client = client
        super().__init__(reason.value)

    @property
    def status_code(self) -> int:
        if self.reason is AuthRequestError.INVALID_CLIENT:
            return 401
        if self.reason is AuthRequestError.SERVER_ERROR:
            return 500
        return 400

    def to_dict(self) -> dict[str, str]:
        return {"error": self.reason.value}

    def __repr__(self) -> str:
        client_id = self.client.id if self.client is not None else None
        return f"AuthServerError({self.reason.value!r}, client={client_id!r})"


class ClientConfigurationError(GatekeeperError, ValueError):
    """A client record is not usable as configured (e.g. redirect URI without a secret)."""

    pass


class ParserErrorReason(str, Enum):
    MISSING = "missing"
    MALFORMED = "malformed"


class AuthorizationParserError(GatekeeperError):
    """The Authorization header could not be parsed."""

    def __init__(self, reason: ParserErrorReason, message: str = ""):
        self.reason = reason
        super().__init__(message or f"authorization header {reason.value}")
