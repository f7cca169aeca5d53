"""
OAuth2 authorization server core.

Issues, refreshes, verifies and revokes access tokens for the resource owner
password grant and the authorization code grant. Persistence is delegated to
an ``AuthServerDelegate``; ``InMemoryAuthStorage`` is the reference delegate.

Public API:
    AuthorizationServer: Grant flows and token verification
    AuthServerDelegate: Storage protocol consumed by the server
    InMemoryAuthStorage: Dict-backed delegate with optional JSON persistence
    AuthClient, ResourceOwner, AuthToken, AuthCode, Authorization: Records
    AuthScope, ScopePolicy: Hierarchical scopes
    PasswordHasher: PBKDF2 credential hashing

Exceptions:
    AuthServerError: Rejected grant or verification (carries an AuthRequestError)
    ClientConfigurationError: Unusable client configuration
    AuthorizationParserError: Unparsable Authorization header
    InvalidScopeError: Unparsable scope string
"""

from .credentials import (
    AuthStrategy,
    BasicCredentials,
    BearerCredentials,
    parse_authorization_header,
)
from .errors import (
    AuthorizationParserError,
    AuthRequestError,
    AuthServerError,
    ClientConfigurationError,
    GatekeeperError,
    ParserErrorReason,
)
from .hashing import PasswordHasher, generate_salt, hash_password
from .models import AuthClient, AuthCode, Authorization, AuthToken, ResourceOwner
from .provisioning import generate_client, generate_resource_owner
from .scopes import AuthScope, InvalidScopeError, ScopePolicy, parse_scopes, verify_scopes
from .server import AuthorizationServer, get_auth_server, reset_auth_server
from .storage import AuthServerDelegate, InMemoryAuthStorage

__all__ = [
    # Server
    "AuthorizationServer",
    "get_auth_server",
    "reset_auth_server",
    # Storage
    "AuthServerDelegate",
    "InMemoryAuthStorage",
    # Records
    "AuthClient",
    "AuthCode",
    "AuthToken",
    "Authorization",
    "ResourceOwner",
    # Scopes
    "AuthScope",
    "ScopePolicy",
    "parse_scopes",
    "verify_scopes",
    # Credentials
    "AuthStrategy",
    "BasicCredentials",
    "BearerCredentials",
    "parse_authorization_header",
    "PasswordHasher",
    "generate_salt",
    "hash_password",
    "generate_client",
    "generate_resource_owner",
    # Exceptions
    "GatekeeperError",
    "AuthServerError",
    "AuthRequestError",
    "ClientConfigurationError",
    "AuthorizationParserError",
    "ParserErrorReason",
    "InvalidScopeError",
]
