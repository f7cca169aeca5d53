# OpenAPI security scheme documentation for the authorization server.
# Created: 2026-10-19
#
# The server carries three flow descriptors (authorization code, password,
# implicit). document_components() registers them as OpenAPI security schemes
# and drops every flow whose URLs were never configured.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from gatekeeper.auth.credentials import AuthStrategy
from gatekeeper.auth.scopes import AuthScope

if TYPE_CHECKING:
    from gatekeeper.auth.server import AuthorizationServer

CLIENT_AUTH_SCHEME = "oauth2-client-authentication"
OAUTH2_SCHEME = "oauth2"

_CLIENT_AUTH_DESCRIPTION = (
    "This endpoint requires an OAuth2 Client ID and Secret as the Basic "
    "Authentication username and password. If the client ID does not have a "
    "secret (public client), the password is the empty string (retain the "
    "separating colon, e.g. 'com.example.app:')."
)


@dataclass
class OAuth2FlowDescriptor:
    """One OAuth2 flow as it appears in an OpenAPI ``securitySchemes`` entry."""

    authorization_url: str | None = None
    token_url: str | None = None
    refresh_url: str | None = None
    scopes: dict[str, str] = field(default_factory=dict)

    def as_openapi(self) -> dict[str, Any]:
        flow: dict[str, Any] = {}
        if self.authorization_url:
            flow["authorizationUrl"] = self.authorization_url
        if self.token_url:
            flow["tokenUrl"] = self.token_url
        if self.refresh_url:
            flow["refreshUrl"] = self.refresh_url
        flow["scopes"] = dict(self.scopes)
        return flow


def document_components(
    server: AuthorizationServer, openapi_schema: dict[str, Any]
) -> dict[str, Any]:
    """Register the client-authentication and OAuth2 security schemes.

    Mutates and returns *openapi_schema*.
    """
    components = openapi_schema.setdefault("components", {})
    schemes = components.setdefault("securitySchemes", {})

    schemes[CLIENT_AUTH_SCHEME] = {
        "type": "http",
        "scheme": "basic",
        "description": _CLIENT_AUTH_DESCRIPTION,
    }

    flows: dict[str, Any] = {}
    code_flow = server.documented_authorization_code_flow
    if code_flow.authorization_url and code_flow.token_url:
        flows["authorizationCode"] = code_flow.as_openapi()

    password_flow = server.documented_password_flow
    if password_flow.token_url:
        flows["password"] = password_flow.as_openapi()

    implicit_flow = server.documented_implicit_flow
    if implicit_flow.authorization_url:
        flows["implicit"] = implicit_flow.as_openapi()

    schemes[OAUTH2_SCHEME] = {
        "type": "oauth2",
        "description": "Standard OAuth 2.0",
        "flows": flows,
    }
    return openapi_schema


def security_requirements(
    strategy: AuthStrategy, scopes: list[AuthScope] | None = None
) -> list[dict[str, list[str]]]:
    """OpenAPI ``security`` entry for a route protected with *strategy*."""
    if strategy is AuthStrategy.BASIC:
        return [{CLIENT_AUTH_SCHEME: []}]
    if strategy is AuthStrategy.BEARER:
        return [{OAUTH2_SCHEME: [str(s) for s in scopes or []]}]
    return []
