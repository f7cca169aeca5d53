# OAuth2 router: token, authorize, tokeninfo.
# Created: 2026-10-19
#
# Thin HTTP adapters around AuthorizationServer. Requests are form-encoded
# (RFC 6749); the server's blocking delegate calls run in a worker thread.

from __future__ import annotations

import asyncio
import logging
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, RedirectResponse

from gatekeeper.api.deps import require_authorization
from gatekeeper.api.v1.schemas.oauth2 import ErrorResponse, TokenInfoResponse, TokenResponse
from gatekeeper.auth.credentials import AuthStrategy, parse_authorization_header
from gatekeeper.auth.documentation import security_requirements
from gatekeeper.auth.errors import AuthorizationParserError, AuthRequestError, AuthServerError
from gatekeeper.auth.models import Authorization
from gatekeeper.auth.scopes import InvalidScopeError, format_scopes

logger = logging.getLogger(__name__)

router = APIRouter(tags=["OAuth2"])

_NO_CACHE_HEADERS = {"Cache-Control": "no-store", "Pragma": "no-cache"}

_GRANT_TYPES = ("password", "authorization_code", "refresh_token")


def _field(form, name: str) -> str | None:
    """Form value for *name*, or None when absent or empty."""
    value = form.get(name)
    if value is None or value == "":
        return None
    return str(value)


def _error_response(error: AuthServerError) -> JSONResponse:
    headers = dict(_NO_CACHE_HEADERS)
    if error.status_code == 401:
        headers["WWW-Authenticate"] = "Basic"
    return JSONResponse(status_code=error.status_code, content=error.to_dict(), headers=headers)


def _client_credentials(request: Request, form) -> tuple[str | None, str | None]:
    """Client id and secret from the Basic header, else from the form body."""
    header = request.headers.get("authorization")
    if header:
        try:
            credentials = parse_authorization_header(header, AuthStrategy.BASIC)
        except AuthorizationParserError as exc:
            raise AuthServerError(AuthRequestError.INVALID_CLIENT) from exc
        return credentials.username, credentials.password
    return _field(form, "client_id"), _field(form, "client_secret")


def _redirect(redirect_uri: str, params: dict[str, str]) -> RedirectResponse:
    separator = "&" if "?" in redirect_uri else "?"
    return RedirectResponse(
        f"{redirect_uri}{separator}{urlencode(params)}",
        status_code=302,
        headers=_NO_CACHE_HEADERS,
    )


@router.post(
    "/oauth/token",
    response_model=TokenResponse,
    responses={400: {"model": ErrorResponse}, 401: {"model": ErrorResponse}},
    openapi_extra={"security": security_requirements(AuthStrategy.BASIC)},
)
async def issue_token(request: Request):
    """Issue an access token for the password, authorization_code or refresh_token grant."""
    from gatekeeper.auth.server import get_auth_server

    server = get_auth_server()
    form = await request.form()
    grant_type = _field(form, "grant_type")

    try:
        client_id, client_secret = _client_credentials(request, form)

        if grant_type is None:
            raise AuthServerError(AuthRequestError.INVALID_REQUEST)
        if grant_type not in _GRANT_TYPES:
            raise AuthServerError(AuthRequestError.UNSUPPORTED_GRANT_TYPE)

        if grant_type == "password":
            token = await asyncio.to_thread(
                server.authenticate,
                _field(form, "username"),
                _field(form, "password"),
                client_id,
                client_secret,
                requested_scopes=_field(form, "scope"),
            )
        elif grant_type == "authorization_code":
            token = await asyncio.to_thread(
                server.exchange,
                _field(form, "code"),
                client_id,
                client_secret,
            )
        else:
            token = await asyncio.to_thread(
                server.refresh,
                _field(form, "refresh_token"),
                client_id,
                client_secret,
                requested_scopes=_field(form, "scope"),
            )
    except InvalidScopeError:
        return _error_response(AuthServerError(AuthRequestError.INVALID_SCOPE))
    except AuthServerError as exc:
        return _error_response(exc)

    return JSONResponse(content=token.as_dict(), headers=_NO_CACHE_HEADERS)


@router.post(
    "/oauth/authorize",
    status_code=302,
    responses={400: {"model": ErrorResponse}},
)
async def authorize(request: Request):
    """Authenticate a resource owner and redirect to the client with a code.

    Errors are reported on the redirect (``error`` and ``state`` query
    parameters) once the client is known; before that they are a 400 JSON body.
    """
    from gatekeeper.auth.server import get_auth_server

    server = get_auth_server()
    form = await request.form()
    client_id = _field(form, "client_id")
    state = _field(form, "state")

    try:
        client = await asyncio.to_thread(server.get_client, client_id)
    except AuthServerError as exc:
        return _error_response(AuthServerError(AuthRequestError.INVALID_REQUEST, exc.client))

    if client is None:
        return _error_response(AuthServerError(AuthRequestError.INVALID_REQUEST))
    if client.redirect_uri is None:
        return _error_response(AuthServerError(AuthRequestError.UNAUTHORIZED_CLIENT, client))

    def _finish(params: dict[str, str]) -> RedirectResponse:
        if state is not None:
            params["state"] = state
        return _redirect(client.redirect_uri, params)

    if _field(form, "response_type") != "code":
        return _finish({"error": AuthRequestError.UNSUPPORTED_RESPONSE_TYPE.value})

    try:
        code = await asyncio.to_thread(
            server.authenticate_for_code,
            _field(form, "username"),
            _field(form, "password"),
            client.id,
            requested_scopes=_field(form, "scope"),
        )
    except InvalidScopeError:
        return _finish({"error": AuthRequestError.INVALID_SCOPE.value})
    except AuthServerError as exc:
        return _finish({"error": exc.reason.value})

    return _finish({"code": code.code})


@router.get(
    "/oauth/tokeninfo",
    response_model=TokenInfoResponse,
    openapi_extra={"security": security_requirements(AuthStrategy.BEARER)},
)
async def token_info(
    authorization: Authorization = Depends(require_authorization(AuthStrategy.BEARER)),
):
    """Describe the bearer token presented with the request."""
    return TokenInfoResponse(
        client_id=authorization.client_id,
        owner_id=authorization.owner_id,
        scope=format_scopes(authorization.scopes) or None,
    )
