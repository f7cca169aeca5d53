# Shared FastAPI dependencies for the API layer.
# Created: 2026-10-19

from __future__ import annotations

import asyncio
from collections.abc import Iterable

from fastapi import HTTPException, Request

from gatekeeper.auth.credentials import AuthStrategy, parse_authorization_header
from gatekeeper.auth.errors import (
    AuthorizationParserError,
    AuthRequestError,
    AuthServerError,
    ParserErrorReason,
)
from gatekeeper.auth.models import Authorization
from gatekeeper.auth.scopes import AuthScope, parse_scopes

_CHALLENGES = {
    AuthStrategy.BASIC: "Basic",
    AuthStrategy.BEARER: "Bearer",
}


def require_authorization(
    strategy: AuthStrategy = AuthStrategy.BEARER,
    scopes: Iterable[AuthScope | str] | str | None = None,
):
    """FastAPI dependency that authorizes a request from its Authorization header.

    Usage::

        @router.get("/things")
        async def list_things(
            auth: Authorization = Depends(require_authorization(AuthStrategy.BEARER, "things.read")),
        ): ...

    Basic credentials must identify a registered client; Bearer credentials
    must be an unexpired access token granting every scope in *scopes*.
    On success the Authorization is also stored on ``request.state.authorization``.

    Missing or invalid credentials are 401, a malformed header is 400 and a
    token without the required scopes is 403.
    """
    required = parse_scopes(scopes) or None
    challenge = _CHALLENGES[strategy]

    async def _check(request: Request) -> Authorization:
        from gatekeeper.auth.server import get_auth_server

        try:
            credentials = parse_authorization_header(
                request.headers.get("authorization"), strategy
            )
        except AuthorizationParserError as exc:
            if exc.reason is ParserErrorReason.MISSING:
                raise HTTPException(
                    status_code=401,
                    detail="Missing authorization header",
                    headers={"WWW-Authenticate": challenge},
                ) from exc
            raise HTTPException(status_code=400, detail=str(exc)) from exc

        server = get_auth_server()
        try:
            authorization = await asyncio.to_thread(server.validate, credentials, required)
        except AuthServerError as exc:
            if exc.reason is AuthRequestError.INVALID_SCOPE:
                raise HTTPException(status_code=403, detail=exc.reason.value) from exc
            raise HTTPException(
                status_code=401,
                detail=exc.reason.value,
                headers={"WWW-Authenticate": challenge},
            ) from exc

        request.state.authorization = authorization
        return authorization

    return _check
