# Authorization header parsing.
# Created: 2026-10-19
#
# The two supported strategies are modelled as separate credential types tagged
# with an AuthStrategy; AuthorizationServer.validate() dispatches on the tag.

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum

from gatekeeper.auth.errors import AuthorizationParserError, ParserErrorReason

__all__ = [
    "AuthStrategy",
    "BasicCredentials",
    "BearerCredentials",
    "Credentials",
    "parse_authorization_header",
]


class AuthStrategy(str, Enum):
    BASIC = "basic"
    BEARER = "bearer"


@dataclass(frozen=True)
class BasicCredentials:
    """Username/password pair from an HTTP Basic header."""

    username: str
    password: str
    strategy: AuthStrategy = field(default=AuthStrategy.BASIC, init=False, repr=False)

    def __repr__(self) -> str:
        return f"BasicCredentials(username={self.username!r}, password=***)"


@dataclass(frozen=True)
class BearerCredentials:
    """Opaque access token from an HTTP Bearer header."""

    token: str
    strategy: AuthStrategy = field(default=AuthStrategy.BEARER, init=False, repr=False)

    def __repr__(self) -> str:
        return "BearerCredentials(token=***)"


Credentials = BasicCredentials | BearerCredentials


def parse_authorization_header(header: str | None, strategy: AuthStrategy) -> Credentials:
    """Parse an ``Authorization`` header value for *strategy*.

    Raises AuthorizationParserError(MISSING) when there is no header and
    AuthorizationParserError(MALFORMED) when it does not match the strategy.
    """
    if not header:
        raise AuthorizationParserError(ParserErrorReason.MISSING)

    scheme, _, value = header.strip().partition(" ")
    value = value.strip()

    if strategy is AuthStrategy.BEARER:
        if scheme.lower() != "bearer" or not value:
            raise AuthorizationParserError(
                ParserErrorReason.MALFORMED, "expected 'Bearer <token>'"
            )
        return BearerCredentials(token=value)

    if scheme.lower() != "basic" or not value:
        raise AuthorizationParserError(
            ParserErrorReason.MALFORMED, "expected 'Basic <base64 credentials>'"
        )
    try:
        decoded = base64.b64decode(value, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise AuthorizationParserError(
            ParserErrorReason.MALFORMED, "invalid base64 in Basic credentials"
        ) from exc

    # The password may itself contain colons; only the first one separates.
    username, sep, password = decoded.partition(":")
    if not sep or not username:
        raise AuthorizationParserError(
            ParserErrorReason.MALFORMED, "Basic credentials must be 'username:password'"
        )
    return BasicCredentials(username=username, password=password)
