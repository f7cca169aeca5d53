# Hierarchical OAuth2 scopes.
# Created: 2026-10-19
#
# A scope is a dot-delimited path with optional colon-delimited modifiers:
#
#     user                 everything under "user"
#     user.profile         the "profile" branch of "user"
#     user.profile:ro      the same branch, restricted by the "ro" modifier
#
# Scopes are compared structurally: A is a subset-or-equal of B when A's path
# equals or descends from B's path and A's modifiers are a subset of B's.
# A scope without modifiers is unrestricted, so it is never contained in a
# scope that has modifiers.

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

__all__ = [
    "AuthScope",
    "InvalidScopeError",
    "PolicyKind",
    "ScopePolicy",
    "client_allows",
    "format_scopes",
    "is_subset_or_equal",
    "parse_scopes",
    "verify_scopes",
]

_PATH_SEPARATOR = "."
_MODIFIER_SEPARATOR = ":"


class InvalidScopeError(ValueError):
    """A scope string does not follow the scope grammar."""

    pass


def _is_scope_char(ch: str) -> bool:
    # RFC 6749 scope-token: %x21 / %x23-5B / %x5D-7E
    code = ord(ch)
    return 0x21 <= code <= 0x7E and ch not in ('"', "\\")


@dataclass(frozen=True)
class AuthScope:
    """A parsed scope. Build one with :meth:`parse`."""

    segments: tuple[str, ...]
    modifiers: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def parse(cls, text: str) -> AuthScope:
        if not text:
            raise InvalidScopeError("Scope cannot be empty")
        bad = [ch for ch in text if not _is_scope_char(ch)]
        if bad:
            raise InvalidScopeError(f"Invalid character {bad[0]!r} in scope {text!r}")

        path, *modifiers = text.split(_MODIFIER_SEPARATOR)
        segments = tuple(path.split(_PATH_SEPARATOR))
        if any(not s for s in segments):
            raise InvalidScopeError(f"Empty path segment in scope {text!r}")
        if any(not m for m in modifiers):
            raise InvalidScopeError(f"Empty modifier in scope {text!r}")

        return cls(segments=segments, modifiers=frozenset(modifiers))

    @property
    def path(self) -> str:
        return _PATH_SEPARATOR.join(self.segments)

    @property
    def is_restricted(self) -> bool:
        return bool(self.modifiers)

    def is_subset_or_equal_to(self, other: AuthScope) -> bool:
        if len(self.segments) < len(other.segments):
            return False
        if self.segments[: len(other.segments)] != other.segments:
            return False
        if not other.modifiers:
            return True
        if not self.modifiers:
            return False
        return self.modifiers <= other.modifiers

    def __str__(self) -> str:
        return self.path + "".join(
            f"{_MODIFIER_SEPARATOR}{m}" for m in sorted(self.modifiers)
        )


def is_subset_or_equal(a: AuthScope | str, b: AuthScope | str) -> bool:
    """Return True if scope *a* is covered by scope *b*."""
    return _coerce(a).is_subset_or_equal_to(_coerce(b))


def parse_scopes(value: str | Iterable[str | AuthScope] | None) -> list[AuthScope]:
    """Parse a space-delimited scope string or an iterable of scope strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [AuthScope.parse(part) for part in value.split()]
    return [_coerce(item) for item in value]


def format_scopes(scopes: Iterable[AuthScope] | None) -> str:
    """Inverse of :func:`parse_scopes` for a space-delimited string."""
    if not scopes:
        return ""
    return " ".join(str(s) for s in scopes)


def verify_scopes(
    required: Iterable[AuthScope] | None,
    granted: Iterable[AuthScope] | None,
) -> bool:
    """True if every required scope is covered by some granted scope.

    Nothing is required -> True. Something is required but nothing was
    granted -> False.
    """
    required = list(required or [])
    if not required:
        return True
    if granted is None:
        return False
    granted = list(granted)
    return all(
        any(req.is_subset_or_equal_to(g) for g in granted) for req in required
    )


class _ScopedClient(Protocol):
    allowed_scopes: list[AuthScope] | None


def client_allows(client: _ScopedClient, scope: AuthScope) -> bool:
    """True if *client* may be granted *scope*.

    A client without scope configuration places no restriction on scopes.
    """
    if client.allowed_scopes is None:
        return True
    return any(scope.is_subset_or_equal_to(allowed) for allowed in client.allowed_scopes)


class PolicyKind(str, Enum):
    UNRESTRICTED = "unrestricted"
    RESTRICTED = "restricted"


@dataclass(frozen=True)
class ScopePolicy:
    """Scopes a resource owner may grant: any scope, or a fixed set."""

    kind: PolicyKind
    scopes: frozenset[AuthScope] = field(default_factory=frozenset)

    @classmethod
    def unrestricted(cls) -> ScopePolicy:
        return cls(PolicyKind.UNRESTRICTED)

    @classmethod
    def restricted(cls, scopes: Iterable[AuthScope | str]) -> ScopePolicy:
        return cls(PolicyKind.RESTRICTED, frozenset(_coerce(s) for s in scopes))

    @property
    def is_unrestricted(self) -> bool:
        return self.kind is PolicyKind.UNRESTRICTED

    def permits(self, scope: AuthScope) -> bool:
        if self.is_unrestricted:
            return True
        return any(scope.is_subset_or_equal_to(allowed) for allowed in self.scopes)


def _coerce(scope: AuthScope | str) -> AuthScope:
    if isinstance(scope, AuthScope):
        return scope
    return AuthScope.parse(scope)
