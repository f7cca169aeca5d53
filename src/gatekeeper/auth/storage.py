# OAuth2 storage delegate protocol and the in-memory reference delegate.
# Created: 2026-10-19
#
# AuthorizationServer never persists anything itself; it calls an
# AuthServerDelegate. InMemoryAuthStorage keeps everything in dicts and can
# optionally persist clients, resource owners and tokens to a JSON file.
# Authorization codes always stay in memory (short-lived, single use).

from __future__ import annotations

import json
import logging
import threading
from dataclasses import replace
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol

from gatekeeper.auth.errors import AuthRequestError, AuthServerError
from gatekeeper.auth.models import AuthClient, AuthCode, AuthToken, ResourceOwner
from gatekeeper.auth.scopes import AuthScope, ScopePolicy, format_scopes, parse_scopes

if TYPE_CHECKING:
    from gatekeeper.auth.server import AuthorizationServer

logger = logging.getLogger(__name__)

# How long an expired, refreshable token is kept before cleanup_expired() drops it
REFRESH_RETENTION = 30 * 24 * 3600


class AuthServerDelegate(Protocol):
    """Persistence contract consumed by AuthorizationServer.

    Implementations must make ``add_token(..., issued_from=code)`` atomic with
    respect to the code: mark it exchanged and store the token together, and
    raise ``AuthServerError(INVALID_GRANT)`` if the code was already exchanged.
    """

    def add_client(self, server: AuthorizationServer, client: AuthClient) -> None: ...

    def get_client(self, server: AuthorizationServer, client_id: str) -> AuthClient | None: ...

    def remove_client(self, server: AuthorizationServer, client_id: str) -> None: ...

    def get_resource_owner(
        self, server: AuthorizationServer, username: str
    ) -> ResourceOwner | None: ...

    def add_token(
        self,
        server: AuthorizationServer,
        token: AuthToken,
        issued_from: AuthCode | None = None,
    ) -> None: ...

    def get_token(
        self,
        server: AuthorizationServer,
        *,
        access_token: str | None = None,
        refresh_token: str | None = None,
    ) -> AuthToken | None: ...

    def update_token(
        self,
        server: AuthorizationServer,
        old_access_token: str,
        new_access_token: str,
        new_issue_date: datetime,
        new_expiration_date: datetime,
        *,
        scopes: list[AuthScope] | None,
    ) -> None:
        """Re-key the token stored under *old_access_token*.

        The refresh token, owner and client are kept; dates and scopes are replaced.
        """
        ...

    def remove_token(self, server: AuthorizationServer, code: AuthCode) -> None:
        """Remove the token issued from *code* (replay response)."""
        ...

    def remove_tokens(self, server: AuthorizationServer, owner_id: int) -> None: ...

    def add_code(self, server: AuthorizationServer, code: AuthCode) -> None: ...

    def get_code(self, server: AuthorizationServer, code: str) -> AuthCode | None: ...

    def remove_code(self, server: AuthorizationServer, code: str) -> None: ...

    def get_allowed_scopes(self, owner: ResourceOwner) -> ScopePolicy: ...


class InMemoryAuthStorage:
    """Dict-backed AuthServerDelegate.

    All operations run under a single re-entrant lock, which is what makes the
    exchange of a code and the storage of its token atomic.

    With a *persist_path* the file is the source of truth: every write re-reads
    it first, and reads pick up changes made by other processes (for example
    the CLI) once the file's stat signature changes. Expired tokens that still
    carry a refresh token are kept for *refresh_retention* seconds.
    """

    def __init__(
        self,
        persist_path: Path | None = None,
        refresh_retention: int = REFRESH_RETENTION,
    ):
        self._clients: dict[str, AuthClient] = {}
        self._owners: dict[str, ResourceOwner] = {}  # keyed by username
        self._codes: dict[str, AuthCode] = {}
        self._tokens: dict[str, AuthToken] = {}  # keyed by access_token
        self._refresh_index: dict[str, str] = {}  # refresh_token -> access_token
        self._code_tokens: dict[str, str] = {}  # code -> access_token issued from it
        self._lock = threading.RLock()
        self._persist_path = persist_path
        self._signature: tuple[int, int, int] | None = None
        self.refresh_retention = timedelta(seconds=refresh_retention)
        self._sync(force=True)

    # ------------------------------------------------------------------
    # Clients and resource owners
    # ------------------------------------------------------------------

    def add_client(self, server: AuthorizationServer | None, client: AuthClient) -> None:
        with self._lock:
            self._sync(force=True)
            self._clients[client.id] = client
            self._save()

    def get_client(self, server: AuthorizationServer | None, client_id: str) -> AuthClient | None:
        with self._lock:
            self._sync()
            return self._clients.get(client_id)

    def remove_client(self, server: AuthorizationServer | None, client_id: str) -> None:
        with self._lock:
            self._sync(force=True)
            if self._clients.pop(client_id, None) is not None:
                self._save()

    def add_resource_owner(self, owner: ResourceOwner) -> None:
        with self._lock:
            self._sync(force=True)
            self._owners[owner.username] = owner
            self._save()

    def get_resource_owner(
        self, server: AuthorizationServer | None, username: str
    ) -> ResourceOwner | None:
        with self._lock:
            self._sync()
            return self._owners.get(username)

    def next_owner_id(self) -> int:
        with self._lock:
            self._sync(force=True)
            return max((o.id for o in self._owners.values()), default=0) + 1

    def get_allowed_scopes(self, owner: ResourceOwner) -> ScopePolicy:
        if owner.allowed_scopes is None:
            return ScopePolicy.unrestricted()
        return ScopePolicy.restricted(owner.allowed_scopes)

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def add_token(
        self,
        server: AuthorizationServer | None,
        token: AuthToken,
        issued_from: AuthCode | None = None,
    ) -> None:
        with self._lock:
            self._sync(force=True)
            if issued_from is not None:
                stored = self._codes.get(issued_from.code)
                if stored is None:
                    raise AuthServerError(AuthRequestError.INVALID_GRANT)
                if stored.has_been_exchanged:
                    # Lost the exchange race: the winner's token is revoked too.
                    self._revoke_code(stored.code)
                    self._save()
                    raise AuthServerError(AuthRequestError.INVALID_GRANT)
                stored.has_been_exchanged = True
                self._code_tokens[stored.code] = token.access_token

            self._tokens[token.access_token] = token
            if token.refresh_token:
                self._refresh_index[token.refresh_token] = token.access_token
            self._save()

    def get_token(
        self,
        server: AuthorizationServer | None,
        *,
        access_token: str | None = None,
        refresh_token: str | None = None,
    ) -> AuthToken | None:
        with self._lock:
            self._sync()
            if access_token is not None:
                return self._tokens.get(access_token)
            if refresh_token is not None:
                key = self._refresh_index.get(refresh_token)
                return self._tokens.get(key) if key else None
            return None

    def update_token(
        self,
        server: AuthorizationServer | None,
        old_access_token: str,
        new_access_token: str,
        new_issue_date: datetime,
        new_expiration_date: datetime,
        *,
        scopes: list[AuthScope] | None,
    ) -> None:
        with self._lock:
            self._sync(force=True)
            old = self._tokens.pop(old_access_token, None)
            if old is None:
                raise AuthServerError(AuthRequestError.INVALID_GRANT)

            updated = replace(
                old,
                access_token=new_access_token,
                issue_date=new_issue_date,
                expiration_date=new_expiration_date,
                scopes=scopes,
            )
            self._tokens[new_access_token] = updated
            if updated.refresh_token:
                self._refresh_index[updated.refresh_token] = new_access_token
            for code, access in self._code_tokens.items():
                if access == old_access_token:
                    self._code_tokens[code] = new_access_token
            self._save()

    def remove_token(self, server: AuthorizationServer | None, code: AuthCode) -> None:
        with self._lock:
            self._sync(force=True)
            self._revoke_code(code.code)
            self._save()

    def remove_tokens(self, server: AuthorizationServer | None, owner_id: int) -> None:
        with self._lock:
            self._sync(force=True)
            doomed = [
                k for k, t in self._tokens.items() if t.resource_owner_identifier == owner_id
            ]
            for access in doomed:
                self._drop_token(access)
            if doomed:
                self._save()

    def _revoke_code(self, code: str) -> None:
        access = self._code_tokens.pop(code, None)
        if access is not None:
            self._drop_token(access)
        # An exchanged code has nothing left to protect once its token is gone.
        self._codes.pop(code, None)

    def _drop_token(self, access_token: str) -> None:
        token = self._tokens.pop(access_token, None)
        if token is None:
            return
        if token.refresh_token:
            self._refresh_index.pop(token.refresh_token, None)
        for code in [c for c, a in self._code_tokens.items() if a == access_token]:
            del self._code_tokens[code]

    # ------------------------------------------------------------------
    # Authorization codes
    # ------------------------------------------------------------------

    def add_code(self, server: AuthorizationServer | None, code: AuthCode) -> None:
        with self._lock:
            self._codes[code.code] = code

    def get_code(self, server: AuthorizationServer | None, code: str) -> AuthCode | None:
        with self._lock:
            return self._codes.get(code)

    def remove_code(self, server: AuthorizationServer | None, code: str) -> None:
        with self._lock:
            self._codes.pop(code, None)
            self._code_tokens.pop(code, None)

    def cleanup_expired(self) -> None:
        """Remove expired codes and expired tokens.

        A token with a refresh token is kept until *refresh_retention* has
        passed since it expired, so it can still be refreshed in the meantime.
        """
        now = datetime.now(UTC)
        with self._lock:
            self._sync(force=True)
            for k in [k for k, c in self._codes.items() if c.is_expired]:
                self.remove_code(None, k)

            doomed = [
                k
                for k, t in self._tokens.items()
                if t.is_expired
                and (not t.refresh_token or t.expiration_date + self.refresh_retention < now)
            ]
            for access in doomed:
                self._drop_token(access)
            if doomed:
                self._save()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _file_signature(self) -> tuple[int, int, int] | None:
        try:
            stat = self._persist_path.stat()
        except FileNotFoundError:
            return None
        return (stat.st_mtime_ns, stat.st_size, stat.st_ino)

    def _sync(self, force: bool = False) -> None:
        """Re-read the persisted records if the file changed (always when *force*)."""
        if self._persist_path is None:
            return
        signature = self._file_signature()
        if signature is None:
            return
        if force or signature != self._signature:
            self._load(signature)

    def _load(self, signature: tuple[int, int, int]) -> None:
        """Replace clients, owners and tokens with the persisted ones."""
        path = self._persist_path
        try:
            data = json.loads(path.read_text())
            clients = [_client_from_dict(e) for e in data.get("clients", [])]
            owners = [_owner_from_dict(e) for e in data.get("resource_owners", [])]
            tokens = [_token_from_dict(e) for e in data.get("tokens", [])]
        except (json.JSONDecodeError, OSError, KeyError, ValueError) as exc:
            logger.warning("Failed to load auth storage from %s: %s", path, exc)
            return

        self._clients = {c.id: c for c in clients}
        self._owners = {o.username: o for o in owners}
        self._tokens = {t.access_token: t for t in tokens}
        self._refresh_index = {
            t.refresh_token: t.access_token for t in tokens if t.refresh_token
        }
        self._code_tokens = {
            code: access for code, access in self._code_tokens.items() if access in self._tokens
        }
        self._signature = signature
        logger.debug(
            "Loaded %d clients, %d owners, %d tokens from %s",
            len(self._clients),
            len(self._owners),
            len(self._tokens),
            path,
        )

    def _save(self) -> None:
        """Write clients, owners and tokens atomically (temp file, then rename)."""
        path = self._persist_path
        if path is None:
            return
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "clients": [_client_to_dict(c) for c in self._clients.values()],
            "resource_owners": [_owner_to_dict(o) for o in self._owners.values()],
            "tokens": [_token_to_dict(t) for t in self._tokens.values()],
        }
        temp_path = path.with_suffix(".tmp")
        try:
            temp_path.write_text(json.dumps(data, indent=2))
            temp_path.chmod(0o600)
            temp_path.replace(path)
        except OSError:
            temp_path.unlink(missing_ok=True)
            raise
        self._signature = self._file_signature()


def _scopes_or_none(value: list[str] | None) -> list[AuthScope] | None:
    return parse_scopes(value) if value is not None else None


def _scope_strings_or_none(scopes: list[AuthScope] | None) -> list[str] | None:
    return format_scopes(scopes).split() if scopes is not None else None


def _client_to_dict(client: AuthClient) -> dict[str, Any]:
    return {
        "id": client.id,
        "redirect_uri": client.redirect_uri,
        "hashed_secret": client.hashed_secret,
        "salt": client.salt,
        "allowed_scopes": _scope_strings_or_none(client.allowed_scopes),
    }


def _client_from_dict(entry: dict[str, Any]) -> AuthClient:
    return AuthClient(
        id=entry["id"],
        redirect_uri=entry.get("redirect_uri"),
        hashed_secret=entry.get("hashed_secret"),
        salt=entry.get("salt"),
        allowed_scopes=_scopes_or_none(entry.get("allowed_scopes")),
    )


def _owner_to_dict(owner: ResourceOwner) -> dict[str, Any]:
    return {
        "id": owner.id,
        "username": owner.username,
        "hashed_password": owner.hashed_password,
        "salt": owner.salt,
        "allowed_scopes": _scope_strings_or_none(owner.allowed_scopes),
    }


def _owner_from_dict(entry: dict[str, Any]) -> ResourceOwner:
    return ResourceOwner(
        id=int(entry["id"]),
        username=entry["username"],
        hashed_password=entry["hashed_password"],
        salt=entry["salt"],
        allowed_scopes=_scopes_or_none(entry.get("allowed_scopes")),
    )


def _token_to_dict(token: AuthToken) -> dict[str, Any]:
    return {
        "access_token": token.access_token,
        "refresh_token": token.refresh_token,
        "token_type": token.token_type,
        "issue_date": token.issue_date.isoformat(),
        "expiration_date": token.expiration_date.isoformat(),
        "resource_owner_identifier": token.resource_owner_identifier,
        "client_id": token.client_id,
        "scopes": _scope_strings_or_none(token.scopes),
    }


def _token_from_dict(entry: dict[str, Any]) -> AuthToken:
    return AuthToken(
        access_token=entry["access_token"],
        refresh_token=entry.get("refresh_token"),
        token_type=entry.get("token_type", "bearer"),
        issue_date=datetime.fromisoformat(entry["issue_date"]),
        expiration_date=datetime.fromisoformat(entry["expiration_date"]),
        resource_owner_identifier=entry.get("resource_owner_identifier"),
        client_id=entry["client_id"],
        scopes=_scopes_or_none(entry.get("scopes")),
    )
