# OAuth2 Authorization Server.
# Created: 2026-10-19
#
# Issues, refreshes, verifies and revokes access tokens for the password and
# authorization code grants. All persistence goes through the delegate; every
# precondition is checked in a fixed order so the first failing check decides
# which OAuth2 error the caller sees.

from __future__ import annotations

import logging
from collections.abc import Iterable
from datetime import UTC, datetime

from gatekeeper.auth.credentials import AuthStrategy, BasicCredentials, Credentials
from gatekeeper.auth.documentation import OAuth2FlowDescriptor
from gatekeeper.auth.errors import (
    AuthRequestError,
    AuthServerError,
    ClientConfigurationError,
)
from gatekeeper.auth.hashing import (
    DEFAULT_HASH_FUNCTION,
    DEFAULT_HASH_LENGTH,
    DEFAULT_HASH_ROUNDS,
    PasswordHasher,
)
from gatekeeper.auth.models import (
    AuthClient,
    AuthCode,
    Authorization,
    AuthToken,
    ResourceOwner,
)
from gatekeeper.auth.scopes import AuthScope, parse_scopes, verify_scopes
from gatekeeper.auth.storage import AuthServerDelegate, InMemoryAuthStorage
from gatekeeper.auth.tokens import issue_code, issue_token, random_token
from gatekeeper.config import Settings, get_settings, get_storage_path

logger = logging.getLogger(__name__)

# Default lifetimes, in seconds
TOKEN_TTL = 24 * 3600
CODE_TTL = 600
EXCHANGED_TOKEN_TTL = 3600

ScopeInput = Iterable[AuthScope | str] | str | None


class AuthorizationServer:
    """OAuth2 authorization server.

    Storage of clients, resource owners, tokens and codes is delegated to
    *delegate* (see ``AuthServerDelegate``). Client secrets and resource owner
    passwords are verified by hashing the presented value with the stored salt
    and this server's PBKDF2 parameters.
    """

    def __init__(
        self,
        delegate: AuthServerDelegate,
        hash_rounds: int = DEFAULT_HASH_ROUNDS,
        hash_length: int = DEFAULT_HASH_LENGTH,
        hash_function: str = DEFAULT_HASH_FUNCTION,
        cache_clients: bool = False,
        token_ttl: int = TOKEN_TTL,
        code_ttl: int = CODE_TTL,
        exchanged_token_ttl: int = EXCHANGED_TOKEN_TTL,
    ):
        self.delegate = delegate
        self.hasher = PasswordHasher(hash_rounds, hash_length, hash_function)
        self.token_ttl = token_ttl
        self.code_ttl = code_ttl
        self.exchanged_token_ttl = exchanged_token_ttl

        self.documented_authorization_code_flow = OAuth2FlowDescriptor()
        self.documented_password_flow = OAuth2FlowDescriptor()
        self.documented_implicit_flow = OAuth2FlowDescriptor()

        self._cache_clients = cache_clients
        self._client_cache: dict[str, AuthClient] = {}

    @classmethod
    def from_settings(
        cls, delegate: AuthServerDelegate, settings: Settings | None = None
    ) -> AuthorizationServer:
        settings = settings or get_settings()
        server = cls(
            delegate,
            hash_rounds=settings.hash_rounds,
            hash_length=settings.hash_length,
            hash_function=settings.hash_function,
            cache_clients=settings.cache_clients,
            token_ttl=settings.access_token_ttl_seconds,
            code_ttl=settings.code_ttl_seconds,
            exchanged_token_ttl=settings.exchanged_token_ttl_seconds,
        )
        scopes = dict(settings.documented_scopes)
        server.documented_authorization_code_flow = OAuth2FlowDescriptor(
            authorization_url=settings.authorization_url,
            token_url=settings.token_url,
            refresh_url=settings.refresh_url,
            scopes=scopes,
        )
        server.documented_password_flow = OAuth2FlowDescriptor(
            token_url=settings.token_url,
            refresh_url=settings.refresh_url,
            scopes=scopes,
        )
        server.documented_implicit_flow = OAuth2FlowDescriptor(
            authorization_url=settings.authorization_url,
            scopes=scopes,
        )
        return server

    @property
    def hash_rounds(self) -> int:
        return self.hasher.rounds

    @property
    def hash_length(self) -> int:
        return self.hasher.key_length

    @property
    def hash_function(self) -> str:
        return self.hasher.hash_function

    def hash_password(self, password: str, salt: str) -> str:
        """Hash *password* with *salt* using this server's PBKDF2 parameters."""
        return self.hasher.hash(password, salt)

    # ------------------------------------------------------------------
    # Clients
    # ------------------------------------------------------------------

    def add_client(self, client: AuthClient) -> None:
        """Register *client* with the delegate.

        A client that can use the authorization code flow (has a redirect URI)
        must have a secret.
        """
        if client.redirect_uri is not None and client.hashed_secret is None:
            raise ClientConfigurationError(
                "A client with a redirect_uri must have a client secret."
            )
        self.delegate.add_client(self, client)
        self._client_cache.pop(client.id, None)
        logger.info("Registered OAuth2 client %s", client.id)

    def get_client(self, client_id: str | None) -> AuthClient | None:
        if not client_id:
            raise self._error(AuthRequestError.INVALID_CLIENT)

        if self._cache_clients and client_id in self._client_cache:
            return self._client_cache[client_id]

        client = self.delegate.get_client(self, client_id)
        if client is not None and self._cache_clients:
            self._client_cache[client_id] = client
        return client

    def remove_client(self, client_id: str | None) -> None:
        if not client_id:
            raise self._error(AuthRequestError.INVALID_CLIENT)

        self._client_cache.pop(client_id, None)
        self.delegate.remove_client(self, client_id)
        logger.info("Removed OAuth2 client %s", client_id)

    # ------------------------------------------------------------------
    # Resource owners
    # ------------------------------------------------------------------

    def revoke_all_grants_for_resource_owner(self, owner_id: int | None) -> None:
        """Remove every token issued on behalf of *owner_id*.

        Outstanding authorization codes are not removed; they expire on their own
        and cannot be exchanged more than once.
        """
        if owner_id is None:
            raise ValueError("owner_id must not be None")

        self.delegate.remove_tokens(self, owner_id)
        logger.info("Revoked all tokens for resource owner %s", owner_id)

    # ------------------------------------------------------------------
    # Grants
    # ------------------------------------------------------------------

    def authenticate(
        self,
        username: str | None,
        password: str | None,
        client_id: str | None,
        client_secret: str | None,
        expiration: int | None = None,
        requested_scopes: ScopeInput = None,
    ) -> AuthToken:
        """Resource owner password grant. Returns a persisted token."""
        client = self._require_client(client_id)

        if username is None or password is None:
            raise self._error(AuthRequestError.INVALID_REQUEST, client)

        if client.is_public:
            if client_secret:
                raise self._error(AuthRequestError.INVALID_CLIENT, client)
        else:
            if client_secret is None:
                raise self._error(AuthRequestError.INVALID_CLIENT, client)
            if not self.hasher.verify(client_secret, client.salt, client.hashed_secret):
                raise self._error(AuthRequestError.INVALID_CLIENT, client)

        owner = self.delegate.get_resource_owner(self, username)
        if owner is None:
            raise self._error(AuthRequestError.INVALID_GRANT, client)
        if not self.hasher.verify(password, owner.salt, owner.hashed_password):
            raise self._error(AuthRequestError.INVALID_GRANT, client)

        scopes = self._validated_scopes(client, owner, parse_scopes(requested_scopes))
        token = issue_token(
            owner.id,
            client.id,
            expiration if expiration is not None else self.token_ttl,
            allow_refresh=not client.is_public,
            scopes=scopes,
        )
        self.delegate.add_token(self, token)

        logger.info("Issued password-grant token for client %s (owner %s)", client.id, owner.id)
        return token

    def authenticate_for_code(
        self,
        username: str | None,
        password: str | None,
        client_id: str | None,
        expiration: int | None = None,
        requested_scopes: ScopeInput = None,
    ) -> AuthCode:
        """First step of the authorization code grant. Returns a persisted code."""
        client = self._require_client(client_id)

        if username is None or password is None:
            raise self._error(AuthRequestError.INVALID_REQUEST, client)

        if client.redirect_uri is None:
            raise self._error(AuthRequestError.UNAUTHORIZED_CLIENT, client)

        owner = self.delegate.get_resource_owner(self, username)
        if owner is None:
            raise self._error(AuthRequestError.ACCESS_DENIED, client)
        if not self.hasher.verify(password, owner.salt, owner.hashed_password):
            raise self._error(AuthRequestError.ACCESS_DENIED, client)

        scopes = self._validated_scopes(client, owner, parse_scopes(requested_scopes))
        code = issue_code(
            owner.id,
            client,
            expiration if expiration is not None else self.code_ttl,
            scopes=scopes,
        )
        self.delegate.add_code(self, code)

        logger.info("Issued authorization code for client %s (owner %s)", client.id, owner.id)
        return code

    def exchange(
        self,
        code: str | None,
        client_id: str | None,
        client_secret: str | None,
        expiration: int | None = None,
    ) -> AuthToken:
        """Second step of the authorization code grant: trade a code for a token.

        A code that was already exchanged is treated as a replay: the token
        issued from it is revoked before the request is rejected.
        """
        client = self._require_client(client_id)

        if code is None:
            raise self._error(AuthRequestError.INVALID_REQUEST)

        if client_secret is None:
            raise self._error(AuthRequestError.INVALID_CLIENT, client)
        if not self.hasher.verify(client_secret, client.salt, client.hashed_secret):
            raise self._error(AuthRequestError.INVALID_CLIENT, client)

        auth_code = self.delegate.get_code(self, code)
        if auth_code is None:
            raise self._error(AuthRequestError.INVALID_GRANT, client)

        if auth_code.is_expired:
            self.delegate.remove_code(self, auth_code.code)
            raise self._error(AuthRequestError.INVALID_GRANT, client)

        if auth_code.client_id != client.id:
            raise self._error(AuthRequestError.INVALID_GRANT, client)

        if auth_code.has_been_exchanged:
            logger.warning(
                "Authorization code replay for client %s; revoking issued token", client.id
            )
            self.delegate.remove_token(self, auth_code)
            raise self._error(AuthRequestError.INVALID_GRANT, client)

        token = issue_token(
            auth_code.resource_owner_identifier,
            client.id,
            expiration if expiration is not None else self.exchanged_token_ttl,
            allow_refresh=not client.is_public,
            scopes=auth_code.requested_scopes,
        )
        self.delegate.add_token(self, token, issued_from=auth_code)

        logger.info(
            "Exchanged authorization code for client %s (owner %s)",
            client.id,
            auth_code.resource_owner_identifier,
        )
        return token

    def refresh(
        self,
        refresh_token: str | None,
        client_id: str | None,
        client_secret: str | None,
        requested_scopes: ScopeInput = None,
    ) -> AuthToken:
        """Issue a new access token for *refresh_token*.

        The new token keeps the refresh token, owner, client and lifetime of the
        old one. Requested scopes may only narrow what was granted.
        """
        client = self._require_client(client_id)

        if refresh_token is None:
            raise self._error(AuthRequestError.INVALID_REQUEST, client)

        token = self.delegate.get_token(self, refresh_token=refresh_token)
        if token is None or token.client_id != client.id:
            raise self._error(AuthRequestError.INVALID_GRANT, client)

        if client_secret is None:
            raise self._error(AuthRequestError.INVALID_CLIENT, client)
        if not self.hasher.verify(client_secret, client.salt, client.hashed_secret):
            raise self._error(AuthRequestError.INVALID_CLIENT, client)

        requested = parse_scopes(requested_scopes)
        if requested:
            granted = token.scopes or []
            for scope in requested:
                if not any(scope.is_subset_or_equal_to(existing) for existing in granted):
                    raise self._error(AuthRequestError.INVALID_SCOPE, client)
                if not client.allows_scope(scope):
                    raise self._error(AuthRequestError.INVALID_SCOPE, client)
            updated_scopes = requested
        else:
            # Client scope configuration may have changed since the token was issued.
            updated_scopes = token.scopes
            if client.supports_scopes:
                for scope in token.scopes or []:
                    if not client.allows_scope(scope):
                        raise self._error(AuthRequestError.INVALID_SCOPE, client)

        lifetime = token.expiration_date - token.issue_date
        now = datetime.now(UTC)
        new_token = AuthToken(
            access_token=random_token(),
            refresh_token=token.refresh_token,
            token_type=token.token_type,
            issue_date=now,
            expiration_date=now + lifetime,
            resource_owner_identifier=token.resource_owner_identifier,
            client_id=token.client_id,
            scopes=updated_scopes,
        )
        self.delegate.update_token(
            self,
            token.access_token,
            new_token.access_token,
            new_token.issue_date,
            new_token.expiration_date,
            scopes=updated_scopes,
        )

        logger.info(
            "Refreshed token for client %s (owner %s)",
            client.id,
            token.resource_owner_identifier,
        )
        return new_token

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(
        self, access_token: str | None, scopes_required: ScopeInput = None
    ) -> Authorization:
        """Return the Authorization for a valid, unexpired *access_token*."""
        if access_token is None:
            raise self._error(AuthRequestError.INVALID_REQUEST)

        token = self.delegate.get_token(self, access_token=access_token)
        if token is None or token.is_expired:
            client = AuthClient(id=token.client_id) if token is not None else None
            raise self._error(AuthRequestError.INVALID_GRANT, client)

        if scopes_required is not None:
            if not verify_scopes(parse_scopes(scopes_required), token.scopes):
                raise self._error(AuthRequestError.INVALID_SCOPE, AuthClient(id=token.client_id))

        return Authorization(
            client_id=token.client_id,
            owner_id=token.resource_owner_identifier,
            scopes=token.scopes,
        )

    def validate(
        self, credentials: Credentials, required_scopes: ScopeInput = None
    ) -> Authorization:
        """Validate parsed Authorization header credentials.

        Basic credentials identify a client; Bearer credentials are access tokens.
        """
        if credentials.strategy is AuthStrategy.BASIC:
            return self.validate_client_credentials(credentials.username, credentials.password)
        return self.verify(credentials.token, scopes_required=required_scopes)

    def validate_client_credentials(
        self, username: str | None, password: str | None
    ) -> Authorization:
        """Authenticate a client from HTTP Basic credentials.

        Public clients identify themselves with an empty password.
        """
        username = username or ""
        password = password or ""
        credentials = BasicCredentials(username=username, password=password)

        client = self.get_client(username)
        if client is None:
            raise self._error(AuthRequestError.INVALID_CLIENT)

        if client.hashed_secret is None:
            if password == "":
                return Authorization(client_id=client.id, credentials=credentials)
            raise self._error(AuthRequestError.INVALID_CLIENT, client)

        if not self.hasher.verify(password, client.salt, client.hashed_secret):
            raise self._error(AuthRequestError.INVALID_CLIENT, client)

        return Authorization(client_id=client.id, credentials=credentials)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_client(self, client_id: str | None) -> AuthClient:
        if not client_id:
            raise self._error(AuthRequestError.INVALID_CLIENT)
        client = self.get_client(client_id)
        if client is None:
            raise self._error(AuthRequestError.INVALID_CLIENT)
        return client

    def _validated_scopes(
        self,
        client: AuthClient,
        owner: ResourceOwner,
        requested: list[AuthScope],
    ) -> list[AuthScope] | None:
        """Narrow *requested* to what both the client and the owner allow.

        Returns None for clients that do not use scopes.
        """
        if not client.supports_scopes:
            return None

        if not requested:
            raise self._error(AuthRequestError.INVALID_SCOPE, client)

        valid = [scope for scope in requested if client.allows_scope(scope)]
        if not valid:
            raise self._error(AuthRequestError.INVALID_SCOPE, client)

        policy = self.delegate.get_allowed_scopes(owner)
        if not policy.is_unrestricted:
            valid = [scope for scope in valid if policy.permits(scope)]
            if not valid:
                raise self._error(AuthRequestError.INVALID_SCOPE, client)

        return valid

    @staticmethod
    def _error(reason: AuthRequestError, client: AuthClient | None = None) -> AuthServerError:
        logger.debug(
            "Rejected OAuth2 request: %s (client %s)",
            reason.value,
            client.id if client is not None else None,
        )
        return AuthServerError(reason, client)


# Singleton
_server: AuthorizationServer | None = None


def get_auth_server() -> AuthorizationServer:
    global _server
    if _server is None:
        settings = get_settings()
        storage = InMemoryAuthStorage(
            persist_path=get_storage_path(settings),
            refresh_retention=settings.refresh_retention_seconds,
        )
        _server = AuthorizationServer.from_settings(storage, settings)
    return _server


def reset_auth_server() -> None:
    """Reset singleton (for testing)."""
    global _server
    _server = None
