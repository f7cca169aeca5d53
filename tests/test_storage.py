# Tests for the in-memory storage delegate.
# Created: 2026-10-19

import json
from datetime import UTC, datetime, timedelta

import pytest

from gatekeeper.auth.errors import AuthRequestError, AuthServerError
from gatekeeper.auth.models import AuthClient, ResourceOwner
from gatekeeper.auth.provisioning import generate_client, generate_resource_owner
from gatekeeper.auth.scopes import AuthScope, PolicyKind, parse_scopes
from gatekeeper.auth.server import AuthorizationServer
from gatekeeper.auth.storage import InMemoryAuthStorage
from gatekeeper.auth.tokens import issue_code, issue_token


@pytest.fixture
def storage():
    return InMemoryAuthStorage()


@pytest.fixture
def client():
    return AuthClient(id="com.app", redirect_uri="https://app/cb", hashed_secret="h", salt="s")


class TestClientsAndOwners:
    def test_add_get_remove_client(self, storage, client):
        storage.add_client(None, client)
        assert storage.get_client(None, "com.app") is client
        storage.remove_client(None, "com.app")
        assert storage.get_client(None, "com.app") is None

    def test_owner_lookup_by_username(self, storage):
        owner = ResourceOwner(id=1, username="alice", hashed_password="h", salt="s")
        storage.add_resource_owner(owner)
        assert storage.get_resource_owner(None, "alice") is owner
        assert storage.get_resource_owner(None, "bob") is None

    def test_next_owner_id(self, storage):
        assert storage.next_owner_id() == 1
        storage.add_resource_owner(ResourceOwner(id=7, username="a", hashed_password="h", salt="s"))
        assert storage.next_owner_id() == 8

    def test_allowed_scopes_policy(self, storage):
        unrestricted = ResourceOwner(id=1, username="a", hashed_password="h", salt="s")
        assert storage.get_allowed_scopes(unrestricted).kind is PolicyKind.UNRESTRICTED

        restricted = ResourceOwner(
            id=2, username="b", hashed_password="h", salt="s", allowed_scopes=parse_scopes("user")
        )
        policy = storage.get_allowed_scopes(restricted)
        assert policy.kind is PolicyKind.RESTRICTED
        assert policy.scopes == {AuthScope.parse("user")}


class TestTokens:
    def test_lookup_by_access_and_refresh_token(self, storage):
        token = issue_token(1, "com.app", 60)
        storage.add_token(None, token)
        assert storage.get_token(None, access_token=token.access_token) is token
        assert storage.get_token(None, refresh_token=token.refresh_token) is token
        assert storage.get_token(None, access_token="nope") is None
        assert storage.get_token(None) is None

    def test_update_token_keeps_refresh_token(self, storage):
        token = issue_token(1, "com.app", 60, scopes=parse_scopes("a b"))
        storage.add_token(None, token)
        now = datetime.now(UTC)
        storage.update_token(
            None,
            token.access_token,
            "new-access",
            now,
            now + timedelta(seconds=60),
            scopes=parse_scopes("a"),
        )

        assert storage.get_token(None, access_token=token.access_token) is None
        updated = storage.get_token(None, refresh_token=token.refresh_token)
        assert updated.access_token == "new-access"
        assert updated.scopes == parse_scopes("a")
        assert updated.resource_owner_identifier == 1

    def test_update_unknown_token(self, storage):
        now = datetime.now(UTC)
        with pytest.raises(AuthServerError) as exc_info:
            storage.update_token(None, "missing", "new", now, now, scopes=None)
        assert exc_info.value.reason is AuthRequestError.INVALID_GRANT

    def test_remove_tokens_for_owner(self, storage):
        mine = issue_token(1, "com.app", 60)
        theirs = issue_token(2, "com.app", 60)
        storage.add_token(None, mine)
        storage.add_token(None, theirs)

        storage.remove_tokens(None, 1)

        assert storage.get_token(None, access_token=mine.access_token) is None
        assert storage.get_token(None, refresh_token=mine.refresh_token) is None
        assert storage.get_token(None, access_token=theirs.access_token) is theirs


class TestCodeExchange:
    def test_add_token_marks_code_exchanged(self, storage, client):
        code = issue_code(1, client, 600)
        storage.add_code(None, code)
        storage.add_token(None, issue_token(1, client.id, 60), issued_from=code)
        assert storage.get_code(None, code.code).has_been_exchanged

    def test_second_exchange_is_rejected(self, storage, client):
        code = issue_code(1, client, 600)
        storage.add_code(None, code)
        storage.add_token(None, issue_token(1, client.id, 60), issued_from=code)

        second = issue_token(1, client.id, 60)
        with pytest.raises(AuthServerError) as exc_info:
            storage.add_token(None, second, issued_from=code)
        assert exc_info.value.reason is AuthRequestError.INVALID_GRANT
        assert storage.get_token(None, access_token=second.access_token) is None

    def test_losing_exchange_revokes_winning_token(self, storage, client):
        server = AuthorizationServer(storage, hash_rounds=10)
        code = issue_code(1, client, 600)
        storage.add_code(None, code)
        # Both exchanges read the code before either stored its token.
        first = issue_token(1, client.id, 60)
        second = issue_token(1, client.id, 60)
        storage.add_token(None, first, issued_from=code)

        with pytest.raises(AuthServerError) as exc_info:
            storage.add_token(None, second, issued_from=code)
        assert exc_info.value.reason is AuthRequestError.INVALID_GRANT

        with pytest.raises(AuthServerError) as exc_info:
            server.verify(first.access_token)
        assert exc_info.value.reason is AuthRequestError.INVALID_GRANT
        assert storage.get_token(None, refresh_token=first.refresh_token) is None
        assert storage.get_code(None, code.code) is None

    def test_unknown_code_is_rejected(self, storage, client):
        code = issue_code(1, client, 600)
        with pytest.raises(AuthServerError):
            storage.add_token(None, issue_token(1, client.id, 60), issued_from=code)

    def test_remove_token_revokes_token_issued_from_code(self, storage, client):
        code = issue_code(1, client, 600)
        storage.add_code(None, code)
        token = issue_token(1, client.id, 60)
        storage.add_token(None, token, issued_from=code)

        storage.remove_token(None, code)

        assert storage.get_token(None, access_token=token.access_token) is None
        assert storage.get_code(None, code.code) is None

    def test_remove_token_follows_refresh(self, storage, client):
        code = issue_code(1, client, 600)
        storage.add_code(None, code)
        token = issue_token(1, client.id, 60)
        storage.add_token(None, token, issued_from=code)
        now = datetime.now(UTC)
        storage.update_token(None, token.access_token, "refreshed", now, now, scopes=None)

        storage.remove_token(None, code)

        assert storage.get_token(None, access_token="refreshed") is None


class TestCleanup:
    def test_cleanup_expired(self, storage, client):
        expired_code = issue_code(1, client, -1)
        live_code = issue_code(1, client, 600)
        storage.add_code(None, expired_code)
        storage.add_code(None, live_code)

        expired = issue_token(1, client.id, -1, allow_refresh=False)
        refreshable = issue_token(1, client.id, -1)
        storage.add_token(None, expired)
        storage.add_token(None, refreshable)

        storage.cleanup_expired()

        assert storage.get_code(None, expired_code.code) is None
        assert storage.get_code(None, live_code.code) is live_code
        assert storage.get_token(None, access_token=expired.access_token) is None
        assert storage.get_token(None, refresh_token=refreshable.refresh_token) is refreshable


    def test_refreshable_tokens_dropped_after_retention(self):
        storage = InMemoryAuthStorage(refresh_retention=0)
        stale = issue_token(1, "com.app", -1)
        storage.add_token(None, stale)

        storage.cleanup_expired()

        assert storage.get_token(None, refresh_token=stale.refresh_token) is None

    def test_retention_keeps_recently_expired(self):
        storage = InMemoryAuthStorage(refresh_retention=3600)
        recent = issue_token(1, "com.app", -1)
        old = issue_token(1, "com.app", -7200)
        storage.add_token(None, recent)
        storage.add_token(None, old)

        storage.cleanup_expired()

        assert storage.get_token(None, access_token=recent.access_token) is recent
        assert storage.get_token(None, access_token=old.access_token) is None


class TestPersistence:
    def test_round_trip(self, tmp_path):
        path = tmp_path / "auth.json"
        storage = InMemoryAuthStorage(persist_path=path)
        client = generate_client("com.app", secret="s", allowed_scopes="user notes:ro")
        owner = generate_resource_owner(1, "alice", "pw", allowed_scopes=["user"])
        token = issue_token(1, "com.app", 60, scopes=parse_scopes("user"))
        code = issue_code(1, AuthClient(id="com.app"), 600)
        storage.add_client(None, client)
        storage.add_resource_owner(owner)
        storage.add_token(None, token)
        storage.add_code(None, code)

        reloaded = InMemoryAuthStorage(persist_path=path)

        assert reloaded.get_client(None, "com.app") == client
        assert reloaded.get_resource_owner(None, "alice") == owner
        assert reloaded.get_token(None, refresh_token=token.refresh_token) == token
        assert reloaded.get_code(None, code.code) is None

    def test_file_contents(self, tmp_path):
        path = tmp_path / "auth.json"
        storage = InMemoryAuthStorage(persist_path=path)
        storage.add_client(None, AuthClient(id="com.public"))

        data = json.loads(path.read_text())
        assert [c["id"] for c in data["clients"]] == ["com.public"]
        assert data["tokens"] == []

    def test_corrupt_file_is_ignored(self, tmp_path):
        path = tmp_path / "auth.json"
        path.write_text("{not json")
        storage = InMemoryAuthStorage(persist_path=path)
        assert storage.get_client(None, "anything") is None


class TestSharedFile:
    """Two storages on one file, e.g. a running server and the CLI."""

    def test_write_keeps_records_added_by_other_instance(self, tmp_path):
        path = tmp_path / "auth.json"
        server_side = InMemoryAuthStorage(persist_path=path)
        server_side.add_client(None, AuthClient(id="com.existing"))
        cli_side = InMemoryAuthStorage(persist_path=path)

        cli_side.add_client(None, AuthClient(id="com.added"))
        cli_side.add_resource_owner(
            ResourceOwner(id=1, username="alice", hashed_password="h", salt="s")
        )
        token = issue_token(1, "com.existing", 60)
        server_side.add_token(None, token)

        reloaded = InMemoryAuthStorage(persist_path=path)
        assert reloaded.get_client(None, "com.added") is not None
        assert reloaded.get_client(None, "com.existing") is not None
        assert reloaded.get_resource_owner(None, "alice") is not None
        assert reloaded.get_token(None, access_token=token.access_token) == token

    def test_write_does_not_restore_revoked_tokens(self, tmp_path):
        path = tmp_path / "auth.json"
        server_side = InMemoryAuthStorage(persist_path=path)
        token = issue_token(1, "com.app", 60)
        server_side.add_token(None, token)
        cli_side = InMemoryAuthStorage(persist_path=path)

        cli_side.remove_tokens(None, 1)
        server_side.add_client(None, AuthClient(id="com.other"))

        reloaded = InMemoryAuthStorage(persist_path=path)
        assert reloaded.get_token(None, access_token=token.access_token) is None
        assert reloaded.get_client(None, "com.other") is not None

    def test_reads_see_other_instance_changes(self, tmp_path):
        path = tmp_path / "auth.json"
        server_side = InMemoryAuthStorage(persist_path=path)
        token = issue_token(1, "com.app", 60)
        server_side.add_token(None, token)
        cli_side = InMemoryAuthStorage(persist_path=path)

        cli_side.add_client(None, AuthClient(id="com.added"))
        cli_side.remove_tokens(None, 1)

        assert server_side.get_client(None, "com.added") is not None
        assert server_side.get_token(None, access_token=token.access_token) is None

    def test_refresh_of_token_revoked_elsewhere(self, tmp_path):
        path = tmp_path / "auth.json"
        server_side = InMemoryAuthStorage(persist_path=path)
        token = issue_token(1, "com.app", 60)
        server_side.add_token(None, token)
        InMemoryAuthStorage(persist_path=path).remove_tokens(None, 1)

        now = datetime.now(UTC)
        with pytest.raises(AuthServerError) as exc_info:
            server_side.update_token(None, token.access_token, "new", now, now, scopes=None)
        assert exc_info.value.reason is AuthRequestError.INVALID_GRANT

    def test_no_temp_file_left_behind(self, tmp_path):
        path = tmp_path / "auth.json"
        InMemoryAuthStorage(persist_path=path).add_client(None, AuthClient(id="c"))
        assert path.exists()
        assert not path.with_suffix(".tmp").exists()
        assert path.stat().st_mode & 0o777 == 0o600
