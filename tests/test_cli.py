# Tests for the gatekeeper command line.
# Created: 2026-10-19

import pytest

from gatekeeper.__main__ import main
from gatekeeper.auth.server import get_auth_server, reset_auth_server
from gatekeeper.config import get_settings


@pytest.fixture(autouse=True)
def storage_file(tmp_path, monkeypatch):
    path = tmp_path / "auth.json"
    monkeypatch.setenv("GATEKEEPER_STORAGE_PATH", str(path))
    monkeypatch.setenv("GATEKEEPER_HASH_ROUNDS", "10")
    monkeypatch.delenv("GATEKEEPER_MEMORY_ONLY", raising=False)
    get_settings.cache_clear()
    reset_auth_server()
    yield path
    get_settings.cache_clear()
    reset_auth_server()


def _reload():
    """Drop the server singleton so the next access re-reads the storage file."""
    reset_auth_server()
    return get_auth_server()


class TestAddClient:
    def test_public_client(self, storage_file):
        assert main(["add-client", "com.public"]) == 0
        client = _reload().get_client("com.public")
        assert client.is_public
        assert storage_file.exists()

    def test_generated_secret_is_printed(self, capsys):
        assert main(["add-client", "com.app", "--secret"]) == 0
        out = capsys.readouterr().out
        assert "shown once" in out

    def test_explicit_secret_and_scopes(self):
        assert main(["add-client", "com.app", "--secret", "s3", "--scope", "user", "--scope", "notes"]) == 0
        server = _reload()
        client = server.get_client("com.app")
        assert server.hasher.verify("s3", client.salt, client.hashed_secret)
        assert [str(s) for s in client.allowed_scopes] == ["user", "notes"]

    def test_redirect_uri_without_secret_fails(self):
        assert main(["add-client", "com.web", "--redirect-uri", "https://web/cb"]) == 2
        assert _reload().get_client("com.web") is None


class TestOwners:
    def test_add_owner_and_revoke(self):
        assert main(["add-client", "com.app", "--secret", "s3"]) == 0
        assert main(["add-owner", "alice", "--password", "pw"]) == 0

        server = _reload()
        token = server.authenticate("alice", "pw", "com.app", "s3")
        assert server.verify(token.access_token).owner_id == 1

        assert main(["revoke-owner", "alice"]) == 0
        server = _reload()
        assert server.delegate.get_token(server, access_token=token.access_token) is None

    def test_duplicate_owner(self):
        assert main(["add-owner", "alice", "--password", "pw"]) == 0
        assert main(["add-owner", "alice", "--password", "pw"]) == 2

    def test_password_prompt(self, monkeypatch):
        monkeypatch.setattr("getpass.getpass", lambda prompt: "typed")
        assert main(["add-owner", "bob"]) == 0
        owner = _reload().delegate.get_resource_owner(None, "bob")
        assert owner.id == 1

    def test_revoke_unknown_owner(self):
        assert main(["revoke-owner", "nobody"]) == 2

    def test_command_required(self):
        with pytest.raises(SystemExit):
            main([])
