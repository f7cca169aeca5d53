# Gatekeeper settings.
# Created: 2026-10-19
#
# Values come from GATEKEEPER_* environment variables or a .env file.
# get_settings() caches a single instance; call get_settings.cache_clear()
# after changing the environment (tests do this).

from __future__ import annotations

import hashlib
from functools import lru_cache
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def get_config_dir() -> Path:
    """Return ~/.gatekeeper, creating it if needed."""
    path = Path.home() / ".gatekeeper"
    path.mkdir(parents=True, exist_ok=True)
    return path


class Settings(BaseSettings):
    """Runtime configuration for the authorization server and its API."""

    model_config = SettingsConfigDict(
        env_prefix="GATEKEEPER_",
        env_file=".env",
        extra="ignore",
    )

    # Credential hashing (PBKDF2)
    hash_rounds: int = 1000
    hash_length: int = 32
    hash_function: str = "sha256"

    # Lifetimes, in seconds
    access_token_ttl_seconds: int = 24 * 3600
    code_ttl_seconds: int = 600
    exchanged_token_ttl_seconds: int = 3600
    # Expired tokens that can still be refreshed are dropped after this long
    refresh_retention_seconds: int = 30 * 24 * 3600

    cache_clients: bool = False

    # JSON file backing the storage delegate (default: ~/.gatekeeper/auth.json)
    storage_path: Path | None = None
    memory_only: bool = False

    # OpenAPI documentation of the OAuth2 flows
    authorization_url: str | None = None
    token_url: str | None = None
    refresh_url: str | None = None
    documented_scopes: dict[str, str] = Field(default_factory=dict)

    # API server
    host: str = "127.0.0.1"
    port: int = 8888
    log_level: str = "INFO"
    cors_allowed_origins: list[str] = Field(default_factory=list)

    @field_validator(
        "hash_rounds",
        "hash_length",
        "access_token_ttl_seconds",
        "code_ttl_seconds",
        "exchanged_token_ttl_seconds",
        "refresh_retention_seconds",
    )
    @classmethod
    def _must_be_positive(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("must be positive")
        return value

    @field_validator("hash_function")
    @classmethod
    def _known_hash_function(cls, value: str) -> str:
        if value not in hashlib.algorithms_available:
            raise ValueError(f"unsupported hash function: {value}")
        return value

    @field_validator("port")
    @classmethod
    def _valid_port(cls, value: int) -> int:
        if not 1 <= value <= 65535:
            raise ValueError(f"port must be between 1 and 65535, got {value}")
        return value


def get_storage_path(settings: Settings) -> Path | None:
    """Where the storage delegate persists its records, or None for memory only."""
    if settings.memory_only:
        return None
    return settings.storage_path or get_config_dir() / "auth.json"


@lru_cache
def get_settings() -> Settings:
    return Settings()
