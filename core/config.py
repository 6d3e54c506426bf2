"""
core/config.py -- Centralized configuration via pydantic-settings.

All environment variable reads for the console core happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. api_base_url -> API_BASE_URL). Type coercion and validation are
      built in.

  @model_validator(mode="after"): Cross-field validation after all fields are
      resolved. Rejects resolver tuning values that would make resolution
      never finish or never run.

Layer rule: core/ is the kernel. This module may not import from auth/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("plate.config")

_DEFAULT_STORE_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'plate_session.db'}"


class Settings(BaseSettings):
    """Console settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Backend
    # ------------------------------------------------------------------

    api_base_url: str = "http://localhost:8080"
    request_timeout: float = 10.0
    # Where callers are sent when no session can be recovered.
    login_url: str = "/auth/login"

    # ------------------------------------------------------------------
    # Session storage
    # ------------------------------------------------------------------

    # "sql" (durable), "memory" (volatile) or "null" (no-op stub).
    token_store: str = "sql"
    token_store_url: str = _DEFAULT_STORE_URL
    # Stored entries are base64-wrapped JSON when true, plain JSON otherwise.
    encode_storage: bool = True

    # ------------------------------------------------------------------
    # Tree resolution
    # ------------------------------------------------------------------

    resolve_max_attempts: int = 3
    resolve_stagger_seconds: float = 0.1
    resolve_backoff_seconds: float = 0.2
    resolve_max_concurrency: int = 8

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("api_base_url")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        return v.rstrip("/")

    @field_validator("token_store")
    @classmethod
    def known_token_store(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in {"sql", "memory", "null"}:
            raise ValueError(f"TOKEN_STORE must be one of sql, memory, null (got {v!r}).")
        return v

    @model_validator(mode="after")
    def validate_resolver_tuning(self) -> "Settings":
        """Reject resolver settings that cannot produce a tree.

        resolve_max_attempts < 1 would never issue a fetch; a concurrency of
        zero would deadlock the semaphore. Negative delays are meaningless
        for asyncio.sleep and are refused rather than clamped.
        """
        if self.resolve_max_attempts < 1:
            raise ValueError("RESOLVE_MAX_ATTEMPTS must be at least 1.")
        if self.resolve_max_concurrency < 1:
            raise ValueError("RESOLVE_MAX_CONCURRENCY must be at least 1.")
        if self.resolve_stagger_seconds < 0 or self.resolve_backoff_seconds < 0:
            raise ValueError("Resolver delays must not be negative.")
        if self.request_timeout <= 0:
            raise ValueError("REQUEST_TIMEOUT must be positive.")
        if self.resolve_max_concurrency > 32:
            logger.warning(
                "RESOLVE_MAX_CONCURRENCY=%d is high; child fetches may trip backend rate limits.",
                self.resolve_max_concurrency,
            )
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings()
    directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
