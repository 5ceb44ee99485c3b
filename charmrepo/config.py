"""Client configuration — env-driven.

Centralized settings using pydantic-settings. Values come from keyword
arguments, ``CHARMREPO_*`` environment variables, or a ``.env`` file in the
working directory, in that order of precedence.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STORE_URL = "https://api.jujucharms.com/charmstore"
DEFAULT_MIN_MULTIPART_UPLOAD_SIZE = 5 * 1024 * 1024


class Settings(BaseSettings):
    """Charm store client and cache settings.

    Examples
    --------
    Override via environment::

        export CHARMREPO_STORE_URL=https://api.staging.jujucharms.com/charmstore
        export CHARMREPO_CACHE_DIR=/var/cache/charms
        export CHARMREPO_LOG_LEVEL=DEBUG

    Or via .env file::

        CHARMREPO_USER=admin
        CHARMREPO_PASSWORD=secret
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="CHARMREPO_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Store endpoint
    store_url: str = DEFAULT_STORE_URL
    api_version: str = "v5"
    timeout_seconds: float = 60.0
    channel: str = ""       # empty: no channel selector is sent
    stats_disabled: bool = False

    # Basic credentials; when user is empty no Authorization header is sent
    user: str = ""
    password: str = ""

    # Local archive cache
    cache_dir: Path = Path("~/.cache/charmrepo").expanduser()

    # Uploads
    min_multipart_upload_size: int = DEFAULT_MIN_MULTIPART_UPLOAD_SIZE
    upload_part_attempts: int = 10
    upload_retry_delay_seconds: float = 0.0

    # Logging
    log_level: str = "INFO"

    @field_validator("cache_dir")
    @classmethod
    def _expand_cache_dir(cls, value: Path) -> Path:
        return value.expanduser()

    @field_validator("store_url")
    @classmethod
    def _strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")


# Module-level singleton — import as `from charmrepo.config import settings`
settings = Settings()
