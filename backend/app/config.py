from __future__ import annotations

import os
from functools import lru_cache

from pydantic import BaseModel, Field


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


class Settings(BaseModel):
    """
    Runtime configuration for the addon service.

    Defaults match the public Stremio API and the timeouts the health and
    update checks were tuned for. Every value can be overridden through a
    CURATOR_* environment variable (see `from_env`).
    """

    # Remote platform
    stremio_api_url: str = "https://api.strem.io"
    api_timeout: float = 20.0

    # Pass-through proxy used as the last health-check tier.
    # `{url}` receives the URL-encoded target.
    proxy_url_template: str = "https://api.allorigins.win/raw?url={url}"

    # Per-step timeouts (seconds)
    domain_check_timeout: float = 15.0
    manifest_check_timeout: float = 15.0
    proxy_timeout: float = 10.0
    functionality_timeout: float = 10.0
    manifest_fetch_timeout: float = 15.0

    # How long a resolved shared check stays joinable
    pending_ttl: float = Field(default=2.0, ge=0)

    # Batch windows
    update_batch_size: int = Field(default=10, ge=1)
    health_batch_size: int = Field(default=5, ge=1)

    log_dir: str = "logs"

    @classmethod
    def from_env(cls) -> "Settings":
        defaults = cls()
        return cls(
            stremio_api_url=os.getenv("CURATOR_STREMIO_API_URL", defaults.stremio_api_url),
            api_timeout=_env_float("CURATOR_API_TIMEOUT", defaults.api_timeout),
            proxy_url_template=os.getenv("CURATOR_PROXY_URL_TEMPLATE", defaults.proxy_url_template),
            domain_check_timeout=_env_float("CURATOR_DOMAIN_CHECK_TIMEOUT", defaults.domain_check_timeout),
            manifest_check_timeout=_env_float("CURATOR_MANIFEST_CHECK_TIMEOUT", defaults.manifest_check_timeout),
            proxy_timeout=_env_float("CURATOR_PROXY_TIMEOUT", defaults.proxy_timeout),
            functionality_timeout=_env_float("CURATOR_FUNCTIONALITY_TIMEOUT", defaults.functionality_timeout),
            manifest_fetch_timeout=_env_float("CURATOR_MANIFEST_FETCH_TIMEOUT", defaults.manifest_fetch_timeout),
            pending_ttl=_env_float("CURATOR_PENDING_TTL", defaults.pending_ttl),
            update_batch_size=_env_int("CURATOR_UPDATE_BATCH_SIZE", defaults.update_batch_size),
            health_batch_size=_env_int("CURATOR_HEALTH_BATCH_SIZE", defaults.health_batch_size),
            log_dir=os.getenv("CURATOR_LOG_DIR", defaults.log_dir),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
