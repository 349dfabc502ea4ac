"""App settings: loaded from environment."""
from __future__ import annotations

import os
from dotenv import load_dotenv

load_dotenv()


def _optional_int(name: str) -> int | None:
    value = os.getenv(name)
    return int(value) if value else None


class Settings:
    # Remote API
    API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:3000")
    API_TOKEN = os.getenv("API_TOKEN", "")
    HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))

    # Local cache
    CACHE_DATABASE_URL = os.getenv(
        "CACHE_DATABASE_URL", "sqlite+aiosqlite:///crimesync_cache.db"
    )

    # Read paths
    DEFAULT_RADIUS_KM = float(os.getenv("DEFAULT_RADIUS_KM", "5.0"))
    FEED_PAGE_SIZE = int(os.getenv("FEED_PAGE_SIZE", "20"))

    # Eviction (unset = per-family defaults in the reconciler)
    CACHE_RETENTION_DAYS = _optional_int("CACHE_RETENTION_DAYS")
    EVICTION_INTERVAL_HOURS = int(os.getenv("EVICTION_INTERVAL_HOURS", "6"))
    EVICTION_ON_START = os.getenv("EVICTION_ON_START", "true").lower() in ("1", "true", "yes")

    # Reactions
    REVERT_REACTIONS_ON_FAILURE = (
        os.getenv("REVERT_REACTIONS_ON_FAILURE", "false").lower() in ("1", "true", "yes")
    )

    # Logging
    LOG_FORMAT = os.getenv("LOG_FORMAT", "text")  # "text" or "json"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()
