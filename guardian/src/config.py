"""
Sync daemon configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded credentials.

CHANGELOG:
- 2026-10-19: Initial creation, adapted from the edge settings

TODO:
- None
"""

import logging

from pydantic import field_validator
from pydantic_settings import BaseSettings


class GuardianSettings(BaseSettings):
    """Sync daemon configuration for the SolarGuardian mirror.

    All values are loaded from environment variables. Required variables
    must be set; optional variables have sensible defaults.

    Attributes:
        app_key: SolarGuardian open API application key.
        app_secret: SolarGuardian open API application secret.
        poll_interval_ms: Milliseconds between sync cycles (default 300000).
        api_base_url: API base URL (must be HTTPS).
        request_timeout_s: Timeout per API request in seconds.
        page_size: Records requested per list call (single page, max 100).
        history_window_h: Trailing hours searched for a parameter's latest
            sample.
        alarm_window_days: Trailing days of alarms mirrored each cycle.
        token_refresh_interval_s: Re-authenticate when the token is older
            than this many seconds. 0 reuses the start-up token forever.
        store_path: SQLite file holding the mirrored tree.
        health_path: JSON health file path.
        log_level: Root log level name.
    """

    app_key: str
    app_secret: str
    poll_interval_ms: int = 300_000
    api_base_url: str = "https://openapi.epsolarpv.com"
    request_timeout_s: float = 30.0
    page_size: int = 100
    history_window_h: int = 24
    alarm_window_days: int = 7
    token_refresh_interval_s: int = 0
    store_path: str = "/data/guardian.db"
    health_path: str = "/data/health.json"
    log_level: str = "INFO"

    @field_validator("app_key", "app_secret")
    @classmethod
    def credentials_must_be_non_empty(cls, v: str) -> str:
        """Reject empty or whitespace-only app credentials."""
        v = v.strip()
        if not v:
            raise ValueError("APP_KEY and APP_SECRET must not be empty")
        return v

    @field_validator("api_base_url")
    @classmethod
    def api_base_url_must_be_https(cls, v: str) -> str:
        """Validate that the API base URL uses HTTPS.

        The app secret is sent in the authentication request body, so plain
        HTTP URLs are rejected at startup.
        """
        if not v.lower().startswith("https://"):
            raise ValueError(
                "API_BASE_URL must use HTTPS (got: " f"'{v[:20]}...')."
            )
        return v

    @field_validator("poll_interval_ms")
    @classmethod
    def poll_interval_must_be_reasonable(cls, v: int) -> int:
        """Minimum 10-second interval to respect the API's rate limits."""
        if v < 10_000:
            raise ValueError("POLL_INTERVAL_MS must be >= 10000")
        return v

    @field_validator("request_timeout_s")
    @classmethod
    def request_timeout_must_be_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("REQUEST_TIMEOUT_S must be > 0")
        return v

    @field_validator("page_size")
    @classmethod
    def page_size_must_be_valid(cls, v: int) -> int:
        """Validate page size is between 1 and 100 (API maximum)."""
        if v < 1 or v > 100:
            raise ValueError("PAGE_SIZE must be >= 1 and <= 100")
        return v

    @field_validator("history_window_h", "alarm_window_days")
    @classmethod
    def window_must_be_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("HISTORY_WINDOW_H and ALARM_WINDOW_DAYS must be >= 1")
        return v

    @field_validator("token_refresh_interval_s")
    @classmethod
    def token_refresh_must_be_non_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("TOKEN_REFRESH_INTERVAL_S must be >= 0")
        return v

    @field_validator("log_level")
    @classmethod
    def log_level_must_exist(cls, v: str) -> str:
        """Validate the level name against the logging module."""
        level = v.upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"LOG_LEVEL '{v}' is not a logging level")
        return level

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
