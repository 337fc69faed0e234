"""
Unit tests for sync daemon configuration (GuardianSettings).

Tests verify:
- Config loads from environment variables with correct defaults.
- APP_KEY and APP_SECRET are required and must not be blank.
- API_BASE_URL is validated as HTTPS.
- Numeric constraints are enforced (poll interval, page size, windows).

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from pathlib import Path

import pytest
from guardian.src.config import GuardianSettings
from pydantic import ValidationError


@pytest.fixture()
def required_env(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    env = {"APP_KEY": "key-123", "APP_SECRET": "secret-456"}
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


class TestGuardianSettingsLoadsFromEnv:
    def test_defaults_applied_when_optional_vars_missing(
        self, required_env: dict[str, str]
    ) -> None:
        settings = GuardianSettings()

        assert settings.app_key == "key-123"
        assert settings.app_secret == "secret-456"
        assert settings.poll_interval_ms == 300_000
        assert settings.api_base_url == "https://openapi.epsolarpv.com"
        assert settings.request_timeout_s == 30.0
        assert settings.page_size == 100
        assert settings.history_window_h == 24
        assert settings.alarm_window_days == 7
        assert settings.token_refresh_interval_s == 0
        assert settings.store_path == "/data/guardian.db"
        assert settings.health_path == "/data/health.json"
        assert settings.log_level == "INFO"

    def test_loads_optional_env_vars(
        self, required_env: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("POLL_INTERVAL_MS", "60000")
        monkeypatch.setenv("PAGE_SIZE", "50")
        monkeypatch.setenv("TOKEN_REFRESH_INTERVAL_S", "3600")
        monkeypatch.setenv("STORE_PATH", "/tmp/tree.db")
        monkeypatch.setenv("LOG_LEVEL", "debug")

        settings = GuardianSettings()

        assert settings.poll_interval_ms == 60_000
        assert settings.page_size == 50
        assert settings.token_refresh_interval_s == 3600
        assert settings.store_path == "/tmp/tree.db"
        assert settings.log_level == "DEBUG"

    def test_loads_from_dotenv_file(self, tmp_path: Path) -> None:
        (tmp_path / ".env").write_text("APP_KEY=file-key\nAPP_SECRET=file-secret\n")

        settings = GuardianSettings()

        assert settings.app_key == "file-key"
        assert settings.app_secret == "file-secret"


class TestGuardianSettingsRequiredVars:
    def test_missing_app_key_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APP_SECRET", "secret")

        with pytest.raises(ValidationError) as exc_info:
            GuardianSettings()
        assert "app_key" in str(exc_info.value).lower()

    def test_missing_app_secret_raises(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APP_KEY", "key")

        with pytest.raises(ValidationError) as exc_info:
            GuardianSettings()
        assert "app_secret" in str(exc_info.value).lower()

    def test_blank_app_key_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("APP_KEY", "   ")
        monkeypatch.setenv("APP_SECRET", "secret")

        with pytest.raises(ValidationError, match="must not be empty"):
            GuardianSettings()


class TestGuardianSettingsValidation:
    def test_http_base_url_rejected(
        self, required_env: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("API_BASE_URL", "http://openapi.epsolarpv.com")

        with pytest.raises(ValidationError, match="HTTPS"):
            GuardianSettings()

    @pytest.mark.parametrize("value", ["0", "9999"])
    def test_poll_interval_too_small_rejected(
        self, required_env: dict[str, str], monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("POLL_INTERVAL_MS", value)

        with pytest.raises(ValidationError, match="POLL_INTERVAL_MS"):
            GuardianSettings()

    @pytest.mark.parametrize("value", ["0", "101"])
    def test_page_size_out_of_range_rejected(
        self, required_env: dict[str, str], monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("PAGE_SIZE", value)

        with pytest.raises(ValidationError, match="PAGE_SIZE"):
            GuardianSettings()

    def test_negative_token_refresh_rejected(
        self, required_env: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("TOKEN_REFRESH_INTERVAL_S", "-1")

        with pytest.raises(ValidationError, match="TOKEN_REFRESH_INTERVAL_S"):
            GuardianSettings()

    def test_unknown_log_level_rejected(
        self, required_env: dict[str, str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("LOG_LEVEL", "CHATTY")

        with pytest.raises(ValidationError, match="LOG_LEVEL"):
            GuardianSettings()
