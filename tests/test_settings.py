"""Tests for configuration loading."""

from pathlib import Path

import pytest

from stairbot.config import (
    AppSettings,
    ChartSettings,
    StorageSettings,
    get_settings,
    validate_all_settings,
)


class TestStorageSettings:
    """Tests for the snapshot location settings."""

    def test_data_file_from_env(self, tmp_path):
        assert StorageSettings().data_file == tmp_path / "data" / "users.json"

    def test_plain_data_file_env(self, monkeypatch):
        monkeypatch.delenv("LEDGER_DATA_FILE")
        monkeypatch.setenv("DATA_FILE", "/srv/bot/users.json")
        assert StorageSettings().data_file == Path("/srv/bot/users.json")

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("LEDGER_DATA_FILE")
        settings = StorageSettings()
        assert settings.data_file == Path("./data/users.json")
        assert settings.write_retry_attempts == 3
        assert settings.audit_file is None

    def test_retry_attempts_bounded(self, monkeypatch):
        monkeypatch.setenv("LEDGER_WRITE_RETRY_ATTEMPTS", "0")
        with pytest.raises(ValueError):
            StorageSettings()


class TestChartSettings:
    """Chart window settings are forgiving."""

    @pytest.mark.parametrize(
        "raw, expected",
        [("14", 14), ("1", 7), ("1000", 365), ("0", 30), ("abc", 30), ("-5", 7)],
    )
    def test_days_clamped(self, monkeypatch, raw, expected):
        monkeypatch.setenv("CHART_DAYS", raw)
        assert ChartSettings().days == expected

    def test_default_days(self):
        assert ChartSettings().days == 30

    def test_fixed_range_needs_both(self, monkeypatch):
        monkeypatch.setenv("CHART_START", "2024-10-01")
        assert ChartSettings().fixed_range is None

        monkeypatch.setenv("CHART_END", "2024-10-31")
        assert ChartSettings().fixed_range == ("2024-10-01", "2024-10-31")

    def test_invalid_fixed_date_ignored(self, monkeypatch):
        monkeypatch.setenv("CHART_START", "01.10.2024")
        monkeypatch.setenv("CHART_END", "2024-10-31")
        settings = ChartSettings()
        assert settings.start is None
        assert settings.fixed_range is None


class TestAppSettings:
    """Tests for general app settings."""

    def test_log_level_normalized(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "debug")
        assert AppSettings().log_level == "DEBUG"

    def test_unknown_log_level_rejected(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "loud")
        with pytest.raises(ValueError):
            AppSettings()

    def test_default_user_name(self):
        assert AppSettings().default_user_name == "unnamed"


class TestSettingsAccess:
    """Tests for the cached root settings."""

    def test_get_settings_is_cached(self):
        assert get_settings() is get_settings()

    def test_validate_all_settings(self, monkeypatch):
        assert validate_all_settings() == {"storage": True, "chart": True, "app": True}

        monkeypatch.setenv("LOG_LEVEL", "loud")
        get_settings.cache_clear()
        status = validate_all_settings()
        assert status["app"] is False
        assert "app_error" in status
