"""Tests for parish_notify.config — settings validation."""

import pytest
from pydantic import ValidationError

from parish_notify import config
from parish_notify.config import NotificationDefaults, Settings


class TestSettings:
    def test_defaults(self):
        s = Settings()
        assert s.TIMEZONE == "Europe/Skopje"
        assert s.HISTORY_RETENTION_DAYS == 30
        assert s.PUSH_RELAY_URL == config.EXPO_PUSH_URL

    def test_unknown_timezone_rejected(self):
        with pytest.raises(ValidationError):
            Settings(TIMEZONE="Mars/Olympus_Mons")

    def test_retention_must_be_positive(self):
        with pytest.raises(ValidationError):
            Settings(HISTORY_RETENTION_DAYS="0")

    def test_retention_parsed_from_string(self):
        assert Settings(SCHEDULE_LOG_RETENTION_DAYS="14").SCHEDULE_LOG_RETENTION_DAYS == 14

    def test_log_level_normalized(self):
        assert Settings(LOG_LEVEL=" debug ").LOG_LEVEL == "DEBUG"

    def test_invalid_env_exits(self, monkeypatch):
        monkeypatch.setenv("TIMEZONE", "Nowhere/Land")
        with pytest.raises(SystemExit):
            config._load_settings()


class TestNotificationDefaults:
    def test_builtin_switches(self):
        d = NotificationDefaults()
        assert d.enabled is True
        assert d.week_before is False
        assert d.day_before is True
        assert d.hour_before is True

    def test_extra_keys_forbidden(self):
        with pytest.raises(ValidationError):
            NotificationDefaults(enabled=True, sound=True)
