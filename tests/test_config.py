"""
Tests for fail-fast configuration.
"""

from datetime import timedelta

import pytest

from app.config import Settings
from app.exceptions import ConfigurationError


class TestSettingsValidation:
    def test_defaults(self):
        settings = Settings(database_url="postgresql+asyncpg://u:p@localhost/db")

        assert settings.access_window == timedelta(hours=24)
        assert settings.unlock_token_ttl == timedelta(minutes=5)
        assert settings.perplexity_model == "sonar"

    def test_missing_database_url(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)

        with pytest.raises(ConfigurationError, match="DATABASE_URL is required"):
            Settings(database_url="", _env_file=None)

    def test_non_postgres_database_url(self):
        with pytest.raises(ConfigurationError, match="PostgreSQL"):
            Settings(database_url="sqlite:///x.db")

    @pytest.mark.parametrize("field", ["access_window_hours", "unlock_token_ttl_minutes"])
    def test_non_positive_durations(self, field):
        with pytest.raises(ConfigurationError):
            Settings(database_url="postgresql://localhost/db", **{field: 0})
