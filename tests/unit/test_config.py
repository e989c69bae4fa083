"""Settings loading and rank configuration."""

from __future__ import annotations

import pytest
import structlog

from levelcore.config import Settings, get_settings
from levelcore.exceptions import ConfigurationError
from levelcore.log_config import setup_logging
from levelcore.ranks import Rank, RankBook


class TestSettings:
    def test_defaults(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        settings = Settings()
        assert settings.formula.type == "EXPONENTIAL"
        assert settings.formula.migrate_xp is True
        assert settings.formula.exponential.base_xp == 100.0
        assert settings.formula.exponential.exponent == 1.7
        assert settings.formula.exponential.max_level == 100_000
        assert settings.formula.linear.xp_per_level == 100
        assert settings.formula.table.file == "levels.csv"
        assert settings.migration_batch_size == 10_000
        assert settings.migration_progress_every == 50_000
        assert settings.migration_timeout_seconds is None
        assert settings.ranks == []

    def test_nested_environment_overrides(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv("LEVELCORE_FORMULA__TYPE", "linear")
        monkeypatch.setenv("LEVELCORE_FORMULA__MIGRATE_XP", "false")
        monkeypatch.setenv("LEVELCORE_FORMULA__LINEAR__XP_PER_LEVEL", "250")
        monkeypatch.setenv("LEVELCORE_MIGRATION_TIMEOUT_SECONDS", "30")

        settings = Settings()

        assert settings.formula.type == "linear"
        assert settings.formula.migrate_xp is False
        assert settings.formula.linear.xp_per_level == 250
        assert settings.migration_timeout_seconds == 30.0

    def test_ranks_from_json_env(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        monkeypatch.setenv(
            "LEVELCORE_RANKS",
            '[{"id": "bronze", "name": "Bronze", "min_level": 1, "max_level": 9}]',
        )
        settings = Settings()
        assert settings.ranks[0].id == "bronze"
        assert len(RankBook.from_settings(settings.ranks)) == 1

    def test_get_settings_is_cached(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert get_settings() is get_settings()


class TestRankBook:
    def test_first_matching_range_wins(self):
        book = RankBook([Rank("b", "B", 5, 20), Rank("a", "A", 1, 10)])
        assert book.rank_for_level(7).id == "a"
        assert book.rank_for_level(15).id == "b"
        assert book.rank_for_level(21) is None

    def test_empty_book(self):
        assert RankBook().rank_for_level(1) is None

    def test_inverted_range_rejected(self):
        with pytest.raises(ConfigurationError):
            RankBook([Rank("x", "X", 10, 2)])


class TestSetupLogging:
    @pytest.mark.parametrize("log_format", ["json", "console"])
    def test_configures_structlog(self, log_format, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        try:
            setup_logging(Settings(log_format=log_format, log_level="debug"))
            assert structlog.is_configured()
        finally:
            structlog.reset_defaults()

    @pytest.mark.parametrize(("log_format", "log_level"), [("xml", "INFO"), ("json", "LOUD")])
    def test_rejects_unknown_values(self, log_format, log_level, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ConfigurationError):
            setup_logging(Settings(log_format=log_format, log_level=log_level))
