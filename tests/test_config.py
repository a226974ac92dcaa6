"""Tests for settings and generator options."""

import os
from pathlib import Path
from unittest.mock import patch

import pytest

from stock_report.config import GeneratorOptions, load_settings, parse_bool, resolve_strict


class TestLoadSettings:
    """Tests for load_settings."""

    def test_defaults(self) -> None:
        with patch.dict(os.environ, {}, clear=True):
            settings = load_settings()

        assert settings.data_dir == Path("data")
        assert settings.cache_dir == Path(".cache/registry")
        assert settings.registry_cache_ttl == 86400
        assert settings.sources_dir == Path("data/sources")

    def test_environment(self) -> None:
        env = {
            "STOCK_DATA_DIR": "/srv/reports",
            "CACHE_DIR": "/tmp/registry",
            "REGISTRY_CACHE_TTL": "60",
            "SEC_USER_AGENT": "tests/1.0 (contact: tests@example.com)",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = load_settings()

        assert settings.data_dir == Path("/srv/reports")
        assert settings.cache_dir == Path("/tmp/registry")
        assert settings.registry_cache_ttl == 60
        assert settings.sec_user_agent.startswith("tests/1.0")

    def test_explicit_data_dir_wins(self) -> None:
        with patch.dict(os.environ, {"STOCK_DATA_DIR": "/srv/reports"}, clear=True):
            assert load_settings("out").data_dir == Path("out")


class TestStrictMode:
    """Tests for boolean parsing and strict-mode resolution."""

    @pytest.mark.parametrize(
        "value,expected",
        [("true", True), (" YES ", True), ("0", False), ("n", False), ("maybe", True), (None, True)],
    )
    def test_parse_bool(self, value, expected) -> None:
        assert parse_bool(value, default=True) is expected

    def test_explicit_flag_wins(self) -> None:
        with patch.dict(os.environ, {"GENERATOR_STRICT_MODE": "true"}):
            assert resolve_strict(False) is False

    def test_environment_fallback(self) -> None:
        with patch.dict(os.environ, {"GENERATOR_STRICT_MODE": "false"}):
            assert resolve_strict(None) is False


class TestGeneratorOptions:
    """Tests for GeneratorOptions."""

    def test_normalizes_input(self) -> None:
        options = GeneratorOptions(ticker=" rklb ", name="  Rocket Lab ")
        assert options.ticker == "RKLB"
        assert options.name == "Rocket Lab"

    def test_requires_ticker_or_name(self) -> None:
        with pytest.raises(ValueError, match="Either --ticker or --name"):
            GeneratorOptions(ticker="  ")

    def test_policy(self) -> None:
        assert GeneratorOptions(ticker="RKLB", strict=False).to_policy() == {
            "strict": False,
            "allowPlaceholders": True,
            "sourcePriority": "official_first",
        }
