"""
tests/test_config.py — Settings from environment variables.

Covers:
    - Defaults with an empty environment
    - Flag parsing ("1" only), normalisation of ENV and DATASET_SHA256
    - Derived properties (is_dev, docs_enabled)

Requires: pytest
"""

from __future__ import annotations

import dataclasses
from pathlib import Path

import pytest

from geoapi.config import Settings, load_settings
from geoapi.constants import DEFAULT_DATASET_PATH

_ENV_KEYS = (
    "ENV",
    "DATASET_PATH",
    "DATASET_SHA256",
    "REQUIRE_DATA",
    "STRICT_VALIDATION",
    "ENABLE_DOCS",
    "RATE_LIMIT",
    "RATE_LIMIT_ENABLED",
    "REDIS_URL",
    "HOST",
    "PORT",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)


class TestDefaults:
    def test_empty_environment(self):
        s = load_settings()
        assert s.env == "prod"
        assert s.dataset_path == DEFAULT_DATASET_PATH
        assert s.dataset_sha256 is None
        assert s.require_data is False
        assert s.strict_validation is False
        assert s.rate_limit == "120/minute"
        assert s.rate_limit_enabled is True
        assert s.redis_url is None
        assert (s.host, s.port) == ("0.0.0.0", 3000)

    def test_default_dataset_lives_in_package(self):
        assert DEFAULT_DATASET_PATH.name == "countries+states+cities.json"
        assert DEFAULT_DATASET_PATH.parent.name == "data"

    def test_settings_frozen(self):
        with pytest.raises(dataclasses.FrozenInstanceError):
            load_settings().env = "dev"  # type: ignore[misc]


class TestFromEnvironment:
    def test_values_read(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("ENV", " Dev ")
        monkeypatch.setenv("DATASET_PATH", "/srv/geo/world.json")
        monkeypatch.setenv("DATASET_SHA256", "ABCDEF")
        monkeypatch.setenv("RATE_LIMIT", "10/second")
        monkeypatch.setenv("REDIS_URL", "redis://cache:6379/0")
        monkeypatch.setenv("PORT", "8080")
        s = load_settings()
        assert s.env == "dev"
        assert s.dataset_path == Path("/srv/geo/world.json")
        assert s.dataset_sha256 == "abcdef"
        assert s.rate_limit == "10/second"
        assert s.redis_url == "redis://cache:6379/0"
        assert s.port == 8080

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("1", True), (" 1 ", True), ("0", False), ("true", False), ("", False)],
    )
    def test_flags_only_accept_1(self, monkeypatch: pytest.MonkeyPatch, raw: str, expected: bool):
        monkeypatch.setenv("REQUIRE_DATA", raw)
        monkeypatch.setenv("STRICT_VALIDATION", raw)
        s = load_settings()
        assert s.require_data is expected
        assert s.strict_validation is expected

    def test_rate_limit_disabled(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("RATE_LIMIT_ENABLED", "0")
        assert load_settings().rate_limit_enabled is False

    @pytest.mark.parametrize("raw", ["http", "80.5", "0", "65536", "-1"])
    def test_invalid_port_names_variable(self, monkeypatch: pytest.MonkeyPatch, raw: str):
        monkeypatch.setenv("PORT", raw)
        with pytest.raises(ValueError, match="PORT"):
            load_settings()

    def test_blank_port_uses_default(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("PORT", "  ")
        assert load_settings().port == 3000

    def test_blank_values_fall_back(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setenv("DATASET_PATH", "   ")
        monkeypatch.setenv("RATE_LIMIT", "")
        s = load_settings()
        assert s.dataset_path == DEFAULT_DATASET_PATH
        assert s.rate_limit == "120/minute"


class TestDerived:
    def test_docs_in_dev(self):
        assert Settings(env="dev").docs_enabled is True

    def test_docs_off_in_prod(self):
        assert Settings(env="prod").docs_enabled is False

    def test_docs_forced_in_prod(self):
        assert Settings(env="prod", enable_docs=True).docs_enabled is True
