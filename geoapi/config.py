"""
geoapi.config — Runtime configuration from environment variables.

Environment variables:
    ENV                 — "dev" or "prod" (default: "prod")
    DATASET_PATH        — Dataset JSON file (default: geoapi/data/countries+states+cities.json)
    DATASET_SHA256      — Expected SHA-256 of the dataset file (default: unchecked)
    REQUIRE_DATA        — "1" to hard-fail startup if the dataset cannot be loaded
    STRICT_VALIDATION   — "1" to reject datasets that fail the integrity report
    ENABLE_DOCS         — "1" to force-enable /docs in prod
    RATE_LIMIT          — Per-client limit for data routes (default: "120/minute")
    RATE_LIMIT_ENABLED  — "0" to disable rate limiting
    REDIS_URL           — Optional Redis URL for distributed rate limiting
    HOST, PORT          — Dev server bind address (default: 0.0.0.0:3000)

Settings is read once and passed explicitly to create_app(). Nothing
downstream reads os.environ.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from geoapi.constants import DEFAULT_DATASET_PATH


def _flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip() == "1"


def _port(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        port = int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from None
    if not 0 < port < 65536:
        raise ValueError(f"{name} must be between 1 and 65535, got {port}")
    return port


@dataclass(frozen=True, slots=True)
class Settings:
    """Immutable process configuration."""

    env: str = "prod"
    dataset_path: Path = DEFAULT_DATASET_PATH
    dataset_sha256: str | None = None
    require_data: bool = False
    strict_validation: bool = False
    enable_docs: bool = False
    rate_limit: str = "120/minute"
    rate_limit_enabled: bool = True
    redis_url: str | None = None
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 3000

    @property
    def is_dev(self) -> bool:
        return self.env == "dev"

    @property
    def docs_enabled(self) -> bool:
        return self.is_dev or self.enable_docs


def load_settings() -> Settings:
    """Build Settings from the current environment."""
    dataset_raw = os.getenv("DATASET_PATH", "").strip()
    return Settings(
        env=os.getenv("ENV", "prod").lower().strip(),
        dataset_path=Path(dataset_raw) if dataset_raw else DEFAULT_DATASET_PATH,
        dataset_sha256=os.getenv("DATASET_SHA256", "").strip().lower() or None,
        require_data=_flag("REQUIRE_DATA"),
        strict_validation=_flag("STRICT_VALIDATION"),
        enable_docs=_flag("ENABLE_DOCS"),
        rate_limit=os.getenv("RATE_LIMIT", "").strip() or "120/minute",
        rate_limit_enabled=_flag("RATE_LIMIT_ENABLED", "1"),
        redis_url=os.getenv("REDIS_URL", "").strip() or None,
        host=os.getenv("HOST", "").strip() or "0.0.0.0",  # noqa: S104
        port=_port("PORT", 3000),
    )
