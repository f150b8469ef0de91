"""
geoapi.constants — Single source of truth for Geo API constants.

Every module that needs these values imports from here.
No hardcoded duplicates of response messages or exit codes elsewhere.
"""

from __future__ import annotations

from pathlib import Path

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

PACKAGE_ROOT: Path = Path(__file__).resolve().parent

DATASET_FILENAME: str = "countries+states+cities.json"

DEFAULT_DATASET_PATH: Path = PACKAGE_ROOT / "data" / DATASET_FILENAME
"""Where scripts/download_dataset.py writes the public dataset.
Overridden at runtime by the DATASET_PATH environment variable."""

# ---------------------------------------------------------------------------
# Response messages — wire contract, do not reword
# ---------------------------------------------------------------------------

ROOT_MESSAGE: str = "API is running..."
COUNTRIES_UNAVAILABLE_MESSAGE: str = "Countries data not found"
STATES_NOT_FOUND_MESSAGE: str = "Country or states not found"
CITIES_NOT_FOUND_MESSAGE: str = "State or cities not found"
INTERNAL_ERROR_MESSAGE: str = "Internal server error."
RATE_LIMITED_MESSAGE: str = "Rate limit exceeded. Try again later."

API_VERSION: str = "1.0.0"

# ---------------------------------------------------------------------------
# Integrity exit codes — used by the CLI, exposed for programmatic use
# ---------------------------------------------------------------------------

EXIT_OK: int = 0
EXIT_MISSING_FILE: int = 1
EXIT_CHECKSUM_MISMATCH: int = 2
EXIT_SHAPE_INVALID: int = 3
EXIT_DUPLICATE_IDS: int = 4
EXIT_MISSING_FIELDS: int = 5
