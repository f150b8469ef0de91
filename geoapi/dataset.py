"""
geoapi.dataset — Dataset loading and validation.

Parses the raw hierarchical source (an array of countries, each with an
array of states, each with an array of cities) into immutable in-memory
records, exactly once, at process start.

Design contract:
    - load_dataset() is the ONLY function that maps a file to a Dataset.
    - Any absent, unreadable, or malformed input raises DatasetLoadError.
      Nothing partially populated is ever returned.
    - Records are frozen pydantic models. Unknown source attributes
      (iso codes, coordinates, timezones, ...) are dropped at load.
    - Missing ``id`` / ``name`` fields pass through as None. Flagging them
      is the job of geoapi.dataset_integrity, not of the loader.
    - No global state. The caller decides where the Dataset lives.
"""

from __future__ import annotations

import hashlib
import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import (
    BaseModel,
    ConfigDict,
    StrictInt,
    StrictStr,
    TypeAdapter,
    ValidationError,
    field_validator,
)

logger = logging.getLogger("geo.dataset")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class DatasetLoadError(Exception):
    """Raised when the dataset source is missing, unreadable, or malformed."""

    def __init__(self, source: str, reason: str) -> None:
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class DatasetChecksumError(DatasetLoadError):
    """The dataset file digest differs from the expected SHA-256."""


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: StrictInt | None = None
    name: StrictStr | None = None


class City(_Record):
    """Leaf record. ``id`` is unique across the whole dataset."""


class State(_Record):
    """``id`` is unique across the whole dataset, not only within its country."""

    cities: tuple[City, ...] = ()

    @field_validator("cities", mode="before")
    @classmethod
    def _null_cities(cls, v: Any) -> Any:
        return () if v is None else v


class Country(_Record):
    states: tuple[State, ...] = ()

    @field_validator("states", mode="before")
    @classmethod
    def _null_states(cls, v: Any) -> Any:
        return () if v is None else v


_COUNTRIES = TypeAdapter(tuple[Country, ...])


# ---------------------------------------------------------------------------
# Dataset — immutable value object
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Dataset:
    """The whole country → state → city tree, in source order."""

    countries: tuple[Country, ...]
    source: str = "<memory>"
    sha256: str | None = None

    @property
    def state_count(self) -> int:
        return sum(len(c.states) for c in self.countries)

    @property
    def city_count(self) -> int:
        return sum(len(s.cities) for c in self.countries for s in c.states)


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def sha256_file(filepath: Path) -> str:
    """Compute SHA-256 hex digest of a file."""
    h = hashlib.sha256()
    with open(filepath, "rb") as fh:
        while True:
            chunk = fh.read(65536)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def _describe(exc: ValidationError) -> str:
    first = exc.errors()[0]
    loc = ".".join(str(p) for p in first.get("loc", ())) or "<root>"
    return f"{exc.error_count()} validation error(s); first at {loc}: {first.get('msg', 'invalid')}"


def parse_dataset(
    raw: Any,
    *,
    source: str = "<memory>",
    sha256: str | None = None,
) -> Dataset:
    """Validate an already-decoded JSON value into a Dataset.

    Raises:
        DatasetLoadError: if the top level is not an array, or any
            element does not match the country/state/city shape.
    """
    if not isinstance(raw, list):
        raise DatasetLoadError(
            source,
            f"top-level JSON value must be an array, got {type(raw).__name__}",
        )
    try:
        countries = _COUNTRIES.validate_python(raw)
    except ValidationError as exc:
        raise DatasetLoadError(source, _describe(exc)) from exc
    return Dataset(countries=countries, source=source, sha256=sha256)


def load_dataset(path: Path, *, expected_sha256: str | None = None) -> Dataset:
    """Read, checksum, decode and validate the dataset file.

    Args:
        path: Dataset JSON file.
        expected_sha256: If given, the file digest must match (hex,
            case-insensitive) or loading fails.

    Returns:
        Dataset with ``sha256`` set to the digest of the bytes read.

    Raises:
        DatasetLoadError: on any failure. Never returns a partial tree.
    """
    source = str(path)
    if not path.is_file():
        raise DatasetLoadError(source, "dataset file not found")

    try:
        payload = path.read_bytes()
    except OSError as exc:
        raise DatasetLoadError(source, f"dataset file unreadable: {type(exc).__name__}") from exc

    digest = hashlib.sha256(payload).hexdigest()
    if expected_sha256 is not None and digest != expected_sha256.strip().lower():
        raise DatasetChecksumError(
            source,
            f"checksum mismatch (expected {expected_sha256[:16]}..., got {digest[:16]}...)",
        )

    try:
        raw = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DatasetLoadError(source, f"invalid JSON: {type(exc).__name__}") from exc

    dataset = parse_dataset(raw, source=source, sha256=digest)
    logger.debug(json.dumps({
        "event": "dataset_parsed",
        "source": source,
        "bytes": len(payload),
        "countries": len(dataset.countries),
    }))
    return dataset
