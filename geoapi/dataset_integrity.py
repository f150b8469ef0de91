"""
geoapi.dataset_integrity — Dataset structural integrity validation.

Validates a dataset file or an already-loaded Dataset for:
    1. Source readability (file present, checksum, JSON shape)
    2. Identifier uniqueness (countries; states and cities globally)
    3. Field completeness (every record has an integer id and a string name)
    4. Empty child collections (reported as warnings: such ids answer 404)

Design contract:
    - validate_dataset() and check_dataset() never raise on validation
      failure. They return a structured IntegrityReport.
    - The loader passes incomplete records through unchanged. This module
      is where they are flagged; STRICT_VALIDATION=1 makes the API refuse
      a dataset whose report is not valid.
    - No disk I/O on the request path. Validation is startup-only or CLI.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from geoapi.constants import (
    EXIT_CHECKSUM_MISMATCH,
    EXIT_DUPLICATE_IDS,
    EXIT_MISSING_FIELDS,
    EXIT_MISSING_FILE,
    EXIT_OK,
    EXIT_SHAPE_INVALID,
)
from geoapi.dataset import (
    Dataset,
    DatasetChecksumError,
    DatasetLoadError,
    load_dataset,
)

# Cap on ids quoted per failure detail
_MAX_LISTED = 10


# ---------------------------------------------------------------------------
# IntegrityReport — structured result
# ---------------------------------------------------------------------------


@dataclass
class IntegrityReport:
    """Structured report from dataset validation.

    Fields:
        valid: True only if ALL checks pass. Warnings do not count.
        source: Dataset file path (or "<memory>").
        sha256: Digest of the bytes loaded, when known.
        checks: List of check results, each {check, passed, detail}.
        errors: Flat list of human-readable error strings.
        warnings: Non-fatal findings.
        exit_code: Numeric exit code (0 = ok, non-zero = first failure).
    """
    valid: bool = True
    source: str = ""
    sha256: str | None = None
    checks: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)
    exit_code: int = EXIT_OK

    def _record(self, check: str, passed: bool, detail: str) -> None:
        self.checks.append({"check": check, "passed": passed, "detail": detail})

    def fail(self, check: str, detail: str, code: int) -> None:
        """Failed check. The first failure decides the exit code."""
        self._record(check, False, detail)
        self.errors.append(f"[{check}] {detail}")
        self.valid = False
        if self.exit_code == EXIT_OK:
            self.exit_code = code

    def ok(self, check: str, detail: str = "") -> None:
        self._record(check, True, detail)

    def warn(self, check: str, detail: str) -> None:
        """Passing check with a finding worth surfacing."""
        self._record(check, True, detail)
        self.warnings.append(f"[{check}] {detail}")

    def to_dict(self) -> dict[str, Any]:
        """Plain-dict form for --json output."""
        return asdict(self)


# ---------------------------------------------------------------------------
# Individual checks
# ---------------------------------------------------------------------------


def _listed(values: Iterable[Any]) -> str:
    items = list(values)
    shown = ", ".join(repr(v) for v in items[:_MAX_LISTED])
    if len(items) > _MAX_LISTED:
        shown += f", ... (+{len(items) - _MAX_LISTED} more)"
    return shown


def _check_unique(check: str, label: str, ids: list[Any], report: IntegrityReport) -> bool:
    counts = Counter(i for i in ids if isinstance(i, int) and not isinstance(i, bool))
    duplicates = sorted(i for i, n in counts.items() if n > 1)
    if duplicates:
        report.fail(
            check,
            f"{len(duplicates)} duplicated {label} id(s): {_listed(duplicates)}",
            EXIT_DUPLICATE_IDS,
        )
        return False
    report.ok(check, f"{len(counts)} distinct {label} ids.")
    return True


def _check_required_fields(dataset: Dataset, report: IntegrityReport) -> bool:
    """Every record needs an integer id and a string name."""
    problems: list[str] = []
    for ci, country in enumerate(dataset.countries):
        if country.id is None or country.name is None:
            problems.append(f"countries[{ci}]")
        for si, state in enumerate(country.states):
            if state.id is None or state.name is None:
                problems.append(f"countries[{ci}].states[{si}]")
            for ti, city in enumerate(state.cities):
                if city.id is None or city.name is None:
                    problems.append(f"countries[{ci}].states[{si}].cities[{ti}]")

    if problems:
        report.fail(
            "required_fields",
            f"{len(problems)} record(s) missing id or name: {', '.join(problems[:_MAX_LISTED])}"
            + (" ..." if len(problems) > _MAX_LISTED else ""),
            EXIT_MISSING_FIELDS,
        )
        return False
    report.ok("required_fields", "All records carry id and name.")
    return True


def _check_empty_collections(dataset: Dataset, report: IntegrityReport) -> None:
    """Childless countries and states are served as 404. Warn, never fail."""
    bare_countries = [c.id for c in dataset.countries if not c.states]
    bare_states = [s.id for c in dataset.countries for s in c.states if not s.cities]

    if not bare_countries and not bare_states:
        report.ok("empty_collections", "Every country has states and every state has cities.")
        return
    parts = []
    if bare_countries:
        parts.append(f"{len(bare_countries)} country id(s) without states: {_listed(bare_countries)}")
    if bare_states:
        parts.append(f"{len(bare_states)} state id(s) without cities: {_listed(bare_states)}")
    report.warn("empty_collections", "; ".join(parts))


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def check_dataset(
    dataset: Dataset,
    report: IntegrityReport | None = None,
) -> IntegrityReport:
    """Run the structural checks on an already-loaded Dataset."""
    if report is None:
        report = IntegrityReport(source=dataset.source, sha256=dataset.sha256)

    states = [s for c in dataset.countries for s in c.states]
    _check_unique("country_ids_unique", "country", [c.id for c in dataset.countries], report)
    _check_unique("state_ids_unique", "state", [s.id for s in states], report)
    _check_unique("city_ids_unique", "city", [t.id for s in states for t in s.cities], report)
    _check_required_fields(dataset, report)
    _check_empty_collections(dataset, report)
    return report


def validate_dataset(
    path: Path,
    expected_sha256: str | None = None,
) -> IntegrityReport:
    """Load a dataset file and run every check.

    Load failures are mapped onto exit codes:
        missing file       → EXIT_MISSING_FILE
        checksum mismatch  → EXIT_CHECKSUM_MISMATCH
        anything else      → EXIT_SHAPE_INVALID
    """
    report = IntegrityReport(source=str(path))

    if not path.is_file():
        report.fail("source_readable", "Dataset file not found.", EXIT_MISSING_FILE)
        return report

    try:
        dataset = load_dataset(path, expected_sha256=expected_sha256)
    except DatasetChecksumError as exc:
        report.fail("checksum", exc.reason, EXIT_CHECKSUM_MISMATCH)
        return report
    except DatasetLoadError as exc:
        report.fail("shape", exc.reason, EXIT_SHAPE_INVALID)
        return report

    report.sha256 = dataset.sha256
    report.ok("source_readable", f"{len(dataset.countries)} countries parsed.")
    if expected_sha256 is not None:
        report.ok("checksum", "SHA-256 matches.")
    return check_dataset(dataset, report)
