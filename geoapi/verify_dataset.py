"""
geoapi.verify_dataset — CLI for dataset integrity verification.

Usage:
    python -m geoapi.verify_dataset
    python -m geoapi.verify_dataset --dataset path/to/countries+states+cities.json
    python -m geoapi.verify_dataset --sha256 <hex> --json
    python -m geoapi.verify_dataset --quiet

Exit codes:
    0: Valid — all checks passed (warnings allowed).
    1: Missing file — dataset file not found.
    2: Checksum mismatch — SHA-256 of the file differs from --sha256.
    3: Shape invalid — not JSON, or not an array of country objects.
    4: Duplicate ids — country, state, or city id repeated.
    5: Missing fields — a record lacks an integer id or a string name.

Output:
    Default: human-readable summary to stdout.
    --json: structured JSON report to stdout.
    --quiet: no output, only exit code.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

from geoapi.constants import (
    DEFAULT_DATASET_PATH,
    EXIT_CHECKSUM_MISMATCH,
    EXIT_DUPLICATE_IDS,
    EXIT_MISSING_FIELDS,
    EXIT_MISSING_FILE,
    EXIT_OK,
    EXIT_SHAPE_INVALID,
)
from geoapi.dataset_integrity import IntegrityReport, validate_dataset


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="verify_dataset",
        description="Verify Geo API dataset integrity: shape, checksum, ids, fields.",
    )
    parser.add_argument(
        "--dataset",
        type=str,
        default=None,
        help=f"Dataset JSON file (default: {DEFAULT_DATASET_PATH}).",
    )
    parser.add_argument(
        "--sha256",
        type=str,
        default=None,
        help="Expected SHA-256 hex digest of the dataset file.",
    )
    output = parser.add_mutually_exclusive_group()
    output.add_argument(
        "--json",
        action="store_true",
        dest="json_output",
        help="Output structured JSON report.",
    )
    output.add_argument(
        "--quiet",
        action="store_true",
        help="Suppress all output. Exit code only.",
    )
    return parser


EXIT_CODE_LABELS: dict[int, str] = {
    EXIT_OK: "VALID",
    EXIT_MISSING_FILE: "MISSING_FILE",
    EXIT_CHECKSUM_MISMATCH: "CHECKSUM_MISMATCH",
    EXIT_SHAPE_INVALID: "SHAPE_INVALID",
    EXIT_DUPLICATE_IDS: "DUPLICATE_IDS",
    EXIT_MISSING_FIELDS: "MISSING_FIELDS",
}


def _bullets(title: str, items: list[str]) -> list[str]:
    if not items:
        return []
    return ["", f"{title} ({len(items)}):", *(f"  • {item}" for item in items)]


def _render(path: Path, report: IntegrityReport) -> list[str]:
    """Human-readable summary, one list item per output line."""
    lines = [
        f"Dataset: {path}",
        f"SHA-256: {report.sha256 or '-'}",
        f"Status:  {EXIT_CODE_LABELS.get(report.exit_code, 'FAILED')}",
        f"Checks:  {len(report.checks)}",
    ]
    for check in report.checks:
        line = f"  {'✓' if check['passed'] else '✗'} {check['check']}"
        if check["detail"]:
            line += f" — {check['detail']}"
        lines.append(line)
    lines += _bullets("Warnings", report.warnings)
    lines += _bullets("Errors", report.errors)
    lines += ["", f"Exit code: {report.exit_code}"]
    return lines


def main(argv: list[str] | None = None) -> int:
    """Run dataset verification. Returns exit code."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    path = Path(args.dataset) if args.dataset else DEFAULT_DATASET_PATH
    report = validate_dataset(path, expected_sha256=args.sha256)

    if args.quiet:
        return report.exit_code

    if args.json_output:
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        return report.exit_code

    print("\n".join(_render(path, report)))
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
