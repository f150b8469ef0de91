#!/usr/bin/env python3
"""Geo API — Dataset Acquisition Script

Downloads the public countries + states + cities JSON dump and writes it
to the path the API loads at startup (geoapi/data/ by default).

Source: dr5hn/countries-states-cities-database (GitHub, ODbL)

Usage:
    python scripts/download_dataset.py
    python scripts/download_dataset.py --output /srv/geo/countries+states+cities.json

After download the script runs the integrity report and prints the
SHA-256 to pin with DATASET_SHA256.

Requirements: requests
"""

import argparse
import sys
import time
from pathlib import Path

import requests

from geoapi.constants import DEFAULT_DATASET_PATH
from geoapi.dataset import sha256_file
from geoapi.dataset_integrity import validate_dataset

SOURCE_URL = (
    "https://raw.githubusercontent.com/dr5hn/countries-states-cities-database/"
    "master/json/countries+states+cities.json"
)

# Timeout for the HTTP request (seconds)
TIMEOUT = 180


def download(url: str, filepath: Path) -> int:
    """Stream the dataset to a temp file, then move it into place. Returns bytes written."""
    filepath.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = filepath.with_suffix(filepath.suffix + ".part")

    print(f"  GET {url}")
    written = 0
    try:
        with requests.get(url, stream=True, timeout=TIMEOUT,
                          headers={"User-Agent": "geoapi-downloader/1.0"}) as response:
            response.raise_for_status()
            with open(tmp_path, "wb") as fh:
                for chunk in response.iter_content(chunk_size=65536):
                    fh.write(chunk)
                    written += len(chunk)
    except BaseException:
        # Never leave a truncated .part behind
        tmp_path.unlink(missing_ok=True)
        raise

    tmp_path.replace(filepath)
    return written


def main() -> None:
    parser = argparse.ArgumentParser(description="Download the Geo API dataset.")
    parser.add_argument("--url", default=SOURCE_URL, help="Source URL.")
    parser.add_argument("--output", default=str(DEFAULT_DATASET_PATH), help="Destination file.")
    args = parser.parse_args()

    output = Path(args.output)

    print("=" * 64)
    print("Geo API — Dataset Acquisition")
    print("=" * 64)
    print(f"Output: {output}")

    t_start = time.time()
    try:
        size = download(args.url, output)
    except requests.RequestException as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    print(f"  Size:    {size / (1024 * 1024):.1f} MB")
    print(f"  Elapsed: {time.time() - t_start:.1f}s")

    report = validate_dataset(output)
    print()
    for check in report.checks:
        marker = "✓" if check["passed"] else "✗"
        print(f"  {marker} {check['check']} — {check['detail']}")
    print()
    print(f"  DATASET_SHA256={report.sha256 or sha256_file(output)}")

    if not report.valid:
        print("\nWARNING: dataset failed integrity checks; "
              "STRICT_VALIDATION=1 would refuse it.", file=sys.stderr)
        sys.exit(report.exit_code)


if __name__ == "__main__":
    main()
