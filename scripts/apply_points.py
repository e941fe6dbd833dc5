"""
Apply graded points to submissions from a CSV file.

Each row is `file_key_fragment,points`. Every submission whose file key
contains the fragment receives the points, then user totals are recomputed.
A header row and `#` comment lines are skipped.
"""

from __future__ import annotations

import argparse
import csv
import logging
import sys
from pathlib import Path
from typing import Iterable, List, Tuple

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from challenge_backend.dependencies import get_db_client
from challenge_backend.ledger import SubmissionLedger

logger = logging.getLogger(__name__)


def parse_rows(lines: Iterable[str]) -> List[Tuple[str, int]]:
    rows: List[Tuple[str, int]] = []
    for line_no, record in enumerate(csv.reader(lines), start=1):
        if not record or not record[0].strip() or record[0].lstrip().startswith("#"):
            continue
        if len(record) < 2:
            raise ValueError(f"line {line_no}: expected 'fragment,points'")
        fragment, raw_points = record[0].strip(), record[1].strip()
        try:
            points = int(raw_points)
        except ValueError:
            if not rows and line_no == 1:
                continue  # header
            raise ValueError(f"line {line_no}: points must be an integer") from None
        rows.append((fragment, points))
    return rows


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Set submission points by file key fragment"
    )
    parser.add_argument("csv_path", type=Path, help="CSV of fragment,points rows")
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print the parsed rows without touching the database",
    )
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(levelname)s:%(message)s")

    with args.csv_path.open(newline="", encoding="utf-8") as handle:
        try:
            rows = parse_rows(handle)
        except ValueError as exc:
            logger.error("%s: %s", args.csv_path, exc)
            return 1

    if args.dry_run:
        for fragment, points in rows:
            print(f"{fragment}\t{points}")
        logger.info("Parsed %d rows", len(rows))
        return 0

    outcome = SubmissionLedger(get_db_client()).bulk_update_points(rows)
    logger.info("%s: %s", outcome.field, outcome.message)
    return 0 if outcome.field == "Update Scores Success" else 1


if __name__ == "__main__":
    raise SystemExit(main())
