"""Run a survey container through the import pipeline, or purge expired staging.

Usage (from repository root):
    python backend/scripts/run_import.py run path/to/PKG-001.uhc
    python backend/scripts/run_import.py run PKG-001.uhc --approve-and-commit --actor reviewer
    python backend/scripts/run_import.py purge

Relative container paths resolve against SURVEY_IMPORT_PACKAGE_STORAGE_PATH.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Make `survey_import` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from survey_import.db.session import SessionLocal
from survey_import.enums import ImportStatus
from survey_import.errors import ImportPipelineError
from survey_import.services.coordinator import build_coordinator


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Survey container import operations.")
    commands = parser.add_subparsers(dest="command", required=True)

    run = commands.add_parser("run", help="Ingest, stage, validate and detect duplicates for one container.")
    run.add_argument("container", help="Container path, absolute or relative to the package storage root.")
    run.add_argument("--actor", default=None, help="User id recorded as importer and committer.")
    run.add_argument(
        "--approve-and-commit",
        action="store_true",
        help="Approve committable records and commit when no conflicts need review.",
    )

    commands.add_parser("purge", help="Delete staging rows of terminal packages past the retention window.")
    return parser.parse_args()


def run_container(container: str, actor: str | None, approve_and_commit: bool) -> int:
    coordinator = build_coordinator()
    with SessionLocal() as db:
        package = coordinator.run(db, container, imported_by=actor)
        print(f"package={package.package_number} ({package.package_id})")
        print(f"status={package.status}")
        for entity_type, count in sorted((package.record_counts_json or {}).items()):
            print(f"  {entity_type}={count}")
        print(f"valid={package.valid_count} warning={package.warning_count} invalid={package.invalid_count}")
        print(f"conflicts={package.conflict_count}")

        if not approve_and_commit:
            return 0
        if package.status != ImportStatus.READY_TO_COMMIT.value:
            print(f"Not committing: package is {package.status}")
            return 1
        approved = coordinator.approve(db, package.id)
        report = coordinator.commit(db, package.id, committed_by=actor)
        print(f"approved={approved}")
        print(f"commit_status={report.status} committed={report.total_committed} failed={report.total_failed}")
        if report.archive_path:
            print(f"archived_to={report.archive_path}")
        return 0 if report.is_fully_successful else 1


def purge_staging() -> int:
    coordinator = build_coordinator()
    with SessionLocal() as db:
        purged = coordinator.purge_expired_staging(db)
    print(f"packages_purged={len(purged)}")
    for package_id, rows in sorted(purged.items()):
        print(f"  package {package_id}: {rows} staging rows")
    return 0


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    args = parse_args()
    try:
        if args.command == "run":
            code = run_container(args.container, args.actor, args.approve_and_commit)
        else:
            code = purge_staging()
    except ImportPipelineError as exc:
        print(f"error: {exc}", file=sys.stderr)
        code = 2
    sys.exit(code)


if __name__ == "__main__":
    main()
