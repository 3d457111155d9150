#!/usr/bin/env python
"""Command-line maintenance entry point for the lecture store."""
import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from lecture_store import __version__
from lecture_store.config import config
from lecture_store.exceptions import LectureStoreError
from lecture_store.maintenance import check_integrity, repair
from lecture_store.observability import configure_logging, is_logging_configured, metrics
from lecture_store.storage.lecture_storage import LectureStorage

EXIT_OK = 0
EXIT_PROBLEMS = 1
EXIT_INIT_FAILED = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(description="Lecture store maintenance")
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )
    parser.add_argument(
        "--root",
        help="Storage root directory",
        type=str,
        default=os.environ.get("LECTURE_STORE_ROOT")
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level
    )
    parser.add_argument(
        "--metrics-file",
        help="Write operation metrics as JSON to this file when done",
        type=str,
        default=None
    )
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser(
        "check", help="Report differences between metadata and entry files"
    )
    subparsers.add_parser(
        "repair", help="Recreate missing bodies and delete orphaned directories"
    )
    subparsers.add_parser("stats", help="Print subject and entry counts")
    return parser.parse_args(argv)


def update_config(args: argparse.Namespace) -> None:
    """Update the global config with command line arguments."""
    if args.root:
        config.root_dir = Path(args.root)
    config.log_level = args.log_level


def run_command(command: str, storage: LectureStorage) -> int:
    """Run check, repair or stats against an open storage; print the result as JSON."""
    if command == "stats":
        print(json.dumps(storage.stats(), indent=2))
        return EXIT_OK

    if command == "check":
        report = check_integrity(storage)
        print(json.dumps(report.to_dict(), indent=2))
        return EXIT_OK if report.is_clean else EXIT_PROBLEMS

    report = repair(storage)
    print(json.dumps(report.to_dict(), indent=2))
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Run one maintenance command and return the process exit code."""
    args = parse_args(argv)
    update_config(args)

    # An embedding application may already have set up logging
    if not is_logging_configured():
        configure_logging(
            log_dir=config.get_log_dir(), level=config.get_log_level(), console=True
        )
    logger = logging.getLogger(__name__)

    try:
        storage = LectureStorage(config.get_root_dir())
    except LectureStoreError as e:
        logger.error(f"Failed to open storage at {config.get_root_dir()}: {e}")
        print(f"error: {e}", file=sys.stderr)
        return EXIT_INIT_FAILED

    try:
        return run_command(args.command, storage)
    except LectureStoreError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"error: {e}", file=sys.stderr)
        return EXIT_PROBLEMS
    finally:
        if args.metrics_file:
            try:
                metrics.save_metrics(config.get_absolute_path(Path(args.metrics_file)))
            except LectureStoreError as e:
                logger.warning(f"Could not save metrics: {e}")


if __name__ == "__main__":
    sys.exit(main())
