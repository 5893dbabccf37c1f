"""CLI for rewriting checksums of edited files in a cargo vendor directory."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from vendor_checksum.config import Settings
from vendor_checksum.services.reconcile_service import Reconciler

if TYPE_CHECKING:
    from collections.abc import Sequence

    from vendor_checksum.services.reconcile_service import RunReport

logger = logging.getLogger(__name__)


def _configure_logging(level: str | int) -> None:
    """Configure CLI logging."""
    fmt = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"
    logging.basicConfig(
        level=level,
        format=fmt,
        stream=sys.stderr,
        force=True,
    )


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        number = 0
    if number < 1:
        raise argparse.ArgumentTypeError(f"expected a positive integer, got {value!r}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vendor-checksum",
        description="Update .cargo-checksum.json entries for edited vendored files",
    )
    mode = parser.add_mutually_exclusive_group(required=True)
    mode.add_argument(
        "--files-in-vendor-dir",
        "--files",
        "-f",
        dest="files",
        nargs="+",
        metavar="FILES",
        help="Update checksum for specified vendored files (<package>/<path>)",
    )
    mode.add_argument(
        "--packages",
        "-p",
        nargs="+",
        metavar="PACKAGES",
        help="Run batch process for specified vendored packages",
    )
    mode.add_argument(
        "--all", "-a", action="store_true", help="Run batch process for all vendor packages"
    )
    parser.add_argument(
        "--vendor",
        type=Path,
        metavar="DIR",
        help="Path of the vendor folder, when not running from the repository directory "
        "(default: vendor)",
    )
    parser.add_argument(
        "--ignore-missing",
        action="store_true",
        default=None,
        help="Remove checksums of missing files instead of failing",
    )
    parser.add_argument(
        "--num-threads",
        type=_positive_int,
        metavar="NUM",
        help="Limit the number of hashing threads (default: chosen automatically)",
    )
    parser.add_argument(
        "--keep-package-hash",
        action="store_true",
        default=None,
        help="Leave the package checksum alone when Cargo.toml is rehashed",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    return parser


def print_report(report: RunReport) -> None:
    """Print the run summary and every failure."""
    for failure in report.failures:
        print(f"  FAILED: {failure.display_path} ({failure.reason}): {failure.message}")
    print(
        f"Done. {report.updated} updated, {report.inserted} added, "
        f"{report.removed} removed, {report.unchanged} unchanged, "
        f"{len(report.failures)} failed; {report.manifests_written} manifest(s) written."
    )


def main(argv: Sequence[str] | None = None) -> int:
    """CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    overrides: dict[str, Any] = {}
    if args.vendor is not None:
        overrides["vendor_dir"] = args.vendor
    if args.ignore_missing is not None:
        overrides["ignore_missing"] = args.ignore_missing
    if args.num_threads is not None:
        overrides["num_threads"] = args.num_threads
    if args.keep_package_hash:
        overrides["refresh_package_hash"] = False
    try:
        settings = Settings(**overrides)
    except ValidationError as exc:
        print(f"Error: invalid configuration: {exc}")
        return 2

    _configure_logging(logging.DEBUG if args.verbose else settings.log_level)

    reconciler = Reconciler.from_settings(settings)
    try:
        if args.files:
            report = reconciler.update_files(args.files)
        elif args.all:
            report = reconciler.update_all()
        else:
            report = reconciler.update_packages(args.packages)
    except OSError as exc:
        print(f"Error: {exc}")
        return 1

    print_report(report)
    return report.exit_code


if __name__ == "__main__":
    sys.exit(main())
