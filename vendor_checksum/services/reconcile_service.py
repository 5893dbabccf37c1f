"""Reconcile service: expand update targets, rehash files, and rewrite manifests.

A run is driven by a list of targets.  Targets are grouped by package in order
of first appearance and each package is processed to completion (load, hash,
apply, persist) before the next one starts.  Failures are recorded in the
returned ``RunReport`` at the smallest scope possible (a file, otherwise a
package) and never stop the remaining work.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING

from vendor_checksum.exceptions import (
    ChecksumError,
    FailureKind,
    TargetFileNotFoundError,
)
from vendor_checksum.filesystem import manifest_store
from vendor_checksum.services.hash_service import hash_file
from vendor_checksum.services.package_service import (
    list_packages,
    package_path,
    safe_file_path,
    split_vendor_path,
)

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from pathlib import Path

    from vendor_checksum.config import Settings

logger = logging.getLogger(__name__)


class Outcome(StrEnum):
    """What happened to a single targeted file."""

    UPDATED = "updated"
    INSERTED = "inserted"
    UNCHANGED = "unchanged"
    REMOVED = "removed"
    FAILED = "failed"


_CHANGES = frozenset({Outcome.UPDATED, Outcome.INSERTED, Outcome.REMOVED})


@dataclass(frozen=True)
class FileTarget:
    """A single file inside a package (explicit mode)."""

    package: str
    path: str


@dataclass(frozen=True)
class PackageTarget:
    """Every file tracked in a package's manifest (package mode)."""

    package: str


UpdateTarget = FileTarget | PackageTarget


@dataclass
class FileResult:
    """Result for one file, or for a whole package when ``file`` is None."""

    package: str
    file: str | None
    outcome: Outcome
    digest: str | None = None
    reason: FailureKind | None = None
    message: str = ""

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILED

    @property
    def display_path(self) -> str:
        return f"{self.package}/{self.file}" if self.file else self.package


@dataclass
class PackageResult:
    """All results for one package."""

    package: str
    results: list[FileResult] = field(default_factory=list)
    written: bool = False

    def fail(self, file: str | None, exc: ChecksumError) -> None:
        logger.error("%s: %s", f"{self.package}/{file}" if file else self.package, exc)
        self.results.append(
            FileResult(self.package, file, Outcome.FAILED, reason=exc.kind, message=str(exc))
        )

    def fail_changes(self, exc: ChecksumError) -> None:
        """Mark every change of this package as failed after the manifest could not be saved."""
        logger.error("%s: %s", self.package, exc)
        for result in self.results:
            if result.outcome in _CHANGES:
                result.outcome = Outcome.FAILED
                result.reason = exc.kind
                result.message = str(exc)
        self.written = False


@dataclass
class RunReport:
    """Aggregated result of a reconcile run."""

    packages: list[PackageResult] = field(default_factory=list)

    @property
    def results(self) -> list[FileResult]:
        return [result for package in self.packages for result in package.results]

    def _count(self, outcome: Outcome) -> int:
        return sum(1 for result in self.results if result.outcome is outcome)

    @property
    def updated(self) -> int:
        return self._count(Outcome.UPDATED)

    @property
    def inserted(self) -> int:
        return self._count(Outcome.INSERTED)

    @property
    def removed(self) -> int:
        return self._count(Outcome.REMOVED)

    @property
    def unchanged(self) -> int:
        return self._count(Outcome.UNCHANGED)

    @property
    def failures(self) -> list[FileResult]:
        return [result for result in self.results if result.failed]

    @property
    def manifests_written(self) -> int:
        return sum(1 for package in self.packages if package.written)

    @property
    def ok(self) -> bool:
        return not self.failures

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1


@dataclass
class _PackageWork:
    whole: bool = False
    files: dict[str, None] = field(default_factory=dict)


def file_targets(files_in_vendor_dir: Iterable[str]) -> list[UpdateTarget | FileResult]:
    """Turn ``<package>/<path>`` strings into targets.

    Paths that cannot be mapped to a package file are returned as failed results
    in their place so that they still show up in the report.
    """
    targets: list[UpdateTarget | FileResult] = []
    for raw in files_in_vendor_dir:
        try:
            package, path = split_vendor_path(raw)
        except ChecksumError as exc:
            targets.append(
                FileResult(raw, None, Outcome.FAILED, reason=exc.kind, message=str(exc))
            )
            continue
        targets.append(FileTarget(package, path))
    return targets


class Reconciler:
    """Rewrites checksum manifests under one vendor directory.

    A Reconciler holds only its configuration; each call to ``run`` starts from
    the manifests on disk.
    """

    def __init__(
        self,
        vendor_dir: Path,
        *,
        ignore_missing: bool = False,
        num_threads: int | None = None,
        manifest_name: str = manifest_store.MANIFEST_FILE,
        descriptor: str = manifest_store.DESCRIPTOR_FILE,
        refresh_package_hash: bool = True,
    ) -> None:
        self.vendor_dir = vendor_dir
        self.ignore_missing = ignore_missing
        self.num_threads = num_threads
        self.manifest_name = manifest_name
        self.descriptor = descriptor
        self.refresh_package_hash = refresh_package_hash

    @classmethod
    def from_settings(cls, settings: Settings) -> Reconciler:
        return cls(
            settings.vendor_dir,
            ignore_missing=settings.ignore_missing,
            num_threads=settings.num_threads,
            manifest_name=settings.checksum_file,
            descriptor=settings.descriptor_file,
            refresh_package_hash=settings.refresh_package_hash,
        )

    def update_files(self, files_in_vendor_dir: Sequence[str]) -> RunReport:
        """Explicit mode: rehash the given ``<package>/<path>`` files."""
        return self.run(file_targets(files_in_vendor_dir))

    def update_packages(self, packages: Sequence[str]) -> RunReport:
        """Package mode: rehash every tracked file of the given packages."""
        return self.run([PackageTarget(package) for package in packages])

    def update_all(self) -> RunReport:
        """Global mode: rehash every tracked file of every package in the vendor directory."""
        return self.update_packages(list_packages(self.vendor_dir))

    def run(self, targets: Sequence[UpdateTarget | FileResult]) -> RunReport:
        """Process targets package by package and collect the results."""
        report = RunReport()
        work: dict[str, _PackageWork] = {}
        for target in targets:
            if isinstance(target, FileResult):
                report.packages.append(PackageResult(target.package, [target]))
                continue
            entry = work.setdefault(target.package, _PackageWork())
            if isinstance(target, PackageTarget):
                entry.whole = True
            else:
                entry.files.setdefault(target.path)

        max_workers = self.num_threads
        if max_workers == 1:
            for package, entry in work.items():
                report.packages.append(self._process_package(package, entry, None))
            return report

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            for package, entry in work.items():
                report.packages.append(self._process_package(package, entry, executor))
        return report

    def _process_package(
        self, package: str, work: _PackageWork, executor: ThreadPoolExecutor | None
    ) -> PackageResult:
        result = PackageResult(package)
        try:
            package_dir = package_path(self.vendor_dir, package)
            manifest = manifest_store.load(package_dir, self.manifest_name)
        except ChecksumError as exc:
            if work.whole:
                result.fail(None, exc)
            for file in work.files:
                result.fail(file, exc)
            return result

        files = list(work.files)
        if work.whole:
            tracked = list(manifest.files)
            files = tracked + [file for file in files if file not in manifest.files]

        for file, hashed in self._hash_files(package_dir, files, executor):
            if isinstance(hashed, str):
                change = manifest_store.set_file_hash(manifest, file, hashed)
                outcome = Outcome(change.value)
                if outcome is Outcome.UPDATED:
                    logger.info("Updated %s/%s", package, file)
                elif outcome is Outcome.INSERTED:
                    logger.info("Added %s/%s", package, file)
                result.results.append(FileResult(package, file, outcome, digest=hashed))
            elif isinstance(hashed, TargetFileNotFoundError) and self.ignore_missing:
                if manifest_store.remove_file_hash(manifest, file):
                    logger.warning("Removed checksum of missing file %s/%s", package, file)
                    result.results.append(FileResult(package, file, Outcome.REMOVED))
                else:
                    result.results.append(
                        FileResult(package, file, Outcome.UNCHANGED, message="missing, not tracked")
                    )
            else:
                result.fail(file, hashed)

        if not manifest.dirty:
            return result

        try:
            if self.refresh_package_hash:
                manifest_store.recompute_aggregate(manifest, package_dir, self.descriptor)
            manifest_store.persist(manifest)
        except ChecksumError as exc:
            result.fail_changes(exc)
            return result
        result.written = True
        return result

    def _hash_files(
        self, package_dir: Path, files: list[str], executor: ThreadPoolExecutor | None
    ) -> list[tuple[str, str | ChecksumError]]:
        """Hash files, in parallel when an executor is given. Results keep the input order."""

        def _hash_one(file: str) -> str | ChecksumError:
            try:
                return hash_file(safe_file_path(package_dir, file))
            except ChecksumError as exc:
                return exc

        if executor is None or len(files) < 2:
            digests = [_hash_one(file) for file in files]
        else:
            digests = list(executor.map(_hash_one, files))
        return list(zip(files, digests, strict=True))
