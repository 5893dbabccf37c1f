"""Vendored package discovery and path resolution."""

from __future__ import annotations

import logging
from pathlib import Path, PurePosixPath

from vendor_checksum.exceptions import InvalidTargetError

logger = logging.getLogger(__name__)


def list_packages(vendor_dir: Path) -> list[str]:
    """Return the names of all package directories directly under ``vendor_dir``.

    Plain files at the top level are ignored.  Symlinked directories are listed
    so that ``package_path`` can report them.  Names are sorted so that a full
    run visits packages in a stable order.
    """
    if not vendor_dir.is_dir():
        msg = f"Vendor directory does not exist or is not a directory: {vendor_dir}"
        raise NotADirectoryError(msg)
    packages = sorted(entry.name for entry in vendor_dir.iterdir() if entry.is_dir())
    logger.debug("Found %d packages under %s", len(packages), vendor_dir)
    return packages


def package_path(vendor_dir: Path, package: str) -> Path:
    """Map a package name to its directory, rejecting packages that leave the vendor root.

    A package directory that is a symlink to somewhere outside the vendor root
    is rejected as well.
    """
    if not package or package in {".", ".."} or "/" in package or "\\" in package:
        raise InvalidTargetError(f"invalid package name: {package!r}")
    path = vendor_dir / package
    if not path.resolve().is_relative_to(vendor_dir.resolve()):
        raise InvalidTargetError(f"package {package} resolves outside the vendor directory")
    return path


def split_vendor_path(file_in_vendor_dir: str) -> tuple[str, str]:
    """Split ``<package>/<path inside package>`` into its two parts.

    The package-relative part is returned in the ``/``-separated form used as a
    manifest key.

    Raises InvalidTargetError for absolute paths, ``..`` segments, or paths with
    fewer than two segments.
    """
    normalized = file_in_vendor_dir.replace("\\", "/")
    pure = PurePosixPath(normalized)
    if pure.is_absolute():
        msg = f"path must be relative to the vendor directory: {file_in_vendor_dir}"
        raise InvalidTargetError(msg)
    parts = [part for part in pure.parts if part != "."]
    if ".." in parts:
        raise InvalidTargetError(f"path must not contain '..': {file_in_vendor_dir}")
    if len(parts) < 2:
        raise InvalidTargetError(
            f"file path should contain at least 2 parts but given `{file_in_vendor_dir}`"
        )
    return parts[0], "/".join(parts[1:])


def safe_file_path(package_dir: Path, relative_path: str) -> Path:
    """Map a manifest key to a path within ``package_dir``.

    Raises InvalidTargetError for empty or absolute keys, keys containing ``..``,
    and keys that resolve outside the package through a symlink.
    """
    pure = PurePosixPath(relative_path.replace("\\", "/"))
    if not relative_path or pure.is_absolute() or ".." in pure.parts:
        raise InvalidTargetError(f"path escapes package directory: {relative_path}")
    full_path = package_dir.joinpath(*pure.parts)
    if not full_path.resolve().is_relative_to(package_dir.resolve()):
        raise InvalidTargetError(f"path resolves outside package directory: {relative_path}")
    return full_path
