"""Checksum error types.

Convention:
- Every failure that the reconciler records instead of propagating derives from
  ``ChecksumError`` and carries a ``FailureKind``.  The reconciler catches
  ``ChecksumError`` at file and package boundaries and turns it into an entry in
  the run report.
- Anything else (``TypeError``, ``KeyError`` from a bug, ...) is not caught and
  aborts the run.
"""

from __future__ import annotations

from enum import StrEnum


class FailureKind(StrEnum):
    """Reason reported for a failed file or package."""

    FILE_NOT_FOUND = "FileNotFound"
    MANIFEST_NOT_FOUND = "ManifestNotFound"
    IO_ERROR = "IOError"
    HASH_COMPUTATION_ERROR = "HashComputationError"
    INVALID_TARGET = "InvalidTarget"


class ChecksumError(Exception):
    """Base class for failures scoped to a single file or package."""

    kind: FailureKind = FailureKind.IO_ERROR


class ManifestNotFoundError(ChecksumError):
    """The package has no readable, recognizable checksum manifest."""

    kind = FailureKind.MANIFEST_NOT_FOUND


class ManifestWriteError(ChecksumError):
    """Writing the manifest back to disk failed; the original is untouched."""

    kind = FailureKind.IO_ERROR


class TargetFileNotFoundError(ChecksumError):
    """A file targeted for hashing does not exist."""

    kind = FailureKind.FILE_NOT_FOUND


class FileReadError(ChecksumError):
    """Reading a target file failed for a reason other than absence or permissions."""

    kind = FailureKind.IO_ERROR


class HashComputationError(ChecksumError):
    """The file exists but its content could not be digested."""

    kind = FailureKind.HASH_COMPUTATION_ERROR


class InvalidTargetError(ChecksumError):
    """A target path cannot be mapped to a file inside a package."""

    kind = FailureKind.INVALID_TARGET
