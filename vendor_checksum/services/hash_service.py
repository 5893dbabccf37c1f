"""Content hashing for vendored files."""

from __future__ import annotations

import hashlib
from typing import TYPE_CHECKING

from vendor_checksum.exceptions import (
    FileReadError,
    HashComputationError,
    TargetFileNotFoundError,
)

if TYPE_CHECKING:
    from pathlib import Path

_CHUNK_SIZE = 64 * 1024


def hash_bytes(content: bytes) -> str:
    """Compute the SHA-256 hex digest of raw bytes."""
    return hashlib.sha256(content).hexdigest()


def hash_file(path: Path) -> str:
    """Compute the SHA-256 hex digest of a file's raw bytes.

    The file is read as an opaque byte stream, so the digest matches what cargo
    computes when it verifies the vendored source.

    Raises TargetFileNotFoundError, HashComputationError or FileReadError.
    """
    sha = hashlib.sha256()
    try:
        with open(path, "rb") as f:
            for chunk in iter(lambda: f.read(_CHUNK_SIZE), b""):
                sha.update(chunk)
    except FileNotFoundError as exc:
        raise TargetFileNotFoundError(f"file not found: {path}") from exc
    except (PermissionError, IsADirectoryError) as exc:
        raise HashComputationError(f"cannot read {path}: {exc.strerror or exc}") from exc
    except OSError as exc:
        raise FileReadError(f"failed to read {path}: {exc.strerror or exc}") from exc
    return sha.hexdigest()
