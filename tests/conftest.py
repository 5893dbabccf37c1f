"""Shared test fixtures for vendor-checksum."""

from __future__ import annotations

import hashlib
import json
from typing import TYPE_CHECKING, Any

import pytest

if TYPE_CHECKING:
    from collections.abc import Callable
    from pathlib import Path

MANIFEST = ".cargo-checksum.json"

NIX_FILES = {
    "src/net/mod.rs": b"pub mod if_;\n",
    "Cargo.toml": b'[package]\nname = "nix"\n',
}


def sha256(content: bytes) -> str:
    return hashlib.sha256(content).hexdigest()


def write_manifest(package_dir: Path, data: dict[str, Any], *, compact: bool = True) -> Path:
    """Write a manifest the way cargo does (compact, no trailing newline) or indented."""
    path = package_dir / MANIFEST
    if compact:
        path.write_text(json.dumps(data, separators=(",", ":")), encoding="utf-8")
    else:
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path


def read_manifest(package_dir: Path) -> dict[str, Any]:
    data: dict[str, Any] = json.loads((package_dir / MANIFEST).read_text(encoding="utf-8"))
    return data


@pytest.fixture
def vendor_dir(tmp_path: Path) -> Path:
    vendor = tmp_path / "vendor"
    vendor.mkdir()
    return vendor


@pytest.fixture
def make_package(vendor_dir: Path) -> Callable[..., Path]:
    """Create a vendored package with the given files and a manifest.

    By default the manifest records stale hashes ("aaa", "bbb", ...) for every
    file, in the order given.
    """

    def _make(
        name: str,
        files: dict[str, bytes],
        *,
        checksums: dict[str, str] | None = None,
        package: str | None = "ccc",
        extra: dict[str, Any] | None = None,
        compact: bool = True,
    ) -> Path:
        package_dir = vendor_dir / name
        package_dir.mkdir()
        for rel, content in files.items():
            path = package_dir / rel
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        if checksums is None:
            checksums = {rel: chr(ord("a") + i) * 3 for i, rel in enumerate(files)}
        data: dict[str, Any] = {"files": checksums, "package": package}
        if extra:
            data.update(extra)
        write_manifest(package_dir, data, compact=compact)
        return package_dir

    return _make


@pytest.fixture
def nix_package(make_package: Callable[..., Path]) -> Path:
    """The ``nix`` package with ``src/net/mod.rs`` -> "aaa" and ``Cargo.toml`` -> "bbb"."""
    return make_package("nix", NIX_FILES)
