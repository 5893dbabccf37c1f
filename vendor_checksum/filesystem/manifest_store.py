"""Checksum manifest reader/writer for a single vendored package.

A manifest is the ``.cargo-checksum.json`` file at the root of every package
directory produced by ``cargo vendor``::

    {"files":{"Cargo.toml":"<sha256>","src/lib.rs":"<sha256>"},"package":"<sha256>"}

The parsed JSON object is kept as-is so that key order and fields this tool does
not know about survive a rewrite.  The textual layout of the original file
(compact or indented, trailing newline, line endings) is recorded on load and
reproduced on write to keep version-control diffs down to the changed entries.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import re
import stat
import tempfile
from dataclasses import dataclass, field
from enum import StrEnum
from json.decoder import scanstring
from pathlib import Path
from typing import Any

from vendor_checksum.exceptions import FileReadError, ManifestNotFoundError, ManifestWriteError

logger = logging.getLogger(__name__)

MANIFEST_FILE = ".cargo-checksum.json"
DESCRIPTOR_FILE = "Cargo.toml"

_COMPACT_START = re.compile(r'^\{\s*"(?:[^"\\]|\\.)*":\S')
_INDENT = re.compile(r"^([ \t]+)\S", re.MULTILINE)
_WS = re.compile(r"[ \t\n\r]*")
_DECODER = json.JSONDecoder()


class FileChange(StrEnum):
    """Effect of ``set_file_hash`` on the ``files`` mapping."""

    INSERTED = "inserted"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class ManifestLayout:
    """Textual conventions of a manifest file."""

    indent: int | str | None = None
    separators: tuple[str, str] = (",", ":")
    newline: str = "\n"
    trailing: str = ""
    ensure_ascii: bool = False

    def indent_text(self, depth: int) -> str:
        unit = self.indent if isinstance(self.indent, str) else " " * (self.indent or 0)
        return unit * depth


@dataclass(frozen=True)
class RawMember:
    """Source text of one object member: the quoted key and the value."""

    key: str
    value: str


@dataclass
class Manifest:
    """In-memory checksum manifest of one package.

    ``source`` and ``files_source`` hold the text each top-level member and each
    ``files`` entry had on disk; members whose value is unchanged are written
    back from that text.
    """

    path: Path
    data: dict[str, Any]
    layout: ManifestLayout = field(default_factory=ManifestLayout)
    source: dict[str, RawMember] = field(default_factory=dict, repr=False)
    files_source: dict[str, RawMember] = field(default_factory=dict, repr=False)
    changed: set[str] = field(default_factory=set, repr=False)
    package_changed: bool = field(default=False, repr=False)

    @property
    def files(self) -> dict[str, str]:
        files: dict[str, str] = self.data["files"]
        return files

    @property
    def package(self) -> str | None:
        value: str | None = self.data.get("package")
        return value

    @property
    def dirty(self) -> bool:
        """Whether the in-memory content differs from what was loaded."""
        return bool(self.changed) or self.package_changed


def detect_layout(text: str) -> ManifestLayout:
    """Infer serialization conventions from the raw manifest text."""
    body = text.rstrip()
    trailing = text[len(body) :]
    newline = "\r\n" if "\r\n" in body else "\n"
    ensure_ascii = "\\u" in body and body.isascii()
    if "\n" not in body:
        separators = (",", ":") if _COMPACT_START.match(body) else (", ", ": ")
        return ManifestLayout(
            indent=None, separators=separators, trailing=trailing, ensure_ascii=ensure_ascii
        )

    match = _INDENT.search(body)
    indent: int | str = 2
    if match:
        prefix = match.group(1)
        indent = prefix if "\t" in prefix else len(prefix)
    return ManifestLayout(
        indent=indent,
        separators=(",", ": "),
        newline=newline,
        trailing=trailing,
        ensure_ascii=ensure_ascii,
    )


def scan_members(text: str, idx: int = 0) -> dict[str, RawMember]:
    """Map each member of the JSON object at ``idx`` to its source text.

    ``text`` must already be known to be valid JSON.
    """
    members: dict[str, RawMember] = {}
    idx = _WS.match(text, idx).end() + 1
    idx = _WS.match(text, idx).end()
    if text[idx] == "}":
        return members
    while True:
        key_start = idx
        key, idx = scanstring(text, idx + 1)
        key_text = text[key_start:idx]
        idx = _WS.match(text, idx).end() + 1
        idx = _WS.match(text, idx).end()
        _, end = _DECODER.raw_decode(text, idx)
        members[key] = RawMember(key_text, text[idx:end])
        idx = _WS.match(text, end).end()
        if text[idx] == "}":
            return members
        idx = _WS.match(text, idx + 1).end()


def _index_source(manifest: Manifest, text: str) -> None:
    manifest.source = scan_members(text)
    files = manifest.source.get("files")
    manifest.files_source = scan_members(files.value) if files else {}


def parse_manifest(text: str, path: Path) -> Manifest:
    """Parse manifest text, raising ManifestNotFoundError if it is not a manifest."""
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ManifestNotFoundError(f"invalid checksum manifest {path}: {exc}") from exc
    if not isinstance(data, dict) or not isinstance(data.get("files"), dict):
        raise ManifestNotFoundError(f"checksum manifest {path} has no 'files' mapping")
    manifest = Manifest(path=path, data=data, layout=detect_layout(text))
    _index_source(manifest, text)
    return manifest


def load(package_path: Path, manifest_name: str = MANIFEST_FILE) -> Manifest:
    """Load the checksum manifest of the package at ``package_path``.

    Raises ManifestNotFoundError when there is no usable manifest and
    FileReadError when it exists but cannot be read.
    """
    manifest_path = package_path / manifest_name
    try:
        text = manifest_path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ManifestNotFoundError(f"checksum manifest not found: {manifest_path}") from exc
    except UnicodeDecodeError as exc:
        raise ManifestNotFoundError(f"checksum manifest {manifest_path} is not UTF-8") from exc
    except OSError as exc:
        msg = f"failed to read checksum manifest {manifest_path}: {exc}"
        raise FileReadError(msg) from exc
    manifest = parse_manifest(text, manifest_path)
    logger.debug("Loaded %s (%d entries)", manifest_path, len(manifest.files))
    return manifest


def set_file_hash(manifest: Manifest, relative_path: str, digest: str) -> FileChange:
    """Insert or overwrite the entry for ``relative_path``."""
    files = manifest.files
    previous = files.get(relative_path)
    if previous == digest:
        return FileChange.UNCHANGED
    files[relative_path] = digest
    manifest.changed.add(relative_path)
    return FileChange.INSERTED if previous is None else FileChange.UPDATED


def remove_file_hash(manifest: Manifest, relative_path: str) -> bool:
    """Delete the entry for ``relative_path``. Returns True if it existed."""
    if relative_path not in manifest.files:
        return False
    del manifest.files[relative_path]
    manifest.changed.add(relative_path)
    return True


def recompute_aggregate(
    manifest: Manifest, package_path: Path, descriptor: str = DESCRIPTOR_FILE
) -> bool:
    """Refresh the ``package`` hash from the package descriptor.

    Only done when the descriptor's entry was changed in this session.  A
    ``null`` package hash (git and path sources) stays ``null``.  Returns True if
    the value changed.
    """
    if descriptor not in manifest.changed or manifest.package is None:
        return False
    try:
        content = (package_path / descriptor).read_bytes()
    except FileNotFoundError:
        return False
    except OSError as exc:
        msg = f"failed to read descriptor {package_path / descriptor}: {exc}"
        raise FileReadError(msg) from exc

    digest = hashlib.sha256(content).hexdigest()
    if digest == manifest.package:
        return False
    manifest.data["package"] = digest
    manifest.package_changed = True
    logger.info("Refreshed package hash of %s", package_path.name)
    return True


def _dump(value: Any, layout: ManifestLayout, depth: int) -> str:
    text = json.dumps(
        value,
        ensure_ascii=layout.ensure_ascii,
        indent=layout.indent,
        separators=layout.separators,
    )
    if layout.indent is not None:
        text = text.replace("\n", layout.newline + layout.indent_text(depth))
    return text


def _render_object(
    obj: dict[str, Any],
    source: dict[str, RawMember],
    layout: ManifestLayout,
    depth: int,
    nested: dict[str, dict[str, RawMember]] | None = None,
) -> str:
    items: list[str] = []
    for key, value in obj.items():
        raw = source.get(key)
        key_text = raw.key if raw else _dump(key, layout, depth + 1)
        if raw is not None and json.loads(raw.value) == value:
            value_text = raw.value
        elif nested and key in nested and isinstance(value, dict):
            value_text = _render_object(value, nested[key], layout, depth + 1)
        else:
            value_text = _dump(value, layout, depth + 1)
        items.append(key_text + layout.separators[1] + value_text)

    if not items:
        return "{}"
    if layout.indent is None:
        return "{" + layout.separators[0].join(items) + "}"
    inner = layout.newline + layout.indent_text(depth + 1)
    closing = layout.newline + layout.indent_text(depth) + "}"
    return "{" + inner + ("," + inner).join(items) + closing


def serialize(manifest: Manifest) -> str:
    """Render the manifest with the layout it was loaded with.

    Members and ``files`` entries whose value did not change are copied from
    the loaded text, so number formats and string escapes are kept as they were.
    """
    body = _render_object(
        manifest.data,
        manifest.source,
        manifest.layout,
        0,
        nested={"files": manifest.files_source},
    )
    return body + manifest.layout.trailing


def persist(manifest: Manifest) -> None:
    """Atomically write the manifest back to its file.

    The content goes to a temporary file in the same directory which then
    replaces the original, so readers see either the old or the new manifest.
    """
    target = manifest.path
    text = serialize(manifest)
    payload = text.encode("utf-8")
    tmp_path: Path | None = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f"{target.name}.", suffix=".tmp")
        tmp_path = Path(tmp_name)
        try:
            f = os.fdopen(fd, "wb")
        except OSError:
            os.close(fd)
            raise
        with f:
            f.write(payload)
            f.flush()
            os.fsync(f.fileno())
        if target.exists():
            os.chmod(tmp_path, stat.S_IMODE(target.stat().st_mode))
        tmp_path.replace(target)
    except OSError as exc:
        if tmp_path is not None:
            tmp_path.unlink(missing_ok=True)
        raise ManifestWriteError(f"failed to write checksum manifest {target}: {exc}") from exc

    _index_source(manifest, text)
    manifest.changed.clear()
    manifest.package_changed = False
    logger.debug("Wrote %s", target)
