"""
File-system primitives shared by the analyzer and the migration engine.

Covers the image extension whitelist, archive type detection for the
extension-less legacy archives, and copy/move transfers that never leave a
half-written file behind under its final name.
"""

from __future__ import annotations

import logging
import os
import shutil
import threading
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath, PureWindowsPath
from typing import Literal, Optional

import py7zr
import rarfile

_log = logging.getLogger(__name__)

SUPPORTED_IMAGE_EXTENSIONS = frozenset({
    ".png", ".jpg", ".jpeg", ".gif", ".bmp", ".webp",
    ".svg", ".ico", ".avif", ".jxl", ".apng", ".tif", ".tiff",
})
PARTIAL_SUFFIX = ".partial"
COPY_CHUNK_SIZE = 1024 * 1024

TransferAction = Literal["copied", "moved", "already_present"]


class CancelToken:
    """Thread-safe cancellation flag shared between a caller and a worker."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def is_cancelled(self) -> bool:
        return self._event.is_set()


class CopyCancelled(Exception):
    """Raised from inside a copy loop when its CancelToken fires."""


class DestinationConflict(Exception):
    """The destination exists and differs from the source; nothing was written."""


@dataclass
class TransferOutcome:
    action: TransferAction
    size: int
    warning: str | None = None


# ── Images ────────────────────────────────────────────────────────────


def is_image(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_IMAGE_EXTENSIONS


def list_images(directory: Path, recursive: bool = False) -> list[Path]:
    """Whitelisted image files in ``directory``, sorted by path."""
    candidates = directory.rglob("*") if recursive else directory.iterdir()
    return sorted(p for p in candidates if p.is_file() and is_image(p))


# ── Archives ──────────────────────────────────────────────────────────


def detect_archive_type(filepath: Path) -> str | None:
    """Identify a legacy archive from its header.

    The legacy tool stored archives under their sha with no extension, so
    the suffix cannot be trusted.  Returns ``"zip"``, ``"7z"``, ``"rar"`` or
    ``None`` when the format is not recognised.
    """
    if zipfile.is_zipfile(filepath):
        return "zip"
    if py7zr.is_7zfile(filepath):
        return "7z"
    if rarfile.is_rarfile(filepath):
        return "rar"
    return None


# ── Sizes ─────────────────────────────────────────────────────────────


def format_bytes(size: int) -> str:
    if size <= 0:
        return "0 B"
    units = ("B", "KB", "MB", "GB", "TB")
    value = float(size)
    order = 0
    while value >= 1024 and order < len(units) - 1:
        value /= 1024
        order += 1
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text} {units[order]}"


def parent_directory(path: str) -> str:
    """Parent directory of a path recorded by the legacy tool.

    Legacy files were written on Windows, so backslashes and drive letters
    are parsed as Windows paths regardless of the host.
    """
    if "\\" in path or (len(path) > 1 and path[1] == ":"):
        return str(PureWindowsPath(path).parent)
    return str(PurePosixPath(path).parent)


# ── Copy / move ───────────────────────────────────────────────────────


def _partial_path(dst: Path) -> Path:
    return dst.with_name(dst.name + PARTIAL_SUFFIX)


def copy_file(src: Path, dst: Path, cancel: Optional[CancelToken] = None) -> int:
    """Copy ``src`` to ``dst`` through a ``.partial`` sibling.

    The data only appears under ``dst`` once it has been fully written.  If
    the copy fails or is cancelled the partial file is removed and the
    exception propagates.  Returns the number of bytes written.
    """
    dst.parent.mkdir(parents=True, exist_ok=True)
    partial = _partial_path(dst)
    written = 0
    try:
        with open(src, "rb") as fsrc, open(partial, "wb") as fdst:
            while True:
                if cancel is not None and cancel.is_cancelled():
                    raise CopyCancelled(f"Copy of {src.name} cancelled")
                chunk = fsrc.read(COPY_CHUNK_SIZE)
                if not chunk:
                    break
                fdst.write(chunk)
                written += len(chunk)
        shutil.copystat(src, partial)
        os.replace(partial, dst)
    except BaseException:
        if partial.exists():
            partial.unlink()
        raise
    return written


def _check_destination(src: Path, dst: Path) -> TransferOutcome | None:
    if not dst.exists():
        return None
    src_size = src.stat().st_size
    if dst.is_file() and dst.stat().st_size == src_size:
        return TransferOutcome("already_present", src_size)
    raise DestinationConflict(f"{dst} already exists with different content")


def transfer_file(
    src: Path,
    dst: Path,
    move: bool = False,
    cancel: Optional[CancelToken] = None,
) -> TransferOutcome:
    """Copy or move one file into the new storage layout.

    An existing destination of the same size is treated as already
    migrated; any other existing destination raises DestinationConflict and
    is left untouched.

    A move first tries a plain rename.  When that fails (typically across
    volumes) the file is copied and the original deleted afterwards; if the
    delete fails the outcome is reported as a copy with a warning.
    """
    existing = _check_destination(src, dst)
    if existing is not None:
        return existing

    if not move:
        return TransferOutcome("copied", copy_file(src, dst, cancel))

    size = src.stat().st_size
    dst.parent.mkdir(parents=True, exist_ok=True)
    try:
        os.rename(src, dst)
        return TransferOutcome("moved", size)
    except OSError as exc:
        _log.debug("Rename %s -> %s failed (%s), falling back to copy", src, dst, exc)

    size = copy_file(src, dst, cancel)
    try:
        src.unlink()
    except OSError as exc:
        return TransferOutcome(
            "copied",
            size,
            warning=f"copied but could not remove original {src.name}: {exc}",
        )
    return TransferOutcome("moved", size)


def copy_tree(src_dir: Path, dst_dir: Path, skip_names: frozenset[str] = frozenset()) -> tuple[int, list[str]]:
    """Copy a directory tree file by file, overwriting existing files.

    Returns ``(files_copied, failures)``; a failing file does not stop the
    rest of the tree.
    """
    copied = 0
    failures: list[str] = []
    for path in sorted(src_dir.rglob("*")):
        if not path.is_file() or path.name in skip_names:
            continue
        target = dst_dir / path.relative_to(src_dir)
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, target)
            copied += 1
        except OSError as exc:
            failures.append(f"{path.relative_to(src_dir).as_posix()}: {exc}")
    return copied, failures
