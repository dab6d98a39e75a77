"""
Readers for the plain-text and JSON data of a legacy installation.

Public API
----------
parse_classifications(directory, warn=None) -> ClassificationMap
classification_statistics(directory) -> ClassificationStatistics
parse_redirection(file_path, warn=None) -> ThumbnailMap
redirection_statistics(file_path) -> RedirectionStatistics
parse_legacy_configuration(root, environment) -> LegacyConfiguration | None
parse_mod_indexes(directory, warn=None) -> list[LegacyModEntry]

None of these raise for bad legacy data.  Problems are logged and, when a
``warn`` callback is given, reported through it so the caller can surface
them to the user.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, NamedTuple, Optional

from file_ops import list_images
from legacy_schema import (
    LegacyConfiguration,
    LegacyModEntry,
    parse_environment_configuration,
    parse_global_configuration,
    parse_mod_index,
)

_log = logging.getLogger(__name__)

ClassificationMap = dict[str, list[str]]
ThumbnailMap = dict[str, str]
WarnCallback = Optional[Callable[[str], None]]

GLOBAL_CONFIG_RELPATH = Path("local") / "configuration"
ENV_CONFIG_NAME = "configuration"
MOD_INDEX_PATTERN = "index_*.json"
REDIRECTION_FILENAME = "_redirection.ini"
COMMENT_PREFIXES = (";", "/", "\\")
FOLDER_PREFIX = "[*]"
FOLDER_SUFFIXES = ("\\*", "/*")


def _warn(warn: WarnCallback, msg: str):
    _log.warning(msg)
    if warn is not None:
        warn(msg)


def _read_lines(path: Path) -> list[str]:
    # utf-8-sig drops a leading BOM if the legacy editor wrote one
    return path.read_text(encoding="utf-8-sig").splitlines()


# ── Classification directory ──────────────────────────────────────────


@dataclass(frozen=True)
class ClassificationStatistics:
    total_files: int = 0
    total_objects: int = 0

    def __str__(self) -> str:
        return f"{self.total_files} categories, {self.total_objects} objects"


def parse_classifications(directory: str | Path, warn: WarnCallback = None) -> ClassificationMap:
    """Read every category file directly inside ``directory``.

    The file name is the category; each non-blank line (trimmed) is one
    object name.  Duplicate lines are kept because their position is
    meaningful to the legacy tool.
    """
    directory = Path(directory)
    result: ClassificationMap = {}

    if not directory.is_dir():
        _warn(warn, f"Classification directory not found: {directory}")
        return result

    try:
        files = sorted(p for p in directory.iterdir() if p.is_file())
    except OSError as exc:
        _warn(warn, f"Could not list classification directory {directory}: {exc}")
        return result

    for path in files:
        try:
            lines = _read_lines(path)
        except (OSError, UnicodeDecodeError) as exc:
            _warn(warn, f"Could not read classification file {path.name}: {exc}")
            continue
        result[path.name] = [line.strip() for line in lines if line.strip()]
        _log.debug("Category %r: %d object(s)", path.name, len(result[path.name]))

    _log.info("Parsed %d classification file(s) from %s", len(result), directory)
    return result


def classification_statistics(directory: str | Path) -> ClassificationStatistics:
    directory = Path(directory)
    if not directory.is_dir():
        return ClassificationStatistics()
    files = objects = 0
    for path in directory.iterdir():
        if not path.is_file():
            continue
        files += 1
        try:
            objects += sum(1 for line in _read_lines(path) if line.strip())
        except (OSError, UnicodeDecodeError) as exc:
            _log.debug("Skipping %s in statistics: %s", path.name, exc)
    return ClassificationStatistics(total_files=files, total_objects=objects)


# ── Redirection file ──────────────────────────────────────────────────


class LineKind(Enum):
    EMPTY = "empty"
    COMMENT = "comment"
    FOLDER = "folder"
    EXPLICIT = "explicit"
    OTHER = "other"


class RedirectionLine(NamedTuple):
    kind: LineKind
    key: str = ""  # object name for EXPLICIT, folder path for FOLDER
    value: str = ""  # relative path for EXPLICIT


@dataclass(frozen=True)
class RedirectionStatistics:
    total_lines: int = 0
    empty_lines: int = 0
    comment_lines: int = 0
    folder_declarations: int = 0
    explicit_mappings: int = 0

    def __str__(self) -> str:
        return (
            f"Total: {self.total_lines}, Folders: {self.folder_declarations}, "
            f"Mappings: {self.explicit_mappings}, Comments: {self.comment_lines}, "
            f"Empty: {self.empty_lines}"
        )


def _normalize_relpath(path: str) -> str:
    return path.replace("\\", "/").strip().strip("/")


def classify_redirection_line(line: str) -> RedirectionLine:
    """Classify one raw line of a ``_redirection.ini`` file."""
    text = line.strip()
    if not text:
        return RedirectionLine(LineKind.EMPTY)
    if text.startswith(COMMENT_PREFIXES):
        return RedirectionLine(LineKind.COMMENT)
    if text.startswith(FOLDER_PREFIX) and text.endswith(FOLDER_SUFFIXES):
        folder = text[len(FOLDER_PREFIX):-2]
        return RedirectionLine(LineKind.FOLDER, key=_normalize_relpath(folder))
    if "=" in text:
        name, _, target = text.partition("=")
        name = name.strip()
        if name:
            return RedirectionLine(LineKind.EXPLICIT, key=name, value=_normalize_relpath(target))
    return RedirectionLine(LineKind.OTHER)


def read_redirection_lines(file_path: str | Path) -> tuple[RedirectionLine, ...]:
    return tuple(classify_redirection_line(line) for line in _read_lines(Path(file_path)))


def explicit_mappings(lines: tuple[RedirectionLine, ...]) -> ThumbnailMap:
    """First pass: ``name = path`` lines, later lines overwriting earlier ones."""
    return {line.key: line.value for line in lines if line.kind is LineKind.EXPLICIT}


def wildcard_mappings(
    lines: tuple[RedirectionLine, ...],
    base_dir: Path,
    claimed: ThumbnailMap,
    warn: WarnCallback = None,
) -> ThumbnailMap:
    """Second pass: expand ``[*] folder\\*`` declarations.

    Returns a new map containing ``claimed`` plus every wildcard image whose
    key is not yet present.  Neither an explicit mapping nor an earlier
    wildcard entry is ever replaced.
    """
    merged = dict(claimed)
    for line in lines:
        if line.kind is not LineKind.FOLDER:
            continue
        folder = base_dir / line.key
        if not folder.is_dir():
            _warn(warn, f"Thumbnail folder not found: {folder}")
            continue
        try:
            images = list_images(folder)
        except OSError as exc:
            _warn(warn, f"Could not list thumbnail folder {folder}: {exc}")
            continue
        added = 0
        for image in images:
            if image.stem not in merged:
                merged[image.stem] = f"{line.key}/{image.name}" if line.key else image.name
                added += 1
        _log.debug("Folder %r: %d image(s), %d new mapping(s)", line.key, len(images), added)
    return merged


def parse_redirection(file_path: str | Path, warn: WarnCallback = None) -> ThumbnailMap:
    """Parse a ``_redirection.ini`` file into an object -> thumbnail map.

    Explicit ``name = path`` lines always win over wildcard folder
    declarations, wherever they appear in the file.  Wildcard folders are
    resolved relative to the directory holding the file.
    """
    file_path = Path(file_path)
    try:
        lines = read_redirection_lines(file_path)
    except (OSError, UnicodeDecodeError) as exc:
        _warn(warn, f"Could not read redirection file {file_path}: {exc}")
        return {}

    explicit = explicit_mappings(lines)
    mappings = wildcard_mappings(lines, file_path.parent, explicit, warn)
    _log.info(
        "Parsed %s: %d explicit, %d total mapping(s)", file_path.name, len(explicit), len(mappings)
    )
    return mappings


def redirection_statistics(file_path: str | Path) -> RedirectionStatistics:
    lines = read_redirection_lines(file_path)
    counts = {kind: 0 for kind in LineKind}
    for line in lines:
        counts[line.kind] += 1
    return RedirectionStatistics(
        total_lines=len(lines),
        empty_lines=counts[LineKind.EMPTY],
        comment_lines=counts[LineKind.COMMENT],
        folder_declarations=counts[LineKind.FOLDER],
        explicit_mappings=counts[LineKind.EXPLICIT],
    )


# ── Configuration ─────────────────────────────────────────────────────


def parse_legacy_configuration(root: str | Path, environment: str | None) -> LegacyConfiguration | None:
    """Merge the global and per-environment configuration files.

    Returns ``None`` when neither file exists or either one cannot be
    parsed.  Configuration is best-effort and must never abort a migration.
    """
    root = Path(root)
    global_path = root / GLOBAL_CONFIG_RELPATH
    env_path = root / "home" / environment / ENV_CONFIG_NAME if environment else None

    fields: dict = {}
    found = False
    try:
        if global_path.is_file():
            fields.update(parse_global_configuration(global_path.read_bytes()))
            found = True
        if env_path is not None and env_path.is_file():
            fields.update(parse_environment_configuration(env_path.read_bytes()))
            found = True
        if not found:
            _log.info("No legacy configuration files under %s", root)
            return None
        return LegacyConfiguration.model_validate(fields)
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        # json.JSONDecodeError and pydantic.ValidationError are ValueErrors
        _log.warning("Could not parse legacy configuration: %s", exc)
        return None


# ── Mod index ─────────────────────────────────────────────────────────


def parse_mod_indexes(directory: str | Path, warn: WarnCallback = None) -> list[LegacyModEntry]:
    """Read every ``index_*.json`` in ``directory``, deduplicated by sha.

    Files are read in name order; the first entry seen for a sha wins.
    """
    directory = Path(directory)
    if not directory.is_dir():
        _warn(warn, f"Mod index directory not found: {directory}")
        return []

    entries: dict[str, LegacyModEntry] = {}
    for path in sorted(directory.glob(MOD_INDEX_PATTERN)):
        try:
            parsed = parse_mod_index(
                path.read_bytes(), on_skip=lambda msg, name=path.name: _warn(warn, f"{name}: {msg}")
            )
        except (OSError, UnicodeDecodeError, ValueError) as exc:
            _warn(warn, f"Could not parse mod index {path.name}: {exc}")
            continue
        for entry in parsed:
            entries.setdefault(entry.sha, entry)
        _log.debug("Parsed %s: %d mod(s)", path.name, len(parsed))

    _log.info("Mod index %s: %d unique mod(s)", directory, len(entries))
    return list(entries.values())


def load_json_file(path: Path) -> dict | None:
    """Read a JSON object from ``path``; ``None`` if absent or unreadable."""
    if not path.is_file():
        return None
    try:
        doc = json.loads(path.read_text(encoding="utf-8-sig"))
    except (OSError, UnicodeDecodeError, ValueError) as exc:
        _log.warning("Could not read %s: %s", path, exc)
        return None
    return doc if isinstance(doc, dict) else None
