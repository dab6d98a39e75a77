"""
Canonical storage of a profile data directory.

Layout written by a migration:

    <profile>/
        mods.json                   mod records (versioned)
        config.json                 profile configuration
        classifications.json        classification nodes (versioned)
        auto_detection_rules.json   legacy-compatible detection rules
        mods/<sha>                  archives
        previews/<sha>/<file>       preview images
        thumbnails/...              classification thumbnails
        logs/                       migration logs
        backups/                    legacy installation backups
"""

from __future__ import annotations

import json
import logging
import re
import threading
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

_log = logging.getLogger(__name__)

MOD_STORE_VERSION = 2
CLASSIFICATION_STORE_VERSION = 1
CATEGORY_PRIORITY = 100
OBJECT_PRIORITY = 50

_SAFE_SHA_RE = re.compile(r"^[0-9A-Za-z_.-]+$")


def is_safe_sha(sha: str) -> bool:
    """True if ``sha`` can be used as a single file or directory name."""
    return bool(_SAFE_SHA_RE.fullmatch(sha)) and sha not in (".", "..")


def _write_json(path: Path, data: Any):
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(path)


def _read_json(path: Path) -> Any:
    return json.loads(path.read_text(encoding="utf-8"))


class ProfilePaths:
    def __init__(self, root: str | Path):
        self.root = Path(root)
        self.mods_dir = self.root / "mods"
        self.previews_dir = self.root / "previews"
        self.thumbnails_dir = self.root / "thumbnails"
        self.logs_dir = self.root / "logs"
        self.backups_dir = self.root / "backups"
        self.mod_store_path = self.root / "mods.json"
        self.config_path = self.root / "config.json"
        self.classifications_path = self.root / "classifications.json"
        self.auto_detection_rules_path = self.root / "auto_detection_rules.json"

    def archive_path(self, sha: str) -> Path:
        # stored without extension, like the legacy tool
        return self.mods_dir / sha

    def preview_dir(self, sha: str) -> Path:
        return self.previews_dir / sha


# ── Mods ──────────────────────────────────────────────────────────────


@dataclass
class ModRecord:
    sha: str
    name: str
    category: str
    author: str = ""
    description: str = ""
    archive_type: str = "7z"
    grading: str = "G"
    tags: list[str] = field(default_factory=list)
    is_loaded: bool = False
    is_available: bool = False


class ModStore:
    """Thread-safe mod registry persisted to ``mods.json``."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self.records: dict[str, ModRecord] = {}
        self.load()

    def load(self):
        if not self.path.exists():
            self.records = {}
            return
        try:
            data = _read_json(self.path)
            if not isinstance(data, dict):
                raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
            if data.get("version") != MOD_STORE_VERSION:
                raise ValueError(f"Unsupported mod store version: {data.get('version')!r}")
            records = data.get("records", {})
            if not isinstance(records, dict):
                raise ValueError("'records' is not an object")
            self.records = {key: ModRecord(**rec) for key, rec in records.items()}
            _log.info("Loaded mod store: %d mod(s)", len(self.records))
        except (OSError, ValueError, TypeError) as exc:
            _log.warning("Could not load mod store %s: %s", self.path, exc)
            self.records = {}

    def save(self):
        with self._lock:
            data = {
                "version": MOD_STORE_VERSION,
                "records": {key: asdict(rec) for key, rec in self.records.items()},
            }
        _write_json(self.path, data)

    def register_mod(self, record: ModRecord) -> bool:
        """Get-or-create: add ``record`` unless its sha is already known.

        Returns True when the mod is present in the store afterwards.
        Raises ValueError for a sha that cannot be used as a file name.
        """
        if not is_safe_sha(record.sha):
            raise ValueError(f"Invalid mod sha {record.sha!r}")
        with self._lock:
            if record.sha in self.records:
                _log.debug("Mod %s already registered", record.sha)
                return True
            self.records[record.sha] = record
        return True

    def set_available(self, sha: str, available: bool):
        with self._lock:
            rec = self.records.get(sha)
            if rec is not None:
                rec.is_available = available

    def get(self, sha: str) -> ModRecord | None:
        with self._lock:
            return self.records.get(sha)

    def by_category(self, category: str) -> list[ModRecord]:
        with self._lock:
            return [rec for rec in self.records.values() if rec.category == category]


# ── Configuration ─────────────────────────────────────────────────────


class ConfigStore:
    """Flat key/value profile configuration in ``config.json``."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.values: dict[str, Any] = {}
        if self.path.exists():
            try:
                data = _read_json(self.path)
                if isinstance(data, dict):
                    self.values = data
            except (OSError, ValueError) as exc:
                _log.warning("Could not load config %s: %s", self.path, exc)

    def set(self, key: str, value: Any):
        self.values[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def save(self):
        _write_json(self.path, self.values)


# ── Classifications ───────────────────────────────────────────────────


@dataclass
class ClassificationNode:
    id: str
    name: str
    parent_id: str | None = None
    thumbnail: str | None = None
    priority: int = OBJECT_PRIORITY
    description: str = ""


@dataclass
class AutoDetectionRule:
    name: str
    pattern: str
    category: str
    priority: int = 100


class ClassificationStore:
    """Classification tree persisted to ``classifications.json``.

    Node ids are the legacy names, so an id can only exist once; inserting
    an existing id is a no-op.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.nodes: dict[str, ClassificationNode] = {}
        if self.path.exists():
            try:
                data = _read_json(self.path)
                if not isinstance(data, dict):
                    raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
                if data.get("version") != CLASSIFICATION_STORE_VERSION:
                    raise ValueError(f"Unsupported classification version: {data.get('version')!r}")
                self.nodes = {
                    node["id"]: ClassificationNode(**node) for node in data.get("nodes", [])
                }
            except (OSError, ValueError, TypeError, KeyError) as exc:
                _log.warning("Could not load classifications %s: %s", self.path, exc)
                self.nodes = {}

    def insert(self, node: ClassificationNode) -> bool:
        if node.id in self.nodes:
            return False
        self.nodes[node.id] = node
        return True

    def set_thumbnail(self, node_id: str, thumbnail: str) -> bool:
        node = self.nodes.get(node_id)
        if node is None:
            return False
        node.thumbnail = thumbnail
        return True

    def children(self, parent_id: str) -> list[ClassificationNode]:
        return [n for n in self.nodes.values() if n.parent_id == parent_id]

    def save(self):
        _write_json(
            self.path,
            {
                "version": CLASSIFICATION_STORE_VERSION,
                "nodes": [asdict(node) for node in self.nodes.values()],
            },
        )


def save_auto_detection_rules(path: Path, rules: list[AutoDetectionRule]):
    _write_json(path, [asdict(rule) for rule in rules])
