"""
Profile registry and the post-migration profile materializer.
"""

from __future__ import annotations

import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

from file_ops import parent_directory
from legacy_schema import LegacyConfiguration

if TYPE_CHECKING:
    from migration import MigrationResult

_log = logging.getLogger(__name__)

PROFILES_VERSION = 1


@dataclass
class Profile:
    name: str
    work_directory: str
    data_directory: str
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    game_directory: str | None = None
    description: str | None = None
    created_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    mod_count: int = 0
    total_size_bytes: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class CreateProfileRequest:
    name: str
    data_directory: str
    work_directory: str | None = None
    game_directory: str | None = None
    description: str | None = None
    mod_count: int = 0
    total_size_bytes: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)


class ProfileService:
    """Profiles persisted to a single ``profiles.json`` file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self._lock = threading.Lock()
        self.profiles: dict[str, Profile] = {}
        self._load()

    def _load(self):
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError(f"Expected a JSON object, got {type(data).__name__}")
            if data.get("version") != PROFILES_VERSION:
                raise ValueError(f"Unsupported profiles version: {data.get('version')!r}")
            self.profiles = {p["id"]: Profile(**p) for p in data.get("profiles", [])}
        except (OSError, ValueError, TypeError, KeyError) as exc:
            _log.warning("Could not load profiles from %s: %s", self.path, exc)
            self.profiles = {}

    def _save(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(
            json.dumps(
                {
                    "version": PROFILES_VERSION,
                    "profiles": [asdict(p) for p in self.profiles.values()],
                },
                indent=2,
                ensure_ascii=False,
            ),
            encoding="utf-8",
        )

    def list_profiles(self) -> list[Profile]:
        return list(self.profiles.values())

    def find_by_name(self, name: str) -> Profile | None:
        lowered = name.lower()
        return next((p for p in self.list_profiles() if p.name.lower() == lowered), None)

    def create_profile(self, request: CreateProfileRequest) -> Profile:
        name = request.name.strip()
        if not name:
            raise ValueError("Profile name must not be empty")
        with self._lock:
            if self.find_by_name(name) is not None:
                raise ValueError(f"A profile named {name!r} already exists")
            work_dir = request.work_directory or str(Path(request.data_directory) / "work")
            profile = Profile(
                name=name,
                work_directory=work_dir,
                data_directory=request.data_directory,
                game_directory=request.game_directory,
                description=request.description,
                mod_count=request.mod_count,
                total_size_bytes=request.total_size_bytes,
                metadata=dict(request.metadata),
            )
            self.profiles[profile.id] = profile
            self._save()
        _log.info("Created profile %r (%s)", profile.name, profile.id)
        return profile


class ProfileMaterializer:
    """Creates a profile seeded from a finished migration."""

    def __init__(self, service: ProfileService):
        self.service = service

    def create(
        self,
        result: MigrationResult,
        requested_name: str,
        requested_work_directory: str | None,
        *,
        source_path: str | Path,
        data_directory: str | Path,
        configuration: LegacyConfiguration | None = None,
    ) -> Profile:
        """Register the new profile.

        The work directory defaults to the legacy installation directory,
        the game directory comes from the legacy game path.  Raises
        ValueError or OSError if the profile cannot be created.
        """
        game_directory = None
        if configuration is not None and configuration.game_path:
            game_directory = parent_directory(configuration.game_path)

        return self.service.create_profile(
            CreateProfileRequest(
                name=requested_name,
                data_directory=str(data_directory),
                work_directory=requested_work_directory or str(source_path),
                game_directory=game_directory,
                description=f"Migrated from {source_path}",
                mod_count=result.mods_migrated,
                total_size_bytes=result.total_bytes_processed,
                metadata={
                    "migrated_from": str(source_path),
                    "migration_log": result.log_file_path,
                },
            )
        )
