"""
Detection and analysis of a legacy installation.

analyze_installation() only reads from disk.  It never raises for a path
that exists but does not look like a legacy installation; the verdict and
every problem found are carried on the returned InstallationAnalysis.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable

from file_ops import format_bytes, is_image, list_images
from legacy_parsers import (
    GLOBAL_CONFIG_RELPATH,
    load_json_file,
    parse_legacy_configuration,
    parse_mod_indexes,
)
from legacy_schema import LegacyConfiguration

_log = logging.getLogger(__name__)

HOME_DIRNAME = "home"
RESOURCES_DIRNAME = "resources"
MOD_INDEX_DIRNAME = "modsIndex"
ACTIVE_ENVIRONMENT_KEY = "user_env"


@dataclass(frozen=True)
class EnvironmentSummary:
    name: str
    mods: int = 0
    archives: int = 0
    archive_size_bytes: int = 0
    previews: int = 0
    preview_size_bytes: int = 0


@dataclass(frozen=True)
class InstallationAnalysis:
    source_path: str
    is_valid: bool = False
    environments: tuple[str, ...] = ()
    active_environment: str | None = None
    total_mods: int = 0
    total_archives: int = 0
    total_archive_size_bytes: int = 0
    total_previews: int = 0
    total_preview_size_bytes: int = 0
    total_cache_size_bytes: int = 0
    environment_summaries: tuple[EnvironmentSummary, ...] = ()
    configuration: LegacyConfiguration | None = None
    errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()

    def summary_for(self, environment: str) -> EnvironmentSummary | None:
        for summary in self.environment_summaries:
            if summary.name == environment:
                return summary
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "sourcePath": self.source_path,
            "isValid": self.is_valid,
            "environments": list(self.environments),
            "activeEnvironment": self.active_environment,
            "totalMods": self.total_mods,
            "totalArchives": self.total_archives,
            "totalArchiveSize": self.total_archive_size_bytes,
            "totalArchiveSizeFormatted": format_bytes(self.total_archive_size_bytes),
            "totalPreviews": self.total_previews,
            "totalPreviewSize": self.total_preview_size_bytes,
            "totalPreviewSizeFormatted": format_bytes(self.total_preview_size_bytes),
            "totalCacheSize": self.total_cache_size_bytes,
            "totalCacheSizeFormatted": format_bytes(self.total_cache_size_bytes),
            "environmentSummaries": [
                {
                    "name": s.name,
                    "mods": s.mods,
                    "archives": s.archives,
                    "archiveSize": s.archive_size_bytes,
                    "previews": s.previews,
                    "previewSize": s.preview_size_bytes,
                }
                for s in self.environment_summaries
            ],
            "configuration": (
                self.configuration.model_dump() if self.configuration is not None else None
            ),
            "errors": list(self.errors),
            "warnings": list(self.warnings),
        }


@dataclass
class _ModFiles:
    archive_size: int | None = None
    preview_sizes: list[int] = field(default_factory=list)


def preview_sources(preview_root: Path, sha: str) -> list[tuple[Path, str]]:
    """Preview images of one mod as ``(source, destination filename)`` pairs.

    ``preview/<sha>.<ext>`` maps to ``preview1<ext>``; files inside a
    ``preview/<sha>/`` folder keep their names.  A folder image named like
    the single-file form is ignored so the single file wins.
    """
    sources: list[tuple[Path, str]] = []
    if preview_root.is_dir():
        for path in sorted(preview_root.iterdir()):
            if path.stem == sha and path.is_file() and is_image(path):
                sources.append((path, f"preview1{path.suffix.lower()}"))
    folder = preview_root / sha
    if folder.is_dir():
        taken = {name for _, name in sources}
        for path in list_images(folder):
            if path.name not in taken:
                sources.append((path, path.name))
    return sources


def _resolve_active_environment(root: Path, environments: list[str]) -> str | None:
    if not environments:
        return None
    doc = load_json_file(root / GLOBAL_CONFIG_RELPATH)
    if doc is not None:
        marked = doc.get(ACTIVE_ENVIRONMENT_KEY)
        if isinstance(marked, str) and marked in environments:
            return marked
    return environments[0]


def _scan_mod_files(
    shas: Iterable[str], resources: Path, warnings: list[str]
) -> dict[str, _ModFiles]:
    mods_dir = resources / "mods"
    preview_root = resources / "preview"
    found: dict[str, _ModFiles] = {}
    for sha in shas:
        files = _ModFiles()
        archive = mods_dir / sha
        try:
            if archive.is_file():
                files.archive_size = archive.stat().st_size
        except OSError as exc:
            warnings.append(f"Could not read archive {sha}: {exc}")
        try:
            for source, _ in preview_sources(preview_root, sha):
                files.preview_sizes.append(source.stat().st_size)
        except OSError as exc:
            warnings.append(f"Could not read previews for {sha}: {exc}")
        found[sha] = files
    return found


def _cache_size(resources: Path, warnings: list[str]) -> int:
    cache = resources / "cache"
    total = 0
    if not cache.is_dir():
        return total
    try:
        for path in cache.rglob("*"):
            try:
                if path.is_file():
                    total += path.stat().st_size
            except OSError as exc:
                warnings.append(f"Could not read cache file {path.name}: {exc}")
    except OSError as exc:
        warnings.append(f"Could not fully scan cache directory: {exc}")
    return total


def _unreferenced_archives(resources: Path, referenced: set[str], warnings: list[str]) -> int:
    mods_dir = resources / "mods"
    if not mods_dir.is_dir():
        return 0
    try:
        return sum(1 for p in mods_dir.iterdir() if p.is_file() and p.name not in referenced)
    except OSError as exc:
        warnings.append(f"Could not list mods directory: {exc}")
        return 0


def analyze_installation(path: str | Path) -> InstallationAnalysis:
    """Inspect a candidate legacy installation root."""
    root = Path(path)
    try:
        return _analyze(root)
    except OSError as exc:
        _log.warning("Analysis of %s failed: %s", root, exc)
        return InstallationAnalysis(source_path=str(root), errors=(f"Analysis failed: {exc}",))


def _analyze(root: Path) -> InstallationAnalysis:
    source = str(root)

    if not root.exists():
        return InstallationAnalysis(source_path=source, errors=(f"Directory not found: {root}",))
    if not root.is_dir():
        return InstallationAnalysis(source_path=source, errors=(f"Not a directory: {root}",))

    home = root / HOME_DIRNAME
    if not home.is_dir():
        return InstallationAnalysis(
            source_path=source,
            errors=(f"'{HOME_DIRNAME}' directory not found - not a legacy installation: {root}",),
        )

    warnings: list[str] = []
    try:
        environments = sorted(p.name for p in home.iterdir() if p.is_dir())
    except OSError as exc:
        return InstallationAnalysis(
            source_path=source, errors=(f"Could not list '{HOME_DIRNAME}' directory: {exc}",)
        )

    if not environments:
        return InstallationAnalysis(
            source_path=source,
            errors=(f"No environments found in '{HOME_DIRNAME}' directory",),
        )

    resources = root / RESOURCES_DIRNAME
    if not resources.is_dir():
        warnings.append(f"'{RESOURCES_DIRNAME}' directory not found - no mod files to migrate")

    active = _resolve_active_environment(root, environments)

    env_shas: dict[str, list[str]] = {}
    for env in environments:
        entries = parse_mod_indexes(home / env / MOD_INDEX_DIRNAME, warn=warnings.append)
        env_shas[env] = [entry.sha for entry in entries]

    all_shas = {sha for shas in env_shas.values() for sha in shas}
    files = _scan_mod_files(sorted(all_shas), resources, warnings) if resources.is_dir() else {}

    summaries: list[EnvironmentSummary] = []
    for env in environments:
        env_files = [files.get(sha, _ModFiles()) for sha in env_shas[env]]
        archives = [f.archive_size for f in env_files if f.archive_size is not None]
        previews = [size for f in env_files for size in f.preview_sizes]
        summaries.append(
            EnvironmentSummary(
                name=env,
                mods=len(env_shas[env]),
                archives=len(archives),
                archive_size_bytes=sum(archives),
                previews=len(previews),
                preview_size_bytes=sum(previews),
            )
        )

    unreferenced = _unreferenced_archives(resources, all_shas, warnings)
    if unreferenced:
        warnings.append(f"{unreferenced} archive(s) in resources/mods are not referenced by any environment")

    archive_sizes = [f.archive_size for f in files.values() if f.archive_size is not None]
    preview_sizes = [size for f in files.values() for size in f.preview_sizes]
    analysis = InstallationAnalysis(
        source_path=source,
        is_valid=True,
        environments=tuple(environments),
        active_environment=active,
        total_mods=len(all_shas),
        total_archives=len(archive_sizes),
        total_archive_size_bytes=sum(archive_sizes),
        total_previews=len(preview_sizes),
        total_preview_size_bytes=sum(preview_sizes),
        total_cache_size_bytes=_cache_size(resources, warnings),
        environment_summaries=tuple(summaries),
        configuration=parse_legacy_configuration(root, active),
        warnings=tuple(warnings),
    )
    _log.info(
        "Analysis of %s: valid=%s, %d environment(s), %d mod(s), %d warning(s)",
        root, analysis.is_valid, len(environments), analysis.total_mods, len(warnings),
    )
    return analysis


def find_installations(candidates: Iterable[str | Path]) -> list[Path]:
    """Return the candidate roots that analyze as valid installations."""
    valid = []
    for candidate in candidates:
        path = Path(candidate).expanduser()
        if path.is_dir() and analyze_installation(path).is_valid:
            valid.append(path)
    return valid
