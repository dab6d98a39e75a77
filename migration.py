"""
Migration of a legacy installation into a profile data directory.

The orchestrator runs a fixed sequence of stages against an already
analyzed installation:

    metadata -> archives -> previews -> configuration -> classifications

Every stage can be switched off through MigrationOptions and a failure
inside one stage only affects the item it happened on.  Problems that make
the whole run pointless (bad source, missing or unwritable destination,
unsupported archive mode) are detected before anything is written.

Usage:
    orchestrator = MigrationOrchestrator(dest, log_callback=print)
    result = orchestrator.run(analysis, MigrationOptions(environment="Endfield"))
"""

from __future__ import annotations

import json
import logging
import shutil
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional

from file_ops import (
    CancelToken,
    CopyCancelled,
    DestinationConflict,
    TransferOutcome,
    copy_tree,
    detect_archive_type,
    parent_directory,
    transfer_file,
)
from installation_analyzer import (
    HOME_DIRNAME,
    MOD_INDEX_DIRNAME,
    RESOURCES_DIRNAME,
    InstallationAnalysis,
    preview_sources,
)
from legacy_parsers import (
    REDIRECTION_FILENAME,
    parse_classifications,
    parse_legacy_configuration,
    parse_mod_indexes,
    parse_redirection,
    redirection_statistics,
)
from legacy_schema import LegacyConfiguration, LegacyModEntry
from profiles import ProfileMaterializer, ProfileService
from stores import (
    CATEGORY_PRIORITY,
    OBJECT_PRIORITY,
    AutoDetectionRule,
    ClassificationNode,
    ClassificationStore,
    ConfigStore,
    ModRecord,
    ModStore,
    ProfilePaths,
    save_auto_detection_rules,
)

_log = logging.getLogger(__name__)

DEFAULT_ARCHIVE_TYPE = "7z"
DEFAULT_MAX_WORKERS = 4
LOG_FORMAT = "%(asctime)s  %(levelname)-8s  %(message)s"


class ArchiveHandling(Enum):
    COPY = "copy"
    MOVE = "move"
    LINK = "link"  # not supported, rejected before any work starts


class PostMigrationAction(Enum):
    KEEP = "keep"
    BACKUP_AND_REMOVE = "backup_and_remove"
    REMOVE = "remove"


class MigrationStage(Enum):
    IDLE = "idle"
    ANALYZING_TARGET = "analyzing_target"
    MIGRATING_METADATA = "migrating_metadata"
    MIGRATING_ARCHIVES = "migrating_archives"
    MIGRATING_PREVIEWS = "migrating_previews"
    MIGRATING_CONFIGURATION = "migrating_configuration"
    MIGRATING_CLASSIFICATIONS = "migrating_classifications"
    FINALIZING = "finalizing"
    COMPLETED = "completed"
    COMPLETED_WITH_ERRORS = "completed_with_errors"
    FAILED = "failed"
    CANCELLED = "cancelled"


# Percentage window of each stage; per-item progress moves inside it.
STAGE_RANGES: dict[MigrationStage, tuple[int, int]] = {
    MigrationStage.IDLE: (0, 0),
    MigrationStage.ANALYZING_TARGET: (0, 5),
    MigrationStage.MIGRATING_METADATA: (5, 25),
    MigrationStage.MIGRATING_ARCHIVES: (25, 60),
    MigrationStage.MIGRATING_PREVIEWS: (60, 80),
    MigrationStage.MIGRATING_CONFIGURATION: (80, 85),
    MigrationStage.MIGRATING_CLASSIFICATIONS: (85, 95),
    MigrationStage.FINALIZING: (95, 99),
    MigrationStage.COMPLETED: (100, 100),
    MigrationStage.COMPLETED_WITH_ERRORS: (100, 100),
}


@dataclass(frozen=True)
class NewProfileRequest:
    name: str
    work_directory: str | None = None


@dataclass
class MigrationOptions:
    environment: str
    migrate_metadata: bool = True
    migrate_archives: bool = True
    migrate_previews: bool = True
    migrate_configuration: bool = True
    migrate_classifications: bool = True
    archive_mode: ArchiveHandling = ArchiveHandling.COPY
    post_action: PostMigrationAction = PostMigrationAction.KEEP
    new_profile: NewProfileRequest | None = None
    max_workers: int = DEFAULT_MAX_WORKERS


@dataclass(frozen=True)
class MigrationProgress:
    stage: MigrationStage = MigrationStage.IDLE
    current_task: str = ""
    processed_items: int = 0
    total_items: int = 0
    percent: int = 0


@dataclass(frozen=True)
class MigrationResult:
    success: bool
    final_stage: MigrationStage
    mods_migrated: int = 0
    archives_copied: int = 0
    previews_copied: int = 0
    thumbnails_copied: int = 0
    classification_nodes_created: int = 0
    total_bytes_processed: int = 0
    duration: float = 0.0
    warnings: tuple[str, ...] = ()
    errors: tuple[str, ...] = ()
    log_file_path: str | None = None
    profile_id: str | None = None

    @property
    def outcome(self) -> str:
        if not self.success:
            return "failed"
        if self.errors:
            return "completed_with_errors"
        if self.warnings:
            return "completed_with_warnings"
        return "completed"

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "outcome": self.outcome,
            "finalStage": self.final_stage.value,
            "modsMigrated": self.mods_migrated,
            "archivesCopied": self.archives_copied,
            "previewsCopied": self.previews_copied,
            "thumbnailsCopied": self.thumbnails_copied,
            "classificationNodesCreated": self.classification_nodes_created,
            "totalBytesProcessed": self.total_bytes_processed,
            "durationSeconds": round(self.duration, 3),
            "warnings": list(self.warnings),
            "errors": list(self.errors),
            "logFilePath": self.log_file_path,
            "profileId": self.profile_id,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False)


class MigrationAborted(Exception):
    """A fatal condition; the run stops and reports failure."""


class MigrationCancelled(Exception):
    """The run's CancelToken fired."""


# ── Per-destination locking ───────────────────────────────────────────

_destination_locks: dict[str, threading.Lock] = {}
_destination_locks_guard = threading.Lock()


def _destination_lock(destination: Path) -> threading.Lock:
    key = str(destination.resolve())
    with _destination_locks_guard:
        return _destination_locks.setdefault(key, threading.Lock())


# ── Run bookkeeping ───────────────────────────────────────────────────


class _RunLog:
    """Log file of a single run.

    The handler is private to the run and never attached to a logger, so
    concurrent runs keep separate files and the levels of the shared
    loggers stay untouched.
    """

    def __init__(self, logs_dir: Path):
        logs_dir.mkdir(parents=True, exist_ok=True)
        self.run_id = uuid.uuid4().hex
        stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        self.path = logs_dir / f"migration_{stamp}_{self.run_id[:8]}.log"
        self._handler = logging.FileHandler(self.path, mode="w", encoding="utf-8")
        self._handler.setFormatter(logging.Formatter(LOG_FORMAT))
        self._handler.setLevel(logging.INFO)

    def write(self, level: int, msg: str):
        self._handler.handle(_log.makeRecord(_log.name, level, __file__, 0, msg, None, None))

    def close(self):
        self._handler.close()


class _ResultBuilder:
    """Accumulates counters and messages from concurrent per-mod workers."""

    def __init__(self, log_callback: Callable[[str], None]):
        self._lock = threading.Lock()
        self._log_cb = log_callback
        self.run_log: _RunLog | None = None
        self.warnings: list[str] = []
        self.errors: list[str] = []
        self.registered: set[str] = set()
        self.archives_copied = 0
        self.previews_copied = 0
        self.thumbnails_copied = 0
        self.classification_nodes_created = 0
        self.total_bytes = 0
        self.files_left_behind = 0

    def _emit(self, level: int, msg: str):
        _log.log(level, msg)
        if self.run_log is not None:
            self.run_log.write(level, msg)
        self._log_cb(msg)

    def info(self, msg: str):
        self._emit(logging.INFO, msg)

    def warning(self, msg: str):
        with self._lock:
            self.warnings.append(msg)
        self._emit(logging.WARNING, msg)

    def error(self, msg: str):
        with self._lock:
            self.errors.append(msg)
        self._emit(logging.ERROR, msg)

    def not_transferred(self, msg: str):
        """A warning for a legacy file that exists but was not migrated."""
        with self._lock:
            self.files_left_behind += 1
        self.warning(msg)

    def mod_registered(self, sha: str):
        with self._lock:
            self.registered.add(sha)

    def archive_transferred(self, outcome: TransferOutcome):
        with self._lock:
            self.archives_copied += 1
            self.total_bytes += outcome.size

    def preview_copied(self, outcome: TransferOutcome):
        with self._lock:
            self.previews_copied += 1
            self.total_bytes += outcome.size

    def build(self, stage: MigrationStage, success: bool, duration: float, profile_id: str | None = None):
        with self._lock:
            return MigrationResult(
                success=success,
                final_stage=stage,
                mods_migrated=len(self.registered),
                archives_copied=self.archives_copied,
                previews_copied=self.previews_copied,
                thumbnails_copied=self.thumbnails_copied,
                classification_nodes_created=self.classification_nodes_created,
                total_bytes_processed=self.total_bytes,
                duration=duration,
                warnings=tuple(self.warnings),
                errors=tuple(self.errors),
                log_file_path=str(self.run_log.path) if self.run_log is not None else None,
                profile_id=profile_id,
            )


def _mod_label(entry: LegacyModEntry) -> str:
    return f"{entry.name} ({entry.sha})"


# ── Orchestrator ──────────────────────────────────────────────────────


class MigrationOrchestrator:
    """
    Moves one environment of a legacy installation into a profile directory.

    A single orchestrator can be reused for several runs, but runs into the
    same destination never overlap; a second run waits for the first.
    """

    def __init__(
        self,
        destination: str | Path,
        *,
        profile_service: Optional[ProfileService] = None,
        log_callback: Optional[Callable[[str], None]] = None,
        progress_callback: Optional[Callable[[MigrationProgress], None]] = None,
        cancel_token: Optional[CancelToken] = None,
    ):
        self.paths = ProfilePaths(destination)
        self.profile_service = profile_service
        self.cancel_token = cancel_token or CancelToken()
        self._log_cb = log_callback or print
        self._progress_cb = progress_callback
        self._progress_lock = threading.Lock()
        self._progress = MigrationProgress()

    # ── Progress / cancellation ───────────────────────────────────────

    @property
    def progress(self) -> MigrationProgress:
        with self._progress_lock:
            return self._progress

    def _report(self, stage: MigrationStage, task: str, processed: int = 0, total: int = 0):
        low, high = STAGE_RANGES.get(stage, (0, 0))
        percent = low + (high - low) * processed // total if total else low
        with self._progress_lock:
            percent = max(percent, self._progress.percent)
            snapshot = MigrationProgress(stage, task, processed, total, percent)
            self._progress = snapshot
        if self._progress_cb is not None:
            self._progress_cb(snapshot)

    def cancel(self):
        self.cancel_token.cancel()

    def _check_cancelled(self):
        if self.cancel_token.is_cancelled():
            raise MigrationCancelled()

    # ── Entry points ──────────────────────────────────────────────────

    def start(self, analysis: InstallationAnalysis, options: MigrationOptions) -> Future:
        """Run the migration on a background thread; the Future yields the result."""
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="migration")
        future = executor.submit(self.run, analysis, options)
        executor.shutdown(wait=False)
        return future

    def run(self, analysis: InstallationAnalysis, options: MigrationOptions) -> MigrationResult:
        """Migrate and return the result.  Never raises for migration failures."""
        with _destination_lock(self.paths.root):
            with self._progress_lock:
                self._progress = MigrationProgress()
            return self._run(analysis, options)

    def _run(self, analysis: InstallationAnalysis, options: MigrationOptions) -> MigrationResult:
        started = time.monotonic()
        builder = _ResultBuilder(self._log_cb)
        stage = MigrationStage.ANALYZING_TARGET
        profile_id = None
        try:
            self._report(stage, "Validating source and destination")
            self._preflight(analysis, options)
            try:
                builder.run_log = _RunLog(self.paths.logs_dir)
            except OSError as exc:
                raise MigrationAborted(f"Destination is not writable: {exc}") from exc
            builder.info(
                f"Migrating environment {options.environment!r} from {analysis.source_path} "
                f"to {self.paths.root}"
            )
            profile_id = self._migrate(Path(analysis.source_path), options, builder)
            stage = (
                MigrationStage.COMPLETED_WITH_ERRORS if builder.errors else MigrationStage.COMPLETED
            )
            success = True
        except MigrationAborted as exc:
            builder.error(str(exc))
            stage = MigrationStage.FAILED
            success = False
        except MigrationCancelled:
            builder.warning("Migration cancelled by user")
            stage = MigrationStage.CANCELLED
            success = False

        result = builder.build(stage, success, time.monotonic() - started, profile_id)
        builder.info(
            f"Migration finished: {result.outcome}, {result.mods_migrated} mod(s), "
            f"{result.archives_copied} archive(s), {result.previews_copied} preview(s), "
            f"{len(result.warnings)} warning(s), {len(result.errors)} error(s)"
        )
        if builder.run_log is not None:
            builder.run_log.close()
        if stage in STAGE_RANGES:
            self._report(stage, "Done", 1, 1)
        else:
            with self._progress_lock:
                self._progress = MigrationProgress(stage, "Stopped", 0, 0, self._progress.percent)
        return result

    def _preflight(self, analysis: InstallationAnalysis, options: MigrationOptions):
        if not analysis.is_valid:
            details = "; ".join(analysis.errors) or "unknown reason"
            raise MigrationAborted(f"Source is not a valid legacy installation: {details}")
        if not Path(analysis.source_path).is_dir():
            raise MigrationAborted(f"Source directory no longer exists: {analysis.source_path}")
        if options.environment not in analysis.environments:
            raise MigrationAborted(
                f"Environment {options.environment!r} not found; "
                f"available: {', '.join(analysis.environments)}"
            )
        if not self.paths.root.is_dir():
            raise MigrationAborted(f"Destination profile directory not found: {self.paths.root}")
        if options.migrate_archives and options.archive_mode is ArchiveHandling.LINK:
            raise MigrationAborted(
                "Archive handling mode 'link' is not supported; use 'copy' or 'move'"
            )
        if options.max_workers < 1:
            raise MigrationAborted(f"max_workers must be at least 1, got {options.max_workers}")

    def _migrate(self, source: Path, options: MigrationOptions, builder: _ResultBuilder) -> str | None:
        env_dir = source / HOME_DIRNAME / options.environment
        resources = source / RESOURCES_DIRNAME
        mod_store = ModStore(self.paths.mod_store_path)

        entries: list[LegacyModEntry] = []
        if options.migrate_metadata or options.migrate_archives or options.migrate_previews:
            entries = parse_mod_indexes(env_dir / MOD_INDEX_DIRNAME, warn=builder.warning)
            builder.info(f"Found {len(entries)} mod(s) in environment {options.environment!r}")

        if options.migrate_metadata:
            self._check_cancelled()
            self._migrate_metadata(entries, resources / "mods", mod_store, options, builder)
            eligible = [e for e in entries if e.sha in builder.registered]
        else:
            eligible = entries
        self._finish_stage(MigrationStage.MIGRATING_METADATA)

        if options.migrate_archives:
            self._check_cancelled()
            self._prepare_dir(self.paths.mods_dir)
            self._run_per_mod(
                MigrationStage.MIGRATING_ARCHIVES,
                eligible,
                lambda entry: self._migrate_archive(entry, resources / "mods", mod_store, options, builder),
                options,
            )
            self._save_mod_store(mod_store)
        self._finish_stage(MigrationStage.MIGRATING_ARCHIVES)

        if options.migrate_previews:
            self._check_cancelled()
            self._prepare_dir(self.paths.previews_dir)
            self._run_per_mod(
                MigrationStage.MIGRATING_PREVIEWS,
                eligible,
                lambda entry: self._migrate_previews(entry, resources / "preview", builder),
                options,
            )
        self._finish_stage(MigrationStage.MIGRATING_PREVIEWS)

        configuration = None
        if options.migrate_configuration:
            self._check_cancelled()
            configuration = self._migrate_configuration(source, options, builder)
        self._finish_stage(MigrationStage.MIGRATING_CONFIGURATION)

        if options.migrate_classifications:
            self._check_cancelled()
            self._migrate_classifications(env_dir, mod_store, builder)
        self._finish_stage(MigrationStage.MIGRATING_CLASSIFICATIONS)

        self._check_cancelled()
        self._report(MigrationStage.FINALIZING, "Finalizing")
        profile_id = None
        if options.new_profile is not None:
            if configuration is None:
                configuration = parse_legacy_configuration(source, options.environment)
            profile_id = self._materialize_profile(
                source, options.new_profile, configuration, builder
            )
        self._post_migration(source, options, builder)
        return profile_id

    def _finish_stage(self, stage: MigrationStage):
        self._report(stage, f"{stage.value} done", 1, 1)

    def _prepare_dir(self, directory: Path):
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise MigrationAborted(f"Could not create {directory}: {exc}") from exc

    def _save_mod_store(self, mod_store: ModStore):
        try:
            mod_store.save()
        except OSError as exc:
            raise MigrationAborted(f"Could not write mod store {mod_store.path}: {exc}") from exc

    def _run_per_mod(
        self,
        stage: MigrationStage,
        entries: list[LegacyModEntry],
        work: Callable[[LegacyModEntry], None],
        options: MigrationOptions,
    ):
        total = len(entries)
        self._report(stage, f"0 / {total}", 0, total)
        if not entries:
            return

        def guarded(entry: LegacyModEntry):
            if self.cancel_token.is_cancelled():
                return
            work(entry)

        done = 0
        cancelled = False
        with ThreadPoolExecutor(max_workers=options.max_workers) as pool:
            futures = {pool.submit(guarded, entry): entry for entry in entries}
            for future in as_completed(futures):
                try:
                    future.result()
                except CopyCancelled:
                    cancelled = True
                done += 1
                self._report(stage, _mod_label(futures[future]), done, total)
        if cancelled:
            raise MigrationCancelled()
        self._check_cancelled()

    # ── Stages ────────────────────────────────────────────────────────

    def _migrate_metadata(
        self,
        entries: list[LegacyModEntry],
        archives_dir: Path,
        mod_store: ModStore,
        options: MigrationOptions,
        builder: _ResultBuilder,
    ):
        def register(entry: LegacyModEntry):
            archive = archives_dir / entry.sha
            try:
                archive_type = entry.archive_type
                if archive_type is None and archive.is_file():
                    archive_type = detect_archive_type(archive)
                record = ModRecord(
                    sha=entry.sha,
                    name=entry.name,
                    category=entry.object_name,
                    author=entry.author,
                    description=entry.explain,
                    archive_type=archive_type or DEFAULT_ARCHIVE_TYPE,
                    grading=entry.grading,
                    tags=list(entry.tags),
                    is_available=self.paths.archive_path(entry.sha).is_file(),
                )
                registered = mod_store.register_mod(record)
            except Exception as exc:
                builder.error(f"{_mod_label(entry)}: metadata registration failed: {exc}")
                return
            if registered:
                builder.mod_registered(entry.sha)

        self._run_per_mod(MigrationStage.MIGRATING_METADATA, entries, register, options)
        self._save_mod_store(mod_store)
        builder.info(f"Registered {len(builder.registered)} of {len(entries)} mod(s)")

    def _migrate_archive(
        self,
        entry: LegacyModEntry,
        archives_dir: Path,
        mod_store: ModStore,
        options: MigrationOptions,
        builder: _ResultBuilder,
    ):
        src = archives_dir / entry.sha
        if not src.is_file():
            builder.warning(f"{_mod_label(entry)}: archive not found in legacy installation")
            return
        try:
            outcome = transfer_file(
                src,
                self.paths.archive_path(entry.sha),
                move=options.archive_mode is ArchiveHandling.MOVE,
                cancel=self.cancel_token,
            )
        except CopyCancelled:
            raise
        except DestinationConflict as exc:
            builder.not_transferred(f"{_mod_label(entry)}: archive skipped: {exc}")
            return
        except Exception as exc:
            builder.not_transferred(f"{_mod_label(entry)}: archive transfer failed: {exc}")
            return
        if outcome.warning:
            builder.warning(f"{_mod_label(entry)}: {outcome.warning}")
        builder.archive_transferred(outcome)
        mod_store.set_available(entry.sha, True)
        _log.debug("Archive %s: %s (%d bytes)", entry.sha, outcome.action, outcome.size)

    def _migrate_previews(self, entry: LegacyModEntry, preview_root: Path, builder: _ResultBuilder):
        try:
            sources = preview_sources(preview_root, entry.sha)
        except OSError as exc:
            builder.not_transferred(f"{_mod_label(entry)}: could not list previews: {exc}")
            return
        target_dir = self.paths.preview_dir(entry.sha)
        for src, name in sources:
            try:
                outcome = transfer_file(src, target_dir / name, cancel=self.cancel_token)
            except CopyCancelled:
                raise
            except DestinationConflict as exc:
                builder.not_transferred(f"{_mod_label(entry)}: preview {src.name} skipped: {exc}")
                continue
            except Exception as exc:
                builder.not_transferred(f"{_mod_label(entry)}: preview {src.name} failed: {exc}")
                continue
            builder.preview_copied(outcome)

    def _migrate_configuration(
        self, source: Path, options: MigrationOptions, builder: _ResultBuilder
    ) -> LegacyConfiguration | None:
        self._report(MigrationStage.MIGRATING_CONFIGURATION, "Configuration")
        configuration = parse_legacy_configuration(source, options.environment)
        if configuration is None:
            builder.warning("Legacy configuration missing or unreadable; configuration not migrated")
            return None

        store = ConfigStore(self.paths.config_path)
        if configuration.game_path:
            store.set("work_directory", parent_directory(configuration.game_path))
            store.set("game_path", configuration.game_path)
        if configuration.game_launch_args:
            store.set("game_launch_args", configuration.game_launch_args)
        if configuration.uuid:
            store.set("uuid", configuration.uuid)
        if configuration.style_theme:
            store.set("style_theme", configuration.style_theme)
        if configuration.window_position is not None:
            store.set("window", configuration.window_position.model_dump())
        if configuration.on_screen_display is not None:
            store.set("osd", configuration.on_screen_display.model_dump())
        store.set("migrated_from", str(source))
        store.set("migration_date", datetime.now(timezone.utc).isoformat())
        try:
            store.save()
        except OSError as exc:
            builder.warning(f"Could not write configuration: {exc}")
            return configuration
        builder.info("Configuration migrated")
        return configuration

    def _migrate_classifications(self, env_dir: Path, mod_store: ModStore, builder: _ResultBuilder):
        stage = MigrationStage.MIGRATING_CLASSIFICATIONS
        self._report(stage, "Classifications")
        classifications = parse_classifications(env_dir / "classification", warn=builder.warning)

        store = ClassificationStore(self.paths.classifications_path)
        rules: list[AutoDetectionRule] = []
        created = 0
        without_mods = 0
        for category, objects in classifications.items():
            if store.insert(
                ClassificationNode(
                    id=category,
                    name=category,
                    priority=CATEGORY_PRIORITY,
                    description=f"Category: {category}",
                )
            ):
                created += 1
            for obj in objects:
                if store.insert(
                    ClassificationNode(
                        id=obj,
                        name=obj,
                        parent_id=category,
                        priority=OBJECT_PRIORITY,
                        description=f"Object: {obj}",
                    )
                ):
                    created += 1
                if not mod_store.by_category(obj):
                    without_mods += 1
                rules.append(AutoDetectionRule(name=f"{category}/{obj}", pattern=f"*{obj}*", category=obj))

        self._report(stage, "Thumbnails", 1, 2)
        self._migrate_thumbnails(env_dir / "thumbnail", store, builder)

        try:
            store.save()
            save_auto_detection_rules(self.paths.auto_detection_rules_path, rules)
        except OSError as exc:
            builder.warning(f"Could not write classifications: {exc}")
            return
        builder.classification_nodes_created += created
        empty = sorted(c for c in classifications if not store.children(c))
        builder.info(
            f"Classifications migrated: {len(classifications)} categories, "
            f"{created} new node(s), {len(rules)} detection rule(s), "
            f"{without_mods} object(s) without mods"
        )
        if empty:
            builder.info(f"Categories without objects: {', '.join(empty)}")

    def _migrate_thumbnails(self, thumb_dir: Path, store: ClassificationStore, builder: _ResultBuilder):
        if not thumb_dir.is_dir():
            builder.warning(f"Thumbnail directory not found: {thumb_dir}")
            return
        try:
            copied, failures = copy_tree(
                thumb_dir, self.paths.thumbnails_dir, skip_names=frozenset({REDIRECTION_FILENAME})
            )
        except OSError as exc:
            builder.not_transferred(f"Could not copy thumbnails: {exc}")
            return
        for failure in failures:
            builder.not_transferred(f"Could not copy thumbnail {failure}")
        builder.thumbnails_copied += copied

        redirection = thumb_dir / REDIRECTION_FILENAME
        if not redirection.is_file():
            builder.warning(f"Redirection file not found: {redirection}")
            return
        try:
            builder.info(f"Redirection file: {redirection_statistics(redirection)}")
        except (OSError, UnicodeDecodeError) as exc:
            _log.debug("No statistics for %s: %s", redirection, exc)
        mapping = parse_redirection(redirection, warn=builder.warning)
        applied = sum(
            1 for name, rel in sorted(mapping.items()) if store.set_thumbnail(name, f"thumbnails/{rel}")
        )
        builder.info(f"Thumbnails: {copied} file(s) copied, {applied} of {len(mapping)} mapping(s) applied")

    # ── Finalizing ────────────────────────────────────────────────────

    def _materialize_profile(
        self,
        source: Path,
        request: NewProfileRequest,
        configuration: LegacyConfiguration | None,
        builder: _ResultBuilder,
    ) -> str | None:
        if self.profile_service is None:
            builder.warning(f"No profile registry configured; profile {request.name!r} not created")
            return None
        interim = builder.build(MigrationStage.FINALIZING, True, 0.0)
        try:
            profile = ProfileMaterializer(self.profile_service).create(
                interim,
                request.name,
                request.work_directory,
                source_path=source,
                data_directory=self.paths.root,
                configuration=configuration,
            )
        except (ValueError, OSError) as exc:
            builder.warning(f"Could not create profile {request.name!r}: {exc}")
            return None
        builder.info(f"Created profile {profile.name!r} ({profile.id})")
        return profile.id

    def _removal_blocker(self, options: MigrationOptions, builder: _ResultBuilder) -> str | None:
        # REMOVE keeps no copy, so every legacy file must have made it across
        if not (options.migrate_archives and options.migrate_previews):
            return "archives or previews were not migrated"
        if builder.files_left_behind:
            return f"{builder.files_left_behind} file(s) could not be migrated"
        if builder.errors:
            return f"{len(builder.errors)} mod(s) could not be registered"
        return None

    def _post_migration(self, source: Path, options: MigrationOptions, builder: _ResultBuilder):
        action = options.post_action
        if action is PostMigrationAction.KEEP:
            return
        dest = self.paths.root.resolve()
        src = source.resolve()
        if dest == src or src in dest.parents:
            builder.warning(
                "Destination is inside the legacy installation; legacy files were not removed"
            )
            return
        if action is PostMigrationAction.REMOVE:
            blocker = self._removal_blocker(options, builder)
            if blocker is not None:
                builder.warning(f"Legacy installation not removed: {blocker}")
                return

        if action is PostMigrationAction.BACKUP_AND_REMOVE:
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            base = self.paths.backups_dir / f"legacy_{stamp}"
            try:
                self.paths.backups_dir.mkdir(parents=True, exist_ok=True)
                archive = shutil.make_archive(str(base), "zip", root_dir=src.parent, base_dir=src.name)
            except OSError as exc:
                builder.warning(f"Backup of legacy installation failed, nothing removed: {exc}")
                return
            if not Path(archive).is_file():
                builder.warning("Backup archive was not created, nothing removed")
                return
            builder.info(f"Legacy installation backed up to {archive}")

        try:
            shutil.rmtree(src)
        except OSError as exc:
            builder.warning(f"Could not remove legacy installation: {exc}")
            return
        builder.info(f"Removed legacy installation {src}")
