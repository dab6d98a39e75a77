"""
Tests for MigrationOrchestrator: the stage pipeline, archive handling,
failure accounting, cancellation, post-migration actions and profiles.
"""

import json
import logging
import threading
import time
import zipfile
from pathlib import Path

import pytest

import migration
from file_ops import CancelToken
from installation_analyzer import analyze_installation
from migration import (
    ArchiveHandling,
    MigrationOptions,
    MigrationOrchestrator,
    MigrationStage,
    NewProfileRequest,
    PostMigrationAction,
)
from profiles import ProfileService
from stores import ModStore
from tests.conftest import ENDFIELD_MODS, write_index

ENDFIELD_SHAS = sorted(ENDFIELD_MODS)


# ── helpers ──────────────────────────────────────────────────────────────────

def make_orchestrator(dest, **kwargs):
    kwargs.setdefault("log_callback", lambda _: None)
    return MigrationOrchestrator(dest, **kwargs)


def run_migration(legacy_root, dest, orchestrator=None, **overrides):
    overrides.setdefault("environment", "Endfield")
    overrides.setdefault("max_workers", 2)
    orchestrator = orchestrator or make_orchestrator(dest)
    return orchestrator.run(analyze_installation(legacy_root), MigrationOptions(**overrides))


def archive_bytes(legacy_root):
    return {sha: (legacy_root / "resources" / "mods" / sha).read_bytes() for sha in ENDFIELD_SHAS}


def read_json(path):
    return json.loads(path.read_text(encoding="utf-8"))


# ── end to end ───────────────────────────────────────────────────────────────

def test_full_copy_migration(legacy_root, dest):
    result = run_migration(legacy_root, dest)

    assert result.success
    assert result.final_stage is MigrationStage.COMPLETED
    assert result.outcome == "completed"
    assert result.errors == ()
    assert result.warnings == ()
    assert result.mods_migrated == 3
    assert result.archives_copied == 3
    assert result.previews_copied == 2
    assert result.thumbnails_copied == 3
    assert result.classification_nodes_created == 10
    assert result.total_bytes_processed > 0
    assert result.profile_id is None


def test_mod_store_records(legacy_root, dest):
    run_migration(legacy_root, dest)

    store = read_json(dest / "mods.json")
    assert store["version"] == 2
    records = store["records"]
    assert sorted(records) == ENDFIELD_SHAS
    assert records["aaa111"]["archive_type"] == "zip"
    assert records["aaa111"]["category"] == "Chen"
    assert records["bbb222"]["grading"] == "R"
    assert records["ccc333"]["tags"] == ["weapon", "glow"]
    assert all(rec["is_available"] for rec in records.values())


def test_files_land_in_new_layout(legacy_root, dest):
    run_migration(legacy_root, dest)

    for sha in ENDFIELD_SHAS:
        assert (dest / "mods" / sha).is_file()
    assert not (dest / "mods" / "ddd444").exists()
    assert (dest / "previews" / "aaa111" / "preview1.png").is_file()
    assert (dest / "previews" / "bbb222" / "front.jpg").is_file()
    assert not (dest / "previews" / "ccc333").exists()
    assert (dest / "thumbnails" / "chars" / "Amiya.png").is_file()
    assert not (dest / "thumbnails" / "_redirection.ini").exists()
    assert list(dest.rglob("*.partial")) == []


def test_copy_leaves_source_archives_identical(legacy_root, dest):
    before = archive_bytes(legacy_root)

    run_migration(legacy_root, dest)

    assert archive_bytes(legacy_root) == before
    for sha, data in before.items():
        assert (dest / "mods" / sha).read_bytes() == data


def test_second_copy_run_reports_same_mod_count(legacy_root, dest):
    first = run_migration(legacy_root, dest)
    second = run_migration(legacy_root, dest)

    assert second.success
    assert second.mods_migrated == first.mods_migrated == 3
    assert second.archives_copied == 3
    assert second.warnings == ()
    assert second.classification_nodes_created == 0
    assert len(read_json(dest / "classifications.json")["nodes"]) == 10


def test_configuration_written(legacy_root, dest):
    run_migration(legacy_root, dest)

    config = read_json(dest / "config.json")
    assert config["work_directory"] == "D:\\Games\\Endfield"
    assert config["game_launch_args"] == "-popupwindow"
    assert config["uuid"] == "5f0c1d"
    assert config["window"] == {"x": 10, "y": 20, "width": 1280, "height": 720}
    assert config["osd"]["window_name"] == "Endfield"
    assert config["migrated_from"] == str(legacy_root)


def test_classifications_and_thumbnails(legacy_root, dest):
    run_migration(legacy_root, dest)

    nodes = {n["id"]: n for n in read_json(dest / "classifications.json")["nodes"]}
    assert nodes["Characters"]["priority"] == 100
    assert nodes["Characters"]["parent_id"] is None
    assert nodes["Chen"]["parent_id"] == "Characters"
    assert nodes["Chen"]["priority"] == 50
    assert nodes["Bow"]["parent_id"] == "Weapons"
    # explicit mapping beats the wildcard folder
    assert nodes["Chen"]["thumbnail"] == "thumbnails/chars/chen_alt.png"
    assert nodes["Amiya"]["thumbnail"] == "thumbnails/chars/Amiya.png"
    assert nodes["Staff"]["thumbnail"] is None

    rules = read_json(dest / "auto_detection_rules.json")
    assert len(rules) == 8
    assert {"name": "Weapons/Sword", "pattern": "*Sword*", "category": "Sword", "priority": 100} in rules


def test_run_log_written(legacy_root, dest):
    result = run_migration(legacy_root, dest)

    log_path = Path(result.log_file_path)
    assert log_path.parent == dest / "logs"
    assert log_path.is_file()
    text = log_path.read_text(encoding="utf-8")
    assert "Migrating environment 'Endfield'" in text
    assert "5 object(s) without mods" in text
    assert "Migration finished: completed" in text


def test_empty_category_reported(legacy_root, dest):
    (legacy_root / "home" / "Endfield" / "classification" / "Empty").write_text("\n", encoding="utf-8")
    messages = []

    result = run_migration(legacy_root, dest, orchestrator=make_orchestrator(dest, log_callback=messages.append))

    assert result.classification_nodes_created == 11
    assert "Categories without objects: Empty" in messages


def test_each_run_gets_its_own_log(legacy_root, dest):
    logger = logging.getLogger("migration")
    level = logger.level

    first = run_migration(legacy_root, dest)
    second = run_migration(legacy_root, dest)

    assert first.log_file_path != second.log_file_path
    assert len(list((dest / "logs").glob("migration_*.log"))) == 2
    assert "Registered 3 of 3" in Path(second.log_file_path).read_text(encoding="utf-8")
    assert logger.level == level
    assert logger.handlers == []


def test_log_callback_receives_messages(legacy_root, dest):
    messages = []
    run_migration(legacy_root, dest, orchestrator=make_orchestrator(dest, log_callback=messages.append))
    assert any("Registered 3 of 3" in m for m in messages)


def test_result_to_json(legacy_root, dest):
    data = json.loads(run_migration(legacy_root, dest).to_json())
    assert data["success"] is True
    assert data["outcome"] == "completed"
    assert data["finalStage"] == "completed"
    assert data["modsMigrated"] == 3


# ── stage selection ──────────────────────────────────────────────────────────

def test_only_metadata(legacy_root, dest):
    result = run_migration(
        legacy_root,
        dest,
        migrate_archives=False,
        migrate_previews=False,
        migrate_configuration=False,
        migrate_classifications=False,
    )

    assert result.success
    assert result.mods_migrated == 3
    assert result.archives_copied == 0
    assert not (dest / "mods").exists()
    assert not (dest / "config.json").exists()
    assert not (dest / "classifications.json").exists()
    records = read_json(dest / "mods.json")["records"]
    assert not any(rec["is_available"] for rec in records.values())


def test_archives_without_metadata(legacy_root, dest):
    result = run_migration(legacy_root, dest, migrate_metadata=False)

    assert result.success
    assert result.mods_migrated == 0
    assert result.archives_copied == 3
    assert result.previews_copied == 2


def test_other_environment(legacy_root, dest):
    result = run_migration(legacy_root, dest, environment="Other")

    assert result.mods_migrated == 1
    assert (dest / "mods" / "ddd444").is_file()
    # Other has no classification or thumbnail directory
    assert any("Classification directory not found" in w for w in result.warnings)
    assert any("Thumbnail directory not found" in w for w in result.warnings)
    assert result.outcome == "completed_with_warnings"


# ── pre-flight ───────────────────────────────────────────────────────────────

def test_link_mode_rejected_before_any_change(legacy_root, dest):
    result = run_migration(legacy_root, dest, archive_mode=ArchiveHandling.LINK)

    assert not result.success
    assert result.final_stage is MigrationStage.FAILED
    assert "link" in result.errors[0]
    assert list(dest.iterdir()) == []
    assert result.log_file_path is None


def test_link_mode_ignored_when_archives_skipped(legacy_root, dest):
    result = run_migration(
        legacy_root, dest, archive_mode=ArchiveHandling.LINK, migrate_archives=False
    )
    assert result.success
    assert result.mods_migrated == 3


def test_unknown_environment_fails(legacy_root, dest):
    result = run_migration(legacy_root, dest, environment="Nope")
    assert not result.success
    assert "Nope" in result.errors[0]
    assert list(dest.iterdir()) == []


def test_invalid_source_fails(tmp_path, dest):
    result = run_migration(tmp_path / "missing", dest)
    assert not result.success
    assert result.outcome == "failed"
    assert "not a valid legacy installation" in result.errors[0]


def test_missing_destination_fails(legacy_root, tmp_path):
    result = run_migration(legacy_root, tmp_path / "no-profile")
    assert not result.success
    assert "Destination profile directory not found" in result.errors[0]
    assert not (tmp_path / "no-profile").exists()


# ── archive handling ─────────────────────────────────────────────────────────

def test_move_relocates_archives(legacy_root, dest):
    before = archive_bytes(legacy_root)

    result = run_migration(legacy_root, dest, archive_mode=ArchiveHandling.MOVE)

    assert result.success
    assert result.archives_copied == 3
    for sha, data in before.items():
        assert not (legacy_root / "resources" / "mods" / sha).exists()
        assert (dest / "mods" / sha).read_bytes() == data
    # previews are always copied
    assert (legacy_root / "resources" / "preview" / "aaa111.png").exists()


def test_move_rerun_reports_archives_missing(legacy_root, dest):
    run_migration(legacy_root, dest, archive_mode=ArchiveHandling.MOVE)
    second = run_migration(legacy_root, dest, archive_mode=ArchiveHandling.MOVE)

    assert second.success
    assert second.mods_migrated == 3
    assert second.archives_copied == 0
    assert sum("archive not found" in w for w in second.warnings) == 3


def test_conflicting_destination_not_overwritten(legacy_root, dest):
    (dest / "mods").mkdir()
    (dest / "mods" / "bbb222").write_bytes(b"a different archive")

    result = run_migration(legacy_root, dest)

    assert result.success
    assert result.archives_copied == 2
    assert len(result.warnings) == 1
    assert "bbb222" in result.warnings[0]
    assert (dest / "mods" / "bbb222").read_bytes() == b"a different archive"


# ── per-item failures ────────────────────────────────────────────────────────

def test_unreadable_archive_is_a_warning(legacy_root, dest, monkeypatch):
    real_transfer = migration.transfer_file

    def flaky_transfer(src, dst, *args, **kwargs):
        if src.name == "bbb222":
            raise PermissionError(13, "Permission denied", str(src))
        return real_transfer(src, dst, *args, **kwargs)

    monkeypatch.setattr(migration, "transfer_file", flaky_transfer)
    result = run_migration(legacy_root, dest)

    assert result.success
    assert result.mods_migrated == 3
    assert result.archives_copied == 2
    assert result.errors == ()
    assert len(result.warnings) == 1
    assert "bbb222" in result.warnings[0]
    assert "Permission denied" in result.warnings[0]
    assert result.outcome == "completed_with_warnings"


def test_missing_archive_is_a_warning(legacy_root, dest):
    (legacy_root / "resources" / "mods" / "ccc333").unlink()

    result = run_migration(legacy_root, dest)

    assert result.success
    assert result.mods_migrated == 3
    assert result.archives_copied == 2
    assert any("ccc333" in w and "not found" in w for w in result.warnings)


def fail_registration_of(monkeypatch, sha):
    real_register = ModStore.register_mod

    def register(self, record):
        if record.sha == sha:
            raise OSError(28, "No space left on device")
        return real_register(self, record)

    monkeypatch.setattr(ModStore, "register_mod", register)


def test_metadata_failure_is_an_error(legacy_root, dest, monkeypatch):
    fail_registration_of(monkeypatch, "bbb222")

    result = run_migration(legacy_root, dest)

    assert result.success
    assert result.final_stage is MigrationStage.COMPLETED_WITH_ERRORS
    assert result.outcome == "completed_with_errors"
    assert result.mods_migrated == 2
    assert len(result.errors) == 1
    assert result.errors[0].startswith("Winter coat (bbb222): metadata registration failed")
    # no archive work for a mod whose registration failed
    assert result.archives_copied == 2
    assert not (dest / "mods" / "bbb222").exists()
    assert not any("bbb222" in w for w in result.warnings)


def test_unsafe_index_sha_is_skipped(legacy_root, dest):
    write_index(
        legacy_root / "home" / "Endfield",
        {"../../outside_target": {"name": "Escape"}},
        "index_2.json",
    )
    (legacy_root / "outside_target").write_bytes(b"data")

    result = run_migration(legacy_root, dest, migrate_metadata=False)

    assert result.success
    assert result.archives_copied == 3
    assert not (dest.parent / "outside_target").exists()
    assert any("outside_target" in w and "Skipping" in w for w in result.warnings)


@pytest.mark.parametrize("filename", ["mods.json", "classifications.json"])
@pytest.mark.parametrize("content", ["[]", '"text"', "42"])
def test_non_object_store_is_replaced(legacy_root, dest, filename, content):
    (dest / filename).write_text(content, encoding="utf-8")

    result = run_migration(legacy_root, dest)

    assert result.success
    assert result.mods_migrated == 3
    assert result.classification_nodes_created == 10
    assert isinstance(read_json(dest / filename), dict)


def test_broken_configuration_is_a_warning(legacy_root, dest):
    (legacy_root / "home" / "Endfield" / "configuration").write_text("{broken", encoding="utf-8")

    result = run_migration(legacy_root, dest)

    assert result.success
    assert result.errors == ()
    assert any("configuration" in w for w in result.warnings)
    assert not (dest / "config.json").exists()


def test_missing_redirection_file_is_a_warning(legacy_root, dest):
    (legacy_root / "home" / "Endfield" / "thumbnail" / "_redirection.ini").unlink()

    result = run_migration(legacy_root, dest)

    assert result.success
    assert result.thumbnails_copied == 3
    assert any("Redirection file not found" in w for w in result.warnings)


# ── cancellation ─────────────────────────────────────────────────────────────

def test_cancel_between_mods(legacy_root, dest, monkeypatch):
    token = CancelToken()
    real_transfer = migration.transfer_file

    def cancel_after_first(src, dst, *args, **kwargs):
        outcome = real_transfer(src, dst, *args, **kwargs)
        token.cancel()
        return outcome

    monkeypatch.setattr(migration, "transfer_file", cancel_after_first)
    orchestrator = make_orchestrator(dest, cancel_token=token)
    result = run_migration(
        legacy_root,
        dest,
        orchestrator=orchestrator,
        max_workers=1,
        post_action=PostMigrationAction.REMOVE,
    )

    assert not result.success
    assert result.final_stage is MigrationStage.CANCELLED
    assert result.archives_copied == 1
    assert result.previews_copied == 0
    assert any("cancelled" in w for w in result.warnings)
    assert list(dest.rglob("*.partial")) == []
    assert legacy_root.is_dir()
    assert orchestrator.progress.stage is MigrationStage.CANCELLED


def test_cancel_before_run(legacy_root, dest):
    token = CancelToken()
    token.cancel()

    result = run_migration(legacy_root, dest, orchestrator=make_orchestrator(dest, cancel_token=token))

    assert not result.success
    assert result.final_stage is MigrationStage.CANCELLED
    assert result.mods_migrated == 0
    assert not (dest / "mods.json").exists()


def test_cancel_during_copy_removes_partial(legacy_root, dest, monkeypatch):
    token = CancelToken()
    big = legacy_root / "resources" / "mods" / "bbb222"
    big.write_bytes(b"z" * (5 * 1024))
    monkeypatch.setattr("file_ops.COPY_CHUNK_SIZE", 1024)
    real_transfer = migration.transfer_file

    def cancel_first(src, dst, *args, **kwargs):
        if src.name == "bbb222":
            token.cancel()
        return real_transfer(src, dst, *args, **kwargs)

    monkeypatch.setattr(migration, "transfer_file", cancel_first)
    result = run_migration(
        legacy_root, dest, orchestrator=make_orchestrator(dest, cancel_token=token), max_workers=1
    )

    assert result.final_stage is MigrationStage.CANCELLED
    assert not (dest / "mods" / "bbb222").exists()
    assert list(dest.rglob("*.partial")) == []


# ── post-migration action ────────────────────────────────────────────────────

def test_keep_leaves_legacy_installation(legacy_root, dest):
    run_migration(legacy_root, dest, post_action=PostMigrationAction.KEEP)
    assert legacy_root.is_dir()


def test_backup_and_remove(legacy_root, dest):
    result = run_migration(legacy_root, dest, post_action=PostMigrationAction.BACKUP_AND_REMOVE)

    assert result.success
    assert not legacy_root.exists()
    backups = list((dest / "backups").glob("legacy_*.zip"))
    assert len(backups) == 1
    with zipfile.ZipFile(backups[0]) as zf:
        names = zf.namelist()
    assert "legacy/resources/mods/aaa111" in names
    assert "legacy/home/Endfield/classification/Characters" in names


def test_remove(legacy_root, dest):
    result = run_migration(legacy_root, dest, post_action=PostMigrationAction.REMOVE)
    assert result.success
    assert not legacy_root.exists()
    assert (dest / "mods" / "aaa111").is_file()


def test_remove_refused_when_destination_inside_source(legacy_root):
    inner = legacy_root / "profile"
    inner.mkdir()

    result = run_migration(legacy_root, inner, post_action=PostMigrationAction.REMOVE)

    assert result.success
    assert legacy_root.is_dir()
    assert any("not removed" in w for w in result.warnings)


@pytest.mark.parametrize("skipped", ["migrate_archives", "migrate_previews"])
def test_remove_refused_when_files_stage_skipped(legacy_root, dest, skipped):
    result = run_migration(legacy_root, dest, post_action=PostMigrationAction.REMOVE, **{skipped: False})

    assert result.success
    assert (legacy_root / "resources" / "mods" / "aaa111").is_file()
    assert any("Legacy installation not removed" in w for w in result.warnings)


def test_remove_refused_after_transfer_failure(legacy_root, dest, monkeypatch):
    real_transfer = migration.transfer_file

    def flaky_transfer(src, dst, *args, **kwargs):
        if src.name == "front.jpg":
            raise PermissionError(13, "Permission denied", str(src))
        return real_transfer(src, dst, *args, **kwargs)

    monkeypatch.setattr(migration, "transfer_file", flaky_transfer)
    result = run_migration(legacy_root, dest, post_action=PostMigrationAction.REMOVE)

    assert result.success
    assert (legacy_root / "resources" / "preview" / "bbb222" / "front.jpg").is_file()
    assert any("1 file(s) could not be migrated" in w for w in result.warnings)


def test_remove_refused_after_metadata_error(legacy_root, dest, monkeypatch):
    fail_registration_of(monkeypatch, "ccc333")

    result = run_migration(legacy_root, dest, post_action=PostMigrationAction.REMOVE)

    assert result.outcome == "completed_with_errors"
    assert (legacy_root / "resources" / "mods" / "ccc333").is_file()
    assert any("could not be registered" in w for w in result.warnings)


def test_backup_and_remove_allowed_without_archives(legacy_root, dest):
    result = run_migration(
        legacy_root,
        dest,
        migrate_archives=False,
        post_action=PostMigrationAction.BACKUP_AND_REMOVE,
    )

    assert result.success
    assert not legacy_root.exists()
    with zipfile.ZipFile(next((dest / "backups").glob("legacy_*.zip"))) as zf:
        assert "legacy/resources/mods/bbb222" in zf.namelist()


def test_no_post_action_after_failure(legacy_root, dest):
    result = run_migration(
        legacy_root,
        dest,
        archive_mode=ArchiveHandling.LINK,
        post_action=PostMigrationAction.REMOVE,
    )
    assert not result.success
    assert legacy_root.is_dir()


# ── profile creation ─────────────────────────────────────────────────────────

def test_new_profile_created(legacy_root, dest, tmp_path):
    service = ProfileService(tmp_path / "profiles.json")
    orchestrator = make_orchestrator(dest, profile_service=service)

    result = run_migration(
        legacy_root, dest, orchestrator=orchestrator, new_profile=NewProfileRequest("Endfield main")
    )

    assert result.success
    assert result.profile_id is not None
    profile = service.profiles[result.profile_id]
    assert profile.name == "Endfield main"
    assert profile.data_directory == str(dest)
    assert profile.work_directory == str(legacy_root)
    assert profile.game_directory == "D:\\Games\\Endfield"
    assert profile.mod_count == 3
    assert profile.metadata["migrated_from"] == str(legacy_root)
    assert ProfileService(tmp_path / "profiles.json").find_by_name("endfield MAIN") is not None


def test_profile_failure_is_a_warning(legacy_root, dest, tmp_path):
    service = ProfileService(tmp_path / "profiles.json")
    orchestrator = make_orchestrator(dest, profile_service=service)
    request = NewProfileRequest("Twice", work_directory=str(tmp_path / "work"))

    first = run_migration(legacy_root, dest, orchestrator=orchestrator, new_profile=request)
    second = run_migration(legacy_root, dest, orchestrator=orchestrator, new_profile=request)

    assert service.profiles[first.profile_id].work_directory == str(tmp_path / "work")
    assert second.success
    assert second.profile_id is None
    assert any("already exists" in w for w in second.warnings)


def test_profile_requested_without_registry(legacy_root, dest):
    result = run_migration(legacy_root, dest, new_profile=NewProfileRequest("Lost"))
    assert result.success
    assert result.profile_id is None
    assert any("profile" in w for w in result.warnings)


# ── progress and background runs ─────────────────────────────────────────────

def test_progress_is_monotonic(legacy_root, dest):
    snapshots = []
    orchestrator = make_orchestrator(dest, progress_callback=snapshots.append)

    run_migration(legacy_root, dest, orchestrator=orchestrator)

    percents = [s.percent for s in snapshots]
    assert percents == sorted(percents)
    assert percents[-1] == 100
    assert snapshots[0].stage is MigrationStage.ANALYZING_TARGET
    assert orchestrator.progress.stage is MigrationStage.COMPLETED
    stages = [s.stage for s in snapshots]
    assert stages.index(MigrationStage.MIGRATING_METADATA) < stages.index(MigrationStage.MIGRATING_ARCHIVES)
    assert stages.index(MigrationStage.MIGRATING_ARCHIVES) < stages.index(MigrationStage.MIGRATING_PREVIEWS)


def test_start_runs_in_background(legacy_root, dest):
    orchestrator = make_orchestrator(dest)
    future = orchestrator.start(
        analyze_installation(legacy_root), MigrationOptions(environment="Endfield")
    )
    result = future.result(timeout=60)
    assert result.success
    assert result.mods_migrated == 3


def test_runs_into_same_destination_never_overlap(legacy_root, dest, monkeypatch):
    events = []
    real_migrate = MigrationOrchestrator._migrate

    def tracked(self, *args):
        events.append("enter")
        time.sleep(0.2)
        try:
            return real_migrate(self, *args)
        finally:
            events.append("exit")

    monkeypatch.setattr(MigrationOrchestrator, "_migrate", tracked)
    analysis = analyze_installation(legacy_root)
    futures = [
        make_orchestrator(dest).start(analysis, MigrationOptions(environment="Endfield", max_workers=2))
        for _ in range(2)
    ]
    results = [future.result(timeout=60) for future in futures]

    assert all(result.success for result in results)
    assert events == ["enter", "exit", "enter", "exit"]


def test_runs_into_different_destinations_run_together(legacy_root, tmp_path, monkeypatch):
    barrier = threading.Barrier(2, timeout=10)
    real_migrate = MigrationOrchestrator._migrate

    def meet(self, *args):
        # both runs must be inside _migrate at the same time to get past this
        barrier.wait()
        return real_migrate(self, *args)

    monkeypatch.setattr(MigrationOrchestrator, "_migrate", meet)
    analysis = analyze_installation(legacy_root)
    futures = []
    for name in ("first", "second"):
        (tmp_path / name).mkdir()
        futures.append(
            make_orchestrator(tmp_path / name).start(analysis, MigrationOptions(environment="Endfield"))
        )
    results = [future.result(timeout=60) for future in futures]

    assert all(result.mods_migrated == 3 for result in results)


@pytest.mark.parametrize("workers", [0, -1])
def test_invalid_worker_count_fails(legacy_root, dest, workers):
    result = run_migration(legacy_root, dest, max_workers=workers)
    assert not result.success
    assert "max_workers" in result.errors[0]
