#!/usr/bin/env python3
"""Legacy installation migrator - Entry Point"""

import argparse
import faulthandler
import json
import logging
import os
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

APP_DIRNAME = "D3dxMigrator"
HOME_ENV_VAR = "D3DXMIGRATOR_HOME"
LOG_HANDLER_NAME = "d3dxmigrator-file"
POST_ACTIONS = {"keep": "KEEP", "backup-remove": "BACKUP_AND_REMOVE", "remove": "REMOVE"}


def app_data_dir() -> Path:
    override = os.environ.get(HOME_ENV_VAR)
    if override:
        return Path(override)
    return Path(os.environ.get("APPDATA", "~")).expanduser() / APP_DIRNAME


def setup_logging(log_dir: Path | None = None) -> tuple[logging.Logger, Path]:
    log_dir = log_dir or app_data_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "d3dxmigrator.log"

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(message)s"))
    handler.set_name(LOG_HANDLER_NAME)

    # module loggers are named after their modules, so attach to the root
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    for old in [h for h in logger.handlers if h.get_name() == LOG_HANDLER_NAME]:
        logger.removeHandler(old)
        old.close()
    logger.addHandler(handler)
    return logger, log_dir


def install_crash_handler(logger: logging.Logger, log_dir: Path):
    # Python-level unhandled exceptions
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )

    sys.excepthook = handle_exception

    # faulthandler cannot go through logging after a C-level crash
    crash_file = log_dir / "crash.log"
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Migrate a legacy skin manager installation")
    parser.add_argument("--log-dir", help=f"log directory (default: %%APPDATA%%/{APP_DIRNAME})")
    sub = parser.add_subparsers(dest="command", required=True)

    analyze = sub.add_parser("analyze", help="inspect a legacy installation")
    analyze.add_argument("path")

    migrate = sub.add_parser("migrate", help="migrate one environment into a profile directory")
    migrate.add_argument("path")
    migrate.add_argument("--dest", required=True, help="profile data directory (must exist)")
    migrate.add_argument("--env", help="environment to migrate (default: the active one)")
    migrate.add_argument("--mode", choices=("copy", "move", "link"), default="copy")
    migrate.add_argument(
        "--post", choices=("keep", "backup-remove", "remove"), default="keep",
        help="what to do with the legacy installation afterwards",
    )
    migrate.add_argument("--skip-metadata", action="store_true")
    migrate.add_argument("--skip-archives", action="store_true")
    migrate.add_argument("--skip-previews", action="store_true")
    migrate.add_argument("--skip-configuration", action="store_true")
    migrate.add_argument("--skip-classifications", action="store_true")
    migrate.add_argument("--new-profile", metavar="NAME")
    migrate.add_argument("--work-dir", help="work directory of the new profile")
    migrate.add_argument("--profiles-file", help="profile registry (default: <app data>/profiles.json)")
    migrate.add_argument("--workers", type=int, default=4)
    return parser


def _stderr(msg: str):
    print(msg, file=sys.stderr)


def cmd_analyze(args: argparse.Namespace) -> int:
    from installation_analyzer import analyze_installation

    analysis = analyze_installation(args.path)
    print(json.dumps(analysis.to_dict(), indent=2, ensure_ascii=False))
    return 0 if analysis.is_valid else 1


def cmd_migrate(args: argparse.Namespace) -> int:
    from file_ops import format_bytes
    from installation_analyzer import analyze_installation
    from migration import (
        ArchiveHandling,
        MigrationOptions,
        MigrationOrchestrator,
        NewProfileRequest,
        PostMigrationAction,
    )
    from profiles import ProfileService

    analysis = analyze_installation(args.path)
    environment = args.env or analysis.active_environment or ""
    summary = analysis.summary_for(environment)
    if summary is not None:
        _stderr(
            f"Environment {environment!r}: {summary.mods} mod(s), {summary.archives} archive(s) "
            f"({format_bytes(summary.archive_size_bytes)}), {summary.previews} preview(s)"
        )

    new_profile = None
    profile_service = None
    if args.new_profile:
        new_profile = NewProfileRequest(args.new_profile, args.work_dir)
        profiles_file = Path(args.profiles_file) if args.profiles_file else app_data_dir() / "profiles.json"
        profile_service = ProfileService(profiles_file)

    options = MigrationOptions(
        environment=environment,
        migrate_metadata=not args.skip_metadata,
        migrate_archives=not args.skip_archives,
        migrate_previews=not args.skip_previews,
        migrate_configuration=not args.skip_configuration,
        migrate_classifications=not args.skip_classifications,
        archive_mode=ArchiveHandling(args.mode),
        post_action=PostMigrationAction[POST_ACTIONS[args.post]],
        new_profile=new_profile,
        max_workers=args.workers,
    )
    orchestrator = MigrationOrchestrator(
        args.dest, profile_service=profile_service, log_callback=_stderr
    )
    result = orchestrator.run(analysis, options)
    print(result.to_json())
    return 0 if result.success else 1


def main(argv: list[str] | None = None, crash_handler: bool = False) -> int:
    args = build_parser().parse_args(argv)
    logger, log_dir = setup_logging(Path(args.log_dir) if args.log_dir else None)
    if crash_handler:
        install_crash_handler(logger, log_dir)
    logger.info("Starting legacy migrator: %s", args.command)
    if args.command == "analyze":
        return cmd_analyze(args)
    return cmd_migrate(args)


if __name__ == "__main__":
    sys.exit(main(crash_handler=True))
