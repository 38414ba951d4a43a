"""Command-line entry point: run the sync service or lint manifests."""

from __future__ import annotations

import argparse
import asyncio
import dataclasses as dc
from pathlib import Path

from cisync.common.errors import SyncError
from cisync.imagesets.loader import load_candidates
from cisync.imagesets.scheduler import CleanupPolicy
from cisync.logging import configure_logging, get_logger, log_warning
from cisync.runtime import serve
from cisync.settings import SettingsError, StoreKind, SyncSettings

logger = get_logger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="cisync", description=__doc__)
    commands = parser.add_subparsers(dest="command", required=True)

    sync = commands.add_parser(
        "sync", help="Sync ClusterImageSets from the Git repository"
    )
    sync.add_argument("--once", action="store_true", help="Run a single cycle")
    sync.add_argument(
        "--sync-interval",
        type=int,
        default=None,
        help="Interval in seconds between syncs with the Git repository",
    )
    sync.add_argument(
        "--git-config-dir",
        type=Path,
        default=None,
        help="Directory holding the mounted repository ConfigMap",
    )
    sync.add_argument(
        "--git-secret-dir",
        type=Path,
        default=None,
        help="Directory holding the mounted repository Secret",
    )
    sync.add_argument(
        "--cleanup-policy",
        choices=[policy.value for policy in CleanupPolicy],
        default=None,
        help="When stale sync-managed image sets are deleted",
    )
    sync.add_argument(
        "--store",
        choices=[kind.value for kind in StoreKind],
        default=None,
        help="Persistence backend",
    )
    sync.add_argument(
        "--database-url", default=None, help="Database URL for the database store"
    )

    lint = commands.add_parser("lint", help="Validate a directory of manifests")
    lint.add_argument("path", type=Path, help="Directory of ClusterImageSet manifests")
    return parser


def _apply_overrides(settings: SyncSettings, args: argparse.Namespace) -> SyncSettings:
    overrides: dict[str, object] = {}
    if args.sync_interval is not None:
        overrides["sync_interval_s"] = args.sync_interval
    if args.git_config_dir is not None:
        overrides["git_config_dir"] = args.git_config_dir
    if args.git_secret_dir is not None:
        overrides["git_secret_dir"] = args.git_secret_dir
    if args.cleanup_policy is not None:
        overrides["cleanup_policy"] = CleanupPolicy(args.cleanup_policy)
    if args.store is not None:
        overrides["store"] = StoreKind(args.store)
    if args.database_url is not None:
        overrides["database_url"] = args.database_url
    return dc.replace(settings, **overrides).validate()


def _run_sync(args: argparse.Namespace) -> int:
    try:
        settings = _apply_overrides(SyncSettings.from_env(), args)
    except SettingsError as exc:
        print(f"invalid settings: {exc}")
        return 2

    normalized, invalid = configure_logging(settings.log_level)
    if invalid:
        log_warning(
            logger,
            "Invalid CISYNC_LOG_LEVEL %r, falling back to %s",
            settings.log_level,
            normalized,
        )
    return asyncio.run(serve(settings, once=args.once))


def _run_lint(path: Path) -> int:
    try:
        candidates = load_candidates(path, ".")
    except SyncError as exc:
        print(f"Manifest validation failed for {path}:")
        print(f"  - {exc}")
        return 1

    for image_set in candidates:
        channel = image_set.channel or "-"
        print(f"{image_set.name}\t{image_set.release_image}\tchannel={channel}")
    print(f"{path} is valid ({len(candidates)} image sets)")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Parse ``argv`` and dispatch to the chosen command.

    Returns
    -------
    int
        Exit code: 0 on success, 1 when a cycle or lint fails, 2 for invalid
        settings.

    """
    args = _build_parser().parse_args(argv)
    if args.command == "lint":
        return _run_lint(args.path)
    return _run_sync(args)


if __name__ == "__main__":
    raise SystemExit(main())
