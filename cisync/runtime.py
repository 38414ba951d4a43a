"""Assemble and run the sync service from :class:`SyncSettings`.

Everything the reconciler needs is built here once at startup and passed in
explicitly: the store and its connection settings, the git provider and
the repository config loader.
"""

from __future__ import annotations

import asyncio
import contextlib
import signal
import typing as typ

from cisync.common.errors import SyncError
from cisync.imagesets.reconciler import ImageSetSynchronizer
from cisync.imagesets.scheduler import SyncScheduler
from cisync.logging import get_logger, log_exception, log_info
from cisync.settings import StoreKind, SyncSettings
from cisync.source.config import RepositoryConfigLoader
from cisync.source.git import GitSourceProvider
from cisync.store.database import build_database_store
from cisync.store.kubectl import KubectlImageSetStore, KubectlStoreConfig

if typ.TYPE_CHECKING:
    from cisync.store.protocol import ImageSetStore

logger = get_logger(__name__)


async def build_store(settings: SyncSettings) -> ImageSetStore:
    """Return the store selected by ``settings.store``."""
    if settings.store is StoreKind.DATABASE:
        if settings.database_url is None:
            msg = "database store selected without a database URL"
            raise ValueError(msg)
        return await build_database_store(settings.database_url)

    return KubectlImageSetStore(
        KubectlStoreConfig(
            kubeconfig=settings.kubeconfig,
            context=settings.kube_context,
        )
    )


def build_scheduler(settings: SyncSettings, store: ImageSetStore) -> SyncScheduler:
    """Wire the synchronizer and scheduler around ``store``."""
    synchronizer = ImageSetSynchronizer(
        store,
        GitSourceProvider(timeout_s=settings.git_timeout_s),
        RepositoryConfigLoader(settings.git_config_dir, settings.git_secret_dir),
    )
    return SyncScheduler(
        synchronizer,
        interval_s=settings.sync_interval_s,
        cleanup_policy=settings.cleanup_policy,
    )


def _install_stop_handlers(stop: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(signum, stop.set)


async def serve(settings: SyncSettings, *, once: bool = False) -> int:
    """Run the service; return a process exit code.

    With ``once`` a single cycle runs and its failure yields exit code 1.
    Otherwise cycles repeat until SIGINT or SIGTERM.
    """
    store = await build_store(settings)
    try:
        return await _serve_with(build_scheduler(settings, store), once=once)
    finally:
        await store.close()


async def _serve_with(scheduler: SyncScheduler, *, once: bool) -> int:
    if once:
        try:
            result = await scheduler.run_once()
        except SyncError as exc:
            log_exception(logger, f"error syncing clusterImageSets: {exc}", exc)
            return 1
        log_info(
            logger,
            "sync finished (revision=%s, skipped=%s)",
            result.revision,
            result.skipped,
        )
        return 0

    stop = asyncio.Event()
    _install_stop_handlers(stop)
    await scheduler.run(stop)
    return 0
