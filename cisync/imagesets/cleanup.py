"""Garbage collection of image sets that disappeared upstream."""

from __future__ import annotations

import typing as typ

from cisync.logging import get_logger, log_error, log_info
from cisync.store.errors import PersistenceError

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from cisync.store.protocol import ImageSetStore

    from .models import ClusterImageSet

logger = get_logger(__name__)


def select_stale(
    persisted: cabc.Iterable[ClusterImageSet], candidate_names: cabc.Collection[str]
) -> list[ClusterImageSet]:
    """Return sync-managed image sets whose names are not candidates.

    Image sets without a non-empty channel label belong to someone else and
    are never returned.
    """
    keep = frozenset(candidate_names)
    return [
        image_set
        for image_set in persisted
        if image_set.is_sync_managed and image_set.name not in keep
    ]


async def collect_garbage(
    store: ImageSetStore, candidate_names: cabc.Collection[str]
) -> list[str]:
    """Delete stale sync-managed image sets and return their names.

    The first failed delete is logged and re-raised. Nothing after it is
    attempted in this pass.
    """
    log_info(logger, "cleanup old clusterImageSets")
    deleted: list[str] = []
    for image_set in select_stale(await store.list_all(), candidate_names):
        log_info(
            logger,
            "deleting clusterImageSet %s (channel=%s)",
            image_set.name,
            image_set.channel,
        )
        try:
            await store.delete(image_set.name)
        except PersistenceError:
            log_error(logger, "failed to delete clusterImageSet %s", image_set.name)
            raise
        deleted.append(image_set.name)
    return deleted
