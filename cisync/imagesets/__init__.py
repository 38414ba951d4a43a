"""ClusterImageSet models, manifest loading and the reconciliation engine.

This package covers three slices of the sync:

* **Models & loading**: typed msgspec models of the Hive resource and a YAML
  1.2 loader that walks a snapshot's channel directory.
* **Reconciliation**: the per-image-set apply decision, the garbage
  collector for image sets removed upstream and the revision-gated cycle
  that ties them together.
* **Scheduling**: a fixed-interval loop with an explicit cleanup policy.

Quick example
-------------

Run a single cycle against a database store::

    >>> from cisync.imagesets import ImageSetSynchronizer, SyncScheduler
    >>> from cisync.source import GitSourceProvider, RepositoryConfigLoader
    >>> from cisync.store import build_database_store
    >>> store = await build_database_store("sqlite+aiosqlite:///imagesets.db")
    >>> synchronizer = ImageSetSynchronizer(
    ...     store,
    ...     GitSourceProvider(),
    ...     RepositoryConfigLoader("/etc/cisync/git-config", "/etc/cisync/git-secret"),
    ... )
    >>> await SyncScheduler(synchronizer).run_once()
"""

from __future__ import annotations

from .apply import ApplyAction, ApplyOutcome, apply_image_set
from .cleanup import collect_garbage, select_stale
from .errors import ManifestParseError, ManifestReadError
from .loader import RawManifest, iter_manifests, load_candidates, parse_manifest
from .models import (
    CHANNEL_LABEL,
    TRACKED_LABELS,
    VISIBLE_LABEL,
    ClusterImageSet,
    ClusterImageSetSpec,
    ObjectMeta,
    build_image_set,
)
from .reconciler import ImageSetSynchronizer, RevisionCheck, SyncResult
from .scheduler import CleanupPolicy, SyncPhase, SyncScheduler

__all__ = [
    "CHANNEL_LABEL",
    "TRACKED_LABELS",
    "VISIBLE_LABEL",
    "ApplyAction",
    "ApplyOutcome",
    "CleanupPolicy",
    "ClusterImageSet",
    "ClusterImageSetSpec",
    "ImageSetSynchronizer",
    "ManifestParseError",
    "ManifestReadError",
    "ObjectMeta",
    "RawManifest",
    "RevisionCheck",
    "SyncPhase",
    "SyncResult",
    "SyncScheduler",
    "apply_image_set",
    "build_image_set",
    "collect_garbage",
    "iter_manifests",
    "load_candidates",
    "parse_manifest",
    "select_stale",
]
