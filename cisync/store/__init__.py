"""Persistence backends for ClusterImageSets."""

from __future__ import annotations

from .database import (
    DatabaseImageSetStore,
    ImageSetRecord,
    build_database_store,
    init_imageset_storage,
)
from .errors import PersistenceError
from .kubectl import KubectlImageSetStore, KubectlStoreConfig
from .protocol import ImageSetStore

__all__ = [
    "DatabaseImageSetStore",
    "ImageSetRecord",
    "ImageSetStore",
    "KubectlImageSetStore",
    "KubectlStoreConfig",
    "PersistenceError",
    "build_database_store",
    "init_imageset_storage",
]
