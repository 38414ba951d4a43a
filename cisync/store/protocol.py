"""Persistence contract consumed by the reconciliation engine."""

from __future__ import annotations

import typing as typ

if typ.TYPE_CHECKING:
    from cisync.imagesets.models import ClusterImageSet


class ImageSetStore(typ.Protocol):
    """Async persistence capability for ClusterImageSet resources.

    Implementations raise :class:`cisync.store.errors.PersistenceError` for
    every failure and never retry internally.
    """

    async def get(self, name: str) -> ClusterImageSet | None:
        """Return the persisted image set, or ``None`` when it does not exist."""
        ...

    async def create(self, image_set: ClusterImageSet) -> None:
        """Persist a new image set."""
        ...

    async def update(self, image_set: ClusterImageSet) -> None:
        """Overwrite an existing image set identified by its name."""
        ...

    async def list_all(self) -> list[ClusterImageSet]:
        """Return every persisted image set."""
        ...

    async def delete(self, name: str) -> None:
        """Remove an image set; removing a missing one is not an error."""
        ...

    async def close(self) -> None:
        """Release connections held by the store."""
        ...
