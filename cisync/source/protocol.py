"""Source provider contract used by the reconciler."""

from __future__ import annotations

import dataclasses
import typing as typ

if typ.TYPE_CHECKING:
    import contextlib
    from pathlib import Path

    from .config import GitCredentials, RepositoryConfig


@dataclasses.dataclass(frozen=True, slots=True)
class Snapshot:
    """Local working copy of the repository at one revision."""

    path: Path
    revision: str


class SourceProvider(typ.Protocol):
    """Produces repository snapshots and cheap revision lookups."""

    def snapshot(
        self, config: RepositoryConfig, credentials: GitCredentials
    ) -> contextlib.AbstractAsyncContextManager[Snapshot]:
        """Yield a snapshot that is discarded when the context exits."""
        ...

    async def revision_of(
        self, config: RepositoryConfig, credentials: GitCredentials
    ) -> str:
        """Return the branch's current revision without fetching content."""
        ...
