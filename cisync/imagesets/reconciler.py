"""Reconcile persisted ClusterImageSets with a Git snapshot.

One call to :meth:`ImageSetSynchronizer.sync` is a full cycle:

1. reload the repository configuration and credentials;
2. ask the revision gate whether the branch moved since the last success;
3. snapshot the branch and parse every manifest under
   ``<gitRepoPath>/<channel>``;
4. create, update or skip each candidate;
5. optionally delete sync-managed image sets missing from the candidates;
6. remember the snapshot revision.

Any error aborts the cycle where it happens and leaves ``last_revision``
untouched, so the next cycle performs a full sync again. The revision is
held in memory only: a restarted process always treats its first cycle as
changed.
"""

from __future__ import annotations

import dataclasses
import typing as typ

from cisync.logging import get_logger, log_info

from .apply import ApplyAction, ApplyOutcome, apply_image_set
from .cleanup import collect_garbage
from .loader import load_candidates

if typ.TYPE_CHECKING:
    from cisync.source.config import GitCredentials, RepositoryConfig
    from cisync.source.protocol import SourceProvider
    from cisync.store.protocol import ImageSetStore

logger = get_logger(__name__)


class ConfigLoader(typ.Protocol):
    """Supplies repository settings at the start of every cycle."""

    def load(self) -> tuple[RepositoryConfig, GitCredentials]:
        """Return the current repository configuration and credentials."""
        ...


@dataclasses.dataclass(frozen=True, slots=True)
class RevisionCheck:
    """Revision gate verdict.

    Attributes
    ----------
    proceed
        Whether the cycle should fetch and apply the snapshot.
    revision
        Current source revision when it was looked up; ``None`` on a cold
        start, where no lookup is made.

    """

    proceed: bool
    revision: str | None = None


@dataclasses.dataclass(slots=True)
class SyncResult:
    """Summary of one reconciliation cycle."""

    revision: str | None = None
    skipped: bool = False
    cleanup_ran: bool = False
    created: list[str] = dataclasses.field(default_factory=list)
    updated: list[str] = dataclasses.field(default_factory=list)
    unchanged: list[str] = dataclasses.field(default_factory=list)
    deleted: list[str] = dataclasses.field(default_factory=list)

    def record(self, outcome: ApplyOutcome) -> None:
        """Append an apply outcome to the matching bucket."""
        match outcome.action:
            case ApplyAction.CREATED:
                self.created.append(outcome.name)
            case ApplyAction.UPDATED:
                self.updated.append(outcome.name)
            case ApplyAction.UNCHANGED:
                self.unchanged.append(outcome.name)

    @property
    def applied(self) -> list[str]:
        """Return every candidate name handled in this cycle, sorted."""
        return sorted([*self.created, *self.updated, *self.unchanged])


class ImageSetSynchronizer:
    """Drive reconciliation cycles against a store and a source provider."""

    def __init__(
        self,
        store: ImageSetStore,
        source: SourceProvider,
        config_loader: ConfigLoader,
        *,
        last_revision: str = "",
    ) -> None:
        """Wire the synchronizer to its collaborators.

        Parameters
        ----------
        store
            Persistence for ClusterImageSets.
        source
            Provider of repository snapshots and revision lookups.
        config_loader
            Source of repository configuration, reloaded every cycle.
        last_revision
            Revision considered already applied; empty means never synced.

        """
        self._store = store
        self._source = source
        self._config_loader = config_loader
        self.last_revision = last_revision

    async def should_sync(
        self,
        last_revision: str,
        config: RepositoryConfig,
        credentials: GitCredentials,
    ) -> RevisionCheck:
        """Decide whether a cycle needs to fetch the snapshot.

        An empty ``last_revision`` always proceeds without a lookup. Lookup
        failures propagate to the caller.
        """
        if not last_revision:
            return RevisionCheck(proceed=True)

        current = await self._source.revision_of(config, credentials)
        return RevisionCheck(proceed=current != last_revision, revision=current)

    async def sync(self, *, cleanup: bool) -> SyncResult:
        """Run one reconciliation cycle.

        Parameters
        ----------
        cleanup
            Delete sync-managed image sets absent from the snapshot.

        Returns
        -------
        SyncResult
            What the cycle did; ``skipped`` is set when the revision was
            unchanged.

        Raises
        ------
        cisync.common.errors.SyncError
            Any configuration, transport, manifest or persistence failure.

        """
        log_info(logger, "start syncClusterImageSet (cleanup=%s)", cleanup)
        config, credentials = self._config_loader.load()

        check = await self.should_sync(self.last_revision, config, credentials)
        if not check.proceed:
            log_info(
                logger,
                "previous commit %s is already the most recent, skip sync",
                check.revision,
            )
            return SyncResult(revision=check.revision, skipped=True)

        result = SyncResult()
        async with self._source.snapshot(config, credentials) as snapshot:
            log_info(
                logger,
                "applying clusterImageSets from %s at revision %s",
                config.manifest_path,
                snapshot.revision,
            )
            candidates = load_candidates(snapshot.path, config.manifest_path)
            for candidate in candidates:
                result.record(await apply_image_set(self._store, candidate))

            if cleanup:
                result.deleted = await collect_garbage(
                    self._store, [candidate.name for candidate in candidates]
                )
                result.cleanup_ran = True

            result.revision = snapshot.revision

        self.last_revision = snapshot.revision
        log_info(
            logger,
            "done syncClusterImageSet at %s: %d created, %d updated, "
            "%d unchanged, %d deleted",
            snapshot.revision,
            len(result.created),
            len(result.updated),
            len(result.unchanged),
            len(result.deleted),
        )
        return result
