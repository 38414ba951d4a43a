"""Fixed-interval scheduling of reconciliation cycles.

The scheduler owns the process lifecycle phase and decides, through an
explicit :class:`CleanupPolicy`, which cycles may garbage-collect:

``first-sync``
    Only until the first successful cycle after startup. This bounds the
    damage of a misconfigured repository to one pass and is the default.
``every-sync``
    Every cycle that passes the revision gate.
``never``
    Cleanup is disabled.

Cycles never overlap: the next one is armed only after the previous one
returns. Failures are logged and retried on the next tick at the same
interval.
"""

from __future__ import annotations

import asyncio
import contextlib
import enum
import typing as typ

from cisync.common.errors import SyncError
from cisync.logging import get_logger, log_exception, log_info

if typ.TYPE_CHECKING:
    from .reconciler import ImageSetSynchronizer, SyncResult

logger = get_logger(__name__)


class SyncPhase(enum.Enum):
    """Where the process is in its lifecycle."""

    AWAITING_FIRST_SYNC = "awaiting-first-sync"
    STEADY_STATE = "steady-state"


class CleanupPolicy(enum.StrEnum):
    """When garbage collection is allowed to run."""

    FIRST_SYNC = "first-sync"
    EVERY_SYNC = "every-sync"
    NEVER = "never"

    def allows_cleanup(self, phase: SyncPhase) -> bool:
        """Return True when a cycle in ``phase`` may garbage-collect."""
        match self:
            case CleanupPolicy.FIRST_SYNC:
                return phase is SyncPhase.AWAITING_FIRST_SYNC
            case CleanupPolicy.EVERY_SYNC:
                return True
            case CleanupPolicy.NEVER:
                return False


class SyncScheduler:
    """Run :class:`ImageSetSynchronizer` cycles on a fixed interval."""

    def __init__(
        self,
        synchronizer: ImageSetSynchronizer,
        *,
        interval_s: float = 60.0,
        cleanup_policy: CleanupPolicy = CleanupPolicy.FIRST_SYNC,
    ) -> None:
        """Configure the interval and cleanup policy."""
        self._synchronizer = synchronizer
        self.interval_s = interval_s
        self.cleanup_policy = cleanup_policy
        self.phase = SyncPhase.AWAITING_FIRST_SYNC

    async def run_once(self) -> SyncResult:
        """Run one cycle and advance the phase when it succeeds.

        Errors propagate; the phase is left unchanged on failure so the next
        cycle keeps its cleanup eligibility.
        """
        cleanup = self.cleanup_policy.allows_cleanup(self.phase)
        result = await self._synchronizer.sync(cleanup=cleanup)
        self.phase = SyncPhase.STEADY_STATE
        return result

    async def tick(self) -> SyncResult | None:
        """Run one cycle, logging instead of raising on failure."""
        try:
            return await self.run_once()
        except SyncError as exc:
            log_exception(logger, f"error syncing clusterImageSets: {exc}", exc)
        except Exception as exc:  # noqa: BLE001 - the loop must survive any cycle failure
            log_exception(logger, "unexpected error syncing clusterImageSets", exc)
        return None

    async def run(self, stop: asyncio.Event | None = None) -> None:
        """Tick until ``stop`` is set, waiting ``interval_s`` between cycles.

        A cycle that is already running when ``stop`` is set finishes first.
        """
        stop_event = stop or asyncio.Event()
        log_info(
            logger,
            "starting clusterImageSet sync every %ss (cleanup policy %s)",
            self.interval_s,
            self.cleanup_policy,
        )
        while not stop_event.is_set():
            await self.tick()
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=self.interval_s)
        log_info(logger, "clusterImageSet sync stopped")
