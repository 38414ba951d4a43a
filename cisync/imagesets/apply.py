"""Create, update or skip a single candidate image set."""

from __future__ import annotations

import dataclasses
import enum
import typing as typ

from cisync.logging import get_logger, log_debug, log_info

if typ.TYPE_CHECKING:
    from cisync.store.protocol import ImageSetStore

    from .models import ClusterImageSet

logger = get_logger(__name__)


class ApplyAction(enum.StrEnum):
    """What the apply step did to the persisted image set."""

    CREATED = "created"
    UPDATED = "updated"
    UNCHANGED = "unchanged"


@dataclasses.dataclass(frozen=True, slots=True)
class ApplyOutcome:
    """Name of the persisted image set and the action taken."""

    name: str
    action: ApplyAction


async def apply_image_set(
    store: ImageSetStore, candidate: ClusterImageSet
) -> ApplyOutcome:
    """Make the persisted image set match ``candidate``.

    A missing image set is created as declared. An existing one is only
    rewritten when its release image or tracked labels differ; labels that
    are not tracked never cause an update on their own. Store errors
    propagate unchanged.
    """
    existing = await store.get(candidate.name)
    if existing is None:
        log_info(
            logger,
            "create clusterImageSet %s (releaseImage=%s)",
            candidate.name,
            candidate.release_image,
        )
        await store.create(candidate)
        return ApplyOutcome(candidate.name, ApplyAction.CREATED)

    if existing.field_equal(candidate):
        log_debug(logger, "clusterImageSet %s already up to date, skipping", existing.name)
        return ApplyOutcome(existing.name, ApplyAction.UNCHANGED)

    updated = existing.with_desired_state(candidate)
    log_info(
        logger,
        "update clusterImageSet %s (releaseImage=%s, labels=%s)",
        updated.name,
        updated.release_image,
        updated.labels,
    )
    await store.update(updated)
    return ApplyOutcome(existing.name, ApplyAction.UPDATED)
