"""Typed ClusterImageSet structures and comparison rules."""

from __future__ import annotations

import msgspec

API_VERSION = "hive.openshift.io/v1"
KIND = "ClusterImageSet"

# Label marking an image set as owned by the sync; customer image sets lack it.
CHANNEL_LABEL = "channel"
VISIBLE_LABEL = "visible"

# Labels whose values decide whether a persisted image set needs an update.
TRACKED_LABELS: tuple[str, ...] = (VISIBLE_LABEL,)


class ObjectMeta(msgspec.Struct, kw_only=True, rename="camel", omit_defaults=True):
    """Subset of Kubernetes object metadata carried through a sync.

    Attributes
    ----------
    name : str
        Cluster-scoped identity of the image set.
    labels : dict[str, str]
        Label map, including the reserved ``channel`` and ``visible`` labels.
    annotations : dict[str, str]
        Annotations kept verbatim from the persisted object.
    resource_version : str, optional
        Server-assigned version used for optimistic concurrency on update.
    uid : str, optional
        Server-assigned identifier.

    """

    name: str
    labels: dict[str, str] = msgspec.field(default_factory=dict)
    annotations: dict[str, str] = msgspec.field(default_factory=dict)
    resource_version: str | None = None
    uid: str | None = None


class ClusterImageSetSpec(msgspec.Struct, kw_only=True, rename="camel"):
    """Release payload an image set points at."""

    release_image: str


class ClusterImageSet(msgspec.Struct, kw_only=True, rename="camel"):
    """Hive ``ClusterImageSet`` resource as read from a manifest or the API."""

    metadata: ObjectMeta
    spec: ClusterImageSetSpec
    api_version: str = API_VERSION
    kind: str = KIND

    @property
    def name(self) -> str:
        """Return the image set's identity."""
        return self.metadata.name

    @property
    def release_image(self) -> str:
        """Return the release payload reference."""
        return self.spec.release_image

    @property
    def labels(self) -> dict[str, str]:
        """Return the label map."""
        return self.metadata.labels

    @property
    def channel(self) -> str:
        """Return the channel label value, or an empty string when absent."""
        return self.metadata.labels.get(CHANNEL_LABEL, "")

    @property
    def is_sync_managed(self) -> bool:
        """Return True when the image set carries a non-empty channel label."""
        return bool(self.channel)

    def tracked_fields(self) -> tuple[str, tuple[str, ...]]:
        """Return the payload and tracked label values used for comparison.

        An absent tracked label compares equal to an empty one.
        """
        return (
            self.spec.release_image,
            tuple(self.metadata.labels.get(label, "") for label in TRACKED_LABELS),
        )

    def field_equal(self, other: ClusterImageSet) -> bool:
        """Return True when payload and tracked labels match ``other``."""
        return self.tracked_fields() == other.tracked_fields()

    def with_desired_state(self, desired: ClusterImageSet) -> ClusterImageSet:
        """Return a copy carrying ``desired``'s payload and full label map.

        Server-owned metadata such as ``resource_version`` and ``uid`` and any
        annotations stay as they are on ``self``.
        """
        metadata = msgspec.structs.replace(
            self.metadata, labels=dict(desired.metadata.labels)
        )
        spec = ClusterImageSetSpec(release_image=desired.spec.release_image)
        return msgspec.structs.replace(self, metadata=metadata, spec=spec)


def build_image_set(
    name: str,
    release_image: str,
    labels: dict[str, str] | None = None,
) -> ClusterImageSet:
    """Construct an image set from its meaningful fields."""
    return ClusterImageSet(
        metadata=ObjectMeta(name=name, labels=dict(labels or {})),
        spec=ClusterImageSetSpec(release_image=release_image),
    )

