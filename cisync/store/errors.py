"""Errors raised by ClusterImageSet stores."""

from __future__ import annotations

from cisync.common.errors import SyncError


class PersistenceError(SyncError):
    """Raised when a store operation fails.

    Attributes
    ----------
    operation
        Store operation that failed (``get``, ``create``, ``update``,
        ``list`` or ``delete``).
    name
        Image set the operation targeted, when there was one.

    """

    def __init__(self, operation: str, name: str | None, reason: str) -> None:
        """Initialise with the failing operation, target and reason."""
        self.operation = operation
        self.name = name
        self.reason = reason
        target = f" {name}" if name else ""
        super().__init__(f"{operation}{target} failed: {reason}")

    @classmethod
    def conflict(cls, name: str) -> PersistenceError:
        """Return an error for an update against a stale resource version."""
        return cls("update", name, "resource version conflict")

    @classmethod
    def missing(cls, operation: str, name: str) -> PersistenceError:
        """Return an error for an operation that needs an existing image set."""
        return cls(operation, name, "image set does not exist")
