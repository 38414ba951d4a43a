"""Root of the sync error hierarchy.

Every failure raised during a reconciliation cycle derives from
:class:`SyncError` so the scheduler has a single type to report on. Concrete
errors live beside the code that raises them:

- ``cisync.source.errors``: ``ConfigFetchError``, ``TransportError``
- ``cisync.imagesets.errors``: ``ManifestReadError``, ``ManifestParseError``
- ``cisync.store.errors``: ``PersistenceError``
"""

from __future__ import annotations


class SyncError(Exception):
    """Base class for failures that abort a reconciliation cycle."""
