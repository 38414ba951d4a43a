"""Errors raised while loading ClusterImageSet manifests."""

from __future__ import annotations

from pathlib import Path

from cisync.common.errors import SyncError


class ManifestReadError(SyncError):
    """Raised when the manifest directory or one of its files is unreadable."""

    def __init__(self, path: Path | str, reason: str) -> None:
        """Initialise with the offending path and a short reason."""
        self.path = Path(path)
        self.reason = reason
        super().__init__(f"cannot read manifests at {path}: {reason}")

    @classmethod
    def outside_root(cls, path: Path | str, root: Path | str) -> ManifestReadError:
        """Return an error for a manifest path escaping the snapshot root."""
        return cls(path, f"path resolves outside snapshot root {root}")

    @classmethod
    def missing_directory(cls, path: Path | str) -> ManifestReadError:
        """Return an error for a manifest directory that does not exist."""
        return cls(path, "manifest directory does not exist")


class ManifestParseError(SyncError):
    """Raised when a manifest cannot be turned into a ClusterImageSet."""

    def __init__(self, source: str, issues: list[str]) -> None:
        """Capture the manifest source and the problems found in it."""
        self.source = source
        self.issues = issues
        super().__init__(f"invalid manifest {source}: " + "; ".join(issues))

    @classmethod
    def duplicate_name(cls, name: str, first: str, second: str) -> ManifestParseError:
        """Return an error for two manifests declaring the same image set."""
        return cls(second, [f"image set '{name}' is already declared by {first}"])
