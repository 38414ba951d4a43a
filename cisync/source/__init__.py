"""Manifest repository access: configuration, credentials and git transport."""

from __future__ import annotations

from .config import GitCredentials, RepositoryConfig, RepositoryConfigLoader
from .errors import ConfigFetchError, TransportError
from .git import GitSourceProvider
from .protocol import Snapshot, SourceProvider

__all__ = [
    "ConfigFetchError",
    "GitCredentials",
    "GitSourceProvider",
    "RepositoryConfig",
    "RepositoryConfigLoader",
    "Snapshot",
    "SourceProvider",
    "TransportError",
]
