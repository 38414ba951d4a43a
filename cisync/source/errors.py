"""Errors raised while resolving and fetching the manifest repository."""

from __future__ import annotations

from cisync.common.errors import SyncError


class ConfigFetchError(SyncError):
    """Raised when repository configuration or credentials cannot be read."""

    @classmethod
    def unreadable(cls, key: str, reason: str) -> ConfigFetchError:
        """Return an error for a configuration entry that failed to load."""
        return cls(f"cannot read repository setting {key}: {reason}")

    @classmethod
    def invalid_bool(cls, key: str, value: str) -> ConfigFetchError:
        """Return an error for a boolean setting that does not parse."""
        return cls(f"repository setting {key} must be true or false, got {value!r}")

    @classmethod
    def incomplete_key_pair(cls) -> ConfigFetchError:
        """Return an error when only half of a client key pair is present."""
        return cls(
            "mTLS to Git needs both clientKey (private key) and clientCert "
            "(certificate) in the repository secret"
        )


class TransportError(SyncError):
    """Raised when the repository cannot be queried or cloned."""

    def __init__(self, url: str, reason: str) -> None:
        """Initialise with the repository URL and failure reason."""
        self.url = url
        self.reason = reason
        super().__init__(f"git transport to {url} failed: {reason}")
