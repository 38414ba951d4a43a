"""Process settings for the sync service.

Usage
-----
Defaults suit an in-cluster deployment with the repository ConfigMap and
Secret mounted under ``/etc/cisync``:

>>> settings = SyncSettings()
>>> settings.sync_interval_s
60

Or load from environment variables:

>>> import os
>>> os.environ["CISYNC_SYNC_INTERVAL"] = "300"
>>> SyncSettings.from_env().sync_interval_s
300

"""

from __future__ import annotations

import dataclasses as dc
import enum
import os
import typing as typ
from pathlib import Path

from cisync.imagesets.scheduler import CleanupPolicy

_DEFAULT_CONFIG_DIR = Path("/etc/cisync/git-config")
_DEFAULT_SECRET_DIR = Path("/etc/cisync/git-secret")


class SettingsError(ValueError):
    """Raised when process settings are invalid."""


class StoreKind(enum.StrEnum):
    """Backends available for persisting ClusterImageSets."""

    KUBECTL = "kubectl"
    DATABASE = "database"


E = typ.TypeVar("E", bound=enum.StrEnum)


def _parse_enum(env_var: str, raw: str, kind: type[E]) -> E:
    try:
        return kind(raw.strip().lower())
    except ValueError as exc:
        choices = ", ".join(member.value for member in kind)
        msg = f"{env_var} must be one of {choices}, got: {raw!r}"
        raise SettingsError(msg) from exc


def _optional_path(raw: str | None) -> Path | None:
    if raw is None or not raw.strip():
        return None
    return Path(raw.strip())


@dc.dataclass(frozen=True, slots=True)
class SyncSettings:
    """Settings for one sync process.

    Attributes
    ----------
    sync_interval_s
        Seconds between the end of one cycle and the start of the next.
    git_config_dir
        Mounted ConfigMap with the repository settings.
    git_secret_dir
        Mounted Secret with repository credentials.
    git_timeout_s
        Timeout for each git subprocess.
    cleanup_policy
        When stale image sets may be deleted.
    store
        Persistence backend.
    database_url
        SQLAlchemy async URL, required for the ``database`` store.
    kubeconfig
        Optional kubeconfig for the ``kubectl`` store.
    kube_context
        Optional kubeconfig context for the ``kubectl`` store.
    log_level
        femtologging level name.

    """

    sync_interval_s: int = 60
    git_config_dir: Path = _DEFAULT_CONFIG_DIR
    git_secret_dir: Path = _DEFAULT_SECRET_DIR
    git_timeout_s: int = 120
    cleanup_policy: CleanupPolicy = CleanupPolicy.FIRST_SYNC
    store: StoreKind = StoreKind.KUBECTL
    database_url: str | None = None
    kubeconfig: Path | None = None
    kube_context: str | None = None
    log_level: str = "INFO"

    @staticmethod
    def _parse_positive_int(env_var: str, default: int) -> int:
        """Read a positive integer env var, falling back to a default."""
        raw = os.environ.get(env_var, "")
        if not raw.strip():
            return default
        try:
            value = int(raw)
        except ValueError as exc:
            msg = f"{env_var} must be an integer, got: {raw!r}"
            raise SettingsError(msg) from exc
        if value < 1:
            msg = f"{env_var} must be positive, got: {value}"
            raise SettingsError(msg)
        return value

    def validate(self) -> SyncSettings:
        """Return ``self`` after cross-field checks.

        Raises
        ------
        SettingsError
            If the interval or timeout is not positive, or the database store
            is selected without a database URL.

        """
        if self.sync_interval_s < 1:
            msg = f"sync interval must be positive, got: {self.sync_interval_s}"
            raise SettingsError(msg)
        if self.git_timeout_s < 1:
            msg = f"git timeout must be positive, got: {self.git_timeout_s}"
            raise SettingsError(msg)
        if self.store is StoreKind.DATABASE and not self.database_url:
            msg = "CISYNC_DATABASE_URL is required when CISYNC_STORE=database"
            raise SettingsError(msg)
        return self

    @classmethod
    def from_env(cls) -> SyncSettings:
        """Create settings from ``CISYNC_*`` environment variables.

        Reads ``CISYNC_SYNC_INTERVAL``, ``CISYNC_GIT_CONFIG_DIR``,
        ``CISYNC_GIT_SECRET_DIR``, ``CISYNC_GIT_TIMEOUT``,
        ``CISYNC_CLEANUP_POLICY``, ``CISYNC_STORE``, ``CISYNC_DATABASE_URL``,
        ``CISYNC_KUBECONFIG``, ``CISYNC_KUBE_CONTEXT`` and
        ``CISYNC_LOG_LEVEL``.

        Raises
        ------
        SettingsError
            If any value is malformed or the combination is invalid.

        """
        raw_policy = os.environ.get("CISYNC_CLEANUP_POLICY", "")
        raw_store = os.environ.get("CISYNC_STORE", "")
        settings = cls(
            sync_interval_s=cls._parse_positive_int("CISYNC_SYNC_INTERVAL", 60),
            git_config_dir=(
                _optional_path(os.environ.get("CISYNC_GIT_CONFIG_DIR"))
                or _DEFAULT_CONFIG_DIR
            ),
            git_secret_dir=(
                _optional_path(os.environ.get("CISYNC_GIT_SECRET_DIR"))
                or _DEFAULT_SECRET_DIR
            ),
            git_timeout_s=cls._parse_positive_int("CISYNC_GIT_TIMEOUT", 120),
            cleanup_policy=(
                _parse_enum("CISYNC_CLEANUP_POLICY", raw_policy, CleanupPolicy)
                if raw_policy.strip()
                else CleanupPolicy.FIRST_SYNC
            ),
            store=(
                _parse_enum("CISYNC_STORE", raw_store, StoreKind)
                if raw_store.strip()
                else StoreKind.KUBECTL
            ),
            database_url=os.environ.get("CISYNC_DATABASE_URL", "").strip() or None,
            kubeconfig=_optional_path(os.environ.get("CISYNC_KUBECONFIG")),
            kube_context=os.environ.get("CISYNC_KUBE_CONTEXT", "").strip() or None,
            log_level=os.environ.get("CISYNC_LOG_LEVEL", "INFO"),
        )
        return settings.validate()
