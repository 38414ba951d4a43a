"""Repository configuration and credentials for the manifest source.

Both are read from directories holding one file per key, which is how a
Kubernetes ConfigMap or Secret appears when mounted as a volume. They are
reloaded at the start of every cycle, so edits take effect without a
restart.

ConfigMap keys
--------------
``gitRepoUrl``, ``gitRepoBranch``, ``gitRepoPath``, ``channel``,
``caCerts`` and ``insecureSkipVerify``. Missing or empty keys fall back to
the defaults below; a missing directory means "all defaults".

Secret keys
-----------
``user``, ``accessToken``, ``clientKey`` and ``clientCert``. A missing
directory means anonymous access.
"""

from __future__ import annotations

import dataclasses
from pathlib import Path

from cisync.logging import get_logger, log_info, log_warning

from .errors import ConfigFetchError

DEFAULT_GIT_REPO_URL = "https://github.com/stolostron/acm-hive-openshift-releases.git"
DEFAULT_GIT_REPO_BRANCH = "backplane-2.2"
DEFAULT_GIT_REPO_PATH = "clusterImageSets"
DEFAULT_CHANNEL = "fast"

GIT_REPO_URL = "gitRepoUrl"
GIT_REPO_BRANCH = "gitRepoBranch"
GIT_REPO_PATH = "gitRepoPath"
CHANNEL = "channel"
CA_CERTS = "caCerts"
INSECURE_SKIP_VERIFY = "insecureSkipVerify"

USER_ID = "user"
ACCESS_TOKEN = "accessToken"  # noqa: S105 - secret key name, not a value
CLIENT_KEY = "clientKey"
CLIENT_CERT = "clientCert"

_TRUE_VALUES = frozenset({"1", "t", "true"})
_FALSE_VALUES = frozenset({"0", "f", "false"})

logger = get_logger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class RepositoryConfig:
    """Where the manifests live and how far to trust the server.

    Attributes
    ----------
    url
        Git repository address.
    branch
        Branch to sync from.
    path
        Directory inside the repository holding channel subdirectories.
    channel
        Channel subdirectory to ingest, such as ``fast`` or ``stable``.
    ca_certs
        Optional PEM bundle trusted in addition to the system roots.
    insecure_skip_verify
        Skip server certificate verification entirely.

    """

    url: str = DEFAULT_GIT_REPO_URL
    branch: str = DEFAULT_GIT_REPO_BRANCH
    path: str = DEFAULT_GIT_REPO_PATH
    channel: str = DEFAULT_CHANNEL
    ca_certs: str = ""
    insecure_skip_verify: bool = False

    @property
    def manifest_path(self) -> str:
        """Return the manifest directory relative to the repository root."""
        return f"{self.path.strip('/')}/{self.channel}"


@dataclasses.dataclass(frozen=True, slots=True)
class GitCredentials:
    """Optional authentication material for the repository."""

    user: str = ""
    access_token: str = dataclasses.field(default="", repr=False)
    client_key: bytes = dataclasses.field(default=b"", repr=False)
    client_cert: bytes = b""

    @property
    def has_basic_auth(self) -> bool:
        """Return True when both user and access token are present."""
        return bool(self.user and self.access_token)

    @property
    def has_client_certificate(self) -> bool:
        """Return True when a client key pair is present for mTLS."""
        return bool(self.client_key and self.client_cert)


def _read_entry(directory: Path, key: str) -> bytes | None:
    path = directory / key
    if not path.is_file():
        return None
    try:
        return path.read_bytes()
    except OSError as exc:
        raise ConfigFetchError.unreadable(key, exc.strerror or str(exc)) from exc


def _read_text(directory: Path, key: str) -> str:
    raw = _read_entry(directory, key)
    if raw is None:
        return ""
    try:
        return raw.decode("utf-8").strip()
    except UnicodeDecodeError as exc:
        raise ConfigFetchError.unreadable(key, "value is not UTF-8") from exc


def parse_bool(key: str, value: str) -> bool:
    """Parse a boolean setting using Go ``strconv.ParseBool`` spellings."""
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ConfigFetchError.invalid_bool(key, value)


def _skip_verify(raw: str) -> bool:
    if not raw:
        return False
    try:
        return parse_bool(INSECURE_SKIP_VERIFY, raw)
    except ConfigFetchError:
        log_warning(
            logger,
            "invalid %s value %r, verifying the Git server certificate",
            INSECURE_SKIP_VERIFY,
            raw,
        )
        return False


class RepositoryConfigLoader:
    """Read :class:`RepositoryConfig` and :class:`GitCredentials` from disk."""

    def __init__(self, config_dir: Path | str, secret_dir: Path | str) -> None:
        """Point the loader at mounted ConfigMap and Secret directories."""
        self.config_dir = Path(config_dir)
        self.secret_dir = Path(secret_dir)

    def load(self) -> tuple[RepositoryConfig, GitCredentials]:
        """Return the current repository configuration and credentials.

        Raises
        ------
        ConfigFetchError
            If an entry is unreadable or only half of a client key pair is
            present.

        """
        return self.load_config(), self.load_credentials()

    def load_config(self) -> RepositoryConfig:
        """Return repository settings, using defaults for absent keys."""
        if not self.config_dir.is_dir():
            log_info(
                logger,
                "repository config %s not found, using default values",
                self.config_dir,
            )
            return RepositoryConfig()

        directory = self.config_dir
        skip_verify = _read_text(directory, INSECURE_SKIP_VERIFY)
        return RepositoryConfig(
            url=_read_text(directory, GIT_REPO_URL) or DEFAULT_GIT_REPO_URL,
            branch=_read_text(directory, GIT_REPO_BRANCH) or DEFAULT_GIT_REPO_BRANCH,
            path=_read_text(directory, GIT_REPO_PATH) or DEFAULT_GIT_REPO_PATH,
            channel=_read_text(directory, CHANNEL) or DEFAULT_CHANNEL,
            ca_certs=_read_text(directory, CA_CERTS),
            insecure_skip_verify=_skip_verify(skip_verify),
        )

    def load_credentials(self) -> GitCredentials:
        """Return credentials, or anonymous access when no secret is mounted."""
        if not self.secret_dir.is_dir():
            return GitCredentials()

        directory = self.secret_dir
        client_key = (_read_entry(directory, CLIENT_KEY) or b"").strip()
        client_cert = (_read_entry(directory, CLIENT_CERT) or b"").strip()
        if bool(client_key) != bool(client_cert):
            raise ConfigFetchError.incomplete_key_pair()

        return GitCredentials(
            user=_read_text(directory, USER_ID),
            access_token=_read_text(directory, ACCESS_TOKEN),
            client_key=client_key,
            client_cert=client_cert,
        )
