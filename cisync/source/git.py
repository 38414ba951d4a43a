"""Git-backed source provider.

Shells out to the ``git`` executable. Trust and credential material is
handed to git through ``GIT_CONFIG_*`` environment entries, never the argv,
so tokens do not show up in process listings:

- ``insecureSkipVerify`` becomes ``http.sslVerify=false``
- ``caCerts`` is appended to the system bundle and passed as
  ``http.sslCAInfo``
- a client key pair becomes ``http.sslCert`` / ``http.sslKey`` (mTLS)
- user plus access token becomes a basic ``Authorization`` header

Examples
--------
>>> provider = GitSourceProvider(timeout_s=60)
>>> revision = await provider.revision_of(RepositoryConfig(), GitCredentials())
>>> async with provider.snapshot(RepositoryConfig(), GitCredentials()) as snap:
...     print(snap.path, snap.revision)

"""

from __future__ import annotations

import asyncio
import base64
import contextlib
import os
import shutil
import ssl
import subprocess
import tempfile
import typing as typ
from pathlib import Path

from cisync.logging import get_logger, log_info, log_warning

from .errors import TransportError
from .protocol import Snapshot

if typ.TYPE_CHECKING:
    import collections.abc as cabc

    from .config import GitCredentials, RepositoryConfig

_PEM_CERT_MARKER = "-----BEGIN CERTIFICATE-----"
_LS_REMOTE_NO_MATCH = 2

logger = get_logger(__name__)


def _system_ca_bundle() -> str:
    cafile = ssl.get_default_verify_paths().cafile
    if cafile is None:
        return ""
    try:
        return Path(cafile).read_text(encoding="utf-8")
    except OSError:
        return ""


def _write_private(path: Path, content: bytes) -> Path:
    path.write_bytes(content)
    path.chmod(0o600)
    return path


def transport_settings(
    config: RepositoryConfig, credentials: GitCredentials, scratch: Path
) -> list[tuple[str, str]]:
    """Return git config pairs for the repository's trust and credentials.

    Certificate and key files are written under ``scratch``, which the
    caller owns and removes.
    """
    settings: list[tuple[str, str]] = []

    if config.insecure_skip_verify:
        log_info(
            logger,
            "insecureSkipVerify = true, skipping Git server's certificate verification",
        )
        settings.append(("http.sslVerify", "false"))
    elif config.ca_certs:
        if _PEM_CERT_MARKER in config.ca_certs:
            log_info(logger, "adding Git server's CA certificate to trust bundle")
            bundle = scratch / "ca-bundle.pem"
            bundle.write_text(
                f"{_system_ca_bundle()}\n{config.ca_certs}\n", encoding="utf-8"
            )
            settings.append(("http.sslCAInfo", str(bundle)))
        else:
            log_warning(logger, "caCerts is set but contains no PEM certificate")

    if credentials.has_client_certificate:
        log_info(logger, "client certificate key pair provided, using mTLS")
        cert = _write_private(scratch / "client.crt", credentials.client_cert)
        key = _write_private(scratch / "client.key", credentials.client_key)
        settings.extend((("http.sslCert", str(cert)), ("http.sslKey", str(key))))

    if credentials.has_basic_auth:
        token = base64.b64encode(
            f"{credentials.user}:{credentials.access_token}".encode()
        ).decode("ascii")
        settings.append(("http.extraHeader", f"Authorization: Basic {token}"))

    return settings


def git_environment(settings: list[tuple[str, str]]) -> dict[str, str]:
    """Return a subprocess environment carrying ``settings`` as git config."""
    env = dict(os.environ)
    env["GIT_TERMINAL_PROMPT"] = "0"
    env["GIT_CONFIG_COUNT"] = str(len(settings))
    for index, (key, value) in enumerate(settings):
        env[f"GIT_CONFIG_KEY_{index}"] = key
        env[f"GIT_CONFIG_VALUE_{index}"] = value
    return env


class GitSourceProvider:
    """:class:`~cisync.source.protocol.SourceProvider` using the git CLI."""

    def __init__(
        self, *, git_executable: str | None = None, timeout_s: float = 120.0
    ) -> None:
        """Configure the git executable and per-command timeout."""
        self._git_executable = git_executable
        self.timeout_s = timeout_s

    async def revision_of(
        self, config: RepositoryConfig, credentials: GitCredentials
    ) -> str:
        """Return the branch head commit via ``git ls-remote``."""
        with tempfile.TemporaryDirectory(prefix="cluster-imageset-") as scratch:
            env = git_environment(
                transport_settings(config, credentials, Path(scratch))
            )
            result = await self._git(
                config.url,
                ["ls-remote", "--exit-code", config.url, f"refs/heads/{config.branch}"],
                env=env,
                missing_ref_reason=f"branch {config.branch} not found",
            )

        line = result.strip().splitlines()[0] if result.strip() else ""
        revision = line.split("\t", 1)[0].strip()
        if not revision:
            raise TransportError(config.url, f"branch {config.branch} not found")
        return revision

    @contextlib.asynccontextmanager
    async def snapshot(
        self, config: RepositoryConfig, credentials: GitCredentials
    ) -> cabc.AsyncIterator[Snapshot]:
        """Shallow-clone the branch into a temporary directory.

        The directory, including any written certificate material, is
        removed when the context exits.
        """
        workdir = Path(tempfile.mkdtemp(prefix="cluster-imageset-"))
        try:
            scratch = workdir / "transport"
            scratch.mkdir()
            checkout = workdir / "repo"
            env = git_environment(transport_settings(config, credentials, scratch))
            log_info(
                logger,
                "cloning Git repository:%s, branch:%s to directory:%s",
                config.url,
                config.branch,
                checkout,
            )
            await self._git(
                config.url,
                [
                    "clone",
                    "--depth=1",
                    "--single-branch",
                    f"--branch={config.branch}",
                    "--recurse-submodules",
                    "--shallow-submodules",
                    "--",
                    config.url,
                    str(checkout),
                ],
                env=env,
            )
            revision = await self._git(
                config.url, ["-C", str(checkout), "rev-parse", "HEAD"], env=env
            )
            yield Snapshot(path=checkout, revision=revision.strip())
        finally:
            shutil.rmtree(workdir, ignore_errors=True)

    def _executable(self, url: str) -> str:
        executable = self._git_executable or shutil.which("git")
        if executable is None:
            raise TransportError(url, "git executable not found on PATH")
        return executable

    async def _git(
        self,
        url: str,
        args: list[str],
        *,
        env: dict[str, str],
        missing_ref_reason: str | None = None,
    ) -> str:
        argv = [self._executable(url), *args]
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                argv,
                capture_output=True,
                text=True,
                check=False,
                env=env,
                timeout=self.timeout_s,
            )
        except subprocess.TimeoutExpired as exc:
            raise TransportError(url, f"git timed out after {self.timeout_s}s") from exc
        except OSError as exc:
            raise TransportError(url, str(exc)) from exc

        if result.returncode != 0:
            stderr = result.stderr.strip()
            if (
                missing_ref_reason
                and result.returncode == _LS_REMOTE_NO_MATCH
                and not stderr
            ):
                raise TransportError(url, missing_ref_reason)
            raise TransportError(url, stderr or f"git exited with {result.returncode}")
        return result.stdout
