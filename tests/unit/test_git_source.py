"""Unit tests for the git-backed source provider.

The provider tests clone a throwaway repository from ``tmp_path`` over the
``file://`` transport, so they need a ``git`` binary but no network.
"""

from __future__ import annotations

import base64
import subprocess
import typing as typ

import pytest

from cisync.imagesets.loader import load_candidates
from cisync.source.config import GitCredentials, RepositoryConfig
from cisync.source.errors import TransportError
from cisync.source.git import GitSourceProvider, git_environment, transport_settings
from tests.helpers.git_repo import commit_manifests, file_url, init_repo, requires_git

if typ.TYPE_CHECKING:
    import pathlib


def _init_repo(repo_path: pathlib.Path) -> str:
    init_repo(repo_path)
    return commit_manifests(
        repo_path, {"img4.11.0": ("quay.io/ocp:4.11.0", {"visible": "true"})}
    )


def _config(repo_path: pathlib.Path, branch: str = "main") -> RepositoryConfig:
    return RepositoryConfig(url=file_url(repo_path), branch=branch)


@requires_git
@pytest.mark.asyncio
async def test_revision_of_returns_branch_head(tmp_path: pathlib.Path) -> None:
    """``ls-remote`` reports the branch head commit."""
    repo_path = tmp_path / "origin"
    commit = _init_repo(repo_path)

    revision = await GitSourceProvider().revision_of(
        _config(repo_path), GitCredentials()
    )

    assert revision == commit


@requires_git
@pytest.mark.asyncio
async def test_revision_of_unknown_branch_is_transport_error(
    tmp_path: pathlib.Path,
) -> None:
    """A branch missing on the remote is reported clearly."""
    repo_path = tmp_path / "origin"
    _init_repo(repo_path)

    with pytest.raises(TransportError, match="branch release-9 not found"):
        await GitSourceProvider().revision_of(
            _config(repo_path, "release-9"), GitCredentials()
        )


@requires_git
@pytest.mark.asyncio
async def test_snapshot_clones_branch_and_cleans_up(tmp_path: pathlib.Path) -> None:
    """The snapshot holds the manifests and disappears after the context."""
    repo_path = tmp_path / "origin"
    commit = _init_repo(repo_path)
    config = _config(repo_path)

    async with GitSourceProvider().snapshot(config, GitCredentials()) as snapshot:
        checkout = snapshot.path
        assert snapshot.revision == commit
        candidates = load_candidates(snapshot.path, config.manifest_path)
        assert [c.name for c in candidates] == ["img4.11.0"]

    assert not checkout.exists()


@requires_git
@pytest.mark.asyncio
async def test_snapshot_is_removed_when_body_raises(tmp_path: pathlib.Path) -> None:
    """Errors inside the context still remove the working copy."""
    repo_path = tmp_path / "origin"
    _init_repo(repo_path)
    seen: list[pathlib.Path] = []

    with pytest.raises(RuntimeError):
        async with GitSourceProvider().snapshot(
            _config(repo_path), GitCredentials()
        ) as snapshot:
            seen.append(snapshot.path)
            raise RuntimeError

    assert not seen[0].exists()


@requires_git
@pytest.mark.asyncio
async def test_snapshot_of_unreachable_repo_is_transport_error(
    tmp_path: pathlib.Path,
) -> None:
    """Clone failures surface as TransportError."""
    config = RepositoryConfig(url=f"file://{tmp_path / 'missing'}", branch="main")

    with pytest.raises(TransportError):
        async with GitSourceProvider().snapshot(config, GitCredentials()):
            pass


@pytest.mark.asyncio
async def test_missing_git_executable_is_transport_error(
    tmp_path: pathlib.Path,
) -> None:
    """A git binary that cannot be executed is a transport failure."""
    provider = GitSourceProvider(git_executable=str(tmp_path / "no-git"))

    with pytest.raises(TransportError):
        await provider.revision_of(RepositoryConfig(), GitCredentials())


@pytest.mark.asyncio
async def test_git_timeout_is_transport_error(
    monkeypatch: pytest.MonkeyPatch, tmp_path: pathlib.Path
) -> None:
    """A hung git command is cut off and reported."""

    def _hang(argv: list[str], **kwargs: object) -> typ.NoReturn:
        raise subprocess.TimeoutExpired(argv, typ.cast("float", kwargs["timeout"]))

    monkeypatch.setattr(subprocess, "run", _hang)
    provider = GitSourceProvider(git_executable="git", timeout_s=0.5)

    with pytest.raises(TransportError, match="timed out after 0.5s"):
        await provider.revision_of(RepositoryConfig(), GitCredentials())


def test_transport_settings_anonymous_is_empty(tmp_path: pathlib.Path) -> None:
    """No trust or credential settings means no git config entries."""
    assert transport_settings(RepositoryConfig(), GitCredentials(), tmp_path) == []


def test_transport_settings_skip_verify_wins_over_ca(tmp_path: pathlib.Path) -> None:
    """``insecureSkipVerify`` disables verification and ignores caCerts."""
    config = RepositoryConfig(
        insecure_skip_verify=True, ca_certs="-----BEGIN CERTIFICATE-----"
    )

    settings = transport_settings(config, GitCredentials(), tmp_path)

    assert settings == [("http.sslVerify", "false")]


def test_transport_settings_appends_custom_ca(tmp_path: pathlib.Path) -> None:
    """Custom CA certificates are written into a bundle git trusts."""
    pem = "-----BEGIN CERTIFICATE-----\nMIIB\n-----END CERTIFICATE-----"
    settings = dict(
        transport_settings(RepositoryConfig(ca_certs=pem), GitCredentials(), tmp_path)
    )

    bundle = tmp_path / "ca-bundle.pem"
    assert settings["http.sslCAInfo"] == str(bundle)
    assert pem in bundle.read_text(encoding="utf-8")


def test_transport_settings_ignores_non_pem_ca(tmp_path: pathlib.Path) -> None:
    """CA text without a PEM certificate is skipped."""
    config = RepositoryConfig(ca_certs="not a certificate")
    assert transport_settings(config, GitCredentials(), tmp_path) == []


def test_transport_settings_client_certificate_and_basic_auth(
    tmp_path: pathlib.Path,
) -> None:
    """mTLS material lands in private files and basic auth in a header."""
    credentials = GitCredentials(
        user="bot", access_token="tok", client_key=b"KEY", client_cert=b"CERT"
    )

    settings = dict(transport_settings(RepositoryConfig(), credentials, tmp_path))

    key = tmp_path / "client.key"
    assert settings["http.sslKey"] == str(key)
    assert settings["http.sslCert"] == str(tmp_path / "client.crt")
    assert key.read_bytes() == b"KEY"
    assert key.stat().st_mode & 0o777 == 0o600
    expected = base64.b64encode(b"bot:tok").decode("ascii")
    assert settings["http.extraHeader"] == f"Authorization: Basic {expected}"


def test_git_environment_encodes_settings() -> None:
    """Settings become numbered GIT_CONFIG entries and prompts are disabled."""
    env = git_environment([("http.sslVerify", "false"), ("a.b", "c")])

    assert env["GIT_TERMINAL_PROMPT"] == "0"
    assert env["GIT_CONFIG_COUNT"] == "2"
    assert env["GIT_CONFIG_KEY_0"] == "http.sslVerify"
    assert env["GIT_CONFIG_VALUE_0"] == "false"
    assert env["GIT_CONFIG_KEY_1"] == "a.b"
    assert env["GIT_CONFIG_VALUE_1"] == "c"
