"""ClusterImageSet store backed by ``kubectl``.

Every operation is one ``kubectl`` invocation against the
``clusterimagesets.hive.openshift.io`` resource, run in a worker thread so
the event loop stays responsive. Connection details come from a
:class:`KubectlStoreConfig` built once at startup.

Examples
--------
>>> config = KubectlStoreConfig(context="hub")
>>> store = KubectlImageSetStore(config)
>>> await store.get("img4.14.1-x86-64-appsub")

"""

from __future__ import annotations

import asyncio
import dataclasses
import os
import subprocess
import typing as typ

import msgspec

from cisync.imagesets.models import ClusterImageSet
from cisync.logging import get_logger, log_debug

from .errors import PersistenceError

T = typ.TypeVar("T")

if typ.TYPE_CHECKING:
    from pathlib import Path

DEFAULT_RESOURCE = "clusterimagesets.hive.openshift.io"

logger = get_logger(__name__)


class _ImageSetList(msgspec.Struct, kw_only=True):
    items: list[ClusterImageSet] = msgspec.field(default_factory=list)


def update_patch(image_set: ClusterImageSet) -> list[dict[str, object]]:
    """Return the JSON patch writing ``image_set``'s payload and labels."""
    patch: list[dict[str, object]] = []
    if image_set.metadata.resource_version is not None:
        patch.append(
            {
                "op": "test",
                "path": "/metadata/resourceVersion",
                "value": image_set.metadata.resource_version,
            }
        )
    patch.extend(
        (
            {
                "op": "replace",
                "path": "/spec/releaseImage",
                "value": image_set.release_image,
            },
            {"op": "add", "path": "/metadata/labels", "value": dict(image_set.labels)},
        )
    )
    return patch


@dataclasses.dataclass(frozen=True, slots=True)
class KubectlStoreConfig:
    """Connection settings for :class:`KubectlImageSetStore`.

    Attributes
    ----------
    kubectl
        Executable name or path.
    kubeconfig
        Optional kubeconfig file; the ambient configuration is used otherwise.
    context
        Optional kubeconfig context.
    resource
        Fully qualified resource name to operate on.
    timeout_s
        Per-invocation subprocess timeout in seconds.

    """

    kubectl: str = "kubectl"
    kubeconfig: Path | None = None
    context: str | None = None
    resource: str = DEFAULT_RESOURCE
    timeout_s: float = 30.0

    def command(self, *args: str) -> list[str]:
        """Return the argv for a kubectl call with context flags applied."""
        argv = [self.kubectl]
        if self.context:
            argv.append(f"--context={self.context}")
        argv.extend(args)
        return argv

    def env(self) -> dict[str, str]:
        """Return the subprocess environment, pointing KUBECONFIG if set."""
        env = dict(os.environ)
        if self.kubeconfig is not None:
            env["KUBECONFIG"] = str(self.kubeconfig)
        return env


class KubectlImageSetStore:
    """:class:`~cisync.store.protocol.ImageSetStore` driving ``kubectl``."""

    def __init__(self, config: KubectlStoreConfig | None = None) -> None:
        """Bind the store to explicit kubectl connection settings."""
        self._config = config or KubectlStoreConfig()

    async def get(self, name: str) -> ClusterImageSet | None:
        """Return the named image set, or ``None`` when it is absent."""
        stdout = await self._run(
            "get",
            name,
            self._config.command(
                "get", self._config.resource, name, "--ignore-not-found", "-o", "json"
            ),
        )
        if not stdout.strip():
            return None
        return self._decode("get", name, stdout, ClusterImageSet)

    async def create(self, image_set: ClusterImageSet) -> None:
        """Create ``image_set`` from its JSON encoding."""
        await self._run(
            "create",
            image_set.name,
            self._config.command("create", "-f", "-"),
            payload=msgspec.json.encode(image_set),
        )

    async def update(self, image_set: ClusterImageSet) -> None:
        """Patch the release image and labels of the stored object.

        A JSON patch touches only those two paths, so finalizers, owner
        references and any field this model does not carry stay as they are
        on the server. When ``resource_version`` is set, a ``test`` op makes
        the patch fail against a newer object.
        """
        await self._run(
            "update",
            image_set.name,
            self._config.command(
                "patch",
                self._config.resource,
                image_set.name,
                "--type=json",
                "-p",
                msgspec.json.encode(update_patch(image_set)).decode("utf-8"),
            ),
        )

    async def list_all(self) -> list[ClusterImageSet]:
        """Return every ClusterImageSet in the cluster."""
        stdout = await self._run(
            "list", None, self._config.command("get", self._config.resource, "-o", "json")
        )
        return self._decode("list", None, stdout, _ImageSetList).items

    async def delete(self, name: str) -> None:
        """Delete the named image set, ignoring one that is already gone."""
        await self._run(
            "delete",
            name,
            self._config.command(
                "delete", self._config.resource, name, "--ignore-not-found"
            ),
        )

    async def close(self) -> None:
        """Nothing to release; each call is its own process."""

    async def _run(
        self,
        operation: str,
        name: str | None,
        argv: list[str],
        *,
        payload: bytes | None = None,
    ) -> bytes:
        log_debug(logger, "kubectl %s", " ".join(argv[1:]))
        try:
            result = await asyncio.to_thread(
                subprocess.run,
                argv,
                input=payload,
                capture_output=True,
                check=False,
                env=self._config.env(),
                timeout=self._config.timeout_s,
            )
        except FileNotFoundError as exc:
            raise PersistenceError(
                operation, name, f"{self._config.kubectl} not found on PATH"
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise PersistenceError(
                operation, name, f"kubectl timed out after {self._config.timeout_s}s"
            ) from exc

        if result.returncode != 0:
            stderr = result.stderr.decode("utf-8", errors="replace").strip()
            raise PersistenceError(operation, name, stderr or "kubectl failed")
        return result.stdout

    @staticmethod
    def _decode(
        operation: str, name: str | None, stdout: bytes, type_: type[T]
    ) -> T:
        try:
            return msgspec.json.decode(stdout, type=type_)
        except (msgspec.DecodeError, msgspec.ValidationError) as exc:
            raise PersistenceError(
                operation, name, f"unexpected kubectl output: {exc}"
            ) from exc
