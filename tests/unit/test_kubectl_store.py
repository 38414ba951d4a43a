"""Unit tests for the kubectl-backed store.

``subprocess.run`` is replaced with a recorder, so these tests check the
argv, payloads and error mapping without a cluster.
"""

from __future__ import annotations

import copy
import dataclasses
import json
import subprocess
import typing as typ
from pathlib import Path

import pytest

from cisync.imagesets.apply import ApplyAction, apply_image_set
from cisync.imagesets.models import build_image_set
from cisync.store.errors import PersistenceError
from cisync.store.kubectl import (
    KubectlImageSetStore,
    KubectlStoreConfig,
    update_patch,
)

_ITEM: dict[str, typ.Any] = {
    "apiVersion": "hive.openshift.io/v1",
    "kind": "ClusterImageSet",
    "metadata": {
        "name": "img4.11.0",
        "labels": {"channel": "fast", "visible": "true"},
        "resourceVersion": "12",
        "uid": "u-1",
    },
    "spec": {"releaseImage": "quay.io/ocp:4.11.0"},
}


@dataclasses.dataclass
class _Call:
    argv: list[str]
    input: bytes | None
    env: dict[str, str]


class _KubectlRecorder:
    """Stand-in for ``subprocess.run`` returning scripted results."""

    def __init__(self) -> None:
        self.calls: list[_Call] = []
        self.stdout = b""
        self.stderr = b""
        self.returncode = 0

    def __call__(
        self, argv: list[str], **kwargs: object
    ) -> subprocess.CompletedProcess[bytes]:
        self.calls.append(
            _Call(
                argv=argv,
                input=kwargs.get("input"),  # type: ignore[arg-type]
                env=kwargs["env"],  # type: ignore[arg-type]
            )
        )
        return subprocess.CompletedProcess(
            argv, self.returncode, stdout=self.stdout, stderr=self.stderr
        )


@pytest.fixture
def kubectl(monkeypatch: pytest.MonkeyPatch) -> _KubectlRecorder:
    """Patch ``subprocess.run`` with a recorder."""
    recorder = _KubectlRecorder()
    monkeypatch.setattr(subprocess, "run", recorder)
    return recorder


@pytest.fixture
def store() -> KubectlImageSetStore:
    """Return a store targeting a named context and kubeconfig."""
    return KubectlImageSetStore(
        KubectlStoreConfig(context="hub", kubeconfig=Path("/kube/config"))
    )


@pytest.mark.asyncio
async def test_get_decodes_object(
    kubectl: _KubectlRecorder, store: KubectlImageSetStore
) -> None:
    """``get`` returns the decoded image set with server metadata."""
    kubectl.stdout = json.dumps(_ITEM).encode()

    image_set = await store.get("img4.11.0")

    assert image_set is not None
    assert image_set.release_image == "quay.io/ocp:4.11.0"
    assert image_set.metadata.resource_version == "12"
    call = kubectl.calls[0]
    assert call.argv == [
        "kubectl",
        "--context=hub",
        "get",
        "clusterimagesets.hive.openshift.io",
        "img4.11.0",
        "--ignore-not-found",
        "-o",
        "json",
    ]
    assert call.env["KUBECONFIG"] == "/kube/config"


@pytest.mark.asyncio
async def test_get_missing_returns_none(
    kubectl: _KubectlRecorder, store: KubectlImageSetStore
) -> None:
    """Empty output from ``--ignore-not-found`` means absent."""
    assert await store.get("nope") is None


@pytest.mark.asyncio
async def test_create_sends_manifest_on_stdin(
    kubectl: _KubectlRecorder, store: KubectlImageSetStore
) -> None:
    """``create`` pipes the JSON manifest to ``kubectl create -f -``."""
    await store.create(build_image_set("img", "quay.io/ocp:1", {"channel": "fast"}))

    call = kubectl.calls[0]
    assert call.argv[-3:] == ["create", "-f", "-"]
    assert call.input is not None
    payload = json.loads(call.input)
    assert payload["kind"] == "ClusterImageSet"
    assert payload["metadata"] == {"name": "img", "labels": {"channel": "fast"}}
    assert payload["spec"] == {"releaseImage": "quay.io/ocp:1"}


def _patch_ops(call: _Call) -> list[dict[str, object]]:
    index = call.argv.index("-p")
    return json.loads(call.argv[index + 1])


def _apply_json_patch(
    document: dict[str, typ.Any], ops: list[dict[str, typ.Any]]
) -> dict[str, typ.Any]:
    """Apply the test, add and replace ops the store emits."""
    patched = copy.deepcopy(document)
    for op in ops:
        *parents, leaf = op["path"].strip("/").split("/")
        target = patched
        for key in parents:
            target = target[key]
        if op["op"] == "test":
            assert target[leaf] == op["value"], "resourceVersion test op failed"
        else:
            target[leaf] = op["value"]
    return patched


@pytest.mark.asyncio
async def test_update_patches_payload_and_labels_with_version_test(
    kubectl: _KubectlRecorder, store: KubectlImageSetStore
) -> None:
    """``update`` sends a JSON patch guarded by the resource version."""
    kubectl.stdout = json.dumps(_ITEM).encode()
    existing = await store.get("img4.11.0")
    assert existing is not None

    await store.update(
        existing.with_desired_state(
            build_image_set("img4.11.0", "quay.io/ocp:4.11.1", {"visible": "false"})
        )
    )

    call = kubectl.calls[-1]
    assert call.argv[2:6] == [
        "patch",
        "clusterimagesets.hive.openshift.io",
        "img4.11.0",
        "--type=json",
    ]
    assert call.input is None
    assert _patch_ops(call) == [
        {"op": "test", "path": "/metadata/resourceVersion", "value": "12"},
        {
            "op": "replace",
            "path": "/spec/releaseImage",
            "value": "quay.io/ocp:4.11.1",
        },
        {"op": "add", "path": "/metadata/labels", "value": {"visible": "false"}},
    ]


@pytest.mark.asyncio
async def test_update_keeps_unmodelled_metadata_on_live_object(
    kubectl: _KubectlRecorder, store: KubectlImageSetStore
) -> None:
    """Finalizers, owner references and unknown spec fields survive an update."""
    live = copy.deepcopy(_ITEM)
    live["metadata"]["finalizers"] = ["hive.openshift.io/protect"]
    live["metadata"]["ownerReferences"] = [
        {"apiVersion": "v1", "kind": "ConfigMap", "name": "owner", "uid": "o-1"}
    ]
    live["spec"]["arch"] = "amd64"
    kubectl.stdout = json.dumps(live).encode()

    outcome = await apply_image_set(
        store,
        build_image_set(
            "img4.11.0", "quay.io/ocp:4.11.1", {"channel": "fast", "visible": "true"}
        ),
    )

    assert outcome.action is ApplyAction.UPDATED
    patched = _apply_json_patch(live, _patch_ops(kubectl.calls[-1]))
    assert patched["metadata"]["finalizers"] == ["hive.openshift.io/protect"]
    owners = live["metadata"]["ownerReferences"]
    assert patched["metadata"]["ownerReferences"] == owners
    assert patched["spec"] == {"releaseImage": "quay.io/ocp:4.11.1", "arch": "amd64"}


def test_update_patch_without_resource_version_has_no_test_op() -> None:
    """Objects never read from the server are patched unconditionally."""
    ops = update_patch(build_image_set("img", "quay.io/ocp:1"))

    assert [op["op"] for op in ops] == ["replace", "add"]


@pytest.mark.asyncio
async def test_list_all_decodes_items(
    kubectl: _KubectlRecorder, store: KubectlImageSetStore
) -> None:
    """``list_all`` decodes the List wrapper."""
    kubectl.stdout = json.dumps({"kind": "List", "items": [_ITEM]}).encode()

    items = await store.list_all()

    assert [item.name for item in items] == ["img4.11.0"]
    assert items[0].channel == "fast"


@pytest.mark.asyncio
async def test_delete_ignores_missing(
    kubectl: _KubectlRecorder, store: KubectlImageSetStore
) -> None:
    """``delete`` passes ``--ignore-not-found``."""
    await store.delete("img")

    assert kubectl.calls[0].argv[-4:] == [
        "delete",
        "clusterimagesets.hive.openshift.io",
        "img",
        "--ignore-not-found",
    ]


@pytest.mark.asyncio
async def test_non_zero_exit_is_persistence_error(
    kubectl: _KubectlRecorder, store: KubectlImageSetStore
) -> None:
    """kubectl failures carry stderr in the error."""
    kubectl.returncode = 1
    kubectl.stderr = b"Error from server (Conflict): object has been modified\n"

    with pytest.raises(PersistenceError, match="object has been modified") as excinfo:
        await store.update(build_image_set("img", "quay.io/ocp:1"))

    assert excinfo.value.operation == "update"
    assert excinfo.value.name == "img"


@pytest.mark.asyncio
async def test_unexpected_output_is_persistence_error(
    kubectl: _KubectlRecorder, store: KubectlImageSetStore
) -> None:
    """Output that is not a ClusterImageSet is rejected."""
    kubectl.stdout = b"{not json"

    with pytest.raises(PersistenceError, match="unexpected kubectl output"):
        await store.list_all()


@pytest.mark.asyncio
async def test_missing_binary_is_persistence_error(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """A kubectl binary missing from PATH is reported."""

    def _missing(argv: list[str], **_: object) -> subprocess.CompletedProcess[bytes]:
        raise FileNotFoundError(argv[0])

    monkeypatch.setattr(subprocess, "run", _missing)
    store = KubectlImageSetStore(KubectlStoreConfig(kubectl="kubectl-missing"))

    with pytest.raises(PersistenceError, match="kubectl-missing not found"):
        await store.get("img")
