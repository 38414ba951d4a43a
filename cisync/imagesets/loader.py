"""Manifest discovery and parsing for ClusterImageSet snapshots.

Manifests live under ``<snapshot>/<gitRepoPath>/<channel>``. Files are read
lazily in a depth-first walk, but a cycle parses the whole set before
anything is applied, so one bad file leaves the cluster untouched.
"""

from __future__ import annotations

import dataclasses
import os
import typing as typ
from pathlib import Path

import msgspec
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from cisync.logging import get_logger, log_debug, log_error

from .errors import ManifestParseError, ManifestReadError
from .models import KIND, ClusterImageSet

if typ.TYPE_CHECKING:
    import collections.abc as cabc

YAML_VERSION = (1, 2)

logger = get_logger(__name__)


@dataclasses.dataclass(frozen=True, slots=True)
class RawManifest:
    """Unparsed manifest bytes and the file they came from."""

    path: Path
    content: bytes

    @property
    def source(self) -> str:
        """Return a printable origin for error messages."""
        return str(self.path)


def resolve_manifest_dir(snapshot_root: Path | str, relative_path: str) -> Path:
    """Join ``relative_path`` onto the snapshot root, refusing escapes.

    Raises
    ------
    ManifestReadError
        If the joined path resolves outside ``snapshot_root`` or does not
        exist as a directory.

    """
    root = Path(snapshot_root).resolve()
    target = (root / relative_path).resolve()
    if not target.is_relative_to(root):
        raise ManifestReadError.outside_root(target, root)
    if not target.is_dir():
        raise ManifestReadError.missing_directory(target)
    return target


def _raise_walk_error(exc: OSError) -> None:
    raise ManifestReadError(exc.filename or "<unknown>", exc.strerror or str(exc))


def iter_manifests(
    snapshot_root: Path | str, relative_path: str
) -> cabc.Iterator[RawManifest]:
    """Yield every non-directory entry under the manifest directory.

    Hidden entries (names starting with ``.``) are skipped. The walk order
    follows the filesystem and must not be relied upon.

    Raises
    ------
    ManifestReadError
        On the first directory or file that cannot be read.

    """
    root = Path(snapshot_root).resolve()
    directory = resolve_manifest_dir(root, relative_path)

    for dirpath, dirnames, filenames in os.walk(directory, onerror=_raise_walk_error):
        dirnames[:] = [name for name in dirnames if not name.startswith(".")]
        for filename in filenames:
            if filename.startswith("."):
                continue
            path = Path(dirpath) / filename
            if not path.resolve().is_relative_to(root):
                raise ManifestReadError.outside_root(path, root)
            try:
                content = path.read_bytes()
            except OSError as exc:
                log_error(logger, "failed to read image set manifest %s", path)
                raise ManifestReadError(path, exc.strerror or str(exc)) from exc
            yield RawManifest(path=path, content=content)


def parse_manifest(
    content: bytes | str, *, source: str = "<memory>"
) -> ClusterImageSet:
    """Parse one YAML manifest into a :class:`ClusterImageSet`.

    Raises
    ------
    ManifestParseError
        For undecodable or malformed YAML, an empty document, a different
        resource kind, or a missing name or release image.

    """
    try:
        text = content.decode("utf-8") if isinstance(content, bytes) else content
        loaded = _yaml().load(text)
    except (UnicodeDecodeError, YAMLError) as exc:
        raise ManifestParseError(source, [f"failed to parse YAML: {exc}"]) from exc

    if loaded is None:
        raise ManifestParseError(source, ["manifest is empty"])

    try:
        image_set = msgspec.convert(loaded, type=ClusterImageSet)
    except msgspec.ValidationError as exc:
        raise ManifestParseError(source, [f"schema validation failed: {exc}"]) from exc

    issues: list[str] = []
    if image_set.kind != KIND:
        issues.append(f"kind must be {KIND}, got {image_set.kind!r}")
    if not image_set.name.strip():
        issues.append("metadata.name must not be empty")
    if not image_set.release_image.strip():
        issues.append("spec.releaseImage must not be empty")
    if issues:
        raise ManifestParseError(source, issues)

    return image_set


def load_candidates(
    snapshot_root: Path | str, relative_path: str
) -> list[ClusterImageSet]:
    """Read and parse every manifest, returning candidates sorted by name.

    Nothing is returned unless every file reads and parses, and no two
    files declare the same image set.
    """
    declared: dict[str, tuple[str, ClusterImageSet]] = {}
    for raw in iter_manifests(snapshot_root, relative_path):
        try:
            image_set = parse_manifest(raw.content, source=raw.source)
        except ManifestParseError:
            log_error(logger, "failed to parse image set manifest %s", raw.source)
            raise
        if image_set.name in declared:
            first_source, _ = declared[image_set.name]
            raise ManifestParseError.duplicate_name(
                image_set.name, first_source, raw.source
            )
        declared[image_set.name] = (raw.source, image_set)
        log_debug(logger, "parsed image set %s from %s", image_set.name, raw.source)

    return [declared[name][1] for name in sorted(declared)]


def _yaml() -> YAML:
    yaml = YAML(typ="safe")
    yaml.version = YAML_VERSION
    yaml.allow_duplicate_keys = False
    return yaml
