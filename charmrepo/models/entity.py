"""Charms and bundles read from the local filesystem.

A local entity is either a charm or a bundle, stored either as a directory
or as a zip archive.  Only the parts of the metadata needed to resolve,
fetch and upload the entity are interpreted: the charm name, revision and
supported series.  Everything else is kept as the raw YAML mapping.
"""

from __future__ import annotations

import io
import logging
import os
import zipfile
from enum import Enum
from pathlib import Path
from typing import Any, BinaryIO

import yaml
from pydantic import BaseModel, ConfigDict, Field

from charmrepo.core.errors import EntityReadError
from charmrepo.core.verifier import hash_and_size
from charmrepo.models.ids import EntityKind

logger = logging.getLogger(__name__)

CHARM_METADATA_FILE = "metadata.yaml"
CHARM_REVISION_FILE = "revision"
BUNDLE_DATA_FILE = "bundle.yaml"
BUNDLE_README_FILE = "README.md"


class StorageKind(str, Enum):
    DIRECTORY = "directory"
    ARCHIVE = "archive"


class LocalEntity(BaseModel):
    """A charm or bundle found on disk.

    ``metadata`` holds the parsed ``metadata.yaml`` of a charm or the
    parsed ``bundle.yaml`` of a bundle.  Bundles carry no name of their
    own; they are named after their directory or archive file.

    Examples
    --------
    >>> entity = LocalEntity.read("charms/trusty/mysql")  # doctest: +SKIP
    >>> entity.name, entity.revision, entity.kind
    ('mysql', 7, <EntityKind.CHARM: 'charm'>)
    """

    model_config = ConfigDict(frozen=True)

    kind: EntityKind
    storage: StorageKind
    path: Path
    name: str
    revision: int = 0
    metadata: dict[str, Any] = Field(default_factory=dict)
    readme: str = ""

    @property
    def supported_series(self) -> list[str]:
        series = self.metadata.get("series") or []
        if isinstance(series, str):
            return [series]
        return [str(s) for s in series]

    @property
    def summary(self) -> str:
        return str(self.metadata.get("summary", ""))

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    @classmethod
    def read(cls, path: str | os.PathLike[str]) -> LocalEntity:
        """Read a charm or bundle from a directory or archive."""
        path = Path(path)
        try:
            return cls.read_bundle(path)
        except EntityReadError:
            return cls.read_charm(path)

    @classmethod
    def read_charm(cls, path: str | os.PathLike[str]) -> LocalEntity:
        path = Path(path)
        if path.is_dir():
            files = _DirectoryFiles(path)
            storage = StorageKind.DIRECTORY
        elif path.is_file():
            files = _ArchiveFiles(path)
            storage = StorageKind.ARCHIVE
        else:
            raise EntityReadError(f"no charm found at {str(path)!r}")
        meta_text = files.read_text(CHARM_METADATA_FILE)
        if meta_text is None:
            raise EntityReadError(f"no {CHARM_METADATA_FILE} in charm at {str(path)!r}")
        metadata = _load_yaml(meta_text, path / CHARM_METADATA_FILE)
        name = metadata.get("name")
        if not isinstance(name, str) or not name:
            raise EntityReadError(f"charm at {str(path)!r} has no name in its metadata")
        revision = 0
        rev_text = files.read_text(CHARM_REVISION_FILE)
        if rev_text is not None:
            try:
                revision = int(rev_text.strip())
            except ValueError as exc:
                raise EntityReadError(f"invalid revision file in charm at {str(path)!r}") from exc
        return cls(
            kind=EntityKind.CHARM,
            storage=storage,
            path=path,
            name=name,
            revision=revision,
            metadata=metadata,
        )

    @classmethod
    def read_bundle(cls, path: str | os.PathLike[str]) -> LocalEntity:
        path = Path(path)
        if path.is_dir():
            files = _DirectoryFiles(path)
            storage = StorageKind.DIRECTORY
            name = path.name
        elif path.is_file():
            files = _ArchiveFiles(path)
            storage = StorageKind.ARCHIVE
            name = path.stem
        else:
            raise EntityReadError(f"no bundle found at {str(path)!r}")
        data_text = files.read_text(BUNDLE_DATA_FILE)
        if data_text is None:
            raise EntityReadError(f"no {BUNDLE_DATA_FILE} in bundle at {str(path)!r}")
        return cls(
            kind=EntityKind.BUNDLE,
            storage=storage,
            path=path,
            name=name,
            revision=0,
            metadata=_load_yaml(data_text, path / BUNDLE_DATA_FILE),
            readme=files.read_text(BUNDLE_README_FILE) or "",
        )

    # ------------------------------------------------------------------
    # Archives
    # ------------------------------------------------------------------

    def open_archive(self) -> tuple[BinaryIO, str, int]:
        """Return a readable zip archive of the entity, its SHA-384 and size.

        Archives on disk are opened as they are; directories are zipped in
        memory.  The caller closes the returned stream.
        """
        if self.storage is StorageKind.ARCHIVE:
            f = open(self.path, "rb")
            try:
                hash_, size = hash_and_size(f)
                f.seek(0)
            except BaseException:
                f.close()
                raise
            return f, hash_, size
        buf = io.BytesIO()
        with zipfile.ZipFile(buf, "w", zipfile.ZIP_DEFLATED) as zf:
            for file_path in _walk_visible(self.path):
                zf.write(file_path, file_path.relative_to(self.path).as_posix())
        data = buf.getvalue()
        buf.seek(0)
        hash_, size = hash_and_size(io.BytesIO(data))
        return buf, hash_, size


# ---------------------------------------------------------------------------
# File access helpers
# ---------------------------------------------------------------------------

class _DirectoryFiles:
    def __init__(self, root: Path) -> None:
        self._root = root

    def read_text(self, name: str) -> str | None:
        try:
            return (self._root / name).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise EntityReadError(f"cannot read {name} in {str(self._root)!r}: {exc}") from exc


class _ArchiveFiles:
    def __init__(self, path: Path) -> None:
        self._path = path

    def read_text(self, name: str) -> str | None:
        try:
            with zipfile.ZipFile(self._path) as zf:
                try:
                    return zf.read(name).decode("utf-8")
                except KeyError:
                    return None
        except (zipfile.BadZipFile, OSError) as exc:
            raise EntityReadError(f"cannot open archive {str(self._path)!r}: {exc}") from exc


def _load_yaml(text: str, source: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise EntityReadError(f"cannot parse {source}: {exc}") from exc
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise EntityReadError(f"{source} does not hold a mapping")
    return data


def _walk_visible(root: Path) -> list[Path]:
    """Files under ``root`` in a stable order, skipping hidden entries."""
    found: list[Path] = []
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames[:] = sorted(d for d in dirnames if not d.startswith("."))
        for name in sorted(filenames):
            if not name.startswith("."):
                found.append(Path(dirpath) / name)
    return found
