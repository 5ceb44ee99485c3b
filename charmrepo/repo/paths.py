"""Repositories holding a single charm or bundle at a known path."""

from __future__ import annotations

import os
from pathlib import Path

from charmrepo.core.errors import EntityReadError
from charmrepo.models.entity import LocalEntity
from charmrepo.models.ids import ArtifactId, as_id
from charmrepo.repo.base import ResolvedId, entity_not_found, expect_bundle, expect_charm, repo_not_found


def path_contains_entity(path: str | os.PathLike[str]) -> bool:
    """Report whether a charm or bundle can be read from ``path``.

    Raises ``FileNotFoundError`` when nothing exists at ``path`` and
    ``EntityReadError`` when something exists but is neither.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"no such file or directory: {str(path)!r}")
    LocalEntity.read(path)
    return True


class CharmPath:
    """A repository made of the one charm or bundle found at ``path``."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        if not str(path):
            raise ValueError("path to charm not specified")
        path_contains_entity(path)
        self.path = Path(path)

    def resolve(self, ref: ArtifactId | str | None = None, series: str = "") -> ResolvedId:
        """Return the local id of the entity at the path.

        ``series`` picks one of the charm's supported series; without it
        the first supported series is used.  ``ref`` may supply the series
        instead.
        """
        if ref is not None and not series:
            series = as_id(ref).series
        if series == "bundle":
            bundle = LocalEntity.read_bundle(self.path)
            return ResolvedId(
                id=ArtifactId(schema_="local", name=bundle.name, series="bundle", revision=0)
            )
        charm = LocalEntity.read_charm(self.path)
        supported = charm.supported_series
        if not series:
            if not supported:
                raise ValueError("no series specified")
            series = supported[0]
        elif not valid_series(series, supported):
            raise ValueError(f"series {series!r} not supported by charm")
        return ResolvedId(
            id=ArtifactId(schema_="local", name=charm.name, series=series, revision=charm.revision),
            supported_series=supported,
        )

    def get(self, id: ArtifactId | str) -> LocalEntity:
        id = as_id(id)
        self._check_id_and_path(id)
        expect_charm(id)
        try:
            charm = LocalEntity.read_charm(self.path)
        except EntityReadError as exc:
            raise EntityReadError(f"failed to load charm at {str(self.path)!r}: {exc}") from exc
        if charm.name != id.name or (id.revision >= 0 and charm.revision != id.revision):
            raise entity_not_found(id, self.path)
        if not valid_series(id.series, charm.supported_series):
            raise ValueError(f"series {id.series!r} not supported by charm")
        return charm

    def get_bundle(self, id: ArtifactId | str) -> LocalEntity:
        id = as_id(id)
        self._check_id_and_path(id)
        expect_bundle(id)
        return LocalEntity.read_bundle(self.path)

    def _check_id_and_path(self, id: ArtifactId) -> None:
        if id.schema_ != "local":
            raise ValueError(f"local charm path got URL with non-local schema: {str(id)!r}")
        if not self.path.exists():
            raise repo_not_found(self.path)


class BundlePath:
    """A bundle read from a directory or archive, named after the path."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        if not str(path):
            raise ValueError("path to bundle not specified")
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"path {str(path)!r} does not exist")
        self.bundle = LocalEntity.read_bundle(path)
        self.name = self.bundle.name

    @property
    def id(self) -> ArtifactId:
        return ArtifactId(schema_="local", name=self.name, series="bundle", revision=0)

    def get(self) -> tuple[LocalEntity, ArtifactId]:
        """Return the bundle and its local id."""
        return self.bundle, self.id


def valid_series(series: str, supported: list[str]) -> bool:
    """An empty series or an empty supported list accepts anything."""
    if not series or not supported:
        return True
    return series in supported
