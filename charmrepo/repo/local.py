"""Repository of charms and bundles in a local directory.

Layout::

    <path>/<series>/<charm directory or name.charm archive>
    <path>/bundle/<bundle directory>

Charms are matched on the name in their metadata, not on the file name.
Bundles exist only as directories and always have revision 0.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from charmrepo.core.client import CharmRevision
from charmrepo.core.errors import CharmRepoError
from charmrepo.models.entity import LocalEntity
from charmrepo.models.ids import ArtifactId, as_id
from charmrepo.repo.base import (
    ResolvedId,
    entity_not_found,
    expect_bundle,
    expect_charm,
    repo_not_found,
)

logger = logging.getLogger(__name__)


def might_be_charm(path: Path) -> bool:
    """Report whether ``path`` is worth trying to read as a charm."""
    if path.is_dir():
        return not path.name.startswith(".")
    return path.name.endswith(".charm")


class LocalRepository:
    """Charms and bundles under ``path``, organised by series."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        if not str(path):
            raise ValueError("path to local repository not specified")
        self.path = Path(path)

    def resolve(self, ref: ArtifactId | str) -> ResolvedId:
        """Resolve the revision of ``ref``, which must name a series."""
        ref = as_id(ref)
        if not ref.series:
            raise ValueError(f"no series specified for {ref}")
        if ref.revision != -1:
            return ResolvedId(id=ref)
        if ref.series == "bundle":
            return ResolvedId(id=ref.with_revision(0))
        charm = self.get(ref)
        return ResolvedId(id=ref.with_revision(charm.revision), supported_series=charm.supported_series)

    def latest(self, *ids: ArtifactId | str) -> list[CharmRevision]:
        results = []
        for id in ids:
            try:
                charm = self.get(as_id(id).with_revision(-1))
            except CharmRepoError as exc:
                results.append(CharmRevision(error=exc))
            else:
                results.append(CharmRevision(revision=charm.revision))
        return results

    def get(self, id: ArtifactId | str) -> LocalEntity:
        """Return the charm ``id``.

        Without a revision the highest revision found wins.  Unreadable
        charms in the series directory are logged and skipped.
        """
        id = as_id(id)
        self._check_id_and_path(id)
        expect_charm(id)
        series_dir = self.path / id.series
        try:
            candidates = sorted(series_dir.iterdir())
        except OSError:
            raise entity_not_found(id, self.path) from None
        latest: LocalEntity | None = None
        for candidate in candidates:
            if not might_be_charm(candidate):
                continue
            try:
                charm = LocalEntity.read_charm(candidate)
            except CharmRepoError as exc:
                logger.warning("failed to load charm at %s: %s", candidate, exc)
                continue
            if charm.name != id.name:
                continue
            if charm.revision == id.revision:
                return charm
            if latest is None or charm.revision > latest.revision:
                latest = charm
        if id.revision == -1 and latest is not None:
            return latest
        raise entity_not_found(id, self.path)

    def get_bundle(self, id: ArtifactId | str) -> LocalEntity:
        id = as_id(id)
        self._check_id_and_path(id)
        expect_bundle(id)
        path = self.path / id.series / id.name
        if not path.is_dir():
            raise entity_not_found(id, self.path)
        return LocalEntity.read_bundle(path)

    def _check_id_and_path(self, id: ArtifactId) -> None:
        if id.schema_ != "local":
            raise ValueError(f"local repository got URL with non-local schema: {str(id)!r}")
        if not self.path.is_dir():
            raise repo_not_found(self.path)
