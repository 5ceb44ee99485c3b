"""Repository backed by the remote charm store.

Archives are downloaded into the local archive cache and read from there.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Mapping, Sequence
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from charmrepo.config import Settings
from charmrepo.config import settings as default_settings
from charmrepo.core.cache import ArchiveCache
from charmrepo.core.client import CharmRevision, StoreClient
from charmrepo.core.errors import NotFoundError, ProtocolViolation
from charmrepo.core.fetcher import ResourceData
from charmrepo.core.progress import Progress
from charmrepo.core.query import MetaQuery
from charmrepo.models.entity import LocalEntity
from charmrepo.models.fingerprint import Fingerprint
from charmrepo.models.ids import ArtifactId, as_id
from charmrepo.models.params import JUJU_METADATA_HEADER, ResourceMeta
from charmrepo.repo.base import ResolvedId, expect_bundle, expect_charm

logger = logging.getLogger(__name__)

_RESOLVE_QUERY = MetaQuery().want("id", "supported-series")


class ResourceResult(BaseModel):
    """Resources of one charm, or the error met while listing them."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    resources: list[ResourceMeta] = Field(default_factory=list)
    error: Exception | None = None


class CharmStore:
    """Charm store repository.

    Parameters
    ----------
    client:
        Store client used for every request.
    cache_dir:
        Directory of the archive cache; defaults to ``Settings.cache_dir``.
    """

    def __init__(self, client: StoreClient, cache_dir: Path | None = None) -> None:
        self._client = client
        self._cache = ArchiveCache(
            cache_dir if cache_dir is not None else default_settings.cache_dir,
            client.fetcher,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **transport_kwargs: Any) -> CharmStore:
        settings = settings or default_settings
        return cls(StoreClient.from_settings(settings, **transport_kwargs), settings.cache_dir)

    @property
    def client(self) -> StoreClient:
        return self._client

    @property
    def cache(self) -> ArchiveCache:
        return self._cache

    @property
    def url(self) -> str:
        """Root endpoint of the charm store."""
        return self._client.server_url

    # ------------------------------------------------------------------
    # Derived repositories
    # ------------------------------------------------------------------

    def _derive(self) -> CharmStore:
        client = self._client.with_channel(self._client.channel)
        return CharmStore(client, self._cache.cache_dir)

    def with_test_mode(self) -> CharmStore:
        """Return a repository whose downloads do not count in the store's
        statistics."""
        repo = self._derive()
        repo._client.disable_stats()
        return repo

    def with_juju_attrs(self, attrs: Mapping[str, str]) -> CharmStore:
        """Return a repository that sends ``attrs`` as Juju metadata headers."""
        repo = self._derive()
        repo._client.set_http_header(
            [(JUJU_METADATA_HEADER, f"{k}={v}") for k, v in sorted(attrs.items())]
        )
        return repo

    # ------------------------------------------------------------------
    # Repository interface
    # ------------------------------------------------------------------

    def get(self, id: ArtifactId | str) -> LocalEntity:
        id = as_id(id)
        expect_charm(id)
        return LocalEntity.read_charm(self.archive_path(id))

    def get_bundle(self, id: ArtifactId | str) -> LocalEntity:
        id = as_id(id)
        expect_bundle(id)
        return LocalEntity.read_bundle(self.archive_path(id))

    def archive_path(self, id: ArtifactId | str) -> Path:
        """Return the path of a verified cached copy of the archive."""
        return self._cache.archive_path(as_id(id))

    def resolve(self, ref: ArtifactId | str) -> ResolvedId:
        """Ask the store for the canonical id and supported series of ``ref``."""
        ref = as_id(ref)
        try:
            result = self._client.meta(ref, _RESOLVE_QUERY)
        except NotFoundError as exc:
            if ref.series == "bundle":
                etype = "bundle"
            elif not ref.series:
                etype = "charm or bundle"
            else:
                etype = "charm"
            raise NotFoundError(
                f"cannot resolve URL {str(ref)!r}: {etype} not found", exc.code, exc.info
            ) from exc
        series = (result.get("supported-series") or {}).get("SupportedSeries") or []
        return ResolvedId(id=result.id, supported_series=list(series))

    # ------------------------------------------------------------------
    # Store extras
    # ------------------------------------------------------------------

    def latest(self, *ids: ArtifactId | str) -> list[CharmRevision]:
        return self._client.latest(ids)

    def list_resources(self, ids: Iterable[ArtifactId | str]) -> list[ResourceResult]:
        """List the resources of each charm.

        A charm the store does not know gets a result holding the
        ``NotFoundError``; any other failure aborts the whole call.
        """
        results = []
        for id in ids:
            try:
                results.append(ResourceResult(resources=self._client.list_resources(id)))
            except NotFoundError as exc:
                results.append(ResourceResult(error=exc))
        return results

    def upload_resource(
        self,
        id: ArtifactId | str,
        name: str,
        filename: str | os.PathLike[str],
        progress: Progress | None = None,
    ) -> int:
        """Upload the file at ``filename`` as resource ``name``."""
        with open(filename, "rb") as f:
            size = os.fstat(f.fileno()).st_size
            return self._client.upload_resource(id, name, str(filename), f, size, progress)

    def get_resource(self, id: ArtifactId | str, name: str, revision: int = -1) -> ResourceData:
        """Open a resource after checking the fingerprint the store sent."""
        data = self._client.get_resource(id, name, revision)
        try:
            Fingerprint.parse(data.hash)
        except ValueError as exc:
            data.close()
            raise ProtocolViolation(f"invalid fingerprint returned from server: {exc}") from exc
        return data

    def get_latest_resource(self, id: ArtifactId | str, name: str) -> ResourceData:
        return self.get_resource(id, name, -1)

    def publish(
        self,
        id: ArtifactId | str,
        channels: Sequence[str],
        resources: Mapping[str, int] | None = None,
    ) -> None:
        if not channels:
            raise ValueError("no channel specified")
        self._client.publish(id, channels, resources)

    def close(self) -> None:
        self._client.close()


def latest(repo: CharmStore, id: ArtifactId | str) -> int:
    """Return the latest revision of a single id, raising its lookup error."""
    revisions = repo.latest(id)
    if len(revisions) != 1:
        raise ProtocolViolation(f"expected 1 result, got {len(revisions)}")
    rev = revisions[0]
    if rev.error is not None:
        raise rev.error
    return rev.revision
