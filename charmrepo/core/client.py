"""Charm store API client.

``StoreClient`` is the facade over the transport, the archive fetcher and
the resource uploader.  It exposes every store operation this package
supports; higher level repository behaviour (caching, resolution messages)
lives in ``charmrepo.repo``.

Errors that come from a structured store response keep their ``ApiError``
type and code; messages are prefixed with the operation that failed.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping, Sequence
from typing import Any, BinaryIO

from pydantic import BaseModel, ConfigDict

from charmrepo.config import Settings
from charmrepo.config import settings as default_settings
from charmrepo.core.errors import NotFoundError
from charmrepo.core.fetcher import ArchiveFetcher, ArchiveStream, ResourceData
from charmrepo.core.progress import Progress
from charmrepo.core.query import MetaQuery, MetaResult
from charmrepo.core.transport import StoreTransport, decode_response
from charmrepo.core.uploader import ResourceUploader
from charmrepo.core.verifier import iter_chunks
from charmrepo.models.entity import LocalEntity
from charmrepo.models.ids import ArtifactId, EntityKind, as_id
from charmrepo.models.params import (
    ArchiveUploadResponse,
    Channel,
    DockerInfoResponse,
    DockerResourceUploadRequest,
    LogEntry,
    LogLevel,
    LogType,
    PublishRequest,
    ResourceMeta,
    ResourceUploadResponse,
    StatsUpdateRequest,
    WhoAmIResponse,
)

logger = logging.getLogger(__name__)


class CharmRevision(BaseModel):
    """Latest revision of one id, or the error met while looking it up."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    revision: int = -1
    sha256: str = ""
    error: Exception | None = None


class StoreClient:
    """Client side of the charm store.

    Parameters
    ----------
    transport:
        Transport used for every request.  The client closes it on
        ``close()``.
    stats_disabled:
        Do not count archive downloads in the store's statistics.
    min_multipart_upload_size:
        Resource payloads at least this large are uploaded in parts.
    upload_part_attempts, upload_retry_delay:
        Retry policy for each part of a multipart upload.

    Examples
    --------
    >>> client = StoreClient.from_settings()                 # doctest: +SKIP
    >>> client.meta("wordpress", MetaQuery().want("id")).id  # doctest: +SKIP
    ArtifactId(schema_='cs', user='', name='wordpress', series='trusty', revision=3)
    """

    def __init__(
        self,
        transport: StoreTransport,
        *,
        stats_disabled: bool = False,
        min_multipart_upload_size: int | None = None,
        upload_part_attempts: int | None = None,
        upload_retry_delay: float = 0.0,
    ) -> None:
        self._transport = transport
        self._fetcher = ArchiveFetcher(transport, stats_disabled=stats_disabled)
        self._uploader = ResourceUploader(
            transport,
            min_multipart_size=(
                min_multipart_upload_size
                if min_multipart_upload_size is not None
                else default_settings.min_multipart_upload_size
            ),
            max_attempts=(
                upload_part_attempts
                if upload_part_attempts is not None
                else default_settings.upload_part_attempts
            ),
            retry_delay=upload_retry_delay,
        )

    @classmethod
    def from_settings(cls, settings: Settings | None = None, **transport_kwargs: Any) -> StoreClient:
        """Build a client and its transport from ``Settings``."""
        settings = settings or default_settings
        transport = StoreTransport.from_settings(settings, **transport_kwargs)
        return cls(
            transport,
            stats_disabled=settings.stats_disabled,
            min_multipart_upload_size=settings.min_multipart_upload_size,
            upload_part_attempts=settings.upload_part_attempts,
            upload_retry_delay=settings.upload_retry_delay_seconds,
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def transport(self) -> StoreTransport:
        return self._transport

    @property
    def fetcher(self) -> ArchiveFetcher:
        return self._fetcher

    @property
    def server_url(self) -> str:
        return self._transport.url

    @property
    def channel(self) -> str:
        return self._transport.channel

    @property
    def stats_disabled(self) -> bool:
        return self._fetcher.stats_disabled

    @property
    def min_multipart_upload_size(self) -> int:
        return self._uploader.min_multipart_size

    def set_min_multipart_upload_size(self, size: int) -> None:
        self._uploader.min_multipart_size = size

    def disable_stats(self) -> None:
        """Stop archive downloads from incrementing download statistics."""
        self._fetcher.stats_disabled = True

    def set_http_header(
        self, headers: Mapping[str, str] | Sequence[tuple[str, str]] | None
    ) -> None:
        """Send ``headers`` with every later request."""
        self._transport.set_headers(headers)

    def with_channel(self, channel: Channel | str) -> StoreClient:
        """Return a client sharing this one's connection whose requests
        use ``channel``."""
        channel = channel.value if isinstance(channel, Channel) else channel
        other = StoreClient(
            self._transport.with_channel(channel),
            stats_disabled=self.stats_disabled,
            min_multipart_upload_size=self._uploader.min_multipart_size,
            upload_part_attempts=self._uploader.max_attempts,
            upload_retry_delay=self._uploader.retry_delay,
        )
        return other

    def close(self) -> None:
        self._transport.close()

    def __enter__(self) -> StoreClient:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Generic requests
    # ------------------------------------------------------------------

    def get(self, path: str, result_type: Any = None) -> Any:
        """GET ``path`` and decode the JSON answer into ``result_type``."""
        return self._transport.get(path, result_type)

    def put(self, path: str, value: Any) -> None:
        """PUT ``value`` as JSON to ``path``, discarding the answer."""
        self._transport.put(path, value)

    def put_with_response(self, path: str, value: Any, result_type: Any = None) -> Any:
        return self._transport.put(path, value, result_type)

    def do_with_response(self, method: str, path: str, value: Any, result_type: Any = None) -> Any:
        """Send ``value`` as JSON with any method and decode the answer."""
        return self._transport.request_json(method, path, value, result_type)

    # ------------------------------------------------------------------
    # Archives
    # ------------------------------------------------------------------

    def get_archive(self, id: ArtifactId | str) -> ArchiveStream:
        """Start downloading an archive; see ``ArchiveFetcher.get_archive``."""
        return self._fetcher.get_archive(as_id(id))

    def upload_charm(self, id: ArtifactId | str, charm: LocalEntity) -> ArtifactId:
        """Upload a charm to ``id``, which must not name a revision.

        Returns the id the store assigned, which differs from ``id`` only in
        its revision.
        """
        return self._upload_entity(as_id(id), charm, EntityKind.CHARM)

    def upload_bundle(self, id: ArtifactId | str, bundle: LocalEntity) -> ArtifactId:
        """Upload a bundle to ``id``, which must not name a revision."""
        return self._upload_entity(as_id(id), bundle, EntityKind.BUNDLE)

    def upload_charm_with_revision(
        self, id: ArtifactId | str, charm: LocalEntity, promulgated_revision: int = -1
    ) -> None:
        """Upload a charm to the exact revision in ``id``.

        A ``promulgated_revision`` other than ``-1`` also marks the charm as
        promulgated with that revision.
        """
        self._upload_entity_with_revision(as_id(id), charm, EntityKind.CHARM, promulgated_revision)

    def upload_bundle_with_revision(
        self, id: ArtifactId | str, bundle: LocalEntity, promulgated_revision: int = -1
    ) -> None:
        self._upload_entity_with_revision(as_id(id), bundle, EntityKind.BUNDLE, promulgated_revision)

    def _upload_entity(self, id: ArtifactId, entity: LocalEntity, kind: EntityKind) -> ArtifactId:
        if id.revision != -1:
            raise ValueError(f"revision specified in {str(id)!r}, but should not be specified")
        _check_entity_kind(entity, kind)
        body, hash_, size = entity.open_archive()
        with body:
            return self.upload_archive(id, body, hash_, size)

    def _upload_entity_with_revision(
        self, id: ArtifactId, entity: LocalEntity, kind: EntityKind, promulgated_revision: int
    ) -> None:
        if id.revision == -1:
            raise ValueError(f"revision not specified in {str(id)!r}")
        _check_entity_kind(entity, kind)
        body, hash_, size = entity.open_archive()
        with body:
            self.upload_archive(id, body, hash_, size, promulgated_revision)

    def upload_archive(
        self,
        id: ArtifactId,
        body: BinaryIO,
        hash: str,
        size: int,
        promulgated_revision: int = -1,
    ) -> ArtifactId:
        """Send a zip archive in one request and return the resulting id.

        Without a revision in ``id`` the archive is POSTed and the store
        picks the next revision; with one it is PUT at that revision.
        """
        method = "POST"
        params: list[tuple[str, Any]] = [("hash", hash)]
        if id.revision != -1:
            method = "PUT"
            if promulgated_revision != -1:
                promulgated = id.with_user("").with_revision(promulgated_revision)
                params.append(("promulgated", promulgated.path()))
        try:
            response = self._transport.request(
                method,
                f"/{id.path()}/archive",
                params=params,
                content=iter_chunks(body),
                headers={"Content-Type": "application/zip", "Content-Length": str(size)},
            )
        except NotFoundError as exc:
            raise NotFoundError(f"cannot post archive: {exc.message}", exc.code, exc.info) from exc
        result = decode_response(response, ArchiveUploadResponse)
        logger.info("uploaded %s as %s", id, result.id)
        return result.id

    # ------------------------------------------------------------------
    # Metadata
    # ------------------------------------------------------------------

    def meta(self, id: ArtifactId | str, query: MetaQuery) -> MetaResult:
        """Fetch the metadata selected by ``query`` for one entity.

        The result carries the fully qualified id of the entity; keys the
        store has no value for are missing from it.
        """
        id = as_id(id)
        path = f"/{id.path()}/meta/any"
        try:
            result = self._transport.get(path, MetaResult, params=query.params())
        except NotFoundError as exc:
            raise NotFoundError(f"cannot get {path!r}: {exc.message}", exc.code, exc.info) from exc
        return result.restricted_to(query)

    def latest(self, ids: Iterable[ArtifactId | str]) -> list[CharmRevision]:
        """Return the latest revision of each id; given revisions are ignored.

        Ids the store does not know, or that the caller may not see, get a
        ``CharmRevision`` holding a ``NotFoundError``.
        """
        keys = [str(as_id(i).with_revision(-1)) for i in ids]
        if not keys:
            return []
        params: list[tuple[str, Any]] = [
            ("ignore-auth", "1"),
            ("include", "id-revision"),
            ("include", "hash256"),
        ]
        params.extend(("id", key) for key in keys)
        results = self._transport.get("/meta/any", dict[str, dict[str, Any]], params=params)
        revisions = []
        for key in keys:
            entry = results.get(key)
            if entry is None:
                revisions.append(CharmRevision(error=NotFoundError(f"charm or bundle not found: {key!r}")))
                continue
            meta = entry.get("Meta") or {}
            revisions.append(
                CharmRevision(
                    revision=(meta.get("id-revision") or {}).get("Revision", -1),
                    sha256=(meta.get("hash256") or {}).get("Sum", ""),
                )
            )
        return revisions

    def put_extra_info(self, id: ArtifactId | str, info: Mapping[str, Any]) -> None:
        """Set extra-info keys; keys missing from ``info`` are unchanged."""
        self.put(f"/{as_id(id).path()}/meta/extra-info", dict(info))

    def put_common_info(self, id: ArtifactId | str, info: Mapping[str, Any]) -> None:
        """Set common-info keys; keys missing from ``info`` are unchanged."""
        self.put(f"/{as_id(id).path()}/meta/common-info", dict(info))

    def publish(
        self,
        id: ArtifactId | str,
        channels: Sequence[Channel | str],
        resources: Mapping[str, int] | None = None,
    ) -> None:
        """Publish ``id`` to ``channels`` with the given resource revisions.

        Nothing is sent when ``channels`` is empty.
        """
        if not channels:
            return
        request = PublishRequest(
            channels=[Channel(ch) for ch in channels],
            resources=dict(resources or {}),
        )
        self.put(f"/{as_id(id).path()}/publish", request)

    # ------------------------------------------------------------------
    # Resources
    # ------------------------------------------------------------------

    def list_resources(self, id: ArtifactId | str) -> list[ResourceMeta]:
        path = f"/{as_id(id).path()}/meta/resources"
        try:
            return self._transport.get(path, list[ResourceMeta])
        except NotFoundError as exc:
            raise NotFoundError(
                f"cannot get resource metadata from the charm store: {exc.message}",
                exc.code,
                exc.info,
            ) from exc

    def resource_meta(self, id: ArtifactId | str, name: str, revision: int = -1) -> ResourceMeta:
        """Metadata of one resource revision; a negative revision means the latest."""
        path = f"/{as_id(id).path()}/meta/resources/{name}"
        if revision >= 0:
            path += f"/{revision}"
        try:
            return self._transport.get(path, ResourceMeta)
        except NotFoundError as exc:
            raise NotFoundError(f"cannot get {path!r}: {exc.message}", exc.code, exc.info) from exc

    def get_resource(self, id: ArtifactId | str, name: str, revision: int = -1) -> ResourceData:
        return self._fetcher.get_resource(as_id(id), name, revision)

    def upload_resource(
        self,
        id: ArtifactId | str,
        name: str,
        path: str,
        content: BinaryIO,
        size: int,
        progress: Progress | None = None,
    ) -> int:
        """Upload ``size`` bytes of ``content`` as resource ``name``.

        ``path`` is recorded as the resource's file name.  Returns the new
        resource revision.
        """
        return self._uploader.upload(as_id(id), name, path, content, size, progress)

    def resume_upload_resource(
        self,
        upload_id: str,
        id: ArtifactId | str,
        name: str,
        path: str,
        content: BinaryIO,
        size: int,
        progress: Progress | None = None,
    ) -> int:
        """Like ``upload_resource`` but continue the upload ``upload_id``.

        Raises ``UploadSessionNotFound`` when the store no longer knows the
        upload.
        """
        return self._uploader.upload(as_id(id), name, path, content, size, progress, upload_id)

    def add_docker_resource(
        self, id: ArtifactId | str, name: str, image_name: str, digest: str
    ) -> int:
        """Attach a docker image to a charm as resource ``name``.

        An empty ``image_name`` refers to an image pushed to the store's own
        registry.  Returns the new resource revision.
        """
        request = DockerResourceUploadRequest(digest=digest, image_name=image_name)
        result = self.do_with_response(
            "POST", f"/{as_id(id).path()}/resource/{name}", request, ResourceUploadResponse
        )
        return result.revision

    def docker_resource_download_info(self, id: ArtifactId | str, name: str) -> DockerInfoResponse:
        return self.get(f"/{as_id(id).path()}/resource/{name}", DockerInfoResponse)

    def docker_resource_upload_info(self, id: ArtifactId | str, name: str) -> DockerInfoResponse:
        return self._transport.get(
            f"/{as_id(id).path()}/docker-resource-upload-info",
            DockerInfoResponse,
            params={"resource-name": name},
        )

    # ------------------------------------------------------------------
    # Accounts and bookkeeping
    # ------------------------------------------------------------------

    def whoami(self) -> WhoAmIResponse:
        return self.get("/whoami", WhoAmIResponse)

    def login(self) -> None:
        """Ask the store for credentials up front.

        The credentials themselves are handled by the transport's
        ``httpx.Auth``; this only triggers the exchange.
        """
        try:
            self.get("/delegatable-macaroon")
        except NotFoundError as exc:
            raise NotFoundError(
                f"cannot retrieve the authentication macaroon: {exc.message}", exc.code, exc.info
            ) from exc

    def log(
        self,
        type: LogType,
        level: LogLevel,
        message: str,
        *ids: ArtifactId | str,
    ) -> None:
        """Send a message to the store's log database."""
        entry = LogEntry(
            data=message,
            level=level,
            type=type,
            urls=[str(as_id(i)) for i in ids],
        )
        self._transport.request_json(
            "POST", "/log", [entry.model_dump(mode="json", by_alias=True)]
        )

    def stats_update(self, request: StatsUpdateRequest) -> None:
        """Record downloads that happened at the given times."""
        self.put("/stats/update", request)


def _check_entity_kind(entity: LocalEntity, kind: EntityKind) -> None:
    if entity.kind is not kind:
        raise ValueError(f"expected a {kind.value}, got {entity.kind.value} at {entity.path}")
