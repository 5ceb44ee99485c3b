"""Archive and resource downloads.

Bodies are returned open and unverified; the caller reads them through the
content verifier and closes them.  Whenever validation of the response
headers fails, the body is closed before the error is raised.
"""

from __future__ import annotations

import logging

from pydantic import BaseModel, ConfigDict, ValidationError

from charmrepo.core.errors import (
    CharmRepoError,
    NotFoundError,
    ProtocolViolation,
    TermsRequiredError,
    TransportError,
)
from charmrepo.core.transport import ResponseStream, StoreTransport
from charmrepo.core.verifier import is_valid_hash
from charmrepo.models.archive import ArchiveMetadata
from charmrepo.models.fingerprint import Fingerprint
from charmrepo.models.ids import ArtifactId
from charmrepo.models.params import CONTENT_HASH_HEADER, ENTITY_ID_HEADER

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Download handles
# ---------------------------------------------------------------------------

class ArchiveStream(BaseModel):
    """An open archive body plus its declared metadata.

    The body is unread and unverified; close it on every path, for
    example by using the handle as a context manager.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    body: ResponseStream
    metadata: ArchiveMetadata

    @property
    def id(self) -> ArtifactId:
        return self.metadata.id

    @property
    def hash(self) -> str:
        return self.metadata.hash

    @property
    def size(self) -> int:
        return self.metadata.size

    def read(self, size: int = -1) -> bytes:
        return self.body.read(size)

    def close(self) -> None:
        self.body.close()

    def __enter__(self) -> ArchiveStream:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


class ResourceData(BaseModel):
    """An open resource body.

    ``hash`` is the hex SHA-384 digest the store declared for the bytes and
    ``size`` the declared length, or ``-1`` when the store did not send one.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    body: ResponseStream
    hash: str
    size: int = -1
    revision: int = -1

    @property
    def fingerprint(self) -> Fingerprint:
        return Fingerprint.parse(self.hash)

    def read(self, size: int = -1) -> bytes:
        return self.body.read(size)

    def close(self) -> None:
        self.body.close()

    def __enter__(self) -> ResourceData:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


# ---------------------------------------------------------------------------
# Fetcher
# ---------------------------------------------------------------------------

class ArchiveFetcher:
    """Downloads archives and resource bodies from the store.

    Parameters
    ----------
    transport:
        The store transport to send requests with.
    stats_disabled:
        When ``True`` archive downloads ask the store not to count them in
        its download statistics.
    """

    def __init__(self, transport: StoreTransport, *, stats_disabled: bool = False) -> None:
        self._transport = transport
        self.stats_disabled = stats_disabled

    @property
    def transport(self) -> StoreTransport:
        return self._transport

    def get_archive(self, id: ArtifactId) -> ArchiveStream:
        """Start downloading the archive of the given charm or bundle.

        Returns the unread body together with the fully qualified id, the
        hex SHA-384 hash and the size declared by the store.
        """
        params = {"stats": "0"} if self.stats_disabled else None
        try:
            body = self._transport.stream("GET", f"/{id.path()}/archive", params=params)
        except TermsRequiredError as exc:
            terms = " ".join(exc.terms)
            raise TermsRequiredError(
                "cannot get archive because some terms have not been agreed to. "
                f'Try "juju agree {terms}"',
                exc.terms,
                exc.code,
                exc.info,
            ) from exc
        except NotFoundError as exc:
            raise NotFoundError(f"cannot get archive: {exc.message}", exc.code, exc.info) from exc
        except TransportError as exc:
            raise TransportError(f"cannot get archive: {exc}") from exc

        try:
            metadata = _archive_metadata(body)
        except CharmRepoError:
            body.close()
            raise
        logger.debug("archive %s: %d bytes, sha384 %s", metadata.id, metadata.size, metadata.hash)
        return ArchiveStream(body=body, metadata=metadata)

    def get_resource(self, id: ArtifactId, name: str, revision: int = -1) -> ResourceData:
        """Start downloading a resource; a negative revision means the latest.

        The store must declare the content hash; the declared length is
        passed through when present.
        """
        path = f"/{id.path()}/resource/{name}"
        if revision >= 0:
            path += f"/{revision}"
        try:
            body = self._transport.stream("GET", path)
        except NotFoundError as exc:
            raise NotFoundError(f"cannot get resource: {exc.message}", exc.code, exc.info) from exc
        except TransportError as exc:
            raise TransportError(f"cannot get resource: {exc}") from exc

        try:
            hash_ = body.headers.get(CONTENT_HASH_HEADER, "")
            if not hash_:
                raise ProtocolViolation(f"no {CONTENT_HASH_HEADER} header found in response")
            size = _content_length(body, required=False)
        except CharmRepoError:
            body.close()
            raise
        return ResourceData(body=body, hash=hash_.lower(), size=size, revision=revision)


def _archive_metadata(body: ResponseStream) -> ArchiveMetadata:
    entity_id = body.headers.get(ENTITY_ID_HEADER, "")
    if not entity_id:
        raise ProtocolViolation(f"no {ENTITY_ID_HEADER} header found in response")
    try:
        eid = ArtifactId.parse(entity_id)
    except ValueError as exc:
        raise ProtocolViolation(f"invalid entity id found in response: {exc}") from exc
    if not eid.is_fully_qualified:
        raise ProtocolViolation(
            f"archive get returned not fully qualified entity id {str(eid)!r}"
        )
    hash_ = body.headers.get(CONTENT_HASH_HEADER, "")
    if not hash_:
        raise ProtocolViolation(f"no {CONTENT_HASH_HEADER} header found in response")
    if not is_valid_hash(hash_):
        raise ProtocolViolation(f"invalid {CONTENT_HASH_HEADER} header {hash_!r}")
    size = _content_length(body, required=True)
    try:
        return ArchiveMetadata(id=eid, hash=hash_, size=size)
    except ValidationError as exc:
        raise ProtocolViolation(f"invalid archive metadata in response: {exc}") from exc


def _content_length(body: ResponseStream, *, required: bool) -> int:
    value = body.headers.get("Content-Length")
    if value is None:
        if required:
            raise ProtocolViolation("no content length found in response")
        return -1
    try:
        size = int(value)
    except ValueError as exc:
        raise ProtocolViolation(f"invalid Content-Length header {value!r}") from exc
    if size < 0:
        if required:
            raise ProtocolViolation("no content length found in response")
        return -1
    return size
