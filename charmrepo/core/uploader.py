"""Resumable multipart resource uploads.

Payloads smaller than the multipart threshold are hashed and POSTed in one
request.  Larger payloads go through an upload session held by the store:

::

    PREFLIGHT ──> SESSION_READY ──> UPLOADING_PARTS ──> FINALIZING ──> DONE
         \\______________\\__________________\\_______________\\──> FAILED

* a new session is created with ``POST /upload``; an existing one is
  resumed with ``GET /upload/{id}``;
* parts are uploaded in index order with ``PUT /upload/{id}/{index}``.
  Parts the session already records as complete are skipped, and the byte
  ranges of the remaining parts are chosen so they line up with the
  completed ones (``choose_part_range``);
* each part is retried on soft failures (anything that is not a structured
  store error) up to ``max_attempts`` times;
* finally the part list is submitted with ``PUT /upload/{id}`` and the
  session is bound to the resource, which yields the new revision.

A failed finalization is not retried here.  Resuming with the same upload id
re-submits the part list without sending the completed parts again.

A session must be driven by a single caller at a time.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import BinaryIO

from pydantic import BaseModel, ConfigDict
from tenacity import (
    RetryCallState,
    RetryError,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_fixed,
)

from charmrepo.config import DEFAULT_MIN_MULTIPART_UPLOAD_SIZE
from charmrepo.core.errors import (
    IntegrityError,
    NotFoundError,
    PartSizingError,
    PayloadTooLarge,
    ProtocolViolation,
    UploadError,
    UploadSessionNotFound,
    is_api_error,
)
from charmrepo.core.progress import NoProgress, Progress
from charmrepo.core.transport import StoreTransport, decode_response
from charmrepo.core.verifier import SectionReader, hash_and_size
from charmrepo.models.ids import ArtifactId
from charmrepo.models.params import (
    FinishUploadResponse,
    Part,
    PartsRequest,
    ResourceUploadResponse,
    UploadSession,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 10

_OCTET_STREAM = "application/octet-stream"


class UploadState(str, Enum):
    """Where a resource upload is in its lifecycle."""

    PREFLIGHT = "preflight"
    SESSION_READY = "session_ready"
    UPLOADING_PARTS = "uploading_parts"
    FINALIZING = "finalizing"
    DONE = "done"
    FAILED = "failed"


class PartRange(BaseModel):
    """Byte range ``[start, end)`` chosen for one part."""

    model_config = ConfigDict(frozen=True)

    start: int
    end: int
    uploaded: bool = False

    @property
    def size(self) -> int:
        return self.end - self.start


# ---------------------------------------------------------------------------
# Part sizing
# ---------------------------------------------------------------------------

def preferred_part_size(size: int, session: UploadSession) -> int:
    """Return the part size that covers ``size`` bytes in ``max_parts`` parts.

    The result is rounded up and then raised to ``min_part_size``.  Raises
    ``PayloadTooLarge`` when even ``max_part_size`` parts are not enough.
    """
    if session.max_parts <= 0:
        raise ProtocolViolation(f"upload session allows {session.max_parts} parts")
    preferred = -(-size // session.max_parts)
    if preferred > session.max_part_size:
        raise PayloadTooLarge(f"resource too big (allowed {session.max_size / 1e9:.3f}GB)")
    return max(preferred, session.min_part_size)


def choose_part_range(
    index: int,
    offset: int,
    size: int,
    session: UploadSession,
    preferred: int,
) -> PartRange:
    """Choose the byte range for part ``index`` starting at ``offset``.

    * A part the session records as complete is returned with
      ``uploaded=True``; its recorded offset must equal ``offset``.
    * When the very next part is complete, this part fills the gap up to
      it exactly, and the gap must fit the session's part size bounds.
    * When no later part is complete, the part takes ``preferred`` bytes,
      clamped to the end of the payload.
    * When a later part is complete, the gap is divided evenly between the
      parts before it; the remainder ends up in the last of them.
    """
    part = session.part(index)
    if part is not None and part.complete:
        if part.offset != offset:
            raise ProtocolViolation(
                f"offset mismatch at part {index} (want {offset} got {part.offset})"
            )
        if part.offset + part.size > size:
            raise ProtocolViolation(
                f"part {index} ends at {part.offset + part.size}, past the end of the "
                f"{size} byte payload"
            )
        return PartRange(start=offset, end=offset + part.size, uploaded=True)

    next_offset = size
    next_index = -1
    for i in range(index + 1, len(session.parts)):
        if session.parts[i].valid():
            next_offset = session.parts[i].offset
            next_index = i
            break

    if next_index == index + 1:
        gap = next_offset - offset
        if gap < session.min_part_size:
            raise PartSizingError(
                f"remaining part is too small ({gap} bytes before part {next_index}, "
                f"minimum {session.min_part_size})"
            )
        if gap > session.max_part_size:
            raise PartSizingError(
                f"remaining part is too large ({gap} bytes before part {next_index}, "
                f"maximum {session.max_part_size})"
            )
        return PartRange(start=offset, end=next_offset)
    if next_index == -1:
        return PartRange(start=offset, end=min(offset + preferred, size))
    part_size = (next_offset - offset) // (next_index - index)
    return PartRange(start=offset, end=offset + part_size)


# ---------------------------------------------------------------------------
# Upload driver
# ---------------------------------------------------------------------------

def _is_soft_error(exc: BaseException) -> bool:
    return isinstance(exc, Exception) and not is_api_error(exc)


class ResourceUpload:
    """One upload of a resource payload.

    ``state`` and ``session`` reflect how far the upload got; ``session``
    is replaced by a new snapshot each time a part completes.

    Parameters
    ----------
    transport:
        Store transport.
    id, name:
        Charm and resource name to attach the upload to.
    filename:
        Resource path metadata recorded by the store.
    content, size:
        Seekable binary file holding exactly ``size`` bytes.
    progress:
        Progress sink; see ``charmrepo.core.progress``.
    """

    def __init__(
        self,
        transport: StoreTransport,
        id: ArtifactId,
        name: str,
        filename: str,
        content: BinaryIO,
        size: int,
        progress: Progress | None = None,
        *,
        min_multipart_size: int = DEFAULT_MIN_MULTIPART_UPLOAD_SIZE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = 0.0,
    ) -> None:
        self._transport = transport
        self.id = id
        self.name = name
        self.filename = filename
        self._content = content
        self.size = size
        self._progress = progress or NoProgress()
        self._min_multipart_size = min_multipart_size
        self._max_attempts = max_attempts
        self._retry_delay = retry_delay
        self.state = UploadState.PREFLIGHT
        self.session: UploadSession | None = None

    @property
    def _resource_path(self) -> str:
        return f"/{self.id.path()}/resource/{self.name}"

    def run(self, upload_id: str = "") -> int:
        """Upload the payload and return the new resource revision.

        A non-empty ``upload_id`` resumes that session; an unknown or
        expired session raises ``UploadSessionNotFound``.
        """
        try:
            if self.size >= self._min_multipart_size:
                revision = self._upload_multipart(upload_id)
            else:
                revision = self._upload_single_part()
        except BaseException:
            self.state = UploadState.FAILED
            raise
        self.state = UploadState.DONE
        return revision

    # ------------------------------------------------------------------
    # Single part
    # ------------------------------------------------------------------

    def _upload_single_part(self) -> int:
        self._progress.start("", None)
        hash_, size = hash_and_size(SectionReader(self._content, 0, self.size))
        if size != self.size:
            raise IntegrityError(
                f"resource file changed underfoot? (initial size {self.size}, then {size})"
            )
        body = SectionReader(self._content, 0, self.size, on_read=self._progress.transferred)
        try:
            response = self._transport.request(
                "POST",
                self._resource_path,
                params={"hash": hash_, "filename": self.filename},
                content=body,
                headers={"Content-Type": _OCTET_STREAM, "Content-Length": str(self.size)},
            )
        except NotFoundError as exc:
            raise NotFoundError(f"cannot post resource: {exc.message}", exc.code, exc.info) from exc
        result = decode_response(response, ResourceUploadResponse)
        logger.info("uploaded %s resource %s as revision %d", self.id, self.name, result.revision)
        return result.revision

    # ------------------------------------------------------------------
    # Multipart
    # ------------------------------------------------------------------

    def _upload_multipart(self, upload_id: str) -> int:
        if not upload_id:
            try:
                session = self._transport.request_json("POST", "/upload", None, UploadSession)
            except NotFoundError:
                # The store predates multipart uploads.
                logger.info("multipart upload not supported; uploading %s in one part", self.name)
                return self._upload_single_part()
        else:
            try:
                session = self._transport.get(f"/upload/{upload_id}", UploadSession)
            except NotFoundError as exc:
                raise UploadSessionNotFound(f"upload {upload_id!r} not found") from exc
            if session.upload_id != upload_id:
                raise ProtocolViolation(
                    f"unexpected upload id in response (got {session.upload_id!r} "
                    f"want {upload_id!r})"
                )
        self.session = session
        self.state = UploadState.SESSION_READY
        self._progress.start(session.upload_id, session.expires)
        preferred = preferred_part_size(self.size, session)
        logger.debug(
            "upload %s: %d bytes, preferred part size %d, %d parts already recorded",
            session.upload_id, self.size, preferred, len(session.parts),
        )
        self._upload_parts(preferred)
        return self._finalize()

    def _upload_parts(self, preferred: int) -> None:
        self.state = UploadState.UPLOADING_PARTS
        offset = 0
        index = 0
        while offset < self.size:
            assert self.session is not None
            part_range = choose_part_range(index, offset, self.size, self.session, preferred)
            if part_range.uploaded:
                logger.debug("part %d already uploaded [%d, %d)", index, part_range.start, part_range.end)
                self._progress.transferred(part_range.end)
            else:
                hash_ = self._upload_part(index, part_range)
                self.session = self.session.with_completed_part(
                    index,
                    Part(
                        offset=part_range.start,
                        size=part_range.size,
                        complete=True,
                        hash=hash_,
                    ),
                )
            offset = part_range.end
            index += 1

    def _upload_part(self, index: int, part_range: PartRange) -> str:
        """Upload one part with retries and return its hash."""
        hash_, size = hash_and_size(
            SectionReader(self._content, part_range.start, part_range.end)
        )
        if size != part_range.size:
            raise IntegrityError(
                f"resource file changed underfoot? (part {index} should hold "
                f"{part_range.size} bytes, read {size})"
            )
        retrying = Retrying(
            stop=stop_after_attempt(self._max_attempts),
            retry=retry_if_exception(_is_soft_error),
            wait=wait_fixed(self._retry_delay),
            before_sleep=self._report_soft_error,
            reraise=False,
        )
        try:
            for attempt in retrying:
                with attempt:
                    self._put_part(index, part_range, hash_)
        except RetryError as exc:
            last = exc.last_attempt.exception()
            logger.warning("part %d failed after %d attempts: %s", index, self._max_attempts, last)
            self._progress.error(last)
            raise UploadError(f"too many attempts; last error: {last}") from last
        logger.debug("uploaded part %d [%d, %d)", index, part_range.start, part_range.end)
        return hash_

    def _put_part(self, index: int, part_range: PartRange, hash_: str) -> None:
        assert self.session is not None
        body = SectionReader(
            self._content,
            part_range.start,
            part_range.end,
            on_read=self._progress.transferred,
        )
        response = self._transport.request(
            "PUT",
            f"/upload/{self.session.upload_id}/{index}",
            params={"hash": hash_, "offset": part_range.start},
            content=body,
            headers={"Content-Type": _OCTET_STREAM, "Content-Length": str(part_range.size)},
        )
        response.close()

    def _report_soft_error(self, retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "part upload attempt %d failed: %s; retrying",
            retry_state.attempt_number, exc,
        )
        if exc is not None:
            self._progress.error(exc)

    def _finalize(self) -> int:
        assert self.session is not None
        self.state = UploadState.FINALIZING
        self._progress.finalizing()
        upload_id = self.session.upload_id
        self._transport.put(
            f"/upload/{upload_id}",
            PartsRequest(parts=list(self.session.parts)),
            FinishUploadResponse,
        )
        try:
            result = self._transport.request_json(
                "POST",
                self._resource_path,
                None,
                ResourceUploadResponse,
                params={"upload-id": upload_id, "filename": self.filename},
            )
        except NotFoundError as exc:
            raise NotFoundError(f"cannot post resource: {exc.message}", exc.code, exc.info) from exc
        logger.info(
            "uploaded %s resource %s as revision %d (upload %s)",
            self.id, self.name, result.revision, upload_id,
        )
        return result.revision


class ResourceUploader:
    """Creates ``ResourceUpload`` runs with shared settings."""

    def __init__(
        self,
        transport: StoreTransport,
        *,
        min_multipart_size: int = DEFAULT_MIN_MULTIPART_UPLOAD_SIZE,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        retry_delay: float = 0.0,
    ) -> None:
        self._transport = transport
        self.min_multipart_size = min_multipart_size
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay

    def prepare(
        self,
        id: ArtifactId,
        name: str,
        filename: str,
        content: BinaryIO,
        size: int,
        progress: Progress | None = None,
    ) -> ResourceUpload:
        return ResourceUpload(
            self._transport,
            id,
            name,
            filename,
            content,
            size,
            progress,
            min_multipart_size=self.min_multipart_size,
            max_attempts=self.max_attempts,
            retry_delay=self.retry_delay,
        )

    def upload(
        self,
        id: ArtifactId,
        name: str,
        filename: str,
        content: BinaryIO,
        size: int,
        progress: Progress | None = None,
        upload_id: str = "",
    ) -> int:
        """Upload a resource, resuming ``upload_id`` when it is given."""
        return self.prepare(id, name, filename, content, size, progress).run(upload_id)
