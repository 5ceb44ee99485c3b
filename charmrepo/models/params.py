"""Wire-level request and response models for the charm store API.

Field aliases match the JSON keys used by the store (``UploadId``,
``MinPartSize``, ...).  All models are frozen; the upload session in
particular is advanced by building new snapshots, see
``UploadSession.with_completed_part``.
"""

from __future__ import annotations

import base64
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from charmrepo.models.ids import ArtifactId

# Response headers.
ENTITY_ID_HEADER = "Entity-Id"
CONTENT_HASH_HEADER = "Content-Sha384"
JUJU_METADATA_HEADER = "Juju-Metadata"


class ErrorCode(str, Enum):
    """Error codes the store attaches to structured error responses."""

    NOT_FOUND = "not found"
    METADATA_NOT_FOUND = "metadata not found"
    FORBIDDEN = "forbidden"
    BAD_REQUEST = "bad request"
    DUPLICATE_UPLOAD = "duplicate upload"
    MULTIPLE_ERRORS = "multiple errors"
    UNAUTHORIZED = "unauthorized"
    METHOD_NOT_ALLOWED = "method not allowed"
    SERVICE_UNAVAILABLE = "service unavailable"
    ENTITY_ID_NOT_ALLOWED = "charm or bundle id not allowed"
    INVALID_ENTITY = "invalid entity"
    READ_ONLY = "read only"
    TERMS_NOT_AGREED = "term agreement required"

    @classmethod
    def lookup(cls, code: str) -> ErrorCode | str:
        """Return the matching member, or the raw code if it is unknown."""
        try:
            return cls(code)
        except ValueError:
            return code


class _WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class ErrorResponse(_WireModel):
    """JSON body of a non-200 store response."""

    message: str = Field("", alias="Message")
    code: str = Field("", alias="Code")
    info: dict[str, Any] | None = Field(None, alias="Info")


# ---------------------------------------------------------------------------
# Channels
# ---------------------------------------------------------------------------

class Channel(str, Enum):
    """Publication channels, most stable first."""

    STABLE = "stable"
    CANDIDATE = "candidate"
    BETA = "beta"
    EDGE = "edge"
    UNPUBLISHED = "unpublished"


CHANNEL_STABILITY: tuple[Channel, ...] = (
    Channel.STABLE,
    Channel.CANDIDATE,
    Channel.BETA,
    Channel.EDGE,
    Channel.UNPUBLISHED,
)


def sort_channels(channels: list[str]) -> list[str]:
    """Order channel names from most to least stable.

    Known channels follow ``CHANNEL_STABILITY``; unknown names come after
    them in alphabetical order.
    """
    rank = {ch.value: i for i, ch in enumerate(CHANNEL_STABILITY)}
    known = len(rank)
    return sorted(channels, key=lambda name: (rank.get(name, known), name))


class PublishRequest(_WireModel):
    channels: list[Channel] = Field(alias="Channels")
    resources: dict[str, int] = Field(default_factory=dict, alias="Resources")


# ---------------------------------------------------------------------------
# Uploads
# ---------------------------------------------------------------------------

class Part(_WireModel):
    """One contiguous byte range of a multipart upload."""

    offset: int = Field(0, alias="Offset")
    size: int = Field(0, alias="Size")
    complete: bool = Field(False, alias="Complete")
    hash: str = Field("", alias="Hash")

    def valid(self) -> bool:
        """Report whether the part has been uploaded."""
        return self.complete


class UploadSession(_WireModel):
    """Server-held state of a resumable multipart upload.

    Snapshots are immutable: ``with_completed_part`` returns the session
    that results from finishing one more part.  A session must only be
    driven by one caller at a time; resuming the same upload id from two
    places corrupts the part bookkeeping on the server.
    """

    upload_id: str = Field(alias="UploadId")
    expires: datetime | None = Field(None, alias="Expires")
    min_part_size: int = Field(alias="MinPartSize")
    max_part_size: int = Field(alias="MaxPartSize")
    max_parts: int = Field(alias="MaxParts")
    parts: tuple[Part, ...] = Field((), alias="Parts")

    @field_validator("parts", mode="before")
    @classmethod
    def _unwrap_parts(cls, value: Any) -> Any:
        # Older servers nest the list as {"Parts": {"Parts": [...]}}.
        if isinstance(value, dict):
            value = value.get("Parts") or []
        return () if value is None else value

    @property
    def max_size(self) -> int:
        """Largest payload the session can accept."""
        return self.max_part_size * self.max_parts

    def part(self, index: int) -> Part | None:
        if 0 <= index < len(self.parts):
            return self.parts[index]
        return None

    def with_completed_part(self, index: int, part: Part) -> UploadSession:
        """Return a new snapshot with ``part`` recorded at ``index``.

        Parts are recorded in index order, so ``index`` may be at most
        one past the current end of the list.
        """
        parts = list(self.parts)
        if index < len(parts):
            parts[index] = part
        elif index == len(parts):
            parts.append(part)
        else:
            raise IndexError(
                f"part {index} recorded before part {len(parts)}"
            )
        return self.model_copy(update={"parts": tuple(parts)})


class PartsRequest(_WireModel):
    """Body of the finalize request."""

    parts: list[Part] = Field(alias="Parts")


class FinishUploadResponse(_WireModel):
    hash: str = Field("", alias="Hash")


class ArchiveUploadResponse(_WireModel):
    id: ArtifactId = Field(alias="Id")
    promulgated_id: ArtifactId | None = Field(None, alias="PromulgatedId")

    @field_validator("id", "promulgated_id", mode="before")
    @classmethod
    def _parse_id(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ArtifactId.parse(value) if value else None
        return value


class ResourceUploadResponse(_WireModel):
    revision: int = Field(alias="Revision")


# ---------------------------------------------------------------------------
# Resources
# ---------------------------------------------------------------------------

class ResourceMeta(_WireModel):
    """Metadata of one resource revision as reported by the store.

    ``fingerprint`` is the base64 encoding of the raw digest bytes.
    """

    name: str = Field(alias="Name")
    type: str = Field("file", alias="Type")
    path: str = Field("", alias="Path")
    description: str = Field("", alias="Description")
    origin: str = Field("store", alias="Origin")
    revision: int = Field(-1, alias="Revision")
    fingerprint: str = Field("", alias="Fingerprint")
    size: int = Field(0, alias="Size")

    @property
    def fingerprint_bytes(self) -> bytes:
        return base64.b64decode(self.fingerprint) if self.fingerprint else b""


class DockerResourceUploadRequest(_WireModel):
    digest: str = Field(alias="Digest")
    image_name: str = Field("", alias="ImageName")


class DockerInfoResponse(_WireModel):
    image_name: str = Field("", alias="ImageName")
    username: str = Field("", alias="Username")
    password: str = Field("", alias="Password")


# ---------------------------------------------------------------------------
# Miscellaneous
# ---------------------------------------------------------------------------

class WhoAmIResponse(_WireModel):
    user: str = Field("", alias="User")
    groups: list[str] = Field(default_factory=list, alias="Groups")


class LogLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class LogType(str, Enum):
    INGESTION = "ingestion"
    LEGACY_STATISTICS = "legacyStatistics"


class LogEntry(_WireModel):
    data: Any = Field(alias="Data")
    level: LogLevel = Field(alias="Level")
    type: LogType = Field(alias="Type")
    urls: list[str] = Field(default_factory=list, alias="URLs")


class StatsUpdateEntry(_WireModel):
    timestamp: datetime = Field(alias="Timestamp")
    charm_reference: str = Field(alias="CharmReference")


class StatsUpdateRequest(_WireModel):
    entries: list[StatsUpdateEntry] = Field(alias="Entries")
