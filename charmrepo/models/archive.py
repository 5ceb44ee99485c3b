"""Archive metadata declared by the store."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, field_validator

from charmrepo.models.ids import ArtifactId

_HASH_HEX_LENGTH = 96


class ArchiveMetadata(BaseModel):
    """What the store declares about an archive it is about to send."""

    model_config = ConfigDict(frozen=True)

    id: ArtifactId
    hash: str  # lowercase hex SHA-384
    size: int

    @field_validator("id")
    @classmethod
    def _fully_qualified(cls, value: ArtifactId) -> ArtifactId:
        if not value.is_fully_qualified:
            raise ValueError(f"archive id {value} is not fully qualified")
        return value

    @field_validator("hash")
    @classmethod
    def _hex_digest(cls, value: str) -> str:
        value = value.lower()
        if len(value) != _HASH_HEX_LENGTH or any(c not in "0123456789abcdef" for c in value):
            raise ValueError(f"invalid SHA-384 hash {value!r}")
        return value

    @field_validator("size")
    @classmethod
    def _known_size(cls, value: int) -> int:
        if value < 0:
            raise ValueError("archive size must be known")
        return value

