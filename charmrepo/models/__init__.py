"""charmrepo data models — Pydantic v2, frozen where they are values.

``charmrepo.models.entity`` is not re-exported here because it reads files
through ``charmrepo.core``.
"""

from charmrepo.models.archive import ArchiveMetadata
from charmrepo.models.fingerprint import Fingerprint
from charmrepo.models.ids import ArtifactId, EntityKind, as_id
from charmrepo.models.params import (
    CHANNEL_STABILITY,
    Channel,
    ErrorCode,
    Part,
    ResourceMeta,
    UploadSession,
    sort_channels,
)

__all__ = [
    # ids
    "ArtifactId",
    "EntityKind",
    "as_id",
    # archives, fingerprints and resources
    "ArchiveMetadata",
    "Fingerprint",
    "ResourceMeta",
    # wire protocol
    "CHANNEL_STABILITY",
    "Channel",
    "ErrorCode",
    "Part",
    "UploadSession",
    "sort_channels",
]
