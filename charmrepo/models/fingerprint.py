"""Resource fingerprints.

A fingerprint is an algorithm-tagged digest (``sha384:<hex>``).  It is a
separate type from the bare hex SHA-384 strings used for archive and part
integrity so that the resource digest algorithm can change without touching
the archive protocol.
"""

from __future__ import annotations

import hashlib
from typing import BinaryIO

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

DEFAULT_ALGORITHM = "sha384"

_DIGEST_SIZES = {
    "sha384": hashlib.sha384().digest_size,
    "sha256": hashlib.sha256().digest_size,
}


class Fingerprint(BaseModel):
    """Content digest of a resource."""

    model_config = ConfigDict(frozen=True)

    algorithm: str = DEFAULT_ALGORITHM
    digest: bytes

    @field_validator("algorithm")
    @classmethod
    def _known_algorithm(cls, value: str) -> str:
        if value not in _DIGEST_SIZES:
            raise ValueError(f"unsupported fingerprint algorithm {value!r}")
        return value

    @model_validator(mode="after")
    def _check_digest_size(self) -> Fingerprint:
        want = _DIGEST_SIZES[self.algorithm]
        if len(self.digest) != want:
            raise ValueError(
                f"invalid fingerprint: {self.algorithm} digest must be "
                f"{want} bytes, got {len(self.digest)}"
            )
        return self

    @classmethod
    def parse(cls, text: str) -> Fingerprint:
        """Parse ``algorithm:hex`` or a bare hex digest (assumed SHA-384)."""
        algorithm, sep, hexdigest = text.partition(":")
        if not sep:
            algorithm, hexdigest = DEFAULT_ALGORITHM, text
        try:
            digest = bytes.fromhex(hexdigest)
        except ValueError as exc:
            raise ValueError(f"invalid fingerprint {text!r}: {exc}") from exc
        return cls(algorithm=algorithm.lower(), digest=digest)

    @classmethod
    def from_bytes(cls, digest: bytes, algorithm: str = DEFAULT_ALGORITHM) -> Fingerprint:
        return cls(algorithm=algorithm, digest=digest)

    @classmethod
    def generate(
        cls,
        stream: BinaryIO,
        algorithm: str = DEFAULT_ALGORITHM,
        chunk_size: int = 64 * 1024,
    ) -> Fingerprint:
        """Fingerprint everything readable from ``stream``."""
        h = hashlib.new(algorithm)
        while True:
            chunk = stream.read(chunk_size)
            if not chunk:
                break
            h.update(chunk)
        return cls(algorithm=algorithm, digest=h.digest())

    @property
    def hex(self) -> str:
        return self.digest.hex()

    @property
    def tagged(self) -> str:
        return f"{self.algorithm}:{self.hex}"

    def matches(self, hexdigest: str) -> bool:
        """Compare against a bare hex digest of the same algorithm."""
        return self.hex == hexdigest.lower()

    def __str__(self) -> str:
        return self.tagged
