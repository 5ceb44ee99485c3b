"""Content verification — SHA-384 hashing while copying.

Archive and part integrity is expressed as a lowercase hex SHA-384 digest
plus a byte count.  A mismatch in either is reported as possible network
corruption and is never retried at this layer.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any, BinaryIO

from charmrepo.core.errors import HashMismatch, SizeMismatch

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
HASH_HEX_LENGTH = hashlib.sha384().digest_size * 2


def new_hash() -> Any:
    """Return a fresh hash object of the archive integrity algorithm."""
    return hashlib.sha384()


def sha384_hex(data: bytes) -> str:
    """Return the SHA-384 hex digest of raw bytes."""
    return hashlib.sha384(data).hexdigest()


def iter_chunks(src: BinaryIO | Iterable[bytes], chunk_size: int = CHUNK_SIZE) -> Iterator[bytes]:
    """Yield the contents of a readable object or an iterable of chunks."""
    read = getattr(src, "read", None)
    if read is None:
        yield from src  # type: ignore[misc]
        return
    while True:
        chunk = read(chunk_size)
        if not chunk:
            return
        yield chunk


def hash_and_size(src: BinaryIO | Iterable[bytes]) -> tuple[str, int]:
    """Read ``src`` to the end, returning its hex digest and byte count."""
    h = new_hash()
    size = 0
    for chunk in iter_chunks(src):
        h.update(chunk)
        size += len(chunk)
    return h.hexdigest(), size


def check(observed_hash: str, observed_size: int, expected_hash: str, expected_size: int) -> None:
    """Raise ``SizeMismatch`` or ``HashMismatch`` when the values differ."""
    if observed_size != expected_size:
        raise SizeMismatch(
            f"size mismatch; network corruption? "
            f"(expected {expected_size} bytes, got {observed_size})"
        )
    if observed_hash.lower() != expected_hash.lower():
        raise HashMismatch("hash mismatch; network corruption?")


def copy_and_verify(
    src: BinaryIO | Iterable[bytes],
    dst: BinaryIO,
    expected_hash: str,
    expected_size: int = -1,
) -> int:
    """Copy ``src`` into ``dst`` through the hash and verify the result.

    A negative ``expected_size`` means the length is unknown and only the
    hash is checked.  Returns the number of bytes copied.  The check
    happens after the copy, so ``dst`` holds whatever was read even when
    verification fails.
    """
    h = new_hash()
    size = 0
    for chunk in iter_chunks(src):
        h.update(chunk)
        dst.write(chunk)
        size += len(chunk)
    check(h.hexdigest(), size, expected_hash, expected_size if expected_size >= 0 else size)
    return size


def verify_file(path: Path, expected_hash: str, expected_size: int) -> None:
    """Verify the file at ``path``.

    Raises ``OSError`` when the file cannot be read and an
    ``IntegrityError`` subclass when it does not match.
    """
    with open(path, "rb") as f:
        observed_hash, observed_size = hash_and_size(f)
    if observed_size != expected_size:
        logger.debug("size mismatch for %s", path)
    elif observed_hash != expected_hash.lower():
        logger.debug("hash mismatch for %s", path)
    check(observed_hash, observed_size, expected_hash, expected_size)


def is_valid_hash(value: str) -> bool:
    """Report whether ``value`` looks like a hex SHA-384 digest."""
    if len(value) != HASH_HEX_LENGTH:
        return False
    try:
        int(value, 16)
    except ValueError:
        return False
    return True


class SectionReader:
    """Reads the byte range ``[start, end)`` of a seekable binary file.

    ``on_read`` is called with the absolute end offset of the data read so
    far, which is how upload progress is reported.  The file position is
    shared, so two sections of the same file must not be read concurrently.
    """

    def __init__(
        self,
        content: BinaryIO,
        start: int,
        end: int,
        on_read: Any = None,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self._content = content
        self._start = start
        self._end = end
        self._on_read = on_read
        self._chunk_size = chunk_size

    @property
    def size(self) -> int:
        return self._end - self._start

    def __iter__(self) -> Iterator[bytes]:
        pos = self._start
        if self._on_read is not None:
            self._on_read(pos)
        while pos < self._end:
            self._content.seek(pos)
            chunk = self._content.read(min(self._chunk_size, self._end - pos))
            if not chunk:
                return
            pos += len(chunk)
            if self._on_read is not None:
                self._on_read(pos)
            yield chunk
