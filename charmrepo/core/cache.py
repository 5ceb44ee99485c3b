"""Local archive cache keyed by canonical charm or bundle id.

Storage layout: ``{cache_dir}/{quoted fully-qualified id}.{charm|bundle}``.
There is no index: a file's existence plus its content hash is the only
metadata.  Files are never deleted here; eviction is left to the owner of
the directory.

Concurrent requests for the same id may both download; each writes its own
temporary file in the cache directory and atomically replaces the target,
so the last writer wins and readers never see a partial file.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path

from charmrepo.core.errors import CacheUnavailable, IntegrityError, NotFoundError
from charmrepo.core.fetcher import ArchiveFetcher
from charmrepo.core.transport import ResponseStream
from charmrepo.core.verifier import copy_and_verify, verify_file
from charmrepo.models.ids import ArtifactId

logger = logging.getLogger(__name__)

_TEMP_PREFIX = "charm-download"


class ArchiveCache:
    """Downloads archives into ``cache_dir`` and reuses verified copies.

    Parameters
    ----------
    cache_dir:
        Directory holding cached archives; created on first use.
    fetcher:
        Fetcher used to download archives and learn their expected
        hash and size.
    """

    def __init__(self, cache_dir: Path, fetcher: ArchiveFetcher) -> None:
        self._dir = Path(cache_dir)
        self._fetcher = fetcher

    @property
    def cache_dir(self) -> Path:
        return self._dir

    def entry_path(self, id: ArtifactId) -> Path:
        """Return the cache path for a fully qualified id."""
        return self._dir / f"{id.quote()}.{id.kind.value}"

    def archive_path(self, id: ArtifactId) -> Path:
        """Return a local path to a verified copy of the archive for ``id``.

        A cached file whose hash and size still match what the store
        declares is returned untouched.  Otherwise the archive is streamed
        into a temporary file, verified, and moved into place.
        """
        try:
            self._dir.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise CacheUnavailable(f"cannot create the cache directory {self._dir}: {exc}") from exc

        kind = id.kind.value
        try:
            archive = self._fetcher.get_archive(id)
        except NotFoundError as exc:
            raise NotFoundError(
                f"cannot retrieve {str(id)!r}: {kind} not found", exc.code, exc.info
            ) from exc

        with archive:
            path = self.entry_path(archive.id)
            if self._is_current(path, archive.hash, archive.size):
                logger.debug("cache hit for %s at %s", archive.id, path)
                return path
            logger.debug("cache miss for %s; downloading %d bytes", archive.id, archive.size)
            self._store(path, archive.body, archive.hash, archive.size)
        return path

    @staticmethod
    def _is_current(path: Path, expected_hash: str, expected_size: int) -> bool:
        try:
            verify_file(path, expected_hash, expected_size)
        except (OSError, IntegrityError):
            return False
        return True

    def _store(
        self, path: Path, body: ResponseStream, expected_hash: str, expected_size: int
    ) -> None:
        try:
            tmp = tempfile.NamedTemporaryFile(dir=self._dir, prefix=_TEMP_PREFIX, delete=False)
        except OSError as exc:
            raise CacheUnavailable(f"cannot make temporary file: {exc}") from exc
        tmp_path = Path(tmp.name)
        try:
            with tmp:
                copy_and_verify(body, tmp, expected_hash, expected_size)
            # The file must be closed before the rename for Windows.
            try:
                os.replace(tmp_path, path)
            except OSError as exc:
                raise CacheUnavailable(f"cannot move the entity archive: {exc}") from exc
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        logger.info("cached %s (%d bytes)", path.name, expected_size)

