"""Upload progress contract.

An upload notifies its progress sink, in order:

1. ``start(upload_id, expires)`` once; ``upload_id`` is empty and
   ``expires`` is ``None`` for single-part uploads;
2. ``transferred(total)`` any number of times, with the absolute number of
   bytes sent so far.  It never decreases while parts succeed, but drops
   back to the start of a part when that part is retried;
3. ``error(err)`` once for every soft failure, before the retry;
4. ``finalizing()`` exactly once, for multipart uploads only, before the
   parts are stitched together into the final resource.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol, runtime_checkable


@runtime_checkable
class Progress(Protocol):
    """Receives upload progress notifications."""

    def start(self, upload_id: str, expires: datetime | None) -> None: ...

    def transferred(self, total: int) -> None: ...

    def error(self, err: Exception) -> None: ...

    def finalizing(self) -> None: ...


class NoProgress:
    """Progress sink that ignores everything; the default."""

    def start(self, upload_id: str, expires: datetime | None) -> None:
        pass

    def transferred(self, total: int) -> None:
        pass

    def error(self, err: Exception) -> None:
        pass

    def finalizing(self) -> None:
        pass
