"""Transfer progress display.

``format_byte_count`` renders sizes the way the CLI prints them, and
``TransferMonitor`` is an upload progress sink that drives a rich progress
bar.
"""

from __future__ import annotations

import logging
from datetime import datetime

from rich.console import Console
from rich.progress import (
    BarColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeRemainingColumn,
    TransferSpeedColumn,
)

logger = logging.getLogger(__name__)

KIB = 1024
MIB = 1024 * KIB
GIB = 1024 * MIB


def format_byte_count(n: int) -> str:
    """Format a byte count with a unit suited to its size.

    Examples
    --------
    >>> format_byte_count(2048)
    '2KiB'
    >>> format_byte_count(15 * 1024 * 1024)
    '15.0MiB'
    """
    if n < 10 * MIB:
        return f"{n / KIB:.0f}KiB"
    if n < 10 * GIB:
        return f"{n / MIB:.1f}MiB"
    return f"{n / GIB:.1f}GiB"


class TransferMonitor:
    """Upload progress sink that renders a rich progress bar.

    Parameters
    ----------
    total:
        Size of the transfer in bytes.
    description:
        Label shown next to the bar.
    console:
        Console to draw on; stderr by default.
    """

    def __init__(self, total: int, description: str = "uploading", console: Console | None = None) -> None:
        self.total = total
        self.description = description
        self.upload_id = ""
        self.expires: datetime | None = None
        self.current = 0
        self.errors: list[Exception] = []
        self.finalized = False
        self._progress = Progress(
            TextColumn("[bold blue]{task.description}"),
            BarColumn(),
            TextColumn("{task.fields[done]}/{task.fields[size]}"),
            TransferSpeedColumn(),
            TimeRemainingColumn(),
            console=console or Console(stderr=True),
            transient=False,
        )
        self._task: TaskID | None = None

    # Progress protocol

    def start(self, upload_id: str, expires: datetime | None) -> None:
        self.upload_id = upload_id
        self.expires = expires
        self._progress.start()
        self._task = self._progress.add_task(
            self.description,
            total=self.total,
            done=format_byte_count(0),
            size=format_byte_count(self.total),
        )
        if upload_id:
            self._progress.console.print(f"[dim]upload id {upload_id}[/dim]")

    def transferred(self, total: int) -> None:
        self.current = total
        if self._task is not None:
            self._progress.update(self._task, completed=total, done=format_byte_count(total))

    def error(self, err: Exception) -> None:
        self.errors.append(err)
        self._progress.console.print(f"[yellow]retrying after error:[/yellow] {err}")

    def finalizing(self) -> None:
        self.finalized = True
        if self._task is not None:
            self._progress.update(self._task, description="finalizing")

    def stop(self) -> None:
        """Remove the live display; safe to call more than once."""
        self._progress.stop()

    def __enter__(self) -> TransferMonitor:
        return self

    def __exit__(self, *_: object) -> None:
        self.stop()
