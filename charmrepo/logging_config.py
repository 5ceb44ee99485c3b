"""Logging setup for the command line.

Library modules only create loggers with ``logging.getLogger(__name__)``;
handlers are installed here, by the CLI, and nowhere else.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler


def configure_logging(level: str = "INFO", *, console: Console | None = None) -> None:
    """Send log records to stderr through a single rich handler.

    Calling it again replaces the handler instead of adding a second one.
    """
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level.upper())

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=False,
        rich_tracebacks=False,
    )
    handler.setLevel(level.upper())
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    root.addHandler(handler)

    # httpx logs every request at INFO.
    logging.getLogger("httpx").setLevel(max(root.level, logging.WARNING))
