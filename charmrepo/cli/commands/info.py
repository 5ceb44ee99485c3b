"""``charmrepo info ID`` — show store metadata for a charm or bundle."""

from __future__ import annotations

import json

import typer

from charmrepo.cli.common import build_client, console, load_settings, reporting_errors
from charmrepo.core.query import MetaQuery

DEFAULT_INCLUDES = ["id", "supported-series", "archive-size", "published"]


def info_cmd(
    id: str = typer.Argument(..., help="Charm or bundle id."),
    include: list[str] = typer.Option(
        None,
        "--include",
        "-i",
        help="Metadata key to show; repeat for more (default: a summary set).",
    ),
) -> None:
    """Print selected metadata of a charm or bundle as JSON."""
    with reporting_errors():
        query = MetaQuery().want(*(include or DEFAULT_INCLUDES))
        with build_client(load_settings()) as client:
            result = client.meta(id, query)
    console.print(f"[bold]{result.id}[/bold]")
    console.print_json(json.dumps(result.values, default=str))
