"""Main Typer application — imports and registers all CLI commands.

Entry point: ``charmrepo`` (configured via pyproject.toml project.scripts).
"""

from __future__ import annotations

import typer

from charmrepo.cli.commands.fetch import fetch_cmd
from charmrepo.cli.commands.get_resource import get_resource_cmd
from charmrepo.cli.commands.info import info_cmd
from charmrepo.cli.commands.resolve import resolve_cmd
from charmrepo.cli.commands.upload_resource import upload_resource_cmd
from charmrepo.cli.commands.whoami import whoami_cmd
from charmrepo.config import settings
from charmrepo.logging_config import configure_logging

app = typer.Typer(
    name="charmrepo",
    help="Fetch, resolve and upload charms, bundles and resources.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="fetch", help="Download an archive into the cache.")(fetch_cmd)
app.command(name="resolve", help="Resolve a reference to a canonical id.")(resolve_cmd)
app.command(name="upload-resource", help="Upload a resource file.")(upload_resource_cmd)
app.command(name="get-resource", help="Download a resource.")(get_resource_cmd)
app.command(name="info", help="Show store metadata.")(info_cmd)
app.command(name="whoami", help="Show the authenticated user.")(whoami_cmd)


@app.callback()
def main_callback(
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Log level (default: CHARMREPO_LOG_LEVEL or INFO).",
    ),
) -> None:
    """charmrepo: charm store client with a local archive cache."""
    configure_logging(log_level or settings.log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
