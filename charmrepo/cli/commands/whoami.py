"""``charmrepo whoami`` — show the user the store authenticates."""

from __future__ import annotations

from rich.table import Table

from charmrepo.cli.common import build_client, console, load_settings, reporting_errors


def whoami_cmd() -> None:
    """Show the authenticated user and their groups."""
    with reporting_errors():
        with build_client(load_settings()) as client:
            who = client.whoami()

    table = Table(title="Charm store identity")
    table.add_column("User", style="cyan")
    table.add_column("Groups")
    table.add_row(who.user or "[dim]anonymous[/dim]", ", ".join(who.groups) or "[dim]none[/dim]")
    console.print(table)
