"""``charmrepo resolve REF`` — resolve a reference to a canonical id."""

from __future__ import annotations

import typer
from rich.panel import Panel

from charmrepo.cli.common import console, load_settings, reporting_errors
from charmrepo.models.ids import ArtifactId
from charmrepo.repo.charmstore import CharmStore
from charmrepo.repo.infer import infer_repository


def resolve_cmd(
    ref: str = typer.Argument(..., help="Charm or bundle reference, or a path to one."),
    local_repo: str = typer.Option(
        "",
        "--local-repo",
        "-l",
        help="Local repository directory for local: references.",
    ),
    channel: str = typer.Option(
        None,
        "--channel",
        "-c",
        help="Channel to resolve in.",
    ),
) -> None:
    """Resolve the series and revision of a reference."""
    with reporting_errors():
        settings = load_settings(channel=channel)
        repo = infer_repository(ref, settings, local_repo)
        try:
            try:
                target = ArtifactId.parse(ref)
            except ValueError:
                resolved = repo.resolve()  # a path to a single charm or bundle
            else:
                resolved = repo.resolve(target)
        finally:
            if isinstance(repo, CharmStore):
                repo.close()

    series = ", ".join(resolved.supported_series) or "[dim]unknown[/dim]"
    console.print(
        Panel(
            "\n".join([
                f"[bold]Id:[/bold]               {resolved.id}",
                f"[bold]Supported series:[/bold] {series}",
            ]),
            title="[bold]Resolved[/bold]",
            border_style="green",
        )
    )
