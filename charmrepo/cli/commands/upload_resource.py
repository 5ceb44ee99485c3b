"""``charmrepo upload-resource ID NAME FILE`` — upload a resource file.

Large files are uploaded in parts and can be resumed after a failure with
``--resume UPLOAD_ID``; the upload id is printed when the upload starts.
"""

from __future__ import annotations

import os
from pathlib import Path

import typer

from charmrepo.cli.common import build_client, console, load_settings, reporting_errors
from charmrepo.models.ids import ArtifactId
from charmrepo.monitor.transfer import TransferMonitor, format_byte_count


def upload_resource_cmd(
    id: str = typer.Argument(..., help="Charm id the resource belongs to."),
    name: str = typer.Argument(..., help="Resource name."),
    file: Path = typer.Argument(..., exists=True, dir_okay=False, help="File to upload."),
    resume: str = typer.Option(
        "",
        "--resume",
        "-r",
        help="Id of an interrupted upload to continue.",
    ),
) -> None:
    """Upload a file as a new revision of a charm resource."""
    with reporting_errors():
        charm_id = ArtifactId.parse(id)
        client = build_client(load_settings())
        with client, open(file, "rb") as f:
            size = os.fstat(f.fileno()).st_size
            with TransferMonitor(size, description=name) as monitor:
                if resume:
                    revision = client.resume_upload_resource(
                        resume, charm_id, name, str(file), f, size, monitor
                    )
                else:
                    revision = client.upload_resource(charm_id, name, str(file), f, size, monitor)
    console.print(
        f"[bold green]Uploaded[/bold green] {name} ({format_byte_count(size)}) "
        f"as revision [bold]{revision}[/bold]"
    )
