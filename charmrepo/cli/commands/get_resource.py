"""``charmrepo get-resource ID NAME`` — download a resource.

The downloaded bytes are checked against the SHA-384 hash the store
declares; the output file is removed when they do not match.
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import BinaryIO

import typer

from charmrepo.cli.common import build_store, err_console, load_settings, reporting_errors
from charmrepo.core.fetcher import ResourceData
from charmrepo.core.verifier import copy_and_verify
from charmrepo.models.ids import ArtifactId
from charmrepo.monitor.transfer import format_byte_count


def _copy_verified(data: ResourceData, dst: BinaryIO) -> int:
    size = copy_and_verify(data.body, dst, data.hash, data.size)
    dst.flush()
    return size


def get_resource_cmd(
    id: str = typer.Argument(..., help="Charm id the resource belongs to."),
    name: str = typer.Argument(..., help="Resource name."),
    revision: int = typer.Option(
        -1,
        "--revision",
        help="Resource revision (default: latest).",
    ),
    output: Path = typer.Option(
        None,
        "--output",
        "-o",
        help="File to write (default: standard output).",
    ),
) -> None:
    """Download a charm resource and verify its hash."""
    with reporting_errors():
        store = build_store(load_settings())
        try:
            with store.get_resource(ArtifactId.parse(id), name, revision) as data:
                if output is None:
                    size = _copy_verified(data, sys.stdout.buffer)
                else:
                    try:
                        with open(output, "wb") as dst:
                            size = _copy_verified(data, dst)
                    except BaseException:
                        output.unlink(missing_ok=True)
                        raise
        finally:
            store.close()
    if output is not None:
        err_console.print(f"[green]Wrote[/green] {output} ({format_byte_count(size)})")
