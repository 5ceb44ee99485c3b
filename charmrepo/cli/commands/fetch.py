"""``charmrepo fetch ID`` — download an archive into the local cache.

Prints the path of the verified cached archive.  An archive already in the
cache with the hash and size the store declares is not downloaded again.
"""

from __future__ import annotations

import typer

from charmrepo.cli.common import build_store, console, load_settings, reporting_errors
from charmrepo.models.ids import ArtifactId


def fetch_cmd(
    id: str = typer.Argument(..., help="Charm or bundle id, e.g. cs:trusty/wordpress-3."),
    cache_dir: str = typer.Option(
        None,
        "--cache-dir",
        "-d",
        help="Archive cache directory (default: CHARMREPO_CACHE_DIR).",
    ),
    channel: str = typer.Option(
        None,
        "--channel",
        "-c",
        help="Channel to fetch from.",
    ),
) -> None:
    """Download a charm or bundle archive into the cache and print its path."""
    with reporting_errors():
        settings = load_settings(cache_dir=cache_dir, channel=channel)
        store = build_store(settings)
        try:
            path = store.archive_path(ArtifactId.parse(id))
        finally:
            store.close()
    console.print(str(path))
