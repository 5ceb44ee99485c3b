"""charmrepo CLI — Typer-based command-line interface.

Provides the ``charmrepo`` command with subcommands for fetching archives
into the cache, resolving references, uploading and downloading resources,
querying metadata and showing the authenticated user.

All output uses Rich for formatted terminal display.
"""
