"""Helpers shared by the CLI commands."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import typer
from pydantic import ValidationError
from rich.console import Console

from charmrepo.config import Settings
from charmrepo.core.client import StoreClient
from charmrepo.core.errors import CharmRepoError
from charmrepo.repo.charmstore import CharmStore

console = Console()
err_console = Console(stderr=True)


def load_settings(**overrides: Any) -> Settings:
    """Settings from the environment, with non-``None`` overrides applied."""
    return Settings(**{k: v for k, v in overrides.items() if v is not None})


def build_client(settings: Settings) -> StoreClient:
    return StoreClient.from_settings(settings)


def build_store(settings: Settings) -> CharmStore:
    return CharmStore(build_client(settings), settings.cache_dir)


@contextmanager
def reporting_errors() -> Iterator[None]:
    """Turn library errors into a red message and exit status 1."""
    try:
        yield
    except (CharmRepoError, ValidationError, ValueError, OSError) as exc:
        err_console.print(f"[bold red]Error:[/bold red] {exc}")
        raise typer.Exit(code=1) from exc
