"""Shared test fixtures for charmrepo."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path

import httpx
import pytest
import yaml

from charmrepo.core.client import StoreClient
from charmrepo.core.transport import StoreTransport
from charmrepo.repo.charmstore import CharmStore
from fakestore import STORE_URL, FakeStore, RecordingProgress


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def fake_store() -> FakeStore:
    """Provide an empty in-memory charm store."""
    return FakeStore()


@pytest.fixture
def transport(fake_store: FakeStore) -> Iterator[StoreTransport]:
    """Provide a StoreTransport whose requests are answered by the fake store."""
    t = StoreTransport(STORE_URL, transport=httpx.MockTransport(fake_store.handle))
    yield t
    t.close()


@pytest.fixture
def client(transport: StoreTransport) -> StoreClient:
    """Provide a StoreClient with a 50 byte multipart threshold."""
    return StoreClient(transport, min_multipart_upload_size=50, upload_part_attempts=10)


@pytest.fixture
def cache_dir(tmp_dir: Path) -> Path:
    return tmp_dir / "cache"


@pytest.fixture
def store(client: StoreClient, cache_dir: Path) -> CharmStore:
    """Provide a CharmStore repository backed by the fake store."""
    return CharmStore(client, cache_dir)


@pytest.fixture
def progress() -> RecordingProgress:
    return RecordingProgress()


# ---------------------------------------------------------------------------
# Local entity factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_charm_dir(tmp_dir: Path) -> Callable[..., Path]:
    """Factory fixture: write a charm directory and return its path."""

    def _factory(
        path: Path | str = "charm",
        name: str = "mysql",
        series: list[str] | str | None = None,
        revision: int | None = None,
        files: dict[str, str] | None = None,
    ) -> Path:
        root = tmp_dir / path
        root.mkdir(parents=True, exist_ok=True)
        metadata = {"name": name, "summary": f"{name} charm"}
        metadata["series"] = ["trusty", "xenial"] if series is None else series
        (root / "metadata.yaml").write_text(yaml.safe_dump(metadata))
        if revision is not None:
            (root / "revision").write_text(f"{revision}\n")
        for rel, text in (files or {}).items():
            target = root / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(text)
        return root

    return _factory


@pytest.fixture
def make_bundle_dir(tmp_dir: Path) -> Callable[..., Path]:
    """Factory fixture: write a bundle directory and return its path."""

    def _factory(path: Path | str = "wiki", readme: str | None = "Wiki bundle.\n") -> Path:
        root = tmp_dir / path
        root.mkdir(parents=True, exist_ok=True)
        data = {"applications": {"wiki": {"charm": "cs:trusty/mediawiki", "num_units": 1}}}
        (root / "bundle.yaml").write_text(yaml.safe_dump(data))
        if readme is not None:
            (root / "README.md").write_text(readme)
        return root

    return _factory
