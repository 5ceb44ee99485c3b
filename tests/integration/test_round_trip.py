"""End-to-end integration tests — upload, publish, resolve and fetch.

These tests exercise the StoreClient, ResourceUploader, ArchiveCache,
CharmStore and the local repositories working together against the
in-memory store.
"""

from __future__ import annotations

import io
from collections.abc import Callable
from pathlib import Path

import pytest

from charmrepo.core.client import StoreClient
from charmrepo.core.errors import UploadError
from charmrepo.core.query import MetaQuery
from charmrepo.core.verifier import sha384_hex
from charmrepo.models.entity import LocalEntity
from charmrepo.models.ids import ArtifactId
from charmrepo.repo.charmstore import CharmStore
from charmrepo.repo.local import LocalRepository
from fakestore import FakeStore, RecordingProgress


class TestCharmRoundTrip:
    """A charm pushed from disk comes back through the cache unchanged."""

    def test_local_charm_to_store_and_back(
        self,
        client: StoreClient,
        store: CharmStore,
        make_charm_dir: Callable[..., Path],
    ):
        local = LocalEntity.read(make_charm_dir(name="mysql", revision=7, files={"hooks/install": "#!/bin/sh\n"}))
        uploaded = client.upload_charm("cs:~bob/trusty/mysql", local)
        assert uploaded == ArtifactId.parse("cs:~bob/trusty/mysql-0")

        resolved = store.resolve("cs:~bob/mysql")
        assert resolved.id == uploaded
        assert resolved.supported_series == ["trusty", "xenial"]

        fetched = store.get(resolved.id)
        assert fetched.name == "mysql"
        assert fetched.revision == 7
        assert fetched.supported_series == ["trusty", "xenial"]

        _, local_hash, _ = local.open_archive()
        assert sha384_hex(store.archive_path(resolved.id).read_bytes()) == local_hash

    def test_local_repository_to_store(
        self,
        tmp_dir: Path,
        client: StoreClient,
        store: CharmStore,
        make_charm_dir: Callable[..., Path],
        make_bundle_dir: Callable[..., Path],
    ):
        make_charm_dir("repo/xenial/mediawiki", name="mediawiki", series=["xenial"], revision=3)
        make_bundle_dir("repo/bundle/wiki")
        repo = LocalRepository(tmp_dir / "repo")

        charm_id = repo.resolve("local:xenial/mediawiki").id
        client.upload_charm_with_revision(
            ArtifactId(user="bob", series="xenial", name="mediawiki", revision=charm_id.revision),
            repo.get(charm_id),
            promulgated_revision=-1,
        )
        bundle = repo.get_bundle("local:bundle/wiki")
        bundle_id = client.upload_bundle("cs:~bob/bundle/wiki", bundle)

        assert store.get("cs:~bob/xenial/mediawiki-3").name == "mediawiki"
        fetched = store.get_bundle(bundle_id)
        assert fetched.metadata == bundle.metadata
        assert fetched.readme == bundle.readme

    def test_cached_archive_survives_a_second_fetch(
        self, client: StoreClient, store: CharmStore, fake_store: FakeStore, make_charm_dir
    ):
        uploaded = client.upload_charm("cs:~bob/trusty/mysql", LocalEntity.read(make_charm_dir()))
        first = store.archive_path(uploaded)
        second = store.with_test_mode().archive_path(uploaded)
        assert first == second
        assert fake_store.downloads == {str(uploaded): 1}


class TestResourceRoundTrip:
    """Resources uploaded in parts are published and read back intact."""

    PAYLOAD = bytes(i % 251 for i in range(300))

    def test_multipart_upload_publish_and_download(
        self,
        client: StoreClient,
        store: CharmStore,
        fake_store: FakeStore,
        progress: RecordingProgress,
        make_charm_dir: Callable[..., Path],
    ):
        charm_id = client.upload_charm("cs:~bob/trusty/mysql", LocalEntity.read(make_charm_dir()))
        revision = client.upload_resource(
            charm_id, "data", "data.bin", io.BytesIO(self.PAYLOAD), len(self.PAYLOAD), progress
        )
        assert progress.kinds()[0] == "start"
        assert progress.kinds()[-1] == "finalizing"
        assert progress.events[0][1] != ""

        store.publish(charm_id, ["stable", "edge"], {"data": revision})
        published = client.meta(charm_id, MetaQuery().want("published"))
        channels = [info["Channel"] for info in published.values["published"]["Info"]]
        assert channels == ["stable", "edge"]

        [result] = store.list_resources([charm_id])
        [meta] = result.resources
        assert (meta.name, meta.revision, meta.size) == ("data", revision, len(self.PAYLOAD))

        with store.get_resource(charm_id, "data", revision) as data:
            assert data.read() == self.PAYLOAD
            assert data.fingerprint.digest.hex() == sha384_hex(self.PAYLOAD)

    def test_interrupted_upload_is_resumed(
        self, client: StoreClient, fake_store: FakeStore, progress: RecordingProgress
    ):
        charm_id = ArtifactId.parse("cs:~bob/trusty/mysql")
        # Outlasts the ten attempts of the first upload.
        fake_store.fail_part(1, times=15)
        with pytest.raises(UploadError, match="too many attempts"):
            client.upload_resource(
                charm_id, "data", "data.bin", io.BytesIO(self.PAYLOAD), len(self.PAYLOAD), progress
            )
        assert len(progress.errors()) == 10
        upload_id = progress.events[0][1]
        assert upload_id in fake_store.uploads

        resumed = RecordingProgress()
        revision = client.resume_upload_resource(
            upload_id, charm_id, "data", "data.bin", io.BytesIO(self.PAYLOAD), len(self.PAYLOAD), resumed
        )
        assert revision == 0
        assert fake_store.resource_data(str(charm_id), "data") == self.PAYLOAD
        assert len(resumed.errors()) == 5
