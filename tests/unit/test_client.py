"""Unit tests for StoreClient — archives, metadata, resources and accounts."""

from __future__ import annotations

import io
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path

import pytest

from charmrepo.config import Settings
from charmrepo.core.client import StoreClient
from charmrepo.core.errors import NotFoundError
from charmrepo.core.query import MetaQuery
from charmrepo.models.entity import LocalEntity
from charmrepo.models.ids import ArtifactId
from charmrepo.models.params import (
    Channel,
    LogLevel,
    LogType,
    StatsUpdateEntry,
    StatsUpdateRequest,
)
from fakestore import FakeStore, charm_archive, sha384

WORDPRESS = "cs:~bob/trusty/wordpress"


@pytest.fixture
def wordpress(fake_store: FakeStore):
    return fake_store.add_entity("cs:trusty/wordpress-3", charm_archive("wordpress", revision=3))


# ---------------------------------------------------------------------------
# Test: configuration
# ---------------------------------------------------------------------------


class TestConfiguration:
    """Client settings and derived clients."""

    def test_from_settings(self, tmp_dir: Path):
        settings = Settings(
            store_url="https://store.example/cs/",
            channel="beta",
            stats_disabled=True,
            min_multipart_upload_size=1234,
            cache_dir=tmp_dir,
        )
        with StoreClient.from_settings(settings) as client:
            assert client.server_url == "https://store.example/cs"
            assert client.channel == "beta"
            assert client.stats_disabled
            assert client.min_multipart_upload_size == 1234

    def test_with_channel(self, client: StoreClient, fake_store: FakeStore, wordpress):
        edge = client.with_channel(Channel.EDGE)
        assert edge.channel == "edge"
        assert client.channel == ""
        edge.meta("cs:trusty/wordpress", MetaQuery().want("id"))
        assert fake_store.calls[-1].param("channel") == "edge"

    def test_disable_stats(self, client: StoreClient, fake_store: FakeStore, wordpress):
        client.disable_stats()
        client.get_archive("cs:trusty/wordpress").close()
        assert fake_store.calls[-1].param("stats") == "0"
        assert fake_store.downloads == {}

    def test_set_http_header(self, client: StoreClient, fake_store: FakeStore):
        client.set_http_header([("Juju-Metadata", "env=prod")])
        client.whoami()
        assert fake_store.calls[-1].headers["Juju-Metadata"] == "env=prod"

    def test_set_min_multipart_upload_size(self, client: StoreClient):
        client.set_min_multipart_upload_size(1)
        assert client.min_multipart_upload_size == 1


# ---------------------------------------------------------------------------
# Test: archives
# ---------------------------------------------------------------------------


class TestArchives:
    """Charms and bundles are uploaded as single zip archives."""

    def test_get_archive_counts_download(self, client: StoreClient, fake_store: FakeStore, wordpress):
        with client.get_archive("cs:trusty/wordpress") as archive:
            assert archive.read() == wordpress.data
        assert fake_store.downloads == {"cs:trusty/wordpress-3": 1}

    def test_upload_charm_assigns_revisions(
        self, client: StoreClient, fake_store: FakeStore, make_charm_dir: Callable[..., Path]
    ):
        charm = LocalEntity.read(make_charm_dir(name="wordpress"))
        first = client.upload_charm(WORDPRESS, charm)
        second = client.upload_charm(WORDPRESS, charm)
        assert first == ArtifactId.parse("cs:~bob/trusty/wordpress-0")
        assert second.revision == 1
        (call, _) = fake_store.calls_to("POST", r"/~bob/trusty/wordpress/archive")
        assert call.headers["Content-Type"] == "application/zip"
        assert call.param("hash") == fake_store.entity("cs:~bob/trusty/wordpress-0").hash

    def test_upload_charm_archive_file(
        self, client: StoreClient, fake_store: FakeStore, tmp_dir: Path
    ):
        path = tmp_dir / "wordpress.charm"
        path.write_bytes(charm_archive("wordpress"))
        id = client.upload_charm(WORDPRESS, LocalEntity.read(path))
        assert fake_store.entity(str(id)).data == path.read_bytes()

    def test_upload_charm_rejects_revision(
        self, client: StoreClient, make_charm_dir: Callable[..., Path]
    ):
        charm = LocalEntity.read(make_charm_dir())
        with pytest.raises(ValueError, match="revision specified"):
            client.upload_charm("cs:~bob/trusty/mysql-2", charm)

    def test_upload_charm_rejects_bundle(
        self, client: StoreClient, make_bundle_dir: Callable[..., Path]
    ):
        bundle = LocalEntity.read(make_bundle_dir())
        with pytest.raises(ValueError, match="expected a charm"):
            client.upload_charm(WORDPRESS, bundle)

    def test_upload_bundle(
        self, client: StoreClient, fake_store: FakeStore, make_bundle_dir: Callable[..., Path]
    ):
        bundle = LocalEntity.read(make_bundle_dir())
        id = client.upload_bundle("cs:~bob/bundle/wiki", bundle)
        assert str(id) == "cs:~bob/bundle/wiki-0"

    def test_upload_with_revision_and_promulgation(
        self, client: StoreClient, fake_store: FakeStore, make_charm_dir: Callable[..., Path]
    ):
        charm = LocalEntity.read(make_charm_dir(name="wordpress"))
        client.upload_charm_with_revision("cs:~bob/trusty/wordpress-3", charm, promulgated_revision=5)
        (call,) = fake_store.calls_to("PUT", r"/~bob/trusty/wordpress-3/archive")
        assert call.param("promulgated") == "trusty/wordpress-5"
        assert fake_store.entity("cs:trusty/wordpress-5").data == fake_store.entity(
            "cs:~bob/trusty/wordpress-3"
        ).data

    def test_upload_with_revision_requires_revision(
        self, client: StoreClient, make_charm_dir: Callable[..., Path]
    ):
        charm = LocalEntity.read(make_charm_dir())
        with pytest.raises(ValueError, match="revision not specified"):
            client.upload_charm_with_revision(WORDPRESS, charm)


# ---------------------------------------------------------------------------
# Test: metadata
# ---------------------------------------------------------------------------


class TestMetadata:
    """Metadata queries, latest revisions, extra info and publishing."""

    def test_meta(self, client: StoreClient, wordpress):
        result = client.meta("trusty/wordpress", MetaQuery().want("id-revision", "archive-size"))
        assert result.id == ArtifactId.parse("cs:trusty/wordpress-3")
        assert result.values == {
            "id-revision": {"Revision": 3},
            "archive-size": {"Size": len(wordpress.data)},
        }

    def test_meta_omits_unknown_values(self, client: StoreClient, wordpress):
        result = client.meta("trusty/wordpress", MetaQuery().want("extra-info/missing"))
        assert "extra-info/missing" not in result

    def test_meta_not_found(self, client: StoreClient):
        with pytest.raises(NotFoundError, match="cannot get '/trusty/nope/meta/any'"):
            client.meta("trusty/nope", MetaQuery().want("id"))

    def test_latest(self, client: StoreClient, fake_store: FakeStore, wordpress):
        fake_store.add_entity("cs:trusty/wordpress-7", charm_archive("wordpress", revision=7))
        revs = client.latest(["cs:trusty/wordpress-1", "cs:trusty/missing"])
        assert revs[0].revision == 7
        assert revs[0].sha256 != ""
        assert revs[0].error is None
        assert isinstance(revs[1].error, NotFoundError)
        assert "cs:trusty/missing" in str(revs[1].error)
        call = fake_store.calls[-1]
        assert call.param("ignore-auth") == "1"
        assert [v for k, v in call.params if k == "id"] == ["cs:trusty/wordpress", "cs:trusty/missing"]

    def test_latest_of_nothing(self, client: StoreClient, fake_store: FakeStore):
        assert client.latest([]) == []
        assert fake_store.calls == []

    def test_extra_info(self, client: StoreClient, wordpress):
        client.put_extra_info("cs:trusty/wordpress-3", {"attr": ["a"], "n": 1})
        result = client.meta("cs:trusty/wordpress-3", MetaQuery().want("extra-info/attr", "extra-info"))
        assert result.get("extra-info/attr") == ["a"]
        assert result.get("extra-info") == {"attr": ["a"], "n": 1}

    def test_common_info(self, client: StoreClient, wordpress):
        client.put_common_info("cs:trusty/wordpress-3", {"homepage": "https://example.com"})
        result = client.meta("cs:trusty/wordpress-3", MetaQuery().want("common-info/homepage"))
        assert result.get("common-info/homepage") == "https://example.com"

    def test_publish(self, client: StoreClient, fake_store: FakeStore, wordpress):
        client.publish("cs:trusty/wordpress-3", ["stable", Channel.EDGE], {"data": 2})
        entity = fake_store.entity("cs:trusty/wordpress-3")
        assert entity.published == ["stable", "edge"]
        assert entity.published_resources == {"data": 2}

    def test_publish_without_channels_is_noop(self, client: StoreClient, fake_store: FakeStore):
        client.publish("cs:trusty/wordpress-3", [])
        assert fake_store.calls == []

    def test_publish_unknown_channel(self, client: StoreClient, wordpress):
        with pytest.raises(ValueError):
            client.publish("cs:trusty/wordpress-3", ["nightly"])


# ---------------------------------------------------------------------------
# Test: resources
# ---------------------------------------------------------------------------


class TestResources:
    """Resource metadata and docker resources."""

    def test_list_resources(self, client: StoreClient, fake_store: FakeStore, wordpress):
        fake_store.add_resource("cs:trusty/wordpress", "data", b"payload", "data.bin")
        fake_store.add_resource("cs:trusty/wordpress", "data", b"payload 2", "data.bin")
        (meta,) = client.list_resources("cs:trusty/wordpress-3")
        assert meta.name == "data"
        assert meta.revision == 1
        assert meta.size == len(b"payload 2")
        assert meta.fingerprint_bytes.hex() == sha384(b"payload 2")

    def test_list_resources_unknown_charm(self, client: StoreClient):
        with pytest.raises(NotFoundError, match="cannot get resource metadata"):
            client.list_resources("cs:trusty/nope")

    def test_resource_meta(self, client: StoreClient, fake_store: FakeStore, wordpress):
        fake_store.add_resource("cs:trusty/wordpress", "data", b"one")
        fake_store.add_resource("cs:trusty/wordpress", "data", b"two")
        assert client.resource_meta("cs:trusty/wordpress", "data").revision == 1
        assert client.resource_meta("cs:trusty/wordpress", "data", 0).size == 3

    def test_resource_meta_not_found(self, client: StoreClient, wordpress):
        with pytest.raises(NotFoundError):
            client.resource_meta("cs:trusty/wordpress", "data", 4)

    def test_get_resource_revision(self, client: StoreClient, fake_store: FakeStore):
        fake_store.add_resource("cs:trusty/wordpress", "data", b"one")
        fake_store.add_resource("cs:trusty/wordpress", "data", b"two")
        with client.get_resource("cs:trusty/wordpress", "data", 0) as data:
            assert data.read() == b"one"
            assert data.hash == sha384(b"one")

    def test_get_resource_not_found(self, client: StoreClient):
        with pytest.raises(NotFoundError, match="cannot get resource"):
            client.get_resource("cs:trusty/wordpress", "data")

    def test_docker_resource(self, client: StoreClient, fake_store: FakeStore):
        rev = client.add_docker_resource(
            "cs:~bob/caas/app", "image", "", "sha256:" + "a" * 64
        )
        assert rev == 0
        info = client.docker_resource_download_info("cs:~bob/caas/app", "image")
        assert info.image_name == "registry.example/app/image"
        assert info.username == "docker-registry"

    def test_docker_upload_info(self, client: StoreClient, fake_store: FakeStore):
        info = client.docker_resource_upload_info("cs:~bob/caas/app", "image")
        assert info.image_name == "registry.example/app/image"
        assert fake_store.calls[-1].param("resource-name") == "image"

    def test_upload_resource_records_path(self, client: StoreClient, fake_store: FakeStore):
        client.upload_resource("cs:~bob/trusty/wordpress", "data", "files/data.bin", io.BytesIO(b"x" * 20), 20)
        (call,) = fake_store.calls_to("POST", r"/~bob/trusty/wordpress/resource/data")
        assert call.param("filename") == "files/data.bin"


# ---------------------------------------------------------------------------
# Test: accounts and bookkeeping
# ---------------------------------------------------------------------------


class TestAccounts:
    def test_whoami(self, client: StoreClient):
        who = client.whoami()
        assert who.user == "bob"
        assert who.groups == ["charmers"]

    def test_login(self, client: StoreClient, fake_store: FakeStore):
        client.login()
        assert fake_store.calls[-1].path == "/delegatable-macaroon"

    def test_log(self, client: StoreClient, fake_store: FakeStore):
        client.log(LogType.INGESTION, LogLevel.ERROR, "boom", "cs:trusty/wordpress-3")
        assert fake_store.logs == [
            {
                "Data": "boom",
                "Level": "error",
                "Type": "ingestion",
                "URLs": ["cs:trusty/wordpress-3"],
            }
        ]

    def test_stats_update(self, client: StoreClient, fake_store: FakeStore):
        when = datetime(2024, 5, 1, tzinfo=timezone.utc)
        client.stats_update(
            StatsUpdateRequest(
                entries=[StatsUpdateEntry(timestamp=when, charm_reference="cs:trusty/wordpress-3")]
            )
        )
        (update,) = fake_store.stats_updates
        assert update["Entries"][0]["CharmReference"] == "cs:trusty/wordpress-3"
