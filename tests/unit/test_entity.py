"""Unit tests for LocalEntity — reading charms and bundles from disk."""

from __future__ import annotations

import io
import zipfile
from collections.abc import Callable
from pathlib import Path

import pytest

from charmrepo.core.errors import EntityReadError
from charmrepo.core.verifier import sha384_hex
from charmrepo.models.entity import LocalEntity, StorageKind
from charmrepo.models.ids import EntityKind
from fakestore import bundle_archive, charm_archive


class TestReadCharm:
    """Charms are read from directories and zip archives."""

    def test_directory(self, make_charm_dir: Callable[..., Path]):
        path = make_charm_dir(name="mysql", revision=7)
        charm = LocalEntity.read(path)
        assert charm.kind is EntityKind.CHARM
        assert charm.storage is StorageKind.DIRECTORY
        assert charm.name == "mysql"
        assert charm.revision == 7
        assert charm.supported_series == ["trusty", "xenial"]
        assert charm.summary == "mysql charm"

    def test_revision_defaults_to_zero(self, make_charm_dir: Callable[..., Path]):
        assert LocalEntity.read_charm(make_charm_dir()).revision == 0

    def test_single_series_string(self, make_charm_dir: Callable[..., Path]):
        charm = LocalEntity.read_charm(make_charm_dir(series="bionic"))
        assert charm.supported_series == ["bionic"]

    def test_archive(self, tmp_dir: Path):
        path = tmp_dir / "wordpress.charm"
        path.write_bytes(charm_archive("wordpress", series=("xenial",), revision=4))
        charm = LocalEntity.read(path)
        assert charm.storage is StorageKind.ARCHIVE
        assert charm.name == "wordpress"
        assert charm.revision == 4
        assert charm.supported_series == ["xenial"]

    def test_missing_metadata(self, tmp_dir: Path):
        (tmp_dir / "empty").mkdir()
        with pytest.raises(EntityReadError, match="no metadata.yaml"):
            LocalEntity.read_charm(tmp_dir / "empty")

    def test_metadata_without_name(self, tmp_dir: Path):
        root = tmp_dir / "anon"
        root.mkdir()
        (root / "metadata.yaml").write_text("summary: nameless\n")
        with pytest.raises(EntityReadError, match="has no name"):
            LocalEntity.read_charm(root)

    def test_bad_yaml(self, tmp_dir: Path):
        root = tmp_dir / "bad"
        root.mkdir()
        (root / "metadata.yaml").write_text("name: [unclosed\n")
        with pytest.raises(EntityReadError, match="cannot parse"):
            LocalEntity.read_charm(root)

    def test_bad_revision_file(self, make_charm_dir: Callable[..., Path]):
        path = make_charm_dir(files={"revision": "seven\n"})
        with pytest.raises(EntityReadError, match="invalid revision"):
            LocalEntity.read_charm(path)

    def test_not_a_zip(self, tmp_dir: Path):
        path = tmp_dir / "junk.charm"
        path.write_bytes(b"not a zip")
        with pytest.raises(EntityReadError, match="cannot open archive"):
            LocalEntity.read(path)

    def test_nothing_there(self, tmp_dir: Path):
        with pytest.raises(EntityReadError):
            LocalEntity.read(tmp_dir / "missing")

    def test_read_errors_are_value_errors(self, tmp_dir: Path):
        with pytest.raises(ValueError):
            LocalEntity.read(tmp_dir / "missing")


class TestReadBundle:
    """Bundles are named after their directory or archive file."""

    def test_directory(self, make_bundle_dir: Callable[..., Path]):
        bundle = LocalEntity.read(make_bundle_dir("wiki"))
        assert bundle.kind is EntityKind.BUNDLE
        assert bundle.name == "wiki"
        assert bundle.revision == 0
        assert "wiki" in bundle.metadata["applications"]
        assert bundle.readme == "Wiki bundle.\n"

    def test_readme_is_optional(self, make_bundle_dir: Callable[..., Path]):
        assert LocalEntity.read_bundle(make_bundle_dir(readme=None)).readme == ""

    def test_archive_named_after_stem(self, tmp_dir: Path):
        path = tmp_dir / "blog.bundle"
        path.write_bytes(bundle_archive())
        bundle = LocalEntity.read(path)
        assert bundle.kind is EntityKind.BUNDLE
        assert bundle.storage is StorageKind.ARCHIVE
        assert bundle.name == "blog"

    def test_charm_is_not_a_bundle(self, make_charm_dir: Callable[..., Path]):
        with pytest.raises(EntityReadError, match="no bundle.yaml"):
            LocalEntity.read_bundle(make_charm_dir())


class TestOpenArchive:
    """open_archive yields zip bytes with their hash and size."""

    def test_archive_file_is_sent_as_is(self, tmp_dir: Path):
        data = charm_archive("wordpress")
        path = tmp_dir / "wordpress.charm"
        path.write_bytes(data)
        body, hash_, size = LocalEntity.read(path).open_archive()
        with body:
            assert body.read() == data
        assert hash_ == sha384_hex(data)
        assert size == len(data)

    def test_directory_is_zipped(self, make_charm_dir: Callable[..., Path]):
        path = make_charm_dir(
            revision=2,
            files={"hooks/install": "#!/bin/sh\n", ".git/config": "x", ".hidden": "x"},
        )
        body, hash_, size = LocalEntity.read(path).open_archive()
        data = body.read()
        assert len(data) == size
        assert sha384_hex(data) == hash_
        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            names = sorted(zf.namelist())
        assert names == ["hooks/install", "metadata.yaml", "revision"]

    def test_zipped_directory_reads_back(self, make_charm_dir: Callable[..., Path], tmp_dir: Path):
        body, _, _ = LocalEntity.read(make_charm_dir(name="mysql", revision=5)).open_archive()
        out = tmp_dir / "mysql.charm"
        out.write_bytes(body.read())
        charm = LocalEntity.read(out)
        assert (charm.name, charm.revision) == ("mysql", 5)
