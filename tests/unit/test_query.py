"""Unit tests for MetaQuery and MetaResult."""

from __future__ import annotations

import pytest
from pydantic import BaseModel, ConfigDict, Field

from charmrepo.core.errors import ProtocolViolation
from charmrepo.core.query import MetaQuery, MetaResult
from charmrepo.models.ids import ArtifactId


class _Revision(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    revision: int = Field(alias="Revision")


class TestMetaQuery:
    """Queries are ordered, duplicate-free lists of metadata keys."""

    def test_want_accumulates_in_order(self):
        q = MetaQuery().want("charm-metadata").want("extra-info/attr", "id")
        assert q.keys == ("charm-metadata", "extra-info/attr", "id")

    def test_want_ignores_duplicates(self):
        q = MetaQuery().want("id", "id").want("id")
        assert len(q) == 1

    def test_want_returns_new_query(self):
        base = MetaQuery().want("id")
        base.want("hash")
        assert base.keys == ("id",)

    def test_params(self):
        assert MetaQuery().want("id", "hash").params() == [("include", "id"), ("include", "hash")]

    @pytest.mark.parametrize("key", ["", "Id", "id/", "with space", "/id"])
    def test_invalid_keys(self, key):
        with pytest.raises(ValueError):
            MetaQuery().want(key)


class TestMetaResult:
    """Results hold the canonical id and raw values, decoded on demand."""

    def _result(self, meta) -> MetaResult:
        return MetaResult.model_validate({"Id": "cs:trusty/wordpress-3", "Meta": meta})

    def test_parses_id(self):
        assert self._result({}).id == ArtifactId.parse("cs:trusty/wordpress-3")

    def test_null_meta(self):
        assert self._result(None).values == {}

    def test_restricted_to_query(self):
        result = self._result({"id": {}, "hash": {"Sum": "x"}})
        restricted = result.restricted_to(MetaQuery().want("hash", "archive-size"))
        assert "hash" in restricted
        assert "id" not in restricted
        assert "archive-size" not in restricted

    def test_get_default(self):
        assert self._result({}).get("hash", "none") == "none"

    def test_decode(self):
        result = self._result({"id-revision": {"Revision": 3}})
        assert result.decode("id-revision", _Revision).revision == 3

    def test_decode_to_builtin_type(self):
        result = self._result({"extra-info/attr": ["a", "b"]})
        assert result.decode("extra-info/attr", list[str]) == ["a", "b"]

    def test_decode_missing_key(self):
        with pytest.raises(KeyError):
            self._result({}).decode("id-revision", _Revision)

    def test_decode_bad_value(self):
        result = self._result({"id-revision": {"Revision": "three"}})
        with pytest.raises(ProtocolViolation, match="cannot unmarshal id-revision"):
            result.decode("id-revision", _Revision)
