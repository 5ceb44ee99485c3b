"""Explicit metadata queries.

The store's ``meta/any`` endpoint returns any number of metadata values in
one response, selected with ``include`` parameters.  A ``MetaQuery`` lists
the keys wanted; the store answers with a ``MetaResult`` that holds the
canonical id and the raw JSON value of each key it knows about.  Values are
decoded explicitly by the caller, optionally through ``MetaResult.decode``.

Examples
--------
>>> query = MetaQuery().want("charm-metadata").want("extra-info/attr")
>>> query.params()
[('include', 'charm-metadata'), ('include', 'extra-info/attr')]
"""

from __future__ import annotations

import re
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

from charmrepo.core.errors import ProtocolViolation
from charmrepo.models.ids import ArtifactId

T = TypeVar("T")

_KEY_RE = re.compile(r"^[a-z0-9][a-z0-9\-]*(/[^/\s]+)*$")


class MetaQuery(BaseModel):
    """An ordered, duplicate-free set of metadata keys."""

    model_config = ConfigDict(frozen=True)

    keys: tuple[str, ...] = ()

    @field_validator("keys")
    @classmethod
    def _valid_keys(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        for key in value:
            if not _KEY_RE.match(key):
                raise ValueError(f"invalid metadata key {key!r}")
        return value

    def want(self, *keys: str) -> MetaQuery:
        """Return a query that also asks for ``keys``."""
        merged = list(self.keys)
        for key in keys:
            if key not in merged:
                merged.append(key)
        return MetaQuery(keys=tuple(merged))

    def params(self) -> list[tuple[str, str]]:
        """Return the ``include`` query parameters for the query."""
        return [("include", key) for key in self.keys]

    def __len__(self) -> int:
        return len(self.keys)


class MetaResult(BaseModel):
    """Answer to a ``MetaQuery``.

    Keys the store has no value for are absent from ``values``, and
    values for keys that were not asked for are dropped.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: ArtifactId = Field(alias="Id")
    values: dict[str, Any] = Field(default_factory=dict, alias="Meta")

    @field_validator("id", mode="before")
    @classmethod
    def _parse_id(cls, value: Any) -> Any:
        if isinstance(value, str):
            return ArtifactId.parse(value)
        return value

    @field_validator("values", mode="before")
    @classmethod
    def _null_meta(cls, value: Any) -> Any:
        return {} if value is None else value

    def restricted_to(self, query: MetaQuery) -> MetaResult:
        wanted = set(query.keys)
        return self.model_copy(
            update={"values": {k: v for k, v in self.values.items() if k in wanted}}
        )

    def __contains__(self, key: object) -> bool:
        return key in self.values

    def get(self, key: str, default: Any = None) -> Any:
        return self.values.get(key, default)

    def decode(self, key: str, result_type: type[T]) -> T:
        """Decode the raw value of ``key`` into ``result_type``.

        Raises ``KeyError`` when the store sent no value for ``key`` and
        ``ProtocolViolation`` when the value does not fit the type.
        """
        raw = self.values[key]
        try:
            return TypeAdapter(result_type).validate_python(raw)
        except ValidationError as exc:
            raise ProtocolViolation(f"cannot unmarshal {key}: {exc}") from exc
