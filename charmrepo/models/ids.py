"""Charm and bundle identifiers.

An identifier has the textual form::

    [schema:][~user/][series/]name[-revision]

``schema`` is ``cs`` (charm store, the default) or ``local``.  A revision of
``-1`` means "unspecified"; an id with a non-negative revision is *fully
qualified*.  The series ``bundle`` marks the id as a bundle.
"""

from __future__ import annotations

import re
from enum import Enum

from pydantic import BaseModel, ConfigDict, model_validator

_NAME_RE = re.compile(r"^[a-z][a-z0-9]*(-[a-z0-9]*[a-z][a-z0-9]*)*$")
_SERIES_RE = re.compile(r"^[a-z]+([a-z0-9]+)?$")
_USER_RE = re.compile(r"^[a-z0-9][a-zA-Z0-9+.\-]+$")

# Characters left untouched by ArtifactId.quote().
_SAFE_CHARS = frozenset(
    "abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789.-"
)

SCHEMAS = ("cs", "local")


class EntityKind(str, Enum):
    """Whether an identifier names a charm or a bundle."""

    CHARM = "charm"
    BUNDLE = "bundle"


class ArtifactId(BaseModel):
    """Identifier of a charm or bundle.

    Examples
    --------
    >>> ArtifactId.parse("cs:~bob/trusty/wordpress-3").path()
    '~bob/trusty/wordpress-3'
    >>> ArtifactId.parse("wordpress").revision
    -1
    """

    model_config = ConfigDict(frozen=True)

    schema_: str = "cs"
    user: str = ""
    name: str
    series: str = ""
    revision: int = -1

    @model_validator(mode="after")
    def _check(self) -> ArtifactId:
        if self.schema_ not in SCHEMAS:
            raise ValueError(f"unknown schema {self.schema_!r}")
        if not _NAME_RE.match(self.name):
            raise ValueError(f"name {self.name!r} not valid")
        if self.series and not _SERIES_RE.match(self.series):
            raise ValueError(f"series name {self.series!r} not valid")
        if self.user:
            if self.schema_ == "local":
                raise ValueError("local entity id cannot contain user name")
            if not _USER_RE.match(self.user):
                raise ValueError(f"user name {self.user!r} not valid")
        if self.revision < -1:
            raise ValueError(f"revision {self.revision} not valid")
        return self

    # ------------------------------------------------------------------
    # Parsing and formatting
    # ------------------------------------------------------------------

    @classmethod
    def parse(cls, text: str) -> ArtifactId:
        """Parse the textual form of an identifier.

        Raises ``ValueError`` when the text is not a valid identifier.
        """
        if not text:
            raise ValueError("empty entity id")
        schema = "cs"
        rest = text
        if ":" in text:
            schema, rest = text.split(":", 1)
        parts = rest.split("/")
        user = ""
        if parts[0].startswith("~"):
            user = parts.pop(0)[1:]
            if not user:
                raise ValueError(f"entity id {text!r} has an empty user name")
        if len(parts) == 2:
            series, name_rev = parts
        elif len(parts) == 1:
            series, name_rev = "", parts[0]
        else:
            raise ValueError(f"entity id {text!r} has invalid form")
        name, revision = _split_revision(name_rev)
        try:
            return cls(
                schema_=schema,
                user=user,
                name=name,
                series=series,
                revision=revision,
            )
        except ValueError as exc:
            raise ValueError(f"cannot parse entity id {text!r}: {exc}") from exc

    def path(self) -> str:
        """Return the id in URL path form, without the schema."""
        parts = []
        if self.user:
            parts.append(f"~{self.user}")
        if self.series:
            parts.append(self.series)
        if self.revision >= 0:
            parts.append(f"{self.name}-{self.revision}")
        else:
            parts.append(self.name)
        return "/".join(parts)

    def __str__(self) -> str:
        return f"{self.schema_}:{self.path()}"

    def quote(self) -> str:
        """Return a form of the id that can be used as a file name.

        ASCII letters, digits, dots and dashes are kept; every other
        character becomes its hex code surrounded by underscores.
        """
        out = []
        for ch in str(self):
            if ch in _SAFE_CHARS:
                out.append(ch)
            else:
                out.append(f"_{ord(ch):x}_")
        return "".join(out)

    # ------------------------------------------------------------------
    # Derived values
    # ------------------------------------------------------------------

    @property
    def kind(self) -> EntityKind:
        return EntityKind.BUNDLE if self.series == "bundle" else EntityKind.CHARM

    @property
    def is_fully_qualified(self) -> bool:
        return self.revision >= 0

    def with_revision(self, revision: int) -> ArtifactId:
        return self.model_copy(update={"revision": revision})

    def with_series(self, series: str) -> ArtifactId:
        return self.model_copy(update={"series": series})

    def with_user(self, user: str) -> ArtifactId:
        return self.model_copy(update={"user": user})


def _split_revision(name_rev: str) -> tuple[str, int]:
    name, sep, rev = name_rev.rpartition("-")
    if sep and rev.isdigit():
        return name, int(rev)
    return name_rev, -1


def as_id(value: ArtifactId | str) -> ArtifactId:
    """Accept either an ``ArtifactId`` or its textual form."""
    if isinstance(value, ArtifactId):
        return value
    return ArtifactId.parse(value)
