"""Repository interface shared by the store and local repositories."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, ConfigDict, Field

from charmrepo.core.errors import NotFoundError
from charmrepo.models.entity import LocalEntity
from charmrepo.models.ids import ArtifactId, EntityKind


class ResolvedId(BaseModel):
    """Result of resolving a reference.

    ``supported_series`` lists the series the entity declares, when the
    repository knows them.
    """

    model_config = ConfigDict(frozen=True)

    id: ArtifactId
    supported_series: list[str] = Field(default_factory=list)


@runtime_checkable
class Repository(Protocol):
    """Where charms and bundles come from."""

    def get(self, id: ArtifactId) -> LocalEntity:
        """Return the charm named by ``id``."""
        ...

    def get_bundle(self, id: ArtifactId) -> LocalEntity:
        """Return the bundle named by ``id``."""
        ...

    def resolve(self, ref: ArtifactId) -> ResolvedId:
        """Fill in the series and revision of ``ref``.

        How an incomplete reference is interpreted depends on the
        repository; a missing revision resolves to the latest one.
        """
        ...


def expect_charm(id: ArtifactId) -> None:
    if id.kind is EntityKind.BUNDLE:
        raise ValueError(f"expected a charm URL, got bundle URL {str(id)!r}")


def expect_bundle(id: ArtifactId) -> None:
    if id.kind is not EntityKind.BUNDLE:
        raise ValueError(f"expected a bundle URL, got charm URL {str(id)!r}")


def entity_not_found(id: ArtifactId, repo_path: object) -> NotFoundError:
    return NotFoundError(f"entity not found in {str(repo_path)!r}: {id}")


def repo_not_found(path: object) -> NotFoundError:
    return NotFoundError(f"no repository found at {str(path)!r}")
