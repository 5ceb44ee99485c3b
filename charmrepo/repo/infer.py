"""Pick the repository that can serve a reference."""

from __future__ import annotations

import logging
import os

from charmrepo.config import Settings
from charmrepo.core.errors import EntityReadError
from charmrepo.models.ids import ArtifactId
from charmrepo.repo.base import Repository
from charmrepo.repo.charmstore import CharmStore
from charmrepo.repo.local import LocalRepository
from charmrepo.repo.paths import CharmPath, path_contains_entity

logger = logging.getLogger(__name__)


def infer_repository(
    ref: str,
    store_settings: Settings | None = None,
    local_repo_path: str | os.PathLike[str] = "",
) -> Repository:
    """Return a repository for ``ref``.

    * ``cs:`` references (and references without a schema) use the charm
      store configured by ``store_settings``;
    * ``local:`` references use the local repository at
      ``local_repo_path``;
    * anything else is taken as the path to a single charm or bundle.

    Raises ``ValueError`` when ``ref`` is none of these.
    """
    try:
        id = ArtifactId.parse(ref)
    except ValueError:
        id = None
    if id is not None:
        if id.schema_ == "cs":
            return CharmStore.from_settings(store_settings)
        return LocalRepository(local_repo_path)

    try:
        path_contains_entity(ref)
    except FileNotFoundError as exc:
        raise ValueError(f"not a valid charm path: {ref}") from exc
    except EntityReadError as exc:
        logger.debug("%s is not a charm or bundle: %s", ref, exc)
        raise
    return CharmPath(ref)
