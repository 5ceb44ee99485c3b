"""Repositories of charms and bundles.

Modules
-------
base
    The ``Repository`` protocol and ``ResolvedId``.
charmstore
    ``CharmStore``, backed by the remote store and the archive cache.
local
    ``LocalRepository``, a directory organised by series.
paths
    ``CharmPath`` and ``BundlePath`` for a single entity on disk.
infer
    ``infer_repository`` picks one of the above for a reference.
"""

from charmrepo.repo.base import Repository, ResolvedId
from charmrepo.repo.charmstore import CharmStore, ResourceResult, latest
from charmrepo.repo.infer import infer_repository
from charmrepo.repo.local import LocalRepository
from charmrepo.repo.paths import BundlePath, CharmPath

__all__ = [
    "BundlePath",
    "CharmPath",
    "CharmStore",
    "LocalRepository",
    "Repository",
    "ResolvedId",
    "ResourceResult",
    "infer_repository",
    "latest",
]
