"""charmrepo: charm and bundle repositories.

Fetches, caches and resolves charms and bundles from the charm store or
from the local filesystem:
  - resumable, integrity-verified multipart resource uploads
  - archive downloads checked against the store's SHA-384 and size
  - a local archive cache keyed by canonical id, safe under concurrent use
  - local repositories, single charm paths and bundle paths
"""

__version__ = "0.5.0"
__description__ = "Charm and bundle repositories backed by the charm store or the local filesystem"

from charmrepo.core.client import StoreClient
from charmrepo.models.ids import ArtifactId
from charmrepo.repo.charmstore import CharmStore
from charmrepo.repo.infer import infer_repository
from charmrepo.repo.local import LocalRepository

__all__ = [
    "ArtifactId",
    "CharmStore",
    "LocalRepository",
    "StoreClient",
    "infer_repository",
    "__version__",
]
