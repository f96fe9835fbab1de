"""relsync - many-to-many relation synchronization and audit engine.

Keeps join tables consistent with the records they connect, replays removed
associations from undo snapshots and builds filter/search candidate sets
for list views.
"""

__version__ = "0.1.0"

from relsync.core import OperationContext, RelationsCore, get_core, init_db
from relsync.declarations import SchemaStore
from relsync.exceptions import (
    ConsistencyError,
    RelationConfigError,
    RelSyncError,
    ResourceNotFound,
    ValidationError,
)
from relsync.storage import Storage, UndoStore

__all__ = [
    "__version__",
    "ConsistencyError",
    "OperationContext",
    "RelationConfigError",
    "RelationsCore",
    "RelSyncError",
    "ResourceNotFound",
    "SchemaStore",
    "Storage",
    "UndoStore",
    "ValidationError",
    "get_core",
    "init_db",
]
