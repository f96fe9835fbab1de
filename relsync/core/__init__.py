"""Relation engine facade for relsync.

RelationsCore wires the registry, synchronizer, undo ledger and query
builder over one Storage connection.

ARCHITECTURE:
- RelationsCore owns its Storage; the connection opens on __enter__ and
  closes on __exit__
- Components are created lazily on first access and cached
- Per-operation state is NOT held here: every call takes an
  OperationContext, created with new_context()

CONNECTION LIFECYCLE:
- atomic=True: all writes of the with-block commit together on exit,
  or roll back together on exception
- atomic=False: every statement commits on its own

    with get_core(atomic=True) as core:
        ctx = core.new_context()
        core.synchronizer.save(ctx, "member", "groups", 7, [1, 3])
        # Purge and insert commit together on exit
"""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING

from relsync.config import Settings, default_settings
from relsync.declarations import SchemaStore
from relsync.storage import Storage, UndoStore

from .context import OperationContext

if TYPE_CHECKING:
    from .query import RelationQueryBuilder
    from .registry import RelationRegistry
    from .synchronizer import RelationSynchronizer
    from .undo import UndoLedger


class RelationsCore:
    """
    Relation engine bound to one Storage.

    Provides access to the relation components through properties.
    """

    def __init__(
        self,
        storage: Storage,
        schema: SchemaStore | None = None,
        settings: Settings | None = None,
    ):
        """Initialize RelationsCore.

        Args:
            storage: Storage to read and write join tables through
            schema: Declaration store. Defaults to one reading
                settings.declarations_dir.
            settings: relsync settings (defaults to default_settings)
        """
        self._settings = settings or default_settings
        self._storage = storage
        self._schema = schema if schema is not None else SchemaStore(self._settings.declarations_dir)
        self._registry = None
        self._undo_store = None
        self._undo = None
        self._synchronizer = None
        self._query = None

    @property
    def storage(self) -> Storage:
        return self._storage

    @property
    def schema(self) -> SchemaStore:
        return self._schema

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def registry(self) -> "RelationRegistry":
        """Relation metadata.

        Shared by every component of this core, so resolutions are cached once.
        """
        if self._registry is None:
            from .registry import RelationRegistry
            self._registry = RelationRegistry(self._schema, self._settings)
        return self._registry

    @property
    def undo_store(self) -> UndoStore:
        if self._undo_store is None:
            self._undo_store = UndoStore(self._storage)
        return self._undo_store

    @property
    def undo(self) -> "UndoLedger":
        """Undo capture and replay."""
        if self._undo is None:
            from .undo import UndoLedger
            self._undo = UndoLedger(self._storage, self.undo_store, self.registry, self._settings)
        return self._undo

    @property
    def synchronizer(self) -> "RelationSynchronizer":
        """Join-table write protocol.

        Note: Receives the undo ledger so deletions are captured automatically.
        """
        if self._synchronizer is None:
            from .synchronizer import RelationSynchronizer
            self._synchronizer = RelationSynchronizer(self._storage, self.registry, self.undo)
        return self._synchronizer

    @property
    def query(self) -> "RelationQueryBuilder":
        """Filter and search candidate sets."""
        if self._query is None:
            from .query import RelationQueryBuilder
            self._query = RelationQueryBuilder(self._storage, self.registry)
        return self._query

    def new_context(self, bulk: bool = False) -> OperationContext:
        """Start a new logical operation."""
        return OperationContext(bulk=bulk)

    def init_db(self) -> list[str]:
        """Create the undo table and install join tables (see init_db())."""
        return init_db(self._storage, self.registry)

    def __enter__(self) -> "RelationsCore":
        self._storage.__enter__()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager, committing or rolling back through Storage."""
        return self._storage.__exit__(exc_type, exc_val, exc_tb)


def get_core(
    db_path: str | Path | None = None,
    schema: SchemaStore | None = None,
    atomic: bool = False,
    settings: Settings | None = None,
) -> RelationsCore:
    """
    Get a RelationsCore instance.

    Args:
        db_path: Database path. If None, uses settings.database_path.
        schema: Declaration store (see RelationsCore)
        atomic: If True, writes commit together when the with-block exits.
                If False (default), every statement commits on its own.
        settings: relsync settings (defaults to default_settings)

    Returns:
        RelationsCore, to be used as context manager

    Examples:
        >>> with get_core(atomic=True) as core:
        ...     ctx = core.new_context()
        ...     core.synchronizer.delete(ctx, "member", 7, deletion_id=42)
    """
    settings = settings or default_settings
    storage = Storage(db_path or settings.database_path, autocommit=not atomic)
    return RelationsCore(storage, schema=schema, settings=settings)


# ============================================================================
# DATABASE INITIALIZATION
# ============================================================================

def init_db(storage: Storage, registry: "RelationRegistry") -> list[str]:
    """Initialize relsync tables.

    Creates the undo table and every missing join table.

    Args:
        storage: Active Storage
        registry: Relation metadata

    Returns:
        Names of the join tables that were created
    """
    from relsync.schemas import install_join_tables

    UndoStore(storage).init_schema()
    return install_join_tables(storage, registry)


__all__ = ["OperationContext", "RelationsCore", "get_core", "init_db"]
