"""Join-table consistency audit.

Purges and inserts are separate statements and record tables can be edited
behind the engine's back, so join tables may end up pointing at records that
no longer exist. ConsistencyChecker finds those orphaned edges and reports a
SystemStatus; purge_orphaned_edges() removes them.

ORPHANED EDGE:
A join row whose reference value has no matching record on the reference
side (matched by reference_key_field), or whose related value has no
matching record on the related side (matched by related_key_field).

Join tables or record tables missing from storage are skipped: relations
may be declared before their tables are installed.

USAGE:
    with Storage(path) as storage:
        checker = ConsistencyChecker(storage, registry)
        status = checker.check()
        if status != SystemStatus.NORMAL:
            checker.purge_orphaned_edges()
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING

from .exceptions import ConsistencyError
from .storage.clauses import quote_identifier

if TYPE_CHECKING:
    from .core.registry import RelationRegistry
    from .core.types import RelationDefinition
    from .storage import Storage

logger = logging.getLogger(__name__)


class SystemStatus(Enum):
    """Outcome of a consistency check."""

    NORMAL = "normal"
    INCONSISTENT = "inconsistent"


class ConsistencyChecker:
    """Audits join tables against the record tables they connect.

    Attributes:
        storage: Active Storage
        registry: Relation metadata
    """

    def __init__(self, storage: "Storage", registry: "RelationRegistry"):
        self.storage = storage
        self.registry = registry

    def check(self) -> SystemStatus:
        """Check every installed join table for orphaned edges.

        Returns:
            SystemStatus.NORMAL or SystemStatus.INCONSISTENT

        Note:
            Problems are logged, never raised (see assert_consistent())
        """
        orphans = self.find_orphaned_edges()
        if not orphans:
            return SystemStatus.NORMAL

        for orphan in orphans:
            logger.warning(
                "Orphaned edge in %s: %s=%r has no %s record",
                orphan["join_table"], orphan["column"], orphan["value"], orphan["missing_table"],
                extra={"join_table": orphan["join_table"], "reference": orphan["value"]},
            )
        return SystemStatus.INCONSISTENT

    def assert_consistent(self) -> None:
        """Raise if any join table holds orphaned edges.

        Raises:
            ConsistencyError: With the orphans in details["orphans"]
        """
        orphans = self.find_orphaned_edges()
        if orphans:
            raise ConsistencyError(
                f"Found {len(orphans)} orphaned edge(s)",
                details={"orphans": orphans},
            )

    def find_orphaned_edges(self) -> list[dict]:
        """Find join rows pointing at missing records.

        Returns:
            List of orphan dicts with join_table, column, value, missing_table
        """
        orphans = []
        seen = set()

        for definition in self.registry.all_definitions():
            # Relations sharing a join table and columns are audited once
            audit_key = (
                definition.join_table,
                definition.reference_column_in_join,
                definition.related_column_in_join,
            )
            if audit_key in seen or not self.storage.table_exists(definition.join_table):
                continue
            seen.add(audit_key)

            for side in ("reference", "related"):
                orphans.extend(self._find_side_orphans(definition, side))

        return orphans

    def _find_side_orphans(self, definition: "RelationDefinition", side: str) -> list[dict]:
        record_table = definition.reference_table if side == "reference" else definition.related_table
        if not self.storage.table_exists(record_table):
            return []

        column = definition.join_column(side)
        key_field = definition.key_field(side)

        rows = self.storage.query(
            f"""SELECT DISTINCT j.{quote_identifier(column)} AS value
                FROM {quote_identifier(definition.join_table)} j
                WHERE NOT EXISTS (
                    SELECT 1 FROM {quote_identifier(record_table)} r
                    WHERE r.{quote_identifier(key_field)} = j.{quote_identifier(column)}
                )"""
        )

        return [
            {
                "join_table": definition.join_table,
                "column": column,
                "value": row["value"],
                "missing_table": record_table,
            }
            for row in rows
        ]

    def purge_orphaned_edges(self) -> int:
        """Delete every orphaned edge.

        Returns:
            Number of join rows deleted
        """
        deleted = 0
        for orphan in self.find_orphaned_edges():
            deleted += self.storage.delete(orphan["join_table"], {orphan["column"]: orphan["value"]})

        if deleted:
            logger.info("Purged %d orphaned edge(s)", deleted)
        return deleted
