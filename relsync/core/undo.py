"""Capture and replay of removed relation edges.

CAPTURE:
On deletion the synchronizer snapshots every affected relation into
UndoRecords and hands them over as one batch keyed by the deletion id. The
batch is stored as a single opaque payload under the configured undo
category.

REPLAY:
When a deleted record is restored (possibly under a new id), every record of
the batch whose host_table matches is replayed onto the side the restored
record occupies. Records whose relation no longer resolves (declarations
changed since the deletion) are skipped.

Replay is NOT idempotent: applying the same payload twice duplicates edges
unless the join table enforces uniqueness over its two columns.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from .types import UndoRecord

if TYPE_CHECKING:
    from ..config import Settings
    from ..storage import Storage, UndoStore
    from .registry import RelationRegistry

logger = logging.getLogger(__name__)


class UndoLedger:
    """Undo snapshots of relation edges."""

    def __init__(
        self,
        storage: "Storage",
        undo_store: "UndoStore",
        registry: "RelationRegistry",
        settings: "Settings | None" = None,
    ):
        self._storage = storage
        self._undo_store = undo_store
        self._registry = registry
        self._settings = settings or registry.settings

    @property
    def category(self) -> str:
        return self._settings.undo_category

    def capture(self, batch_id: str | int, records: Iterable[UndoRecord]) -> None:
        """Store a batch of undo records as one payload.

        Args:
            batch_id: Deletion/undo identifier
            records: Snapshots taken before the edges were purged
        """
        records = list(records)
        if not records:
            return

        self._undo_store.store(batch_id, self.category, [record.to_dict() for record in records])
        logger.debug(
            "Captured %d relation snapshot(s)", len(records), extra={"batch_id": batch_id}
        )

    def restore(
        self,
        payload: Mapping[str, Any] | list | None,
        host_table: str,
        host_id: Any,
        host_row: Mapping[str, Any],
    ) -> int:
        """Replay captured edges for a restored record.

        Args:
            payload: Either the category -> records mapping of an undo batch,
                or the list of record dicts stored under this ledger's category
            host_table: Table of the restored record
            host_id: Primary id of the restored record
            host_row: Column values of the restored record as they were at
                deletion, a mapping or sqlite3.Row

        Returns:
            Number of join rows inserted
        """
        host_row = dict(host_row)
        if isinstance(payload, Mapping):
            payload = payload.get(self.category)
        if not payload:
            return 0

        inserted = 0
        for data in payload:
            record = UndoRecord.from_dict(data)
            if record.host_table != host_table:
                continue

            definition = self._registry.resolve(record.relation_table, record.relation_field)
            if definition is None:
                logger.debug(
                    "Skipping undo of unresolvable relation %s.%s",
                    record.relation_table, record.relation_field,
                    extra={"table": record.relation_table, "field": record.relation_field},
                )
                continue

            key_field = definition.key_field(record.side)
            if not record.values or host_row.get(key_field) != record.reference_value:
                continue

            new_key = host_id if key_field == "id" else host_row[key_field]
            own_column = definition.join_column(record.side)
            other_column = definition.other_join_column(record.side)

            for value in record.values:
                self._storage.insert(definition.join_table, {own_column: new_key, other_column: value})
                inserted += 1

            logger.debug(
                "Restored %d edge(s)", len(record.values),
                extra={"join_table": definition.join_table, "reference": new_key},
            )

        return inserted

    def restore_batch(
        self,
        batch_id: str | int,
        host_table: str,
        host_id: Any,
        host_row: Mapping[str, Any],
    ) -> int:
        """Fetch a stored batch and replay it (see restore())."""
        payload = self._undo_store.retrieve(batch_id, self.category)
        return self.restore(payload, host_table, host_id, host_row)
