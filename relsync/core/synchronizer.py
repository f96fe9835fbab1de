"""Relation write protocol over record lifecycle events.

ENTRY POINTS (all take the OperationContext first):
- register_table: wire a table's relation fields into the operation
- load: read the related values of a reference
- save: purge once, then insert the submitted values
- delete: snapshot then purge every relation touching a deleted record
- copy: duplicate a record's edges onto its copy
- revise_incomplete: drop links of records abandoned mid-creation
- cleanup_dependents: drop edges pointing at a permanently removed record

ORDERING:
Within one call the steps always run in the same order: capture before
purge (delete), purge before insert (save). The steps are separate
statements; wrap the call in ``storage.transaction()`` to make them atomic.
Without it a failure after the purge leaves the reference with no edges.

Storage errors propagate unchanged and are never retried.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from ..storage.clauses import unique_preserving_order
from .context import OperationContext, edge_key
from .types import RelationDefinition, SaveResult, Side, UndoRecord

if TYPE_CHECKING:
    from ..storage import Storage
    from .registry import RelationRegistry
    from .undo import UndoLedger

logger = logging.getLogger(__name__)


def coerce_values(raw: Any, csv: str | None = None) -> list[Any]:
    """Normalize a submitted field value into a list of related values.

    Args:
        raw: Submitted value (list, JSON array string, delimited string, scalar)
        csv: Delimiter for delimited strings

    Returns:
        List of values (empty for None or "")

    Examples:
        >>> coerce_values([1, 3])
        [1, 3]

        >>> coerce_values("1,3", csv=",")
        ['1', '3']

        >>> coerce_values('["a", "b"]')
        ['a', 'b']
    """
    if raw is None or raw == "":
        return []
    if isinstance(raw, (list, tuple)):
        return list(raw)
    if isinstance(raw, (set, frozenset)):
        return sorted(raw, key=str)
    if isinstance(raw, str):
        if csv:
            return [part for part in raw.split(csv) if part != ""]
        if raw.lstrip().startswith("["):
            try:
                decoded = json.loads(raw)
            except json.JSONDecodeError:
                return [raw]
            return list(decoded) if isinstance(decoded, list) else [decoded]
    return [raw]


class RelationSynchronizer:
    """Keeps join tables in sync with record lifecycle events."""

    def __init__(
        self,
        storage: "Storage",
        registry: "RelationRegistry",
        undo: "UndoLedger",
    ):
        """Initialize synchronizer.

        Args:
            storage: Active Storage for join-table reads and writes
            registry: Relation metadata
            undo: Ledger receiving deletion snapshots
        """
        self._storage = storage
        self._registry = registry
        self._undo = undo

    @property
    def _schema(self):
        return self._registry.schema

    # ==========================================================================
    # REGISTRATION
    # ==========================================================================

    def register_table(self, ctx: OperationContext, table: str) -> list[str]:
        """Wire a table's relation fields into the operation.

        Relation fields get ``doNotSaveEmpty`` annotated on their declaration
        (the raw column must not be overwritten with an empty value). Fields
        flagged for filtering or searching are registered on the context
        and their native flag is switched off.

        Args:
            ctx: Current operation
            table: Table being edited or listed

        Returns:
            Names of the table's relation fields
        """
        relations = self._registry.relations_for(table)

        for field, definition in relations.items():
            self._schema.annotate(table, field, "doNotSaveEmpty", True)

            if definition.filter:
                self._schema.annotate(table, field, "filter", False)
                ctx.filterable_fields.setdefault(table, {})[field] = definition

            if definition.search:
                self._schema.annotate(table, field, "search", False)
                ctx.searchable_fields.setdefault(table, {})[field] = definition

        return list(relations)

    # ==========================================================================
    # LOAD / SAVE
    # ==========================================================================

    def load(self, ctx: OperationContext, table: str, field: str, reference_value: Any) -> list[Any]:
        """Related values of one reference, in join-table order.

        Returns an empty list when the field has no relation.
        """
        definition = self._registry.resolve(table, field)
        if definition is None:
            return []
        return self._related_values(definition, "reference", reference_value)

    def save(
        self,
        ctx: OperationContext,
        table: str,
        field: str,
        reference_value: Any,
        values: Any,
        bulk: bool | None = None,
    ) -> SaveResult:
        """Persist a submitted relation value into the join table.

        Args:
            ctx: Current operation
            table: Owner table
            field: Owner field
            reference_value: Value of the record's reference key field
            values: Submitted value (see coerce_values())
            bulk: Bulk edit mode; None falls back to ctx.bulk

        Returns:
            SaveResult telling the caller whether to keep the raw value
        """
        definition = self._registry.resolve(table, field)
        if definition is None:
            return SaveResult(retain=True, value=values)

        purge_key = edge_key(definition.join_table, reference_value)
        purged = False
        if ctx.mark_purged(purge_key):
            self._purge(definition, "reference", reference_value)
            purged = True

        insert = True
        if (ctx.bulk if bulk is None else bulk):
            insert = ctx.mark_saved(purge_key)

        inserted = 0
        if insert:
            for value in coerce_values(values, definition.csv):
                self._storage.insert(definition.join_table, {
                    definition.reference_column_in_join: reference_value,
                    definition.related_column_in_join: value,
                })
                inserted += 1
            logger.debug(
                "Saved %d edge(s)", inserted,
                extra={"table": table, "field": field, "join_table": definition.join_table,
                       "reference": reference_value},
            )

        if definition.force_save:
            return SaveResult(retain=True, value=values, purged=purged, inserted=inserted)
        return SaveResult(retain=False, value=None, purged=purged, inserted=inserted)

    # ==========================================================================
    # DELETE / CLEANUP
    # ==========================================================================

    def delete(
        self,
        ctx: OperationContext,
        table: str,
        record_id: Any,
        deletion_id: str | int,
        row: Mapping[str, Any] | None = None,
    ) -> list[UndoRecord]:
        """Snapshot and purge every relation touching a deleted record.

        Relations are found across ALL declarations, not only the deleted
        record's own table: a record on the related side of another table's
        relation loses those edges too.

        Args:
            ctx: Current operation
            table: Table of the deleted record
            record_id: Primary id of the deleted record
            deletion_id: Undo batch identifier
            row: Column values of the deleted record, a mapping or
                sqlite3.Row (avoids key lookups)

        Returns:
            The captured undo records (also handed to the undo ledger)
        """
        row = dict(row) if row is not None else None
        records: list[UndoRecord] = []

        for definition in self._registry.referencing(table):
            for side in definition.sides_of(table):
                key_value = self._key_value(table, definition.key_field(side), record_id, row)
                if key_value is None:
                    continue

                records.append(UndoRecord(
                    host_table=table,
                    relation_table=definition.table,
                    relation_field=definition.field,
                    reference_value=key_value,
                    values=self._related_values(definition, side, key_value),
                    side=side,
                ))
                self._purge(definition, side, key_value)

        self._undo.capture(deletion_id, records)
        return records

    def cleanup_dependents(
        self,
        ctx: OperationContext,
        table: str,
        record_id: Any,
        row: Mapping[str, Any] | None = None,
    ) -> int:
        """Drop edges of other tables' relations pointing at a removed record.

        Runs for every table, whether or not it owns relation fields.

        Returns:
            Number of join rows deleted
        """
        row = dict(row) if row is not None else None
        deleted = 0
        for definition in self._registry.all_definitions():
            if definition.related_table != table:
                continue

            key_value = self._key_value(table, definition.related_key_field, record_id, row)
            if key_value is None:
                continue
            deleted += self._purge(definition, "related", key_value)

        return deleted

    # ==========================================================================
    # COPY / REVISE
    # ==========================================================================

    def copy(self, ctx: OperationContext, table: str, source_id: Any, new_id: Any) -> int:
        """Duplicate a record's edges onto its copy.

        Fields flagged ``doNotCopy`` are skipped. The source's edges are
        left untouched. A non-id key that cannot be looked up falls back to
        the record id.

        Returns:
            Number of join rows inserted
        """
        inserted = 0

        for definition in self._registry.relations_for(table).values():
            if definition.do_not_copy:
                continue

            source_reference = self._key_value(table, definition.reference_key_field, source_id)
            if source_reference is None:
                source_reference = source_id
            new_reference = self._key_value(table, definition.reference_key_field, new_id)
            if new_reference is None:
                new_reference = new_id

            for value in self._related_values(definition, "reference", source_reference):
                self._storage.insert(definition.join_table, {
                    definition.reference_column_in_join: new_reference,
                    definition.related_column_in_join: value,
                })
                inserted += 1

        return inserted

    def revise_incomplete(self, ctx: OperationContext, table: str, candidate_ids: Iterable[Any]) -> int:
        """Purge links of records abandoned during a multi-step creation.

        A record is incomplete while its revision column (``tstamp`` by
        default) is still 0.

        Returns:
            Number of reference values purged
        """
        candidate_ids = list(candidate_ids)
        if not candidate_ids:
            return 0

        revision_column = self._registry.settings.revision_column
        purged = 0

        for definition in self._registry.relations_for(table).values():
            references = self._storage.fetch_column(
                table,
                definition.reference_key_field,
                {"id": candidate_ids, revision_column: 0},
            )
            for reference in unique_preserving_order(references):
                self._purge(definition, "reference", reference)
                purged += 1

        return purged

    # ==========================================================================
    # HELPERS
    # ==========================================================================

    def _related_values(self, definition: RelationDefinition, side: Side, key_value: Any) -> list[Any]:
        """Values on the opposite side of the edges of one key."""
        return self._storage.fetch_column(
            definition.join_table,
            definition.other_join_column(side),
            {definition.join_column(side): key_value},
        )

    def _purge(self, definition: RelationDefinition, side: Side, key_value: Any) -> int:
        deleted = self._storage.delete(definition.join_table, {definition.join_column(side): key_value})
        logger.debug(
            "Purged %d edge(s) on %s side", deleted, side,
            extra={"join_table": definition.join_table, "reference": key_value},
        )
        return deleted

    def _key_value(
        self,
        table: str,
        key_field: str,
        record_id: Any,
        row: Mapping[str, Any] | None = None,
    ) -> Any:
        """Value of a record's key field.

        Taken from row when given, the id itself when the key is the primary
        id, and looked up in the record table otherwise.
        """
        if row is not None and key_field in row:
            return row[key_field]
        if key_field == "id":
            return record_id
        return self._storage.fetch_value(table, key_field, {"id": record_id})
