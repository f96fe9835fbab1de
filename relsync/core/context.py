"""Per-operation state for relation synchronization.

One OperationContext covers one logical operation: a single form
submission, or one bulk edit that saves many records. It is passed
explicitly to every synchronizer and query call and is never shared
between operations.

PURGE-ONCE:
Several fields of one table may map to the same join table. The join rows
of a reference are purged for the first of those fields only; later fields
append to the freshly purged set instead of wiping it again.

BULK DEDUPE:
In a bulk edit the same submitted value is saved once per record. A save
key already saved in this batch skips insertion.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from .types import RelationDefinition


def edge_key(join_table: str, reference_value: Any) -> str:
    """Key identifying one reference's edges in one join table."""
    return f"{join_table}{reference_value}"


@dataclass
class OperationContext:
    """Write-once-per-key sets and list-view registrations of one operation."""
    bulk: bool = False
    purged_keys: set[str] = field(default_factory=set)
    saved_keys_in_bulk: set[str] = field(default_factory=set)
    filterable_fields: dict[str, dict[str, RelationDefinition]] = field(default_factory=dict)
    searchable_fields: dict[str, dict[str, RelationDefinition]] = field(default_factory=dict)

    def mark_purged(self, key: str) -> bool:
        """Mark a purge key; returns True if it was not purged before."""
        if key in self.purged_keys:
            return False
        self.purged_keys.add(key)
        return True

    def mark_saved(self, key: str) -> bool:
        """Mark a bulk save key; returns True if it was not saved before."""
        if key in self.saved_keys_in_bulk:
            return False
        self.saved_keys_in_bulk.add(key)
        return True

    def filterable(self, table: str) -> dict[str, RelationDefinition]:
        return self.filterable_fields.get(table, {})

    def searchable(self, table: str) -> dict[str, RelationDefinition]:
        return self.searchable_fields.get(table, {})
