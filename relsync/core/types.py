"""Domain types for relsync.

These types define the fundamental data representations passed between the
registry, the synchronizer, the undo ledger and the query builder.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

Side = Literal["reference", "related"]


@dataclass(frozen=True)
class RelationDefinition:
    """Resolved many-to-many relation of one (table, field).

    The owner table is the reference side; related_table is the related side.
    Edges live in join_table as (reference_column_in_join, related_column_in_join).
    """
    table: str  # Owner table (reference side)
    field: str  # Owner field carrying the relation declaration
    join_table: str
    reference_table: str
    reference_key_field: str
    reference_column_in_join: str
    reference_column_type: str
    related_table: str
    related_key_field: str
    related_column_in_join: str
    related_column_type: str
    force_save: bool = False
    skip_schema_install: bool = False
    join_table_extra_options: str | None = None
    do_not_copy: bool = False
    filter: bool = False
    search: bool = False
    csv: str | None = None

    def touches(self, table: str) -> bool:
        """Whether table sits on either side of the relation."""
        return table in (self.reference_table, self.related_table)

    def key_field(self, side: Side) -> str:
        """Key field of the record table on the given side."""
        return self.reference_key_field if side == "reference" else self.related_key_field

    def join_column(self, side: Side) -> str:
        """Join-table column holding the given side's key."""
        return self.reference_column_in_join if side == "reference" else self.related_column_in_join

    def other_join_column(self, side: Side) -> str:
        """Join-table column holding the opposite side's key."""
        return self.related_column_in_join if side == "reference" else self.reference_column_in_join

    def sides_of(self, table: str) -> list[Side]:
        """Sides occupied by table (both for a self-referencing relation)."""
        sides: list[Side] = []
        if self.reference_table == table:
            sides.append("reference")
        if self.related_table == table:
            sides.append("related")
        return sides


@dataclass
class UndoRecord:
    """Snapshot of one relation's edges for a deleted record.

    host_table is the table of the deleted record; relation_table and
    relation_field identify the declaration the edges belong to. values are
    the keys on the opposite side, in join-table order.
    """
    host_table: str
    relation_table: str
    relation_field: str
    reference_value: Any
    values: list[Any] = field(default_factory=list)
    side: Side = "reference"

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> UndoRecord:
        return cls(
            host_table=data["host_table"],
            relation_table=data["relation_table"],
            relation_field=data["relation_field"],
            reference_value=data["reference_value"],
            values=list(data.get("values") or []),
            side=data.get("side", "reference"),
        )


@dataclass
class SaveResult:
    """Outcome of RelationSynchronizer.save().

    retain tells the caller whether to keep the raw value in the source
    column (True) or clear it because it now lives only in the join table.
    """
    retain: bool
    value: Any
    purged: bool = False
    inserted: int = 0
