"""Relation metadata resolution.

RelationRegistry turns field declarations into typed RelationDefinitions.

RESOLUTION:
- A field takes part in a relation when its declaration has a ``relation``
  block whose ``type`` is RELATION_TYPE
- The block is parsed eagerly; a malformed block raises RelationConfigError
  inside the parser, which the registry logs and caches as "no relation"
- resolve() never raises: unknown tables, unknown fields and plain fields
  all return None
- Positive and negative results are cached per (table, field) for the
  lifetime of the registry (declarations are static once loaded)

RECOGNIZED RELATION KEYS:
    type, relatedTable (required), relationTable, reference, field,
    referenceColumn, referenceSql, fieldColumn, fieldSql, tableSql,
    forceSave, skipInstall, doNotCopy, filter, search, csv

JOIN TABLE NAMING:
    compute_join_table_name("tl_member", "tl_group") == "tl_group_member"
    Names are sorted case-insensitively in natural order, then the second
    loses the table prefix. The result is symmetric in its arguments.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING, Any, Iterator, Mapping

from ..exceptions import RelationConfigError
from .types import RelationDefinition

if TYPE_CHECKING:
    from ..config import Settings
    from ..declarations import SchemaStore

logger = logging.getLogger(__name__)

RELATION_TYPE = "many-to-many"

STRING_KEYS = (
    "relatedTable", "relationTable", "reference", "field", "referenceColumn",
    "referenceSql", "fieldColumn", "fieldSql", "tableSql", "csv",
)
BOOL_KEYS = ("forceSave", "skipInstall", "doNotCopy", "filter", "search")

_DIGITS = re.compile(r"(\d+)")


def natural_key(value: str) -> list[Any]:
    """Case-insensitive natural sort key ("table2" < "table10").

    Examples:
        >>> sorted(["t10", "T2", "t1"], key=natural_key)
        ['t1', 'T2', 't10']
    """
    return [
        (0, int(part), "") if part.isdigit() else (1, 0, part.casefold())
        for part in _DIGITS.split(value)
        if part
    ]


def strip_prefix(table: str, prefix: str) -> str:
    """Remove the table prefix from the start of a table name."""
    if prefix and table.startswith(prefix):
        return table[len(prefix):]
    return table


def compute_join_table_name(table_a: str, table_b: str, prefix: str = "tl_") -> str:
    """Compute the default join table name for two tables.

    Args:
        table_a: One side of the relation
        table_b: The other side
        prefix: Table prefix stripped from the second sorted name

    Returns:
        ``first + "_" + strip_prefix(second)`` with the names in natural,
        case-insensitive order

    Examples:
        >>> compute_join_table_name("tl_member", "tl_group")
        'tl_group_member'

        >>> compute_join_table_name("tl_group", "tl_member")
        'tl_group_member'
    """
    first, second = sorted((table_a, table_b), key=lambda name: (natural_key(name), name))
    return f"{first}_{strip_prefix(second, prefix)}"


class RelationRegistry:
    """Resolves and caches RelationDefinitions from declarations.

    The cache is read-mostly and may be shared across operations once
    populated. Per-operation state lives in OperationContext, not here.
    """

    def __init__(self, schema: "SchemaStore", settings: "Settings | None" = None):
        """Initialize registry.

        Args:
            schema: Declaration store used to look up field configuration
            settings: relsync settings (defaults to relsync.config.default_settings)
        """
        if settings is None:
            from ..config import default_settings as settings
        self._schema = schema
        self._settings = settings
        self._cache: dict[tuple[str, str], RelationDefinition | None] = {}

    @property
    def schema(self) -> "SchemaStore":
        return self._schema

    @property
    def settings(self) -> "Settings":
        return self._settings

    def join_table_name(self, table_a: str, table_b: str) -> str:
        """compute_join_table_name() with the configured table prefix."""
        return compute_join_table_name(table_a, table_b, self._settings.table_prefix)

    # ==========================================================================
    # RESOLUTION
    # ==========================================================================

    def resolve(self, table: str, field: str) -> RelationDefinition | None:
        """Resolve the relation of a field.

        Args:
            table: Owner table
            field: Field name

        Returns:
            RelationDefinition, or None if the field has no (valid) relation
        """
        cache_key = (table, field)
        if cache_key in self._cache:
            return self._cache[cache_key]

        definition = None
        try:
            config = self._schema.field(table, field)
            relation = config.get("relation") if config else None
            if isinstance(relation, Mapping) and relation.get("type") == RELATION_TYPE:
                definition = self.parse(table, field, relation)
        except RelationConfigError as e:
            logger.warning(
                "Ignoring malformed relation %s.%s: %s", table, field, e.message,
                extra={"table": table, "field": field},
            )
        except ValueError as e:
            logger.warning(
                "Cannot load declaration of %s: %s", table, e,
                extra={"table": table, "field": field},
            )

        self._cache[cache_key] = definition
        return definition

    def parse(self, table: str, field: str, relation: Mapping[str, Any]) -> RelationDefinition:
        """Parse a relation block into a RelationDefinition.

        Args:
            table: Owner table
            field: Owner field
            relation: Relation block from the field declaration

        Returns:
            Fully defaulted RelationDefinition

        Raises:
            RelationConfigError: If a key has the wrong type or relatedTable is missing
        """
        for key in STRING_KEYS:
            value = relation.get(key)
            if value is not None and (not isinstance(value, str) or not value):
                raise RelationConfigError(
                    f"'{key}' must be a non-empty string, got {value!r}", table, field
                )
        for key in BOOL_KEYS:
            value = relation.get(key)
            if value is not None and not isinstance(value, bool):
                raise RelationConfigError(
                    f"'{key}' must be a boolean, got {value!r}", table, field
                )

        related_table = relation.get("relatedTable")
        if not related_table:
            raise RelationConfigError("'relatedTable' is required", table, field)

        prefix = self._settings.table_prefix
        column_sql = self._settings.default_column_sql
        reference_key = relation.get("reference", "id")
        related_key = relation.get("field", "id")

        return RelationDefinition(
            table=table,
            field=field,
            join_table=relation.get("relationTable") or self.join_table_name(table, related_table),
            reference_table=table,
            reference_key_field=reference_key,
            reference_column_in_join=relation.get(
                "referenceColumn", f"{strip_prefix(table, prefix)}_{reference_key}"
            ),
            reference_column_type=relation.get("referenceSql", column_sql),
            related_table=related_table,
            related_key_field=related_key,
            related_column_in_join=relation.get(
                "fieldColumn", f"{strip_prefix(related_table, prefix)}_{related_key}"
            ),
            related_column_type=relation.get("fieldSql", column_sql),
            force_save=bool(relation.get("forceSave", False)),
            skip_schema_install=bool(relation.get("skipInstall", False)),
            join_table_extra_options=relation.get("tableSql"),
            do_not_copy=bool(relation.get("doNotCopy", False)),
            filter=bool(relation.get("filter", False)),
            search=bool(relation.get("search", False)),
            csv=relation.get("csv"),
        )

    # ==========================================================================
    # ENUMERATION
    # ==========================================================================

    def relations_for(self, table: str) -> dict[str, RelationDefinition]:
        """Every relation field of one table, keyed by field name.

        A table whose declaration cannot be loaded has no relations.
        """
        try:
            fields = self._schema.fields(table)
        except ValueError as e:
            logger.warning(
                "Cannot load declaration of %s: %s", table, e, extra={"table": table}
            )
            return {}

        relations = {}
        for field in fields:
            definition = self.resolve(table, field)
            if definition is not None:
                relations[field] = definition
        return relations

    def all_definitions(self) -> Iterator[RelationDefinition]:
        """Yield every resolvable definition across all declarations.

        Loads every declaration first, so relations owned by tables that
        were never touched in this process are included.
        """
        for table in self._schema.load_all():
            yield from self.relations_for(table).values()

    def referencing(self, table: str) -> list[RelationDefinition]:
        """Every definition with table on either side."""
        return [definition for definition in self.all_definitions() if definition.touches(table)]

    def clear(self) -> None:
        """Drop cached resolutions (after declarations were re-registered)."""
        self._cache.clear()
