"""Schema access and join-table DDL for relsync.

This module provides runtime access to the bundled SQL schemas and builds
the CREATE TABLE statements for every declared join table.

BUNDLED SQL:
- Try importlib.resources first (installed package)
- Fall back to file reading (source checkout)
- Raise FileNotFoundError if the schema is found in neither location

JOIN TABLES:
Every resolvable relation contributes its two columns to its join table,
unless it is flagged ``skipInstall``. Several relations may share one join
table; the first one to reach it names the table's single unique key
``<reference column>_<related column>``. ``tableSql`` options are appended
to the CREATE TABLE statement verbatim, so they must be valid for the
target database.

USAGE:
    >>> from relsync.schemas import get_sql_schema, join_table_definitions
    >>>
    >>> undo_sql = get_sql_schema('undo')
    >>>
    >>> for definition in join_table_definitions(registry).values():
    ...     print(render_create_table(definition))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from importlib.resources import files as resource_files
from pathlib import Path
from typing import TYPE_CHECKING

from .storage.clauses import quote_identifier

if TYPE_CHECKING:
    from .core.registry import RelationRegistry
    from .storage import Storage

logger = logging.getLogger(__name__)


# ============================================================================
# CONSTANTS
# ============================================================================

VALID_SCHEMAS = {"undo"}


# ============================================================================
# SQL SCHEMA ACCESS
# ============================================================================

def get_sql_schema(name: str) -> str:
    """Get bundled SQL schema content.

    Args:
        name: Schema name - 'undo'

    Returns:
        SQL schema content as string

    Raises:
        ValueError: If name is not a bundled schema
        FileNotFoundError: If schema file not found in bundled or file locations

    Examples:
        >>> undo_sql = get_sql_schema('undo')
    """
    if name not in VALID_SCHEMAS:
        raise ValueError(
            f"Invalid schema: {name!r}. Must be one of: {sorted(VALID_SCHEMAS)}"
        )

    # Try importlib.resources first (bundled package)
    try:
        schema_file = resource_files("relsync") / "sql" / f"{name}.sql"
        if schema_file.is_file():
            return schema_file.read_text(encoding="utf-8")
    except (FileNotFoundError, ModuleNotFoundError):
        pass

    # Fall back to file reading (development mode)
    file_locations = [
        Path(__file__).parent / "sql" / f"{name}.sql",
    ]

    for file_path in file_locations:
        if file_path.exists():
            return file_path.read_text(encoding="utf-8")

    raise FileNotFoundError(
        f"SQL schema file not found for '{name}'. "
        f"Searched locations: {[str(p) for p in file_locations]}"
    )


# ============================================================================
# JOIN TABLE DEFINITIONS
# ============================================================================

@dataclass
class JoinTableDefinition:
    """Columns, options and unique key of one join table."""
    name: str
    columns: dict[str, str] = field(default_factory=dict)  # column -> SQL type
    options: str | None = None
    unique_keys: dict[str, tuple[str, str]] = field(default_factory=dict)


def join_table_definitions(registry: "RelationRegistry") -> dict[str, JoinTableDefinition]:
    """Collect the join tables of every installable relation.

    Args:
        registry: Relation metadata (every declaration is loaded)

    Returns:
        Mapping of join table name -> JoinTableDefinition
    """
    definitions: dict[str, JoinTableDefinition] = {}

    for relation in registry.all_definitions():
        if relation.skip_schema_install:
            continue

        table = definitions.setdefault(
            relation.join_table, JoinTableDefinition(name=relation.join_table)
        )
        reference_column = relation.reference_column_in_join
        related_column = relation.related_column_in_join

        table.columns[reference_column] = relation.reference_column_type
        table.columns[related_column] = relation.related_column_type

        if relation.join_table_extra_options:
            table.options = relation.join_table_extra_options

        # Only one unique key per join table
        if not table.unique_keys:
            table.unique_keys[f"{reference_column}_{related_column}"] = (reference_column, related_column)

    return definitions


def render_create_table(definition: JoinTableDefinition) -> str:
    """Render the CREATE TABLE statement of a join table.

    Examples:
        >>> render_create_table(JoinTableDefinition(
        ...     name="member_group",
        ...     columns={"member_id": "INTEGER NOT NULL", "group_id": "INTEGER NOT NULL"},
        ...     unique_keys={"member_id_group_id": ("member_id", "group_id")},
        ... ))
        'CREATE TABLE IF NOT EXISTS "member_group" (\\n    "member_id" INTEGER NOT NULL,\\n    "group_id" INTEGER NOT NULL,\\n    CONSTRAINT "member_id_group_id" UNIQUE ("member_id", "group_id")\\n);'
    """
    lines = [f"{quote_identifier(column)} {sql}" for column, sql in definition.columns.items()]
    for key_name, columns in definition.unique_keys.items():
        key_columns = ", ".join(quote_identifier(column) for column in columns)
        lines.append(f"CONSTRAINT {quote_identifier(key_name)} UNIQUE ({key_columns})")

    body = ",\n    ".join(lines)
    options = f" {definition.options}" if definition.options else ""
    return f"CREATE TABLE IF NOT EXISTS {quote_identifier(definition.name)} (\n    {body}\n){options};"


def install_join_tables(storage: "Storage", registry: "RelationRegistry") -> list[str]:
    """Create every missing join table.

    Args:
        storage: Active Storage
        registry: Relation metadata

    Returns:
        Names of the join tables that did not exist before
    """
    created = []
    for name, definition in sorted(join_table_definitions(registry).items()):
        if not storage.table_exists(name):
            created.append(name)
        storage.execute_script(render_create_table(definition))
        logger.debug("Installed join table %s", name, extra={"join_table": name})
    return created
