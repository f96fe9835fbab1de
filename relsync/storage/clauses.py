"""SQL clause builders and identifier handling.

QUERY BUILDER SCOPE:
Table and column names reach the storage layer from declarative schema
configuration, so they are validated and quoted here before being
interpolated. Values are always bound as ``?`` parameters.
Don't build a full ORM - just helpers for the patterns the engine repeats.
"""

import re
from typing import Any, Iterable, Mapping

from ..exceptions import ValidationError

IDENTIFIER_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")


def quote_identifier(name: str) -> str:
    """Validate and double-quote a table or column name.

    Args:
        name: Bare identifier (no schema qualification)

    Returns:
        Quoted identifier, e.g. '"group"'

    Raises:
        ValidationError: If name is not a plain identifier

    Examples:
        >>> quote_identifier("member_group")
        '"member_group"'

        >>> quote_identifier("group")
        '"group"'
    """
    if not isinstance(name, str) or not IDENTIFIER_PATTERN.match(name):
        raise ValidationError(f"Invalid SQL identifier: {name!r}", details={"identifier": name})
    return f'"{name}"'


def qualified(table: str, column: str) -> str:
    """Return a quoted ``table.column`` reference."""
    return f"{quote_identifier(table)}.{quote_identifier(column)}"


def build_where_clause(conditions: Mapping[str, Any]) -> tuple[str, list[Any]]:
    """Build a WHERE clause from a column -> value mapping.

    Scalar values become equality tests. Lists, tuples and sets become
    ``IN (...)`` tests; an empty collection matches nothing.

    Args:
        conditions: Dictionary of column names to values

    Returns:
        Tuple of (where_clause, params) where:
        - where_clause: SQL WHERE clause (without "WHERE" keyword)
        - params: List of parameter values for placeholders

    Examples:
        >>> build_where_clause({"member_id": 7})
        ('"member_id" = ?', [7])

        >>> build_where_clause({"id": [1, 2], "tstamp": 0})
        ('"id" IN (?, ?) AND "tstamp" = ?', [1, 2, 0])

        >>> build_where_clause({})
        ('1=1', [])
    """
    where_parts = []
    params: list[Any] = []

    for key, value in conditions.items():
        column = quote_identifier(key)
        if isinstance(value, (list, tuple, set, frozenset)):
            values = list(value)
            if not values:
                where_parts.append("0=1")
                continue
            placeholders = ", ".join("?" for _ in values)
            where_parts.append(f"{column} IN ({placeholders})")
            params.extend(values)
        else:
            where_parts.append(f"{column} = ?")
            params.append(value)

    where_clause = " AND ".join(where_parts) if where_parts else "1=1"
    return where_clause, params


def build_insert(table: str, row: Mapping[str, Any]) -> tuple[str, list[Any]]:
    """Build an INSERT statement for one row.

    Args:
        table: Target table
        row: Column -> value mapping (must not be empty)

    Returns:
        Tuple of (sql, params)

    Raises:
        ValidationError: If row is empty or contains invalid identifiers
    """
    if not row:
        raise ValidationError(f"Cannot insert an empty row into {table!r}")

    columns = ", ".join(quote_identifier(column) for column in row)
    placeholders = ", ".join("?" for _ in row)
    sql = f"INSERT INTO {quote_identifier(table)} ({columns}) VALUES ({placeholders})"
    return sql, list(row.values())


def unique_preserving_order(values: Iterable[Any]) -> list[Any]:
    """Return values with duplicates removed, keeping first occurrences."""
    seen = set()
    result = []
    for value in values:
        if value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result
