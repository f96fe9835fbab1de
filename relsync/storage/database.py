"""Row-level storage over SQLite.

Storage is the only component that talks to sqlite3. It knows nothing about
relations: callers hand it table names, column -> value mappings and
predicates.

CONNECTION LIFECYCLE:
- Storage MUST be used as context manager (enforced at runtime)
- __enter__: Marks Storage as active, creates connection, returns self
- __exit__: Commits on success, rollbacks on exception, always closes
- Operations call _get_connection() which raises RuntimeError if not in context

TRANSACTIONS:
Statements run inside the connection's implicit transaction and are
committed when the context exits. With autocommit=True every statement
commits on its own instead. transaction() opens a SAVEPOINT so a group of
statements (e.g. purge + insert) can be rolled back on its own in either mode.

REGEXP:
SQLite has no built-in REGEXP implementation; every connection registers one
backed by Python's re module. A NULL operand never matches.
"""

from __future__ import annotations

import re
import sqlite3
from contextlib import contextmanager
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterator, Mapping

from ..host.filesystem import ensure_parent_dir
from .clauses import build_insert, build_where_clause, quote_identifier


@lru_cache(maxsize=256)
def _compile(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def _regexp(pattern: str | None, value: Any) -> int:
    """SQL ``value REGEXP pattern`` (SQLite passes the pattern first)."""
    if pattern is None or value is None:
        return 0
    return 1 if _compile(pattern).search(str(value)) else 0


class Storage:
    """SQLite-backed row storage for records and join tables."""

    def __init__(self, db_path: str | Path = "relsync.db", autocommit: bool = False):
        """Initialize storage.

        Args:
            db_path: Path to SQLite database file, or ":memory:"
            autocommit: If True, every statement commits on its own.
                If False, statements commit together when the context exits.

        Note:
            Storage must be used as context manager. Operations will raise
            RuntimeError if called outside of 'with' statement.
        """
        self.db_path = db_path if str(db_path) == ":memory:" else Path(db_path)
        self.autocommit = autocommit
        self._conn: sqlite3.Connection | None = None
        self._in_context = False
        self._savepoint_depth = 0

    def _get_connection(self) -> sqlite3.Connection:
        """Get connection, enforcing context manager usage.

        Returns:
            SQLite connection

        Raises:
            RuntimeError: If Storage is not being used as context manager
        """
        if not self._in_context:
            raise RuntimeError(
                "Storage must be used as context manager. "
                "Use: with Storage(path) as storage: ..."
            )
        if self._conn is None:
            if isinstance(self.db_path, Path):
                ensure_parent_dir(self.db_path)
            self._conn = sqlite3.connect(
                str(self.db_path), isolation_level=None if self.autocommit else ""
            )
            self._conn.row_factory = sqlite3.Row
            self._conn.create_function("REGEXP", 2, _regexp, deterministic=True)
        return self._conn

    def close(self):
        """Close database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> Storage:
        self._in_context = True
        self._get_connection()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Exit context manager, committing or rolling back transaction."""
        self._in_context = False
        try:
            if self._conn is not None:
                if exc_type is None:
                    self._conn.commit()
                else:
                    self._conn.rollback()
        finally:
            self.close()

    def commit(self):
        """Commit the pending implicit transaction."""
        self._get_connection().commit()

    @contextmanager
    def transaction(self) -> Iterator[Storage]:
        """Run a block of statements atomically (SAVEPOINT).

        Nested calls create nested savepoints. On exception the block's
        statements are rolled back and the exception propagates.

        Usage:
            with storage.transaction():
                storage.delete("member_group", {"member_id": 7})
                storage.insert("member_group", {"member_id": 7, "group_id": 1})
        """
        conn = self._get_connection()
        self._savepoint_depth += 1
        name = f"relsync_sp_{self._savepoint_depth}"
        conn.execute(f"SAVEPOINT {name}")
        try:
            yield self
        except BaseException:
            conn.execute(f"ROLLBACK TO SAVEPOINT {name}")
            conn.execute(f"RELEASE SAVEPOINT {name}")
            raise
        else:
            conn.execute(f"RELEASE SAVEPOINT {name}")
        finally:
            self._savepoint_depth -= 1

    # ==========================================================================
    # ROW OPERATIONS
    # ==========================================================================

    def insert(self, table: str, row: Mapping[str, Any]) -> int:
        """Insert one row.

        Args:
            table: Target table
            row: Column -> value mapping

        Returns:
            rowid of the inserted row
        """
        sql, params = build_insert(table, row)
        cursor = self._get_connection().execute(sql, params)
        return cursor.lastrowid

    def delete(self, table: str, conditions: Mapping[str, Any]) -> int:
        """Delete rows matching all conditions.

        Args:
            table: Target table
            conditions: Column -> value (or collection of values) mapping

        Returns:
            Number of deleted rows
        """
        where, params = build_where_clause(conditions)
        cursor = self._get_connection().execute(
            f"DELETE FROM {quote_identifier(table)} WHERE {where}", params
        )
        return cursor.rowcount

    def fetch_column(
        self,
        table: str,
        column: str,
        conditions: Mapping[str, Any] | None = None,
        distinct: bool = False,
    ) -> list[Any]:
        """Fetch one column of every row matching the conditions.

        Rows are returned in insertion (rowid) order.

        Args:
            table: Source table
            column: Column to fetch
            conditions: Optional column -> value mapping
            distinct: Drop duplicate values

        Returns:
            List of column values
        """
        where, params = build_where_clause(conditions or {})
        sql = f"SELECT {quote_identifier(column)} FROM {quote_identifier(table)} WHERE {where}"
        if distinct:
            sql = sql.replace("SELECT", "SELECT DISTINCT", 1)
        else:
            sql += " ORDER BY rowid"
        rows = self._get_connection().execute(sql, params).fetchall()
        return [row[0] for row in rows]

    def fetch_value(
        self,
        table: str,
        column: str,
        conditions: Mapping[str, Any],
    ) -> Any | None:
        """Fetch a single value, or None if no row matches."""
        where, params = build_where_clause(conditions)
        row = self._get_connection().execute(
            f"SELECT {quote_identifier(column)} FROM {quote_identifier(table)} WHERE {where} LIMIT 1",
            params,
        ).fetchone()
        return row[0] if row else None

    def fetch_rows(
        self,
        table: str,
        conditions: Mapping[str, Any] | None = None,
    ) -> list[sqlite3.Row]:
        """Fetch every row matching the conditions."""
        where, params = build_where_clause(conditions or {})
        return self._get_connection().execute(
            f"SELECT * FROM {quote_identifier(table)} WHERE {where} ORDER BY rowid", params
        ).fetchall()

    def query(self, sql: str, params: list[Any] | tuple = ()) -> list[sqlite3.Row]:
        """Run a read query built by the caller."""
        return self._get_connection().execute(sql, params).fetchall()

    def execute(self, sql: str, params: list[Any] | tuple = ()) -> int:
        """Run a write statement built by the caller.

        Returns:
            Number of affected rows
        """
        return self._get_connection().execute(sql, params).rowcount

    def execute_script(self, sql: str) -> None:
        """Execute a multi-statement SQL script (DDL)."""
        self._get_connection().executescript(sql)

    # ==========================================================================
    # INTROSPECTION
    # ==========================================================================

    def list_tables(self) -> list[str]:
        """List user tables in the database."""
        rows = self._get_connection().execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name NOT LIKE 'sqlite_%' ORDER BY name"
        ).fetchall()
        return [row[0] for row in rows]

    def table_exists(self, table: str) -> bool:
        row = self._get_connection().execute(
            "SELECT 1 FROM sqlite_master WHERE type='table' AND name = ?", (table,)
        ).fetchone()
        return row is not None

    def table_columns(self, table: str) -> list[str]:
        """List column names of a table (empty if the table doesn't exist)."""
        rows = self._get_connection().execute(
            f"PRAGMA table_info({quote_identifier(table)})"
        ).fetchall()
        return [row["name"] for row in rows]
