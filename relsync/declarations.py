"""Declarative per-table schema store.

The editor describes every table as a declaration: a mapping with a
``fields`` section, one entry per field. A field takes part in a
many-to-many relation when it carries a ``relation`` block:

    {
        "fields": {
            "groups": {
                "label": "Member groups",
                "relation": {
                    "type": "many-to-many",
                    "relatedTable": "group",
                    "relationTable": "member_group",
                    "filter": true
                }
            }
        }
    }

Declarations are loaded lazily, one table at a time, from either a registered
mapping or a ``<table>.json`` file in the declarations directory. Loaded
declarations are private copies: annotate() never mutates the caller's data.

Field-level keys read by the engine:
- relation: relation block (see relsync.core.registry for recognized keys)
- foreignKey: "table.column" label lookup for ids stored in this field
- search: field may be offered for relation search
- label / options: human-readable labels for filter options
"""

from __future__ import annotations

import copy
import json
import logging
from pathlib import Path
from typing import Any, Mapping

logger = logging.getLogger(__name__)


class SchemaStore:
    """Lazily loaded table declarations."""

    def __init__(
        self,
        directory: str | Path | None = None,
        declarations: Mapping[str, Mapping[str, Any]] | None = None,
    ):
        """Initialize schema store.

        Args:
            directory: Optional directory holding ``<table>.json`` declarations
            declarations: Optional table -> declaration mappings (registered, not loaded)
        """
        self.directory = Path(directory) if directory else None
        self._sources: dict[str, Mapping[str, Any]] = {}
        self._loaded: dict[str, dict[str, Any]] = {}

        for table, declaration in (declarations or {}).items():
            self.register(table, declaration)

    def register(self, table: str, declaration: Mapping[str, Any]) -> None:
        """Register a declaration for lazy loading.

        Re-registering a table that was already loaded replaces the loaded copy.
        """
        self._sources[table] = declaration
        self._loaded.pop(table, None)

    # ==========================================================================
    # LOADING
    # ==========================================================================

    def load(self, table: str) -> dict[str, Any] | None:
        """Load a table declaration if not yet loaded.

        Args:
            table: Table name

        Returns:
            The loaded declaration, or None if the table is unknown

        Raises:
            ValueError: If the declaration file contains invalid JSON or no object
        """
        if table in self._loaded:
            return self._loaded[table]

        source = self._sources.get(table)
        if source is None:
            source = self._read_file(table)
        if source is None:
            return None

        declaration = copy.deepcopy(dict(source))
        declaration.setdefault("fields", {})
        self._loaded[table] = declaration
        logger.debug("Loaded declaration for %s", table, extra={"table": table})
        return declaration

    def load_all(self) -> list[str]:
        """Load every known declaration (registered and on disk).

        Declarations that fail to load are logged and left out.

        Returns:
            Sorted list of loaded table names
        """
        tables = set(self._sources)
        if self.directory and self.directory.is_dir():
            tables.update(path.stem for path in self.directory.glob("*.json"))

        for table in sorted(tables):
            try:
                self.load(table)
            except ValueError as e:
                logger.warning(
                    "Skipping declaration of %s: %s", table, e, extra={"table": table}
                )

        return self.loaded_tables()

    def _read_file(self, table: str) -> dict[str, Any] | None:
        if self.directory is None:
            return None

        file_path = self.directory / f"{table}.json"
        if not file_path.is_file():
            return None

        content = file_path.read_text(encoding="utf-8")
        try:
            declaration = json.loads(content)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in declaration file {file_path}: {e}") from e

        if not isinstance(declaration, dict):
            raise ValueError(f"Declaration file {file_path} must contain a JSON object")
        return declaration

    def is_loaded(self, table: str) -> bool:
        return table in self._loaded

    def loaded_tables(self) -> list[str]:
        return sorted(self._loaded)

    # ==========================================================================
    # ACCESS
    # ==========================================================================

    def fields(self, table: str) -> dict[str, dict[str, Any]]:
        """Field declarations of a table (empty for unknown tables)."""
        declaration = self.load(table)
        if declaration is None:
            return {}
        fields = declaration.get("fields")
        return fields if isinstance(fields, dict) else {}

    def field(self, table: str, name: str) -> dict[str, Any] | None:
        """Declaration of a single field, or None."""
        config = self.fields(table).get(name)
        return config if isinstance(config, dict) else None

    def annotate(self, table: str, name: str, key: str, value: Any) -> None:
        """Write a derived flag back onto a loaded field declaration.

        Unknown tables and fields are ignored.
        """
        config = self.field(table, name)
        if config is not None:
            config[key] = value
