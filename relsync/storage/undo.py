"""Undo payload storage.

The undo store keeps one opaque payload per (batch_id, category). relsync
stores relation snapshots under its own category; other subsystems may share
the table with other categories. Payloads are JSON-serialized on store and
decoded on retrieve, so anything JSON-representable comes back verbatim.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import Any

from .database import Storage

UNDO_TABLE = "relsync_undo"


class UndoStore:
    """Undo payloads persisted in the relsync_undo table."""

    def __init__(self, storage: Storage):
        """Initialize undo store.

        Args:
            storage: Active Storage (used as context manager by the caller)
        """
        self._storage = storage

    def init_schema(self) -> None:
        """Create the undo table from the bundled undo.sql."""
        from ..schemas import get_sql_schema

        self._storage.execute_script(get_sql_schema("undo"))

    def store(self, batch_id: str | int, category: str, payload: Any) -> None:
        """Store a payload, replacing any previous one for the same key.

        Args:
            batch_id: Deletion/undo identifier
            category: Payload category (e.g. "relations")
            payload: JSON-serializable payload
        """
        self._storage.execute(
            f"""INSERT OR REPLACE INTO {UNDO_TABLE} (batch_id, category, payload, created_at)
                VALUES (?, ?, ?, ?)""",
            (str(batch_id), category, json.dumps(payload), datetime.now(timezone.utc).isoformat()),
        )

    def retrieve(self, batch_id: str | int, category: str) -> Any | None:
        """Retrieve a payload.

        Returns:
            The decoded payload, or None if nothing was stored for the key
        """
        raw = self._storage.fetch_value(
            UNDO_TABLE, "payload", {"batch_id": str(batch_id), "category": category}
        )
        if raw is None:
            return None
        return json.loads(raw)

    def retrieve_all(self, batch_id: str | int) -> dict[str, Any]:
        """Retrieve every category stored for a batch.

        Returns:
            Mapping of category -> decoded payload
        """
        rows = self._storage.fetch_rows(UNDO_TABLE, {"batch_id": str(batch_id)})
        return {row["category"]: json.loads(row["payload"]) for row in rows}
