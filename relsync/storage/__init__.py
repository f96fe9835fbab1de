"""relsync storage layer.

ARCHITECTURE:
- Storage owns its SQLite connection and must be used as a context manager
- UndoStore persists undo payloads through an active Storage
- No object-relational mapping: plain column/value pairs over named tables
"""

from .clauses import build_where_clause, quote_identifier
from .database import Storage
from .undo import UndoStore, UNDO_TABLE

__all__ = [
    "Storage",
    "UndoStore",
    "UNDO_TABLE",
    "build_where_clause",
    "quote_identifier",
]
