"""Structured logging setup for relsync.

Every module logs through logging.getLogger(__name__). Relation-specific
context is passed with ``extra={...}`` and surfaced by JSONFormatter when present.
"""

import json
import logging
from datetime import datetime, timezone

# Extra record attributes surfaced by JSONFormatter
CONTEXT_KEYS = ("table", "field", "join_table", "batch_id", "reference")


class JSONFormatter(logging.Formatter):
    """Format logs as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        for key in CONTEXT_KEYS:
            val = record.__dict__.get(key)
            if val is not None:
                log[key] = val
        if record.exc_info:
            log["exception"] = self.formatException(record.exc_info)
        return json.dumps(log, ensure_ascii=False, default=str)


def setup_logging(level: str = "INFO", fmt: str = "text") -> logging.Handler:
    """Configure root logging for an application embedding relsync.

    Args:
        level: Log level name (DEBUG, INFO, WARNING, ...)
        fmt: "json" for JSONFormatter, anything else for plain text

    Returns:
        The installed handler (so callers can remove it again)
    """
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s %(name)s: %(message)s",
        ))
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level.upper(), logging.INFO))
    return handler
