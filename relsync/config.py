"""Configuration management for relsync.

Configuration is loaded from a TOML file with environment variable overrides.

Configuration Resolution Order:
1. Environment variables (highest priority)
2. TOML config file
3. Built-in defaults

TOML LAYOUT:
    [database]
    path = "/var/lib/editor/records.db"
    collation = "utf8mb4_unicode_ci"

    [relations]
    table_prefix = "tl_"
    default_column_sql = "INTEGER NOT NULL DEFAULT 0"
    undo_category = "relations"
    revision_column = "tstamp"
    declarations_dir = "/etc/editor/declarations"

    [logging]
    level = "INFO"
    format = "json"
"""

import logging
import tomllib
from pathlib import Path
from typing import Any, Optional

from relsync.host.environment import get_config_path, get_db_path, get_env

logger = logging.getLogger(__name__)

DEFAULT_COLUMN_SQL = "INTEGER NOT NULL DEFAULT 0"


def load_toml_config(config_path: Path) -> dict[str, Any]:
    """Load configuration from TOML file.

    Args:
        config_path: Path to config.toml file

    Returns:
        Dictionary with configuration sections

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If config file is invalid TOML
    """
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path, "rb") as f:
        try:
            return tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ValueError(f"Invalid TOML in {config_path}: {e}") from e


class Settings:
    """relsync settings with TOML configuration support.

    Configuration Loading:
    1. Built-in defaults
    2. TOML config file (if exists)
    3. Environment variable overrides
    4. Explicit keyword overrides (tests, embedding applications)
    """

    def __init__(
        self,
        config_path: Optional[Path] = None,
        **overrides: Any,
    ):
        """Initialize settings.

        Args:
            config_path: Optional explicit path to config.toml. If None,
                resolved via get_config_path().
            **overrides: Attribute values that win over every other source
        """
        self._config: dict[str, Any] = {}

        if config_path is None:
            config_path = get_config_path()

        if config_path.exists():
            try:
                self._config = load_toml_config(config_path)
            except ValueError as e:
                # Continue with defaults
                logger.warning("Failed to load config from %s: %s", config_path, e)

        self._apply_config()

        for key, value in overrides.items():
            setattr(self, key, value)

    def _apply_config(self):
        """Apply TOML configuration and environment overrides (env var > TOML > default)."""
        database_config = self._config.get("database", {})
        relations_config = self._config.get("relations", {})
        logging_config = self._config.get("logging", {})

        # Database path: explicit env var wins, then TOML, then data dir default
        if get_env("RELSYNC_DB") or get_env("RELSYNC_DATA_DIR"):
            self.database_path = get_db_path()
        elif database_config.get("path"):
            self.database_path = Path(database_config["path"])
        else:
            self.database_path = get_db_path()

        self.db_collation = get_env(
            "RELSYNC_DB_COLLATION",
            database_config.get("collation", "utf8mb4_unicode_ci"),
        )

        self.table_prefix = get_env(
            "RELSYNC_TABLE_PREFIX",
            relations_config.get("table_prefix", "tl_"),
        )
        self.default_column_sql = relations_config.get("default_column_sql", DEFAULT_COLUMN_SQL)
        self.undo_category = relations_config.get("undo_category", "relations")
        self.revision_column = relations_config.get("revision_column", "tstamp")

        declarations_dir = get_env(
            "RELSYNC_DECLARATIONS_DIR",
            relations_config.get("declarations_dir"),
        )
        self.declarations_dir = Path(declarations_dir) if declarations_dir else None

        self.log_level = get_env("RELSYNC_LOG_LEVEL", logging_config.get("level", "INFO"))
        self.log_format = get_env("RELSYNC_LOG_FORMAT", logging_config.get("format", "text"))

    @property
    def case_insensitive_collation(self) -> bool:
        """Whether the configured collation compares case-insensitively."""
        return str(self.db_collation).lower().endswith("_ci")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value.

        Args:
            key: Configuration key
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        return getattr(self, key, default)


# Default settings instance
default_settings = Settings()
