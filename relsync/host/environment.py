"""Environment variable access and path resolution.

This module provides utilities for resolving database and configuration
paths based on environment variables and default locations.

Path Resolution Order:
1. Explicit environment variable (RELSYNC_DB, RELSYNC_CONFIG)
2. Shared data directory (RELSYNC_DATA_DIR)
3. Default location (./relsync.db, ~/.config/relsync/config.toml)
"""

import os
from pathlib import Path


def get_env(key: str, default: str | None = None) -> str | None:
    """Get environment variable.

    Args:
        key: Environment variable name
        default: Default value if not found

    Returns:
        Environment variable value or default
    """
    return os.environ.get(key, default)


def get_db_path() -> Path:
    """Resolve the relations database path.

    Resolution order:
    1. RELSYNC_DB (explicit file path)
    2. RELSYNC_DATA_DIR/relsync.db
    3. ./relsync.db

    Returns:
        Path to database file

    Examples:
        >>> os.environ['RELSYNC_DB'] = '/custom/records.db'
        >>> get_db_path()
        Path('/custom/records.db')

        >>> os.environ['RELSYNC_DATA_DIR'] = '/data'
        >>> get_db_path()
        Path('/data/relsync.db')
    """
    db_path = get_env("RELSYNC_DB")
    if db_path:
        return Path(db_path)

    data_dir = get_env("RELSYNC_DATA_DIR")
    if data_dir:
        return Path(data_dir) / "relsync.db"

    return Path("./relsync.db")


def get_config_path() -> Path:
    """Resolve the TOML configuration file path.

    Returns:
        RELSYNC_CONFIG if set, else ~/.config/relsync/config.toml
    """
    config_path = get_env("RELSYNC_CONFIG")
    if config_path:
        return Path(config_path)
    return Path.home() / ".config/relsync/config.toml"
