"""Host interface for relsync.

Provides abstractions for host platform operations (filesystem, environment).
"""

from .filesystem import ensure_parent_dir
from .environment import get_env, get_db_path, get_config_path

__all__ = [
    "ensure_parent_dir",
    "get_env",
    "get_db_path",
    "get_config_path",
]
