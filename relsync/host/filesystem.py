"""File system operations."""

from pathlib import Path


def ensure_parent_dir(path: str | Path) -> Path:
    """Ensure the parent directory of a file exists, create if not.

    Args:
        path: Path to a file

    Returns:
        Path object for the file
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return p
