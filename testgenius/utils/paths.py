"""Path utilities for per-user data files."""
from pathlib import Path

from testgenius.config import SNAPSHOTS_DIR


def snapshot_path(user_id: int, base_dir: Path | None = None) -> Path:
    """Get path to a user's in-progress test snapshot."""
    return (base_dir or SNAPSHOTS_DIR) / f"{user_id}.json"
