"""Durable in-progress test snapshots, one JSON file per user."""
import json
import logging
from datetime import timedelta
from pathlib import Path

from testgenius.config import SNAPSHOT_RETENTION_DAYS, SNAPSHOTS_DIR
from testgenius.domain import InProgressTestState
from testgenius.serialization import deserialize_snapshot, serialize_snapshot
from testgenius.utils import (
    delete_json_file,
    read_json_file,
    snapshot_path,
    utc_now,
    write_json_file,
)

logger = logging.getLogger(__name__)


class UserSnapshotStore:
    """Holds at most one in-progress snapshot for a single user."""

    def __init__(self, user_id: int, base_dir: Path | None = None) -> None:
        self.user_id = user_id
        self.path = snapshot_path(user_id, base_dir)

    def save(self, state: InProgressTestState) -> None:
        write_json_file(self.path, serialize_snapshot(state))

    def load(self) -> InProgressTestState | None:
        try:
            payload = read_json_file(self.path, None)
        except (OSError, json.JSONDecodeError) as exc:
            logger.error("Failed to read in-progress test for user %s: %s", self.user_id, exc)
            self.clear()
            return None
        if payload is None:
            return None
        if not isinstance(payload, dict):
            self.clear()
            return None
        try:
            return deserialize_snapshot(payload)
        except (KeyError, TypeError, ValueError) as exc:
            logger.error("Discarding invalid in-progress test for user %s: %s", self.user_id, exc)
            self.clear()
            return None

    def clear(self) -> None:
        delete_json_file(self.path)


def cleanup_stale_snapshots(
    base_dir: Path | None = None,
    retention_days: int = SNAPSHOT_RETENTION_DAYS,
) -> int:
    """Delete snapshot files that have not been written for ``retention_days``."""
    if retention_days <= 0:
        return 0
    directory = base_dir or SNAPSHOTS_DIR
    if not directory.exists():
        return 0
    cutoff = (utc_now() - timedelta(days=retention_days)).timestamp()
    removed = 0
    for path in directory.glob("*.json"):
        try:
            if path.stat().st_mtime < cutoff and delete_json_file(path):
                removed += 1
        except OSError as exc:
            logger.warning("Could not inspect snapshot %s: %s", path.name, exc)
    return removed
