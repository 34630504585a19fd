"""Background cleanup of expired auth sessions and stale snapshots."""
import logging
import threading
import time

from sqlalchemy.exc import SQLAlchemyError

from testgenius.config import CLEANUP_INTERVAL_SECONDS
from testgenius.database import session_scope
from testgenius.services.auth_service import cleanup_expired_sessions
from testgenius.services.snapshot_service import cleanup_stale_snapshots

logger = logging.getLogger(__name__)

INITIAL_DELAY_SECONDS = 60


def run_cleanup() -> tuple[int, int]:
    """
    One cleanup pass.

    Returns:
        Tuple of (expired sessions removed, snapshot files removed)
    """
    sessions_removed = 0
    try:
        with session_scope() as db:
            sessions_removed = cleanup_expired_sessions(db)
    except SQLAlchemyError as e:
        logger.error("Failed to cleanup expired sessions: %s", e)

    snapshots_removed = 0
    try:
        snapshots_removed = cleanup_stale_snapshots()
    except OSError as e:
        logger.error("Failed to cleanup stale snapshots: %s", e)

    if sessions_removed or snapshots_removed:
        logger.info(
            "Cleanup removed %d expired sessions and %d stale snapshots",
            sessions_removed,
            snapshots_removed,
        )
    return sessions_removed, snapshots_removed


def schedule_cleanup(interval: int = CLEANUP_INTERVAL_SECONDS) -> threading.Thread:
    """Start the periodic cleanup worker on a daemon thread."""

    def _worker() -> None:
        time.sleep(INITIAL_DELAY_SECONDS)
        while True:
            run_cleanup()
            time.sleep(interval)

    thread = threading.Thread(target=_worker, name="testgenius_cleanup", daemon=True)
    thread.start()
    return thread
