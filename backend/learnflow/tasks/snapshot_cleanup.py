# learnflow/tasks/snapshot_cleanup.py
"""Snapshot retention job."""
import dramatiq
import logging
from typing import Optional

from learnflow.config import get_settings
from learnflow.database import get_session_local
from learnflow.services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)


@dramatiq.actor(max_retries=3, min_backoff=60000)
def cleanup_snapshots_task(older_than_days: Optional[int] = None, keep_minimum: Optional[int] = None):
    """Delete aged, unreferenced snapshots using the configured retention defaults."""
    settings = get_settings()
    if older_than_days is None:
        older_than_days = settings.snapshot_retention_days
    if keep_minimum is None:
        keep_minimum = settings.snapshot_keep_minimum

    logger.info(f"Starting snapshot cleanup (older than {older_than_days} days, keep {keep_minimum})")
    db = get_session_local()()
    try:
        deleted = SnapshotService(db).cleanup_old_snapshots(older_than_days, keep_minimum)
        logger.info(f"Snapshot cleanup finished: {deleted} deleted")
        return deleted
    finally:
        db.close()
