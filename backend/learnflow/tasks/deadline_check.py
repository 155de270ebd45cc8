# learnflow/tasks/deadline_check.py
"""Periodic deadline sweep."""
import dramatiq
import logging

from learnflow.database import get_session_local
from learnflow.services.deadline_monitor import DeadlineMonitor
from learnflow.services.fact_dispatcher import FactDispatcher

logger = logging.getLogger(__name__)


@dramatiq.actor(max_retries=3, min_backoff=60000)
def deadline_check_task():
    """Mark overdue assignments and announce approaching deadlines."""
    db = get_session_local()()
    try:
        facts = DeadlineMonitor(db).sweep()
    finally:
        db.close()

    if facts:
        FactDispatcher().dispatch(facts)
    logger.info(f"Deadline check finished: {len(facts)} fact(s)")
