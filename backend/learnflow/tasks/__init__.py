# backend/learnflow/tasks/__init__.py
"""Dramatiq actors. Run a worker with ``dramatiq learnflow.tasks.snapshot_cleanup learnflow.tasks.deadline_check``."""
import dramatiq
from dramatiq.brokers.redis import RedisBroker

from learnflow.config import get_settings

dramatiq.set_broker(RedisBroker(url=get_settings().redis_url))
