# backend/learnflow/services/fact_dispatcher.py
"""
Fact delivery via Redis pub/sub.

Facts are published after the producing transaction has committed, to:
- learnflow:facts (all facts)
- learnflow:facts:user:{user_id} (facts about one learner)

Delivery is best effort: a failed publish is logged and never undoes the
committed business change.
"""
import logging
from typing import Iterable, Optional

import redis

from learnflow.config import get_settings

logger = logging.getLogger(__name__)


class FactDispatcher:
    """Publishes facts to Redis channels as JSON."""

    def __init__(self, redis_url: Optional[str] = None, channel: Optional[str] = None):
        settings = get_settings()
        self.redis_url = redis_url or settings.redis_url
        self.channel = channel or settings.facts_channel

    def user_channel(self, user_id) -> str:
        return f"{self.channel}:user:{user_id}"

    def dispatch(self, facts: Iterable) -> int:
        """Publish facts; returns how many were delivered."""
        facts = list(facts)
        if not facts:
            return 0

        delivered = 0
        try:
            # Short-lived connection, callers run in worker threads
            r = redis.from_url(self.redis_url, decode_responses=True)
            try:
                for fact in facts:
                    payload = fact.model_dump_json()
                    r.publish(self.channel, payload)
                    r.publish(self.user_channel(fact.user_id), payload)
                    delivered += 1
            finally:
                r.close()
        except redis.RedisError as e:
            logger.warning(f"Failed to publish {len(facts) - delivered} fact(s): {e}")
        else:
            logger.debug(f"Published {delivered} fact(s) to {self.channel}")
        return delivered
