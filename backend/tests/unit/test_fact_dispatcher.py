# backend/tests/unit/test_fact_dispatcher.py
"""Unit tests for publishing facts to Redis."""
import json
from datetime import datetime
from unittest.mock import MagicMock, patch
from uuid import uuid4

import pytest
import redis

from learnflow.schemas.facts import StepUnlocked
from learnflow.services.fact_dispatcher import FactDispatcher


@pytest.fixture
def fact():
    return StepUnlocked(
        occurred_at=datetime(2024, 1, 2, 10, 0),
        user_id=uuid4(),
        assignment_id=uuid4(),
        flow_id=uuid4(),
        flow_title="Onboarding",
        step_snapshot_id=uuid4(),
        step_title="Step 2",
        overall_progress=50.0,
    )


@pytest.fixture
def mock_redis():
    client = MagicMock()
    with patch("learnflow.services.fact_dispatcher.redis.from_url", return_value=client):
        yield client


class TestFactDispatcher:
    def test_publishes_to_global_and_user_channel(self, fact, mock_redis):
        dispatcher = FactDispatcher(redis_url="redis://test:6379/0", channel="facts")

        delivered = dispatcher.dispatch([fact])

        assert delivered == 1
        channels = [call.args[0] for call in mock_redis.publish.call_args_list]
        assert channels == ["facts", f"facts:user:{fact.user_id}"]
        payload = json.loads(mock_redis.publish.call_args_list[0].args[1])
        assert payload["fact_type"] == "step_unlocked"
        assert payload["step_title"] == "Step 2"
        mock_redis.close.assert_called_once()

    def test_no_facts_skips_connection(self, mock_redis):
        assert FactDispatcher(redis_url="redis://test:6379/0").dispatch([]) == 0
        mock_redis.publish.assert_not_called()

    def test_redis_failure_is_logged_not_raised(self, fact, mock_redis, caplog):
        mock_redis.publish.side_effect = redis.ConnectionError("refused")

        delivered = FactDispatcher(redis_url="redis://test:6379/0").dispatch([fact])

        assert delivered == 0
        assert "Failed to publish 1 fact(s)" in caplog.text
        mock_redis.close.assert_called_once()

    def test_defaults_from_settings(self):
        dispatcher = FactDispatcher()
        assert dispatcher.channel == "learnflow:facts"
        assert dispatcher.user_channel("u1") == "learnflow:facts:user:u1"
