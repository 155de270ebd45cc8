# backend/tests/services/test_tasks.py
"""Tests for the dramatiq actors, run synchronously against the test session."""
from datetime import timedelta
from unittest.mock import MagicMock, patch
from uuid import uuid4

from learnflow.models import FlowSnapshot
from learnflow.models.base import utcnow
from learnflow.schemas.facts import AssignmentOverdue
from learnflow.services.snapshot_service import SnapshotService
from learnflow.tasks.deadline_check import deadline_check_task
from learnflow.tasks.snapshot_cleanup import cleanup_snapshots_task


def session_factory(db_session):
    # The actors close their session; keep the shared test session usable
    db_session.close = MagicMock()
    return MagicMock(return_value=db_session)


class TestCleanupSnapshotsTask:
    def test_uses_given_retention(self, db_session, build_flow):
        flow = build_flow()
        service = SnapshotService(db_session)
        old = service.create_snapshot_by_id(flow.id)
        service.create_snapshot_by_id(flow.id)
        old.created_at = utcnow() - timedelta(days=400)
        db_session.commit()

        with patch("learnflow.tasks.snapshot_cleanup.get_session_local", return_value=session_factory(db_session)):
            deleted = cleanup_snapshots_task.fn(older_than_days=365, keep_minimum=1)

        assert deleted == 1
        assert db_session.query(FlowSnapshot).count() == 1
        db_session.close.assert_called_once()


class TestDeadlineCheckTask:
    def test_dispatches_sweep_facts(self, db_session, coordinator, build_flow):
        coordinator.assign_flow(uuid4(), build_flow().id, assigned_by_id=uuid4(), deadline_working_days=1)
        dispatcher = MagicMock()

        with patch("learnflow.tasks.deadline_check.get_session_local", return_value=session_factory(db_session)), \
                patch("learnflow.tasks.deadline_check.FactDispatcher", return_value=dispatcher):
            deadline_check_task.fn()

        facts = dispatcher.dispatch.call_args.args[0]
        assert len(facts) == 1
        assert isinstance(facts[0], AssignmentOverdue)
        db_session.close.assert_called_once()
