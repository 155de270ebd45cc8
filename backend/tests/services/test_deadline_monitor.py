# backend/tests/services/test_deadline_monitor.py
"""Tests for the deadline sweep."""
from datetime import datetime
from uuid import uuid4

from learnflow.models import AssignmentStatus, FlowAssignment
from learnflow.schemas.facts import AssignmentOverdue, DeadlineApproaching
from learnflow.services.deadline_monitor import DeadlineMonitor


def assign(coordinator, flow, days=5):
    # Assigned Monday 2024-01-01, 5 working days -> deadline Monday 2024-01-08
    return coordinator.assign_flow(uuid4(), flow.id, assigned_by_id=uuid4(), deadline_working_days=days).value


class TestDeadlineSweep:
    def test_approaching_deadline(self, db_session, coordinator, settings, build_flow):
        assignment_id = assign(coordinator, build_flow())

        facts = DeadlineMonitor(db_session, settings).sweep(now=datetime(2024, 1, 5, 8, 0))

        assert len(facts) == 1
        assert isinstance(facts[0], DeadlineApproaching)
        assert facts[0].assignment_id == assignment_id
        assert facts[0].days_left == 3

    def test_far_deadline_is_quiet(self, db_session, coordinator, settings, build_flow):
        assign(coordinator, build_flow())

        assert DeadlineMonitor(db_session, settings).sweep(now=datetime(2024, 1, 2)) == []

    def test_deadline_day_is_not_overdue(self, db_session, coordinator, settings, build_flow):
        assign(coordinator, build_flow())

        assert DeadlineMonitor(db_session, settings).sweep(now=datetime(2024, 1, 8, 23, 0)) == []

    def test_passed_deadline_marks_overdue_once(self, db_session, coordinator, settings, build_flow):
        assignment_id = assign(coordinator, build_flow())
        monitor = DeadlineMonitor(db_session, settings)

        facts = monitor.sweep(now=datetime(2024, 1, 10))

        assert len(facts) == 1
        assert isinstance(facts[0], AssignmentOverdue)
        assert facts[0].days_overdue == 2
        assert facts[0].flow_title == "Onboarding"
        assignment = db_session.get(FlowAssignment, assignment_id)
        assert assignment.status == AssignmentStatus.OVERDUE
        assert assignment.is_active is True

        assert monitor.sweep(now=datetime(2024, 1, 11)) == []

    def test_paused_and_finished_assignments_are_skipped(self, db_session, coordinator, settings, build_flow):
        paused_id = assign(coordinator, build_flow(title="Paused"))
        cancelled_id = assign(coordinator, build_flow(title="Cancelled"))
        paused = db_session.get(FlowAssignment, paused_id)
        paused.start()
        paused.pause("Leave")
        db_session.commit()
        coordinator.cancel_assignment(cancelled_id)

        assert DeadlineMonitor(db_session, settings).sweep(now=datetime(2024, 1, 10)) == []
