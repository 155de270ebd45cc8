# backend/learnflow/services/deadline_monitor.py
"""Deadline sweep over active assignments."""
import logging
from datetime import date, datetime, timedelta
from typing import List, Optional

from sqlalchemy.orm import Session

from learnflow.config import Settings, get_settings
from learnflow.database import unit_of_work
from learnflow.models.assignment import AssignmentStatus, FlowAssignment
from learnflow.models.base import utcnow
from learnflow.repositories import AssignmentRepository, ProgressRepository
from learnflow.schemas.facts import AssignmentOverdue, DeadlineApproaching
from learnflow.utils.deadline import days_until

logger = logging.getLogger(__name__)


class DeadlineMonitor:
    def __init__(self, db: Session, settings: Optional[Settings] = None):
        self.db = db
        self.settings = settings or get_settings()
        self.assignments = AssignmentRepository(db)
        self.progress = ProgressRepository(db)

    def _overall_progress(self, assignment: FlowAssignment) -> float:
        progress = self.progress.get_flow_progress_by_assignment(assignment.id)
        return progress.overall_progress if progress else 0.0

    def sweep(self, now: Optional[datetime] = None) -> List:
        """Mark passed deadlines overdue and warn about approaching ones.

        Paused assignments are skipped. An assignment raises AssignmentOverdue
        once, when it transitions to Overdue; DeadlineApproaching is raised on
        every sweep inside the warning window.

        Returns:
            Facts raised by this sweep
        """
        now = now or utcnow()
        today: date = now.date() if isinstance(now, datetime) else now
        warning_days = self.settings.deadline_warning_days
        facts = []

        with unit_of_work(self.db):
            due = self.assignments.get_active_with_deadline_before(today + timedelta(days=warning_days))
            for assignment in due:
                if assignment.status == AssignmentStatus.PAUSED:
                    continue
                days_left = days_until(assignment.deadline, today)

                if days_left < 0:
                    if assignment.status == AssignmentStatus.OVERDUE:
                        continue
                    assignment.mark_overdue()
                    logger.info(
                        f"Assignment {assignment.id} is overdue by {-days_left} day(s) "
                        f"(deadline {assignment.deadline.isoformat()})"
                    )
                    facts.append(AssignmentOverdue(
                        user_id=assignment.user_id,
                        assignment_id=assignment.id,
                        flow_id=assignment.flow_id,
                        flow_title=assignment.flow_snapshot.title,
                        deadline=assignment.deadline,
                        days_overdue=-days_left,
                        overall_progress=self._overall_progress(assignment),
                    ))
                elif 0 < days_left <= warning_days:
                    facts.append(DeadlineApproaching(
                        user_id=assignment.user_id,
                        assignment_id=assignment.id,
                        flow_id=assignment.flow_id,
                        flow_title=assignment.flow_snapshot.title,
                        deadline=assignment.deadline,
                        days_left=days_left,
                        overall_progress=self._overall_progress(assignment),
                    ))

        logger.info(f"Deadline sweep raised {len(facts)} fact(s)")
        return facts
