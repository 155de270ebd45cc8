# backend/learnflow/services/assignment_coordinator.py
"""
Assignment coordinator - the entry point used by command handlers.

Every exposed operation returns an ``OperationResult``: expected business
failures (not found, conflict, precondition, invalid argument) come back as a
result kind; anything else propagates. Facts raised by a successful operation
are handed to the dispatcher only after the transaction has committed.
"""
import logging
import threading
from datetime import datetime
from typing import Callable, List, Optional, Tuple
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from learnflow.config import Settings, get_settings
from learnflow.database import unit_of_work
from learnflow.errors import (
    ConflictError,
    InvalidArgumentError,
    LearnflowError,
    NotFoundError,
    PreconditionFailedError,
    check_cancelled,
)
from learnflow.models.assignment import AssignmentStatus, FlowAssignment
from learnflow.models.base import utcnow
from learnflow.models.flow import FlowStatus
from learnflow.models.progress import ComponentProgress
from learnflow.repositories import AssignmentRepository, FlowRepository
from learnflow.schemas.facts import FlowAssigned
from learnflow.schemas.result import OperationResult
from learnflow.services.fact_dispatcher import FactDispatcher
from learnflow.services.flow_editor import FlowEditor
from learnflow.services.progress_engine import ProgressEngine
from learnflow.services.snapshot_service import SnapshotService, snapshot_lock_key
from learnflow.utils.deadline import DeadlineCalculator
from learnflow.utils.locks import get_keyed_lock

logger = logging.getLogger(__name__)


def assign_lock_key(user_id: UUID, flow_id: UUID) -> tuple:
    return ("assign", user_id, flow_id)


class AssignmentCoordinator:
    """Orchestrates snapshots, deadlines and progress behind discriminated results."""

    def __init__(
        self,
        db: Session,
        dispatcher: Optional[FactDispatcher] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.dispatcher = dispatcher
        self.settings = settings or get_settings()
        self.clock = clock
        self.flows = FlowRepository(db)
        self.assignments = AssignmentRepository(db)

    def _run(self, operation: str, action: Callable[[], Tuple[object, List]]) -> OperationResult:
        try:
            value, facts = action()
        except LearnflowError as e:
            logger.warning(f"{operation} rejected ({e.kind.value}): {e.message}")
            return OperationResult.failure(e)

        if facts and self.dispatcher is not None:
            self.dispatcher.dispatch(facts)
        return OperationResult.success(value, facts=facts)

    def _working_days(self, requested: Optional[int], days_per_step: Optional[int], step_count: int) -> int:
        if requested is not None:
            return requested
        per_step = days_per_step or self.settings.default_days_per_step
        return max(1, per_step * step_count)

    # === AssignFlow ===

    def assign_flow(
        self,
        user_id: UUID,
        flow_id: UUID,
        assigned_by_id: UUID,
        deadline_working_days: Optional[int] = None,
        buddy_id: Optional[UUID] = None,
        notes: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> OperationResult[UUID]:
        """Assign a published flow to a user, pinned to a fresh snapshot.

        Snapshot, assignment and flow progress are committed together or not
        at all.

        Returns:
            Result carrying the new assignment id, or one of
            not_found / conflict / precondition_failed / invalid_argument
        """
        def action():
            if deadline_working_days is not None and deadline_working_days <= 0:
                raise InvalidArgumentError(
                    f"Deadline working days must be positive, got {deadline_working_days}"
                )

            with get_keyed_lock().hold(assign_lock_key(user_id, flow_id)), \
                    get_keyed_lock().hold(snapshot_lock_key(flow_id)):
                try:
                    with unit_of_work(self.db):
                        return self._assign(
                            user_id, flow_id, assigned_by_id, deadline_working_days, buddy_id, notes, cancel
                        )
                except IntegrityError as e:
                    raise ConflictError(
                        f"User {user_id} already has an active assignment for flow {flow_id}"
                    ) from e

        return self._run("AssignFlow", action)

    def _assign(self, user_id, flow_id, assigned_by_id, deadline_working_days, buddy_id, notes, cancel):
        flow = self.flows.get(flow_id)
        if flow is None:
            raise NotFoundError("Flow", flow_id)
        if self.assignments.get_active_by_user_and_flow(user_id, flow_id) is not None:
            raise ConflictError(f"User {user_id} already has an active assignment for flow '{flow.title}'")
        if flow.status != FlowStatus.PUBLISHED:
            raise PreconditionFailedError(
                f"Flow '{flow.title}' is {flow.status.value}, only published flows can be assigned",
                blocking_id=flow.id,
            )

        snapshot = SnapshotService(self.db).create_snapshot(flow, cancel=cancel)

        assigned_at = self.clock()
        working_days = self._working_days(deadline_working_days, snapshot.days_per_step, len(snapshot.steps))
        calculator = DeadlineCalculator(
            working_days,
            assigned_at,
            working_days_of_week=self.settings.working_days_of_week,
            holidays=self.settings.holidays,
        )

        assignment = FlowAssignment(
            user_id=user_id,
            flow_id=flow.id,
            flow_snapshot_id=snapshot.id,
            status=AssignmentStatus.ASSIGNED,
            is_active=True,
            assigned_at=assigned_at,
            deadline=calculator.deadline_date,
            assigned_by_id=assigned_by_id,
            buddy_id=buddy_id,
            notes=notes,
        )
        self.assignments.add(assignment)

        engine = ProgressEngine(self.db)
        progress = engine.initialize_progress(assignment, snapshot)
        check_cancelled(cancel)

        logger.info(
            f"Assigned flow '{snapshot.title}' v{snapshot.version} to user {user_id}, "
            f"deadline {calculator.deadline_date.isoformat()} ({working_days} working days)"
        )
        fact = FlowAssigned(
            user_id=user_id,
            assignment_id=assignment.id,
            flow_id=flow.id,
            flow_title=snapshot.title,
            flow_snapshot_id=snapshot.id,
            snapshot_version=snapshot.version,
            assigned_by_id=assigned_by_id,
            buddy_id=buddy_id,
            deadline=calculator.deadline_date,
            total_steps=len(snapshot.steps),
            overall_progress=progress.overall_progress,
        )
        return assignment.id, [fact] + engine.facts

    # === Progress ===

    def start_component(
        self,
        flow_progress_id: UUID,
        component_snapshot_id: UUID,
        cancel: Optional[threading.Event] = None,
    ) -> OperationResult[ComponentProgress]:
        def action():
            engine = ProgressEngine(self.db)
            row = engine.start_component(flow_progress_id, component_snapshot_id, cancel=cancel)
            return row, engine.facts

        return self._run("StartComponent", action)

    def record_component_progress(
        self,
        component_progress_id: UUID,
        payload: Optional[dict] = None,
        time_spent_minutes: Optional[int] = None,
        completed: Optional[bool] = None,
        score: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> OperationResult[ComponentProgress]:
        def action():
            engine = ProgressEngine(self.db)
            row = engine.record_component_progress(
                component_progress_id,
                payload=payload,
                time_spent_minutes=time_spent_minutes,
                completed=completed,
                score=score,
                cancel=cancel,
            )
            return row, engine.facts

        return self._run("RecordComponentProgress", action)

    def unlock_next_step(
        self, flow_progress_id: UUID, cancel: Optional[threading.Event] = None
    ) -> OperationResult[Optional[UUID]]:
        def action():
            engine = ProgressEngine(self.db)
            step_id = engine.unlock_next_step(flow_progress_id, cancel=cancel)
            return step_id, engine.facts

        return self._run("UnlockNextStep", action)

    # === Editing ===

    def reorder_sibling(self, item_id: UUID, new_position: int) -> OperationResult[str]:
        return self._run("ReorderSibling", lambda: (FlowEditor(self.db).reorder_sibling(item_id, new_position), []))

    # === Assignment lifecycle ===

    def _get_assignment(self, assignment_id: UUID) -> FlowAssignment:
        assignment = self.assignments.get(assignment_id)
        if assignment is None:
            raise NotFoundError("Assignment", assignment_id)
        return assignment

    def pause_assignment(self, assignment_id: UUID, reason: str) -> OperationResult[FlowAssignment]:
        def action():
            with unit_of_work(self.db):
                assignment = self._get_assignment(assignment_id)
                if not assignment.flow_snapshot.allow_pause:
                    raise PreconditionFailedError(
                        f"Flow '{assignment.flow_snapshot.title}' does not allow pausing",
                        blocking_id=assignment.flow_snapshot_id,
                    )
                assignment.pause(reason)
            logger.info(f"Paused assignment {assignment_id}: {reason}")
            return assignment, []

        return self._run("PauseAssignment", action)

    def resume_assignment(self, assignment_id: UUID) -> OperationResult[FlowAssignment]:
        def action():
            with unit_of_work(self.db):
                assignment = self._get_assignment(assignment_id)
                assignment.resume(self.clock().date())
            logger.info(f"Resumed assignment {assignment_id} ({assignment.status.value})")
            return assignment, []

        return self._run("ResumeAssignment", action)

    def cancel_assignment(self, assignment_id: UUID, reason: Optional[str] = None) -> OperationResult[FlowAssignment]:
        def action():
            with unit_of_work(self.db):
                assignment = self._get_assignment(assignment_id)
                assignment.cancel(reason)
            logger.info(f"Cancelled assignment {assignment_id}")
            return assignment, []

        return self._run("CancelAssignment", action)
