# backend/learnflow/services/progress_engine.py
"""
Progress engine - tracks a learner's progress against a frozen snapshot.

Component rows move NotStarted -> InProgress -> Completed | Failed. Step and
flow progress are derived from the component rows and recomputed after every
change. Unlocking follows the snapshot's sequential-completion setting.

The engine never publishes anything itself: facts raised while handling a
call are collected on ``self.facts`` for the caller to deliver after commit.
"""
import logging
import threading
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.orm import Session

from learnflow.database import unit_of_work
from learnflow.errors import (
    InvalidArgumentError,
    NotFoundError,
    PreconditionFailedError,
    check_cancelled,
)
from learnflow.models.assignment import FlowAssignment
from learnflow.models.base import utcnow
from learnflow.models.flow import ComponentType
from learnflow.models.progress import ComponentProgress, FlowProgress, ProgressStatus, StepProgress
from learnflow.models.snapshot import ComponentSnapshot, FlowSnapshot, StepSnapshot
from learnflow.repositories import ProgressRepository, SnapshotRepository
from learnflow.schemas.component import QuizPayload, TaskPayload
from learnflow.schemas.facts import FlowCompleted, StepUnlocked
from learnflow.utils.locks import get_keyed_lock

logger = logging.getLogger(__name__)


def calculate_overall_progress(completed_required: int, total_required: int) -> float:
    """Percentage of required components completed, clamped to [0, 100].

    A snapshot without required components reports 0.
    """
    if total_required <= 0:
        return 0.0
    percentage = 100.0 * completed_required / total_required
    return round(min(100.0, max(0.0, percentage)), 2)


def progress_lock_key(flow_progress_id: UUID) -> tuple:
    return ("progress", flow_progress_id)


class ProgressEngine:
    """Component/step/flow state machine for one database session."""

    def __init__(self, db: Session):
        self.db = db
        self.progress = ProgressRepository(db)
        self.snapshots = SnapshotRepository(db)
        self.facts: List = []

    # === Lookups ===

    def get_flow_progress(self, flow_progress_id: UUID, lock: bool = False) -> FlowProgress:
        progress = self.progress.get_flow_progress(flow_progress_id, lock=lock)
        if progress is None:
            raise NotFoundError("Flow progress", flow_progress_id)
        return progress

    def get_flow_progress_by_assignment(self, assignment_id: UUID) -> FlowProgress:
        progress = self.progress.get_flow_progress_by_assignment(assignment_id)
        if progress is None:
            raise NotFoundError("Flow progress for assignment", assignment_id)
        return progress

    def _snapshot_for(self, progress: FlowProgress) -> FlowSnapshot:
        snapshot = self.snapshots.get(progress.flow_snapshot_id)
        if snapshot is None:
            raise NotFoundError("Snapshot", progress.flow_snapshot_id)
        return snapshot

    def _step_rows(self, progress: FlowProgress) -> Dict[UUID, StepProgress]:
        return {row.step_snapshot_id: row for row in self.progress.get_step_rows(progress.id)}

    def _component_rows(self, progress: FlowProgress) -> Dict[UUID, ComponentProgress]:
        return {row.component_snapshot_id: row for row in self.progress.get_component_rows(progress.id)}

    @staticmethod
    def _find_component(snapshot: FlowSnapshot, component_snapshot_id: UUID):
        for step in snapshot.steps:
            for component in step.components:
                if component.id == component_snapshot_id:
                    return step, component
        raise NotFoundError("Component snapshot", component_snapshot_id)

    # === Reachability ===

    @staticmethod
    def _is_completed(rows: Dict[UUID, ComponentProgress], component_id: UUID) -> bool:
        row = rows.get(component_id)
        return row is not None and row.is_completed

    def _is_step_complete(self, step: StepSnapshot, rows: Dict[UUID, ComponentProgress]) -> bool:
        return all(self._is_completed(rows, c.id) for c in step.required_components)

    def _is_step_reachable(
        self, snapshot: FlowSnapshot, step: StepSnapshot, rows: Dict[UUID, ComponentProgress]
    ) -> bool:
        if not snapshot.require_sequential_completion:
            return True
        for earlier in snapshot.ordered_steps:
            if earlier.id == step.id:
                return True
            if earlier.is_required and not self._is_step_complete(earlier, rows):
                return False
        return True

    def _component_blocker(
        self,
        snapshot: FlowSnapshot,
        step: StepSnapshot,
        component: ComponentSnapshot,
        step_rows: Dict[UUID, StepProgress],
        rows: Dict[UUID, ComponentProgress],
    ) -> Optional[PreconditionFailedError]:
        """Why ``component`` cannot be started yet, or None when it can."""
        step_row = step_rows.get(step.id)
        if step_row is None or not step_row.is_unlocked:
            return PreconditionFailedError(
                f"Step '{step.title}' is locked", blocking_id=step.id
            )
        if not snapshot.require_sequential_completion:
            return None
        for earlier in step.ordered_components:
            if earlier.id == component.id:
                break
            if earlier.is_required and not self._is_completed(rows, earlier.id):
                return PreconditionFailedError(
                    f"Component '{earlier.title}' must be completed before '{component.title}'",
                    blocking_id=earlier.id,
                )
        return None

    def can_start(self, flow_progress_id: UUID, component_snapshot_id: UUID) -> bool:
        progress = self.get_flow_progress(flow_progress_id)
        snapshot = self._snapshot_for(progress)
        step, component = self._find_component(snapshot, component_snapshot_id)
        blocker = self._component_blocker(
            snapshot, step, component, self._step_rows(progress), self._component_rows(progress)
        )
        return blocker is None

    # === Initialization ===

    def initialize_progress(self, assignment: FlowAssignment, snapshot: FlowSnapshot) -> FlowProgress:
        """Create the flow progress row for a new assignment and open the first step(s)."""
        with unit_of_work(self.db):
            progress = FlowProgress(
                assignment=assignment,
                flow_snapshot_id=snapshot.id,
                user_id=assignment.user_id,
                status=assignment.status,
                overall_progress=0.0,
                total_required_components=len(snapshot.required_components),
                total_steps=len(snapshot.steps),
            )
            self.progress.upsert(progress)
            self._refresh(progress, snapshot, assignment, announce=False)
        return progress

    # === Unlocking ===

    def unlock_next_step(self, flow_progress_id: UUID, cancel: Optional[threading.Event] = None) -> Optional[UUID]:
        """Compute the next reachable step, unlocking it if that has not happened yet.

        The learner's current step is the last of the leading run of completed
        steps. Calling this repeatedly gives the same answer until more
        progress is recorded.

        Returns:
            Id of the first unfinished step after the current one, or None
            when the flow is finished or the current step is incomplete
        """
        with get_keyed_lock().hold(progress_lock_key(flow_progress_id)):
            with unit_of_work(self.db):
                progress = self.get_flow_progress(flow_progress_id, lock=True)
                snapshot = self._snapshot_for(progress)
                step_rows = self._step_rows(progress)
                rows = self._component_rows(progress)
                while self._unlock_next(progress, snapshot, step_rows, rows, announce=True) is not None:
                    pass
                self._materialize_reachable(progress, snapshot, step_rows, rows)
                next_step = self._next_step(snapshot, rows)
                check_cancelled(cancel)
        return next_step

    def _next_step(self, snapshot: FlowSnapshot, rows: Dict[UUID, ComponentProgress]) -> Optional[UUID]:
        passed_completed_step = False
        for step in snapshot.ordered_steps:
            if self._is_step_complete(step, rows):
                passed_completed_step = True
                continue
            return step.id if passed_completed_step else None
        return None

    def _unlock_next(
        self,
        progress: FlowProgress,
        snapshot: FlowSnapshot,
        step_rows: Dict[UUID, StepProgress],
        rows: Dict[UUID, ComponentProgress],
        announce: bool,
    ) -> Optional[UUID]:
        for step in snapshot.ordered_steps:
            step_row = step_rows.get(step.id)
            if step_row is not None and step_row.is_unlocked:
                continue
            if not self._is_step_reachable(snapshot, step, rows):
                return None

            now = utcnow()
            if step_row is None:
                step_row = StepProgress(flow_progress_id=progress.id, step_snapshot_id=step.id)
            step_row.is_unlocked = True
            step_row.unlocked_at = now
            self.progress.upsert(step_row)
            step_rows[step.id] = step_row
            progress.current_step_snapshot_id = step.id

            logger.info(f"Unlocked step '{step.title}' for flow progress {progress.id}")
            if announce:
                assignment = progress.assignment
                self.facts.append(StepUnlocked(
                    user_id=progress.user_id,
                    assignment_id=progress.assignment_id,
                    flow_id=assignment.flow_id,
                    flow_title=snapshot.title,
                    step_snapshot_id=step.id,
                    step_title=step.title,
                    overall_progress=progress.overall_progress,
                ))
            return step.id
        return None

    def _materialize_reachable(
        self,
        progress: FlowProgress,
        snapshot: FlowSnapshot,
        step_rows: Dict[UUID, StepProgress],
        rows: Dict[UUID, ComponentProgress],
    ) -> None:
        """Create NotStarted rows for the components a learner can pick up next.

        Each unlocked step is walked in order up to its first unfinished
        required component; anything after that gets a row on first
        interaction.
        """
        for step in snapshot.ordered_steps:
            step_row = step_rows.get(step.id)
            if step_row is None or not step_row.is_unlocked:
                continue
            for component in step.ordered_components:
                row = rows.get(component.id)
                if row is not None:
                    if component.is_required and not row.is_completed:
                        break
                    continue
                if self._component_blocker(snapshot, step, component, step_rows, rows) is not None:
                    break
                row = ComponentProgress(
                    step_progress_id=step_row.id,
                    component_snapshot_id=component.id,
                    status=ProgressStatus.NOT_STARTED,
                    attempt_count=0,
                    time_spent_minutes=0,
                    progress_data={},
                )
                self.progress.upsert(row)
                rows[component.id] = row
                if component.is_required:
                    break

    # === Learner actions ===

    def start_component(
        self,
        flow_progress_id: UUID,
        component_snapshot_id: UUID,
        cancel: Optional[threading.Event] = None,
    ) -> ComponentProgress:
        """First interaction with a component; creates its row in InProgress if absent."""
        with get_keyed_lock().hold(progress_lock_key(flow_progress_id)):
            with unit_of_work(self.db):
                progress = self.get_flow_progress(flow_progress_id, lock=True)
                progress.assignment.ensure_accepts_progress()
                snapshot = self._snapshot_for(progress)
                step, component = self._find_component(snapshot, component_snapshot_id)
                step_rows = self._step_rows(progress)
                rows = self._component_rows(progress)

                row = rows.get(component.id)
                if row is not None and row.status in (ProgressStatus.COMPLETED, ProgressStatus.FAILED):
                    return row

                blocker = self._component_blocker(snapshot, step, component, step_rows, rows)
                if blocker is not None:
                    logger.warning(f"Start of component {component.id} rejected: {blocker.message}")
                    raise blocker
                check_cancelled(cancel)

                if row is None:
                    row = ComponentProgress(
                        step_progress_id=step_rows[step.id].id,
                        component_snapshot_id=component.id,
                        attempt_count=0,
                        time_spent_minutes=0,
                        progress_data={},
                    )
                self._begin(row, progress)
                row.touch()
                self.progress.upsert(row)
                self._refresh(progress, snapshot, progress.assignment, announce=True)
        return row

    def record_component_progress(
        self,
        component_progress_id: UUID,
        payload: Optional[dict] = None,
        time_spent_minutes: Optional[int] = None,
        completed: Optional[bool] = None,
        score: Optional[int] = None,
        cancel: Optional[threading.Event] = None,
    ) -> ComponentProgress:
        """Record learner activity on a component and recompute step/flow progress.

        Args:
            component_progress_id: Row to update
            payload: Opaque learner state; replaces the stored one. A quiz
                payload with ``answers`` is scored when no score is given; a
                task with a code word expects it under ``answer``.
            time_spent_minutes: Minutes to add to the tracked time
            completed: Submit an attempt
            score: Attempt score (0-100); also counts as an attempt

        Returns:
            The updated component progress row
        """
        if time_spent_minutes is not None and time_spent_minutes < 0:
            raise InvalidArgumentError(f"time_spent_minutes must not be negative, got {time_spent_minutes}")
        if score is not None and not 0 <= score <= 100:
            raise InvalidArgumentError(f"Score must be between 0 and 100, got {score}")

        row = self.progress.get_component_progress(component_progress_id)
        if row is None:
            raise NotFoundError("Component progress", component_progress_id)
        flow_progress_id = row.step_progress.flow_progress_id

        with get_keyed_lock().hold(progress_lock_key(flow_progress_id)):
            with unit_of_work(self.db):
                progress = self.get_flow_progress(flow_progress_id, lock=True)
                # Read before the lock was held
                self.db.refresh(row)
                if row.is_completed:
                    return row
                assignment = progress.assignment
                assignment.ensure_accepts_progress()
                snapshot = self._snapshot_for(progress)
                step, component = self._find_component(snapshot, row.component_snapshot_id)

                if row.status == ProgressStatus.FAILED:
                    raise PreconditionFailedError(
                        f"No attempts left for component '{component.title}'", blocking_id=component.id
                    )

                blocker = self._component_blocker(
                    snapshot, step, component, self._step_rows(progress), self._component_rows(progress)
                )
                if blocker is not None:
                    logger.warning(f"Progress on component {component.id} rejected: {blocker.message}")
                    raise blocker

                attempt = bool(completed) or score is not None
                if attempt:
                    score = self._resolve_score(component, payload, score)
                    passed = self._verify_answer(component, payload)
                    if not row.can_attempt(component.max_attempts):
                        raise PreconditionFailedError(
                            f"No attempts left for component '{component.title}'", blocking_id=component.id
                        )
                check_cancelled(cancel)

                self._begin(row, progress)
                if payload is not None:
                    row.progress_data = dict(payload)
                if time_spent_minutes:
                    row.time_spent_minutes = (row.time_spent_minutes or 0) + time_spent_minutes
                    progress.time_spent_minutes = (progress.time_spent_minutes or 0) + time_spent_minutes
                if attempt:
                    self._apply_attempt(row, component, score, passed)
                row.touch()
                self.progress.upsert(row)

                self._refresh(progress, snapshot, assignment, announce=True)
                check_cancelled(cancel)
        return row

    def _begin(self, row: ComponentProgress, progress: FlowProgress) -> None:
        now = utcnow()
        if row.status == ProgressStatus.NOT_STARTED or row.status is None:
            row.status = ProgressStatus.IN_PROGRESS
            row.started_at = now
        if progress.started_at is None:
            progress.started_at = now
        # Moves the mirrored flow status along with the assignment
        progress.assignment.start()

    @staticmethod
    def _resolve_score(component: ComponentSnapshot, payload: Optional[dict], score: Optional[int]) -> Optional[int]:
        if score is None and component.component_type == ComponentType.QUIZ and payload and "answers" in payload:
            try:
                quiz = QuizPayload.model_validate(component.payload)
                answers = {int(k): [int(i) for i in v] for k, v in payload["answers"].items()}
            except (ValidationError, AttributeError, TypeError, ValueError) as e:
                raise InvalidArgumentError(f"Malformed quiz answers: {e}") from e
            score = quiz.score(answers)
        if score is None and component.minimum_score is not None:
            raise InvalidArgumentError(
                f"Component '{component.title}' requires a score of at least {component.minimum_score}"
            )
        return score

    @staticmethod
    def _verify_answer(component: ComponentSnapshot, payload: Optional[dict]) -> bool:
        if component.component_type != ComponentType.TASK:
            return True
        try:
            task = TaskPayload.model_validate(component.payload)
        except ValidationError as e:
            raise InvalidArgumentError(f"Stored task payload is invalid: {e}") from e
        return task.check_answer((payload or {}).get("answer"))

    @staticmethod
    def _apply_attempt(
        row: ComponentProgress, component: ComponentSnapshot, score: Optional[int], passed: bool = True
    ) -> None:
        row.attempt_count = (row.attempt_count or 0) + 1
        if score is not None:
            row.last_score = score
            row.best_score = score if row.best_score is None else max(row.best_score, score)

        if component.minimum_score is not None and score < component.minimum_score:
            passed = False
        if not passed:
            if component.max_attempts and row.attempt_count >= component.max_attempts:
                row.status = ProgressStatus.FAILED
                logger.info(f"Component '{component.title}' failed after {row.attempt_count} attempt(s)")
            return

        row.status = ProgressStatus.COMPLETED
        row.completed_at = utcnow()

    # === Aggregation ===

    def _refresh(
        self,
        progress: FlowProgress,
        snapshot: FlowSnapshot,
        assignment: FlowAssignment,
        announce: bool,
    ) -> None:
        """Recompute step and flow aggregates from a fresh read of the child rows."""
        step_rows = self._step_rows(progress)
        rows = self._component_rows(progress)

        while self._unlock_next(progress, snapshot, step_rows, rows, announce=announce) is not None:
            pass
        self._materialize_reachable(progress, snapshot, step_rows, rows)

        now = utcnow()
        completed_steps = 0
        for step in snapshot.steps:
            step_row = step_rows.get(step.id)
            if step_row is None:
                continue
            if self._is_step_complete(step, rows):
                completed_steps += 1
                if step_row.status != ProgressStatus.COMPLETED:
                    step_row.status = ProgressStatus.COMPLETED
                    step_row.completed_at = now
            elif any(rows[c.id].status != ProgressStatus.NOT_STARTED for c in step.components if c.id in rows):
                step_row.status = ProgressStatus.IN_PROGRESS

        required = snapshot.required_components
        completed_required = sum(1 for c in required if self._is_completed(rows, c.id))
        progress.total_required_components = len(required)
        progress.completed_required_components = completed_required
        progress.overall_progress = calculate_overall_progress(completed_required, len(required))
        progress.total_steps = len(snapshot.steps)
        progress.completed_steps = completed_steps

        if required and completed_required == len(required) and progress.completed_at is None:
            progress.completed_at = now
            assignment.complete()
            logger.info(f"User {progress.user_id} completed flow '{snapshot.title}'")
            self.facts.append(FlowCompleted(
                user_id=progress.user_id,
                assignment_id=assignment.id,
                flow_id=assignment.flow_id,
                flow_title=snapshot.title,
                flow_snapshot_id=snapshot.id,
                completed_at=now,
                overall_progress=progress.overall_progress,
            ))
        self.db.flush()
