# backend/learnflow/services/snapshot_service.py
"""Snapshot service - freezes a mutable flow into an immutable, versioned copy.

A snapshot is taken when a flow is assigned. Learners progress against the
snapshot, so later edits to the template (new steps, reorders, payload
changes) never reach in-flight assignments.

Version numbers are monotonic per original flow. Concurrent writers for the
same flow are serialized by a process-local keyed lock plus a row lock on the
flow; the (original_flow_id, version) unique constraint is the final guard and
surfaces as ConflictError.
"""
import logging
import threading
from collections import defaultdict
from datetime import timedelta
from typing import Dict, List, Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from learnflow.database import unit_of_work
from learnflow.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    check_cancelled,
)
from learnflow.models.base import utcnow
from learnflow.models.flow import Flow
from learnflow.models.snapshot import FlowSnapshot, StepSnapshot, ComponentSnapshot
from learnflow.repositories import FlowRepository, SnapshotRepository
from learnflow.schemas.component import parse_payload
from learnflow.schemas.result import IntegrityReport
from learnflow.utils import order_key
from learnflow.utils.locks import get_keyed_lock

logger = logging.getLogger(__name__)


def snapshot_lock_key(flow_id: UUID) -> tuple:
    return ("snapshot", flow_id)


class SnapshotService:
    """Creates, inspects and retires flow snapshots."""

    def __init__(self, db: Session):
        self.db = db
        self.flows = FlowRepository(db)
        self.snapshots = SnapshotRepository(db)

    def create_snapshot(self, flow: Optional[Flow], cancel: Optional[threading.Event] = None) -> FlowSnapshot:
        """Deep-copy ``flow`` into the next snapshot version.

        The whole graph is written inside one unit of work: either every
        snapshot row exists afterwards or none does.

        Raises:
            InvalidArgumentError: ``flow`` is None
            NotFoundError: the flow is not persisted
            ConflictError: another writer took the same version number
        """
        if flow is None:
            raise InvalidArgumentError("A flow is required to create a snapshot")
        return self.create_snapshot_by_id(flow.id, cancel=cancel)

    def create_snapshot_by_id(self, flow_id: UUID, cancel: Optional[threading.Event] = None) -> FlowSnapshot:
        if flow_id is None:
            raise InvalidArgumentError("A flow id is required to create a snapshot")

        with get_keyed_lock().hold(snapshot_lock_key(flow_id)):
            try:
                with unit_of_work(self.db):
                    source = self.flows.get_with_details(flow_id, lock=True)
                    if source is None:
                        raise NotFoundError("Flow", flow_id)

                    snapshot = self._copy_graph(source, cancel)
                    check_cancelled(cancel)
                    self.snapshots.add(snapshot)
                    check_cancelled(cancel)
            except IntegrityError as e:
                raise ConflictError(
                    f"A snapshot version of flow {flow_id} was taken concurrently"
                ) from e

        logger.info(
            f"Created snapshot v{snapshot.version} of flow '{snapshot.title}' "
            f"({len(snapshot.steps)} steps)"
        )
        return snapshot

    def _copy_graph(self, flow: Flow, cancel: Optional[threading.Event]) -> FlowSnapshot:
        current = self.snapshots.get_max_version(flow.id)
        version = (current or 0) + 1

        snapshot = FlowSnapshot(
            original_flow_id=flow.id,
            version=version,
            created_at=utcnow(),
            title=flow.title,
            description=flow.description,
            status=flow.status,
            priority=flow.priority,
            is_required=flow.is_required,
            require_sequential_completion=flow.require_sequential_completion,
            days_per_step=flow.days_per_step,
            allow_pause=flow.allow_pause,
        )

        for step in flow.ordered_steps:
            check_cancelled(cancel)
            step_snapshot = StepSnapshot(
                original_step_id=step.id,
                title=step.title,
                description=step.description,
                order_key=step.order_key,
                is_required=step.is_required,
                estimated_minutes=step.estimated_minutes,
            )
            for component in step.ordered_components:
                try:
                    payload = parse_payload(component.payload or {}).model_dump(mode="json")
                except ValidationError as e:
                    raise InvalidArgumentError(
                        f"Component '{component.title}' has a malformed payload: {e.errors()[0]['msg']}"
                    ) from e
                step_snapshot.components.append(ComponentSnapshot(
                    original_component_id=component.id,
                    component_type=component.component_type,
                    title=component.title,
                    description=component.description,
                    order_key=component.order_key,
                    is_required=component.is_required,
                    estimated_minutes=component.estimated_minutes,
                    max_attempts=component.max_attempts,
                    minimum_score=component.minimum_score,
                    payload=payload,
                ))
            snapshot.steps.append(step_snapshot)

        return snapshot

    def get_snapshot(self, snapshot_id: UUID) -> FlowSnapshot:
        snapshot = self.snapshots.get(snapshot_id)
        if snapshot is None:
            raise NotFoundError("Snapshot", snapshot_id)
        return snapshot

    def get_snapshot_by_assignment(self, assignment_id: UUID) -> FlowSnapshot:
        snapshot = self.snapshots.get_by_assignment(assignment_id)
        if snapshot is None:
            raise NotFoundError("Snapshot for assignment", assignment_id)
        return snapshot

    def get_or_create_latest_snapshot(self, flow_id: UUID) -> FlowSnapshot:
        latest = self.snapshots.get_latest(flow_id)
        if latest is not None:
            return latest
        return self.create_snapshot_by_id(flow_id)

    def validate_integrity(self, snapshot_id: UUID) -> IntegrityReport:
        """Check a stored snapshot for structural damage.

        Meant for diagnostics after migrations or manual fixes; problems are
        reported, not raised.
        """
        snapshot = self.snapshots.get(snapshot_id)
        if snapshot is None:
            return IntegrityReport(valid=False, reasons=[f"Snapshot {snapshot_id} does not exist"])

        reasons: List[str] = []
        if not (snapshot.title or "").strip():
            reasons.append("Snapshot has an empty title")

        reasons.extend(self._order_key_problems(
            "step", [(s.title, s.order_key) for s in snapshot.steps], scope=f"snapshot '{snapshot.title}'"
        ))
        for step in snapshot.steps:
            reasons.extend(self._order_key_problems(
                "component", [(c.title, c.order_key) for c in step.components], scope=f"step '{step.title}'"
            ))

        return IntegrityReport(valid=not reasons, reasons=reasons)

    @staticmethod
    def _order_key_problems(kind: str, items: List[tuple], scope: str) -> List[str]:
        problems = []
        seen: Dict[str, str] = {}
        for title, key in items:
            if not order_key.is_valid(key):
                problems.append(f"{kind.capitalize()} '{title}' in {scope} has malformed order key {key!r}")
            if key in seen:
                problems.append(
                    f"Duplicate {kind} order key {key!r} in {scope} ('{seen[key]}' and '{title}')"
                )
            else:
                seen[key] = title
        return problems

    def get_snapshot_differences(self, flow_id: UUID, snapshot_id: UUID) -> List[str]:
        """Human-readable list of how the live template drifted from a snapshot."""
        flow = self.flows.get_with_details(flow_id)
        if flow is None:
            raise NotFoundError("Flow", flow_id)
        snapshot = self.get_snapshot(snapshot_id)

        differences = []
        if flow.title != snapshot.title:
            differences.append(f"Title changed: '{snapshot.title}' -> '{flow.title}'")
        if flow.description != snapshot.description:
            differences.append("Description changed")
        if len(flow.steps) != len(snapshot.steps):
            differences.append(f"Step count changed: {len(snapshot.steps)} -> {len(flow.steps)}")

        live_steps = {s.id: s for s in flow.steps}
        for step_snapshot in snapshot.ordered_steps:
            live = live_steps.get(step_snapshot.original_step_id)
            if live is None:
                differences.append(f"Step '{step_snapshot.title}' was removed")
                continue
            if live.title != step_snapshot.title:
                differences.append(f"Step renamed: '{step_snapshot.title}' -> '{live.title}'")
            if live.order_key != step_snapshot.order_key:
                differences.append(f"Step '{live.title}' was moved")
            if len(live.components) != len(step_snapshot.components):
                differences.append(
                    f"Component count in step '{live.title}' changed: "
                    f"{len(step_snapshot.components)} -> {len(live.components)}"
                )

        snapshot_step_ids = {s.original_step_id for s in snapshot.steps}
        for step in flow.ordered_steps:
            if step.id not in snapshot_step_ids:
                differences.append(f"Step '{step.title}' was added")

        return differences

    def cleanup_old_snapshots(self, older_than_days: int = 365, keep_minimum: int = 1) -> int:
        """Delete aged snapshots nobody needs anymore, oldest first.

        A snapshot older than the cutoff is deleted only if no assignment
        references it and it is not among the ``keep_minimum`` newest versions
        of its original flow. Inactive (completed or cancelled) assignments
        count as references too: flow_assignments.flow_snapshot_id is a
        non-null foreign key, so their snapshots are kept for as long as the
        assignment row exists.

        Returns:
            Number of snapshots deleted
        """
        if older_than_days < 0:
            raise InvalidArgumentError(f"older_than_days must not be negative, got {older_than_days}")
        if keep_minimum < 0:
            raise InvalidArgumentError(f"keep_minimum must not be negative, got {keep_minimum}")

        cutoff = utcnow() - timedelta(days=older_than_days)
        candidates = self.snapshots.get_older_than(cutoff)

        by_flow: Dict[UUID, List[FlowSnapshot]] = defaultdict(list)
        for snapshot in candidates:
            by_flow[snapshot.original_flow_id].append(snapshot)

        deleted = 0
        with unit_of_work(self.db):
            for flow_id, flow_candidates in by_flow.items():
                all_versions = self.snapshots.get_all_versions(flow_id)
                newest_first = sorted(all_versions, key=lambda s: (s.created_at, s.version), reverse=True)
                protected = {s.id for s in newest_first[:keep_minimum]}
                remaining = len(all_versions)

                for snapshot in flow_candidates:
                    if remaining <= keep_minimum:
                        break
                    if snapshot.id in protected:
                        continue
                    if self.snapshots.is_referenced(snapshot.id):
                        continue
                    logger.info(
                        f"Deleting snapshot v{snapshot.version} of flow {flow_id} "
                        f"created {snapshot.created_at.isoformat()}"
                    )
                    self.snapshots.delete(snapshot)
                    remaining -= 1
                    deleted += 1

        logger.info(f"Snapshot cleanup removed {deleted} snapshot(s) older than {older_than_days} days")
        return deleted
