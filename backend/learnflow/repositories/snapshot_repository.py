# backend/learnflow/repositories/snapshot_repository.py
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session, selectinload

from learnflow.models.assignment import FlowAssignment
from learnflow.models.snapshot import FlowSnapshot, StepSnapshot


class SnapshotRepository:
    def __init__(self, db: Session):
        self.db = db

    def _with_details(self):
        return self.db.query(FlowSnapshot).options(
            selectinload(FlowSnapshot.steps).selectinload(StepSnapshot.components)
        )

    def get(self, snapshot_id: UUID) -> Optional[FlowSnapshot]:
        return self._with_details().filter(FlowSnapshot.id == snapshot_id).first()

    def get_by_assignment(self, assignment_id: UUID) -> Optional[FlowSnapshot]:
        return self._with_details().join(
            FlowAssignment, FlowAssignment.flow_snapshot_id == FlowSnapshot.id
        ).filter(FlowAssignment.id == assignment_id).first()

    def get_all_versions(self, original_flow_id: UUID) -> List[FlowSnapshot]:
        return self.db.query(FlowSnapshot).filter(
            FlowSnapshot.original_flow_id == original_flow_id
        ).order_by(FlowSnapshot.version).all()

    def get_max_version(self, original_flow_id: UUID) -> Optional[int]:
        return self.db.query(func.max(FlowSnapshot.version)).filter(
            FlowSnapshot.original_flow_id == original_flow_id
        ).scalar()

    def get_latest(self, original_flow_id: UUID) -> Optional[FlowSnapshot]:
        return self._with_details().filter(
            FlowSnapshot.original_flow_id == original_flow_id
        ).order_by(FlowSnapshot.version.desc()).first()

    def get_older_than(self, cutoff: datetime) -> List[FlowSnapshot]:
        return self.db.query(FlowSnapshot).filter(
            FlowSnapshot.created_at < cutoff
        ).order_by(FlowSnapshot.created_at, FlowSnapshot.version).all()

    def is_referenced(self, snapshot_id: UUID) -> bool:
        """True when any assignment, active or not, points at the snapshot."""
        return self.db.query(FlowAssignment.id).filter(
            FlowAssignment.flow_snapshot_id == snapshot_id
        ).first() is not None

    def add(self, snapshot: FlowSnapshot) -> None:
        self.db.add(snapshot)
        self.db.flush()

    def delete(self, snapshot: FlowSnapshot) -> None:
        self.db.delete(snapshot)
        self.db.flush()
