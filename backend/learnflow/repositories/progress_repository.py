# backend/learnflow/repositories/progress_repository.py
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from learnflow.models.progress import FlowProgress, StepProgress, ComponentProgress


class ProgressRepository:
    def __init__(self, db: Session):
        self.db = db

    def get_flow_progress(self, flow_progress_id: UUID, lock: bool = False) -> Optional[FlowProgress]:
        query = self.db.query(FlowProgress).filter(FlowProgress.id == flow_progress_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    def get_flow_progress_by_assignment(self, assignment_id: UUID) -> Optional[FlowProgress]:
        return self.db.query(FlowProgress).filter(FlowProgress.assignment_id == assignment_id).first()

    def get_component_progress(self, component_progress_id: UUID) -> Optional[ComponentProgress]:
        return self.db.query(ComponentProgress).filter(
            ComponentProgress.id == component_progress_id
        ).first()

    def get_step_rows(self, flow_progress_id: UUID) -> List[StepProgress]:
        return self.db.query(StepProgress).filter(
            StepProgress.flow_progress_id == flow_progress_id
        ).all()

    def get_component_rows(self, flow_progress_id: UUID) -> List[ComponentProgress]:
        """All component rows of one flow, read in a single query for aggregation."""
        return self.db.query(ComponentProgress).join(
            StepProgress, ComponentProgress.step_progress_id == StepProgress.id
        ).filter(StepProgress.flow_progress_id == flow_progress_id).all()

    def upsert(self, row) -> None:
        self.db.add(row)
        self.db.flush()
