# backend/learnflow/repositories/assignment_repository.py
from datetime import date
from typing import List, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from learnflow.models.assignment import FlowAssignment


class AssignmentRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, assignment_id: UUID) -> Optional[FlowAssignment]:
        return self.db.query(FlowAssignment).filter(FlowAssignment.id == assignment_id).first()

    def get_active_by_user_and_flow(self, user_id: UUID, flow_id: UUID) -> Optional[FlowAssignment]:
        return self.db.query(FlowAssignment).filter(
            FlowAssignment.user_id == user_id,
            FlowAssignment.flow_id == flow_id,
            FlowAssignment.is_active.is_(True),
        ).first()

    def get_active_with_deadline_before(self, cutoff: date) -> List[FlowAssignment]:
        return self.db.query(FlowAssignment).filter(
            FlowAssignment.is_active.is_(True),
            FlowAssignment.deadline <= cutoff,
        ).order_by(FlowAssignment.deadline).all()

    def add(self, assignment: FlowAssignment) -> None:
        self.db.add(assignment)
        self.db.flush()
