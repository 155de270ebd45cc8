# backend/learnflow/repositories/flow_repository.py
from typing import Optional
from uuid import UUID

from sqlalchemy.orm import Session, selectinload

from learnflow.models.flow import Flow, FlowStep, FlowComponent


class FlowRepository:
    """Read/write access to the mutable flow template graph."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, flow_id: UUID) -> Optional[Flow]:
        return self.db.query(Flow).filter(Flow.id == flow_id).first()

    def get_with_details(self, flow_id: UUID, lock: bool = False) -> Optional[Flow]:
        """Flow with steps and components loaded.

        ``lock`` takes a row lock on the flow (SELECT ... FOR UPDATE) so
        concurrent snapshot writers for the same flow queue up. SQLite ignores it.
        """
        query = self.db.query(Flow).options(
            selectinload(Flow.steps).selectinload(FlowStep.components)
        ).filter(Flow.id == flow_id)
        if lock:
            query = query.with_for_update(of=Flow)
        return query.first()

    def get_step(self, step_id: UUID) -> Optional[FlowStep]:
        return self.db.query(FlowStep).filter(FlowStep.id == step_id).first()

    def get_component(self, component_id: UUID) -> Optional[FlowComponent]:
        return self.db.query(FlowComponent).filter(FlowComponent.id == component_id).first()

    def add(self, entity) -> None:
        self.db.add(entity)
        self.db.flush()
