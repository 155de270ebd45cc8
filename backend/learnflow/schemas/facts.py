# backend/learnflow/schemas/facts.py
"""Facts raised by the core for external consumers (notifications, analytics).

Each fact carries enough ids, titles, timestamps and progress numbers for a
consumer to render a message without querying back.
"""
from datetime import date, datetime
from typing import Literal, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from learnflow.models.base import utcnow


class FactBase(BaseModel):
    occurred_at: datetime = Field(default_factory=utcnow)
    user_id: UUID
    assignment_id: UUID
    flow_id: UUID
    flow_title: str


class FlowAssigned(FactBase):
    fact_type: Literal["flow_assigned"] = "flow_assigned"
    flow_snapshot_id: UUID
    snapshot_version: int
    assigned_by_id: UUID
    buddy_id: Optional[UUID] = None
    deadline: date
    total_steps: int
    overall_progress: float = 0.0


class StepUnlocked(FactBase):
    fact_type: Literal["step_unlocked"] = "step_unlocked"
    step_snapshot_id: UUID
    step_title: str
    overall_progress: float


class FlowCompleted(FactBase):
    fact_type: Literal["flow_completed"] = "flow_completed"
    flow_snapshot_id: UUID
    completed_at: datetime
    overall_progress: float


class DeadlineApproaching(FactBase):
    fact_type: Literal["deadline_approaching"] = "deadline_approaching"
    deadline: date
    days_left: int
    overall_progress: float


class AssignmentOverdue(FactBase):
    fact_type: Literal["assignment_overdue"] = "assignment_overdue"
    deadline: date
    days_overdue: int
    overall_progress: float


Fact = Union[FlowAssigned, StepUnlocked, FlowCompleted, DeadlineApproaching, AssignmentOverdue]
