# learnflow/schemas/assignment.py
"""Pydantic schemas for assignments and learner progress."""
from typing import Any, Dict, List, Optional
from datetime import date, datetime
from pydantic import BaseModel, Field
from uuid import UUID

from learnflow.models.assignment import AssignmentStatus
from learnflow.models.progress import ProgressStatus


class AssignFlowRequest(BaseModel):
    user_id: UUID
    flow_id: UUID
    assigned_by_id: UUID
    # Falls back to the flow's days per step times its step count
    deadline_working_days: Optional[int] = None
    buddy_id: Optional[UUID] = None
    notes: Optional[str] = None


class AssignFlowResponse(BaseModel):
    assignment_id: UUID


class PauseRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class AssignmentResponse(BaseModel):
    id: UUID
    user_id: UUID
    flow_id: UUID
    flow_snapshot_id: UUID
    status: AssignmentStatus
    assigned_at: datetime
    deadline: date
    assigned_by_id: UUID
    buddy_id: Optional[UUID] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    paused_at: Optional[datetime] = None
    pause_reason: Optional[str] = None

    class Config:
        from_attributes = True


class StartComponentRequest(BaseModel):
    component_snapshot_id: UUID


class RecordProgressRequest(BaseModel):
    payload: Optional[Dict[str, Any]] = None
    time_spent_minutes: Optional[int] = None
    completed: Optional[bool] = None
    score: Optional[int] = None


class ComponentProgressResponse(BaseModel):
    id: UUID
    component_snapshot_id: UUID
    status: ProgressStatus
    attempt_count: int
    last_score: Optional[int] = None
    best_score: Optional[int] = None
    time_spent_minutes: int
    progress_data: Dict[str, Any] = {}
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    updated_at: datetime

    class Config:
        from_attributes = True


class StepProgressResponse(BaseModel):
    id: UUID
    step_snapshot_id: UUID
    status: ProgressStatus
    is_unlocked: bool
    unlocked_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    component_progress: List[ComponentProgressResponse] = []

    class Config:
        from_attributes = True


class FlowProgressResponse(BaseModel):
    id: UUID
    assignment_id: UUID
    flow_snapshot_id: UUID
    status: AssignmentStatus
    overall_progress: float
    completed_required_components: int
    total_required_components: int
    completed_steps: int
    total_steps: int
    time_spent_minutes: int
    current_step_snapshot_id: Optional[UUID] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    step_progress: List[StepProgressResponse] = []

    class Config:
        from_attributes = True


class UnlockResponse(BaseModel):
    step_snapshot_id: Optional[UUID] = None
