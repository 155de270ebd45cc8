# learnflow/schemas/flow.py
"""Pydantic schemas for flow templates and their snapshots."""
from typing import Any, Dict, List, Optional
from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from uuid import UUID

from learnflow.models.flow import ComponentType, FlowStatus
from learnflow.schemas.component import learner_view


class FlowCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    priority: int = 0
    is_required: bool = True
    require_sequential_completion: bool = True
    days_per_step: Optional[int] = Field(None, gt=0)
    allow_pause: bool = True
    created_by_id: Optional[UUID] = None


class StepCreate(BaseModel):
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_required: bool = True
    estimated_minutes: int = Field(0, ge=0)


class ComponentCreate(BaseModel):
    component_type: ComponentType
    title: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None
    is_required: bool = True
    estimated_minutes: int = Field(0, ge=0)
    max_attempts: Optional[int] = None
    minimum_score: Optional[int] = None
    # Validated against learnflow.schemas.component.ComponentPayload by the editor
    payload: Dict[str, Any] = {}


class PayloadUpdate(BaseModel):
    payload: Dict[str, Any]


class ReorderRequest(BaseModel):
    new_position: int


class ReorderResponse(BaseModel):
    item_id: UUID
    order_key: str


class ComponentResponse(BaseModel):
    id: UUID
    component_type: ComponentType
    title: str
    description: Optional[str] = None
    order_key: str
    is_required: bool
    estimated_minutes: int
    max_attempts: Optional[int] = None
    minimum_score: Optional[int] = None
    payload: Dict[str, Any] = {}

    class Config:
        from_attributes = True


class StepResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    order_key: str
    is_required: bool
    estimated_minutes: int
    components: List[ComponentResponse] = []

    class Config:
        from_attributes = True


class FlowResponse(BaseModel):
    id: UUID
    title: str
    description: Optional[str] = None
    status: FlowStatus
    priority: int
    is_required: bool
    require_sequential_completion: bool
    days_per_step: Optional[int] = None
    allow_pause: bool
    steps: List[StepResponse] = []
    created_at: datetime

    class Config:
        from_attributes = True


class ComponentSnapshotResponse(ComponentResponse):
    original_component_id: UUID

    @field_validator("payload", mode="before")
    @classmethod
    def hide_answers(cls, v):
        # Snapshots are what learners see
        return learner_view(v or {})


class StepSnapshotResponse(BaseModel):
    id: UUID
    original_step_id: UUID
    title: str
    description: Optional[str] = None
    order_key: str
    is_required: bool
    estimated_minutes: int
    components: List[ComponentSnapshotResponse] = []

    class Config:
        from_attributes = True


class FlowSnapshotResponse(BaseModel):
    id: UUID
    original_flow_id: UUID
    version: int
    created_at: datetime
    title: str
    description: Optional[str] = None
    require_sequential_completion: bool
    days_per_step: Optional[int] = None
    allow_pause: bool
    steps: List[StepSnapshotResponse] = []

    class Config:
        from_attributes = True


class IntegrityResponse(BaseModel):
    valid: bool
    reasons: List[str] = []


class SnapshotCleanupRequest(BaseModel):
    older_than_days: Optional[int] = Field(None, ge=0)
    keep_minimum: Optional[int] = Field(None, ge=0)
