# backend/learnflow/models/__init__.py
from learnflow.models.base import Base
from learnflow.models.flow import Flow, FlowStep, FlowComponent, FlowStatus, ComponentType
from learnflow.models.snapshot import FlowSnapshot, StepSnapshot, ComponentSnapshot
from learnflow.models.assignment import FlowAssignment, AssignmentStatus
from learnflow.models.progress import FlowProgress, StepProgress, ComponentProgress, ProgressStatus

__all__ = [
    "Base",
    "Flow", "FlowStep", "FlowComponent", "FlowStatus", "ComponentType",
    "FlowSnapshot", "StepSnapshot", "ComponentSnapshot",
    "FlowAssignment", "AssignmentStatus",
    "FlowProgress", "StepProgress", "ComponentProgress", "ProgressStatus",
]
