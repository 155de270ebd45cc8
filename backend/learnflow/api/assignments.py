# learnflow/api/assignments.py
"""API endpoints for assigning flows and managing assignment lifecycle."""
from uuid import UUID

from fastapi import APIRouter, HTTPException, status

from learnflow.api.deps import Coordinator, DBSession, unwrap
from learnflow.models.assignment import FlowAssignment
from learnflow.schemas.assignment import (
    AssignFlowRequest,
    AssignFlowResponse,
    AssignmentResponse,
    CancelRequest,
    PauseRequest,
)

router = APIRouter(prefix="/assignments", tags=["Assignments"])


@router.post("", response_model=AssignFlowResponse, status_code=status.HTTP_201_CREATED)
def assign_flow(data: AssignFlowRequest, coordinator: Coordinator):
    """Assign a published flow to a user.

    Returns 409 when the user already has an active assignment for the flow
    and 412 when the flow is not published.
    """
    assignment_id = unwrap(coordinator.assign_flow(
        user_id=data.user_id,
        flow_id=data.flow_id,
        assigned_by_id=data.assigned_by_id,
        deadline_working_days=data.deadline_working_days,
        buddy_id=data.buddy_id,
        notes=data.notes,
    ))
    return AssignFlowResponse(assignment_id=assignment_id)


@router.get("/{assignment_id}", response_model=AssignmentResponse)
def get_assignment(assignment_id: UUID, db: DBSession):
    assignment = db.query(FlowAssignment).filter(FlowAssignment.id == assignment_id).first()
    if not assignment:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Assignment not found",
        )
    return assignment


@router.post("/{assignment_id}/pause", response_model=AssignmentResponse)
def pause_assignment(assignment_id: UUID, data: PauseRequest, coordinator: Coordinator):
    return unwrap(coordinator.pause_assignment(assignment_id, data.reason))


@router.post("/{assignment_id}/resume", response_model=AssignmentResponse)
def resume_assignment(assignment_id: UUID, coordinator: Coordinator):
    return unwrap(coordinator.resume_assignment(assignment_id))


@router.post("/{assignment_id}/cancel", response_model=AssignmentResponse)
def cancel_assignment(assignment_id: UUID, data: CancelRequest, coordinator: Coordinator):
    return unwrap(coordinator.cancel_assignment(assignment_id, data.reason))
