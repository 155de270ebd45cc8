# learnflow/api/progress.py
"""API endpoints for learner progress."""
from uuid import UUID

from fastapi import APIRouter

from learnflow.api.deps import Coordinator, DBSession, raise_http, unwrap
from learnflow.errors import LearnflowError
from learnflow.schemas.assignment import (
    ComponentProgressResponse,
    FlowProgressResponse,
    RecordProgressRequest,
    StartComponentRequest,
    UnlockResponse,
)
from learnflow.services.progress_engine import ProgressEngine

router = APIRouter(prefix="/progress", tags=["Progress"])


@router.get("/assignments/{assignment_id}", response_model=FlowProgressResponse)
def get_assignment_progress(assignment_id: UUID, db: DBSession):
    try:
        return ProgressEngine(db).get_flow_progress_by_assignment(assignment_id)
    except LearnflowError as e:
        raise_http(e)


@router.post("/{flow_progress_id}/components", response_model=ComponentProgressResponse)
def start_component(flow_progress_id: UUID, data: StartComponentRequest, coordinator: Coordinator):
    """Open a component; 412 names the predecessor that blocks it."""
    return unwrap(coordinator.start_component(flow_progress_id, data.component_snapshot_id))


@router.post("/components/{component_progress_id}", response_model=ComponentProgressResponse)
def record_component_progress(
    component_progress_id: UUID,
    data: RecordProgressRequest,
    coordinator: Coordinator,
):
    return unwrap(coordinator.record_component_progress(
        component_progress_id,
        payload=data.payload,
        time_spent_minutes=data.time_spent_minutes,
        completed=data.completed,
        score=data.score,
    ))


@router.post("/{flow_progress_id}/unlock", response_model=UnlockResponse)
def unlock_next_step(flow_progress_id: UUID, coordinator: Coordinator):
    step_id = unwrap(coordinator.unlock_next_step(flow_progress_id))
    return UnlockResponse(step_snapshot_id=step_id)
