# learnflow/api/flows.py
"""API endpoints for editing flow templates."""
import logging
from uuid import UUID

from fastapi import APIRouter, status

from learnflow.api.deps import Coordinator, DBSession, raise_http, unwrap
from learnflow.errors import LearnflowError
from learnflow.schemas.flow import (
    ComponentCreate,
    ComponentResponse,
    FlowCreate,
    FlowResponse,
    PayloadUpdate,
    ReorderRequest,
    ReorderResponse,
    StepCreate,
    StepResponse,
)
from learnflow.services.flow_editor import FlowEditor

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/flows", tags=["Flows"])


@router.post("", response_model=FlowResponse, status_code=status.HTTP_201_CREATED)
def create_flow(data: FlowCreate, db: DBSession):
    editor = FlowEditor(db)
    try:
        flow = editor.create_flow(**data.model_dump())
        return editor.get_flow(flow.id)
    except LearnflowError as e:
        raise_http(e)


@router.get("/{flow_id}", response_model=FlowResponse)
def get_flow(flow_id: UUID, db: DBSession):
    try:
        return FlowEditor(db).get_flow(flow_id)
    except LearnflowError as e:
        raise_http(e)


@router.post("/{flow_id}/steps", response_model=StepResponse, status_code=status.HTTP_201_CREATED)
def add_step(flow_id: UUID, data: StepCreate, db: DBSession):
    try:
        return FlowEditor(db).add_step(flow_id, **data.model_dump())
    except LearnflowError as e:
        raise_http(e)


@router.delete("/steps/{step_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_step(step_id: UUID, db: DBSession):
    try:
        FlowEditor(db).remove_step(step_id)
    except LearnflowError as e:
        raise_http(e)


@router.post("/steps/{step_id}/components", response_model=ComponentResponse, status_code=status.HTTP_201_CREATED)
def add_component(step_id: UUID, data: ComponentCreate, db: DBSession):
    try:
        return FlowEditor(db).add_component(step_id, **data.model_dump())
    except LearnflowError as e:
        raise_http(e)


@router.put("/components/{component_id}/payload", response_model=ComponentResponse)
def update_component_payload(component_id: UUID, data: PayloadUpdate, db: DBSession):
    try:
        return FlowEditor(db).update_component_payload(component_id, data.payload)
    except LearnflowError as e:
        raise_http(e)


@router.delete("/components/{component_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_component(component_id: UUID, db: DBSession):
    try:
        FlowEditor(db).remove_component(component_id)
    except LearnflowError as e:
        raise_http(e)


@router.post("/items/{item_id}/reorder", response_model=ReorderResponse)
def reorder_item(item_id: UUID, data: ReorderRequest, coordinator: Coordinator):
    """Move a step or component to a new position among its siblings."""
    key = unwrap(coordinator.reorder_sibling(item_id, data.new_position))
    return ReorderResponse(item_id=item_id, order_key=key)


@router.post("/{flow_id}/publish", response_model=FlowResponse)
def publish_flow(flow_id: UUID, db: DBSession):
    try:
        return FlowEditor(db).publish_flow(flow_id)
    except LearnflowError as e:
        raise_http(e)


@router.post("/{flow_id}/archive", response_model=FlowResponse)
def archive_flow(flow_id: UUID, db: DBSession):
    try:
        return FlowEditor(db).archive_flow(flow_id)
    except LearnflowError as e:
        raise_http(e)
