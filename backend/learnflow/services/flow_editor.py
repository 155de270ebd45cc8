# backend/learnflow/services/flow_editor.py
"""Editing of mutable flow templates (steps, components, ordering, status)."""
import logging
from typing import Optional
from uuid import UUID

from pydantic import ValidationError
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from learnflow.database import unit_of_work
from learnflow.errors import (
    ConflictError,
    InvalidArgumentError,
    NotFoundError,
    PreconditionFailedError,
)
from learnflow.models.flow import ComponentType, Flow, FlowComponent, FlowStatus, FlowStep
from learnflow.repositories import FlowRepository
from learnflow.schemas.component import parse_payload
from learnflow.utils import order_key
from learnflow.utils.locks import get_keyed_lock

logger = logging.getLogger(__name__)


def reorder_lock_key(parent_id: UUID) -> tuple:
    return ("reorder", parent_id)


def _validated_payload(component_type: ComponentType, payload: Optional[dict]) -> dict:
    data = dict(payload or {})
    data.setdefault("type", component_type.value)
    try:
        parsed = parse_payload(data)
    except ValidationError as e:
        raise InvalidArgumentError(f"Malformed {component_type.value} payload: {e.errors()[0]['msg']}") from e
    if parsed.type != component_type.value:
        raise InvalidArgumentError(
            f"Payload type '{parsed.type}' does not match component type '{component_type.value}'"
        )
    return parsed.model_dump(mode="json")


class FlowEditor:
    """Structural edits on Draft flows plus status transitions."""

    def __init__(self, db: Session):
        self.db = db
        self.flows = FlowRepository(db)

    def get_flow(self, flow_id: UUID) -> Flow:
        flow = self.flows.get_with_details(flow_id)
        if flow is None:
            raise NotFoundError("Flow", flow_id)
        return flow

    def create_flow(
        self,
        title: str,
        description: Optional[str] = None,
        created_by_id: Optional[UUID] = None,
        priority: int = 0,
        is_required: bool = True,
        require_sequential_completion: bool = True,
        days_per_step: Optional[int] = None,
        allow_pause: bool = True,
    ) -> Flow:
        if not (title or "").strip():
            raise InvalidArgumentError("Flow title must not be empty")
        if days_per_step is not None and days_per_step <= 0:
            raise InvalidArgumentError(f"days_per_step must be positive, got {days_per_step}")

        with unit_of_work(self.db):
            flow = Flow(
                title=title.strip(),
                description=description,
                status=FlowStatus.DRAFT,
                priority=priority,
                is_required=is_required,
                require_sequential_completion=require_sequential_completion,
                days_per_step=days_per_step,
                allow_pause=allow_pause,
                created_by_id=created_by_id,
            )
            self.flows.add(flow)

        logger.info(f"Created draft flow '{flow.title}' ({flow.id})")
        return flow

    def add_step(
        self,
        flow_id: UUID,
        title: str,
        description: Optional[str] = None,
        is_required: bool = True,
        estimated_minutes: int = 0,
    ) -> FlowStep:
        """Append a step after the current last step."""
        if not (title or "").strip():
            raise InvalidArgumentError("Step title must not be empty")

        with get_keyed_lock().hold(reorder_lock_key(flow_id)):
            try:
                with unit_of_work(self.db):
                    flow = self.get_flow(flow_id)
                    flow.ensure_editable()
                    steps = flow.ordered_steps
                    key = order_key.next_key(steps[-1].order_key) if steps else order_key.initial()
                    step = FlowStep(
                        flow_id=flow.id,
                        title=title.strip(),
                        description=description,
                        order_key=key,
                        is_required=is_required,
                        estimated_minutes=estimated_minutes,
                    )
                    flow.steps.append(step)
                    self.flows.add(step)
            except IntegrityError as e:
                raise ConflictError(f"Order key collision while adding a step to flow {flow_id}") from e
        return step

    def add_component(
        self,
        step_id: UUID,
        component_type: ComponentType,
        title: str,
        payload: Optional[dict] = None,
        description: Optional[str] = None,
        is_required: bool = True,
        estimated_minutes: int = 0,
        max_attempts: Optional[int] = None,
        minimum_score: Optional[int] = None,
    ) -> FlowComponent:
        """Append a component after the current last component of a step."""
        if not (title or "").strip():
            raise InvalidArgumentError("Component title must not be empty")
        if max_attempts is not None and max_attempts <= 0:
            raise InvalidArgumentError(f"max_attempts must be positive, got {max_attempts}")
        if minimum_score is not None and not 0 <= minimum_score <= 100:
            raise InvalidArgumentError(f"minimum_score must be between 0 and 100, got {minimum_score}")
        component_type = ComponentType(component_type)
        data = _validated_payload(component_type, payload)

        with get_keyed_lock().hold(reorder_lock_key(step_id)):
            try:
                with unit_of_work(self.db):
                    step = self.flows.get_step(step_id)
                    if step is None:
                        raise NotFoundError("Step", step_id)
                    step.flow.ensure_editable()
                    components = step.ordered_components
                    key = order_key.next_key(components[-1].order_key) if components else order_key.initial()
                    component = FlowComponent(
                        step_id=step.id,
                        component_type=component_type,
                        title=title.strip(),
                        description=description,
                        order_key=key,
                        is_required=is_required,
                        estimated_minutes=estimated_minutes,
                        max_attempts=max_attempts,
                        minimum_score=minimum_score,
                        payload=data,
                    )
                    step.components.append(component)
                    self.flows.add(component)
            except IntegrityError as e:
                raise ConflictError(f"Order key collision while adding a component to step {step_id}") from e
        return component

    def update_component_payload(self, component_id: UUID, payload: dict) -> FlowComponent:
        component = self.flows.get_component(component_id)
        if component is None:
            raise NotFoundError("Component", component_id)
        data = _validated_payload(component.component_type, payload)

        with unit_of_work(self.db):
            component.step.flow.ensure_editable()
            component.payload = data
        return component

    def remove_step(self, step_id: UUID) -> None:
        with unit_of_work(self.db):
            step = self.flows.get_step(step_id)
            if step is None:
                raise NotFoundError("Step", step_id)
            flow = step.flow
            flow.ensure_editable()
            flow.steps.remove(step)
            self.db.flush()
        logger.info(f"Removed step {step_id} from flow {flow.id}")

    def remove_component(self, component_id: UUID) -> None:
        with unit_of_work(self.db):
            component = self.flows.get_component(component_id)
            if component is None:
                raise NotFoundError("Component", component_id)
            step = component.step
            step.flow.ensure_editable()
            step.components.remove(component)
            self.db.flush()

    def publish_flow(self, flow_id: UUID) -> Flow:
        with unit_of_work(self.db):
            flow = self.get_flow(flow_id)
            if flow.status != FlowStatus.DRAFT:
                raise PreconditionFailedError(
                    f"Only draft flows can be published (status: {flow.status.value})", blocking_id=flow.id
                )
            if not flow.steps:
                raise PreconditionFailedError(f"Flow '{flow.title}' has no steps", blocking_id=flow.id)
            flow.status = FlowStatus.PUBLISHED
        logger.info(f"Published flow '{flow.title}' ({flow.id})")
        return flow

    def archive_flow(self, flow_id: UUID) -> Flow:
        with unit_of_work(self.db):
            flow = self.get_flow(flow_id)
            if flow.status == FlowStatus.ARCHIVED:
                raise PreconditionFailedError(f"Flow '{flow.title}' is already archived", blocking_id=flow.id)
            flow.status = FlowStatus.ARCHIVED
        logger.info(f"Archived flow '{flow.title}' ({flow.id})")
        return flow

    def reorder_sibling(self, item_id: UUID, new_position: int) -> str:
        """Move a step or component to ``new_position`` among its siblings.

        Only the moved item gets a new order key; siblings keep theirs.

        Returns:
            The item's order key after the move
        """
        item = self.flows.get_step(item_id) or self.flows.get_component(item_id)
        if item is None:
            raise NotFoundError("Step or component", item_id)
        parent_id = item.flow_id if isinstance(item, FlowStep) else item.step_id

        with get_keyed_lock().hold(reorder_lock_key(parent_id)):
            try:
                with unit_of_work(self.db):
                    if isinstance(item, FlowStep):
                        flow = item.flow
                        siblings = flow.ordered_steps
                    else:
                        flow = item.step.flow
                        siblings = item.step.ordered_components
                    flow.ensure_editable()
                    remaining = [s for s in siblings if s.id != item.id]
                    if new_position < 0 or new_position > len(remaining):
                        raise InvalidArgumentError(
                            f"Position {new_position} out of range for {len(remaining) + 1} siblings"
                        )
                    current_position = [s.id for s in siblings].index(item.id)
                    if current_position == new_position:
                        return item.order_key

                    keys = [s.order_key for s in remaining]
                    key = order_key.key_for_position(keys, new_position)
                    if key in keys:
                        raise ConflictError(f"Order key {key!r} already used by a sibling of {item_id}")
                    item.set_order_key(key)
                    self.db.flush()
            except IntegrityError as e:
                raise ConflictError(f"Order key collision while moving {item_id}") from e

        logger.info(f"Moved {item_id} to position {new_position} (order key {key!r})")
        return key
