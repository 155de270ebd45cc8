# backend/learnflow/models/flow.py
"""Mutable flow template: Flow owns FlowSteps owns FlowComponents.

Only Draft flows accept structural edits. Ordering among siblings comes from
``order_key`` alone (see ``learnflow.utils.order_key``).
"""
from enum import Enum
from typing import List, Optional
from uuid import UUID

from sqlalchemy import String, Text, Boolean, Integer, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learnflow.errors import InvalidArgumentError, PreconditionFailedError
from learnflow.models.base import Base, TimestampMixin, UUIDMixin
from learnflow.utils import order_key


class FlowStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class ComponentType(str, Enum):
    ARTICLE = "article"
    QUIZ = "quiz"
    TASK = "task"


class Flow(Base, UUIDMixin, TimestampMixin):
    """Learning flow template edited by content designers."""
    __tablename__ = "flows"

    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[FlowStatus] = mapped_column(default=FlowStatus.DRAFT)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    is_required: Mapped[bool] = mapped_column(Boolean, default=True)

    # Settings (frozen into every snapshot)
    require_sequential_completion: Mapped[bool] = mapped_column(Boolean, default=True)
    days_per_step: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    allow_pause: Mapped[bool] = mapped_column(Boolean, default=True)

    created_by_id: Mapped[Optional[UUID]] = mapped_column(nullable=True)

    steps: Mapped[List["FlowStep"]] = relationship(
        "FlowStep",
        back_populates="flow",
        cascade="all, delete-orphan",
        order_by="FlowStep.order_key",
    )

    @property
    def is_editable(self) -> bool:
        return self.status == FlowStatus.DRAFT

    def ensure_editable(self) -> None:
        if not self.is_editable:
            raise PreconditionFailedError(
                f"Flow '{self.title}' is {self.status.value}; structural edits require a draft flow",
                blocking_id=self.id,
            )

    @property
    def ordered_steps(self) -> List["FlowStep"]:
        return sorted(self.steps, key=lambda s: s.order_key)


class FlowStep(Base, UUIDMixin, TimestampMixin):
    """Ordered step of a flow."""
    __tablename__ = "flow_steps"

    flow_id: Mapped[UUID] = mapped_column(
        ForeignKey("flows.id", ondelete="CASCADE"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_key: Mapped[str] = mapped_column(String(255))
    is_required: Mapped[bool] = mapped_column(Boolean, default=True)
    estimated_minutes: Mapped[int] = mapped_column(Integer, default=0)

    flow: Mapped["Flow"] = relationship("Flow", back_populates="steps")
    components: Mapped[List["FlowComponent"]] = relationship(
        "FlowComponent",
        back_populates="step",
        cascade="all, delete-orphan",
        order_by="FlowComponent.order_key",
    )

    __table_args__ = (
        UniqueConstraint("flow_id", "order_key", name="uq_flow_steps_flow_order_key"),
    )

    def set_order_key(self, key: str) -> None:
        if not order_key.is_valid(key):
            raise InvalidArgumentError(f"Invalid order key {key!r} for step {self.id}")
        self.order_key = key

    @property
    def ordered_components(self) -> List["FlowComponent"]:
        return sorted(self.components, key=lambda c: c.order_key)


class FlowComponent(Base, UUIDMixin, TimestampMixin):
    """Content component inside a step; ``payload`` holds the variant fields."""
    __tablename__ = "flow_components"

    step_id: Mapped[UUID] = mapped_column(
        ForeignKey("flow_steps.id", ondelete="CASCADE"), nullable=False, index=True
    )
    component_type: Mapped[ComponentType] = mapped_column()
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_key: Mapped[str] = mapped_column(String(255))
    is_required: Mapped[bool] = mapped_column(Boolean, default=True)
    estimated_minutes: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    minimum_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Schema: learnflow.schemas.component.ComponentPayload
    payload: Mapped[dict] = mapped_column(JSON, default=dict)

    step: Mapped["FlowStep"] = relationship("FlowStep", back_populates="components")

    __table_args__ = (
        UniqueConstraint("step_id", "order_key", name="uq_flow_components_step_order_key"),
    )

    def set_order_key(self, key: str) -> None:
        if not order_key.is_valid(key):
            raise InvalidArgumentError(f"Invalid order key {key!r} for component {self.id}")
        self.order_key = key
