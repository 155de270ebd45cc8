# backend/learnflow/models/snapshot.py
"""Snapshot models - immutable, versioned copies of a flow taken at assignment time.

FlowSnapshot owns StepSnapshots owns ComponentSnapshots. Each row keeps the id
of the mutable entity it was copied from (``original_*_id``) as a plain column,
not a foreign key, so the template can be edited or deleted freely without
touching snapshots. Rows are never updated after creation; only the retention
job deletes them.
"""
from datetime import datetime
from typing import List, Optional
from uuid import UUID

from sqlalchemy import String, Text, Boolean, Integer, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learnflow.models.base import Base, UUIDMixin, utcnow
from learnflow.models.flow import ComponentType, FlowStatus


class FlowSnapshot(Base, UUIDMixin):
    __tablename__ = "flow_snapshots"

    original_flow_id: Mapped[UUID] = mapped_column(index=True)
    version: Mapped[int] = mapped_column(Integer)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, index=True)

    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    status: Mapped[FlowStatus] = mapped_column()
    priority: Mapped[int] = mapped_column(Integer, default=0)
    is_required: Mapped[bool] = mapped_column(Boolean, default=True)

    # Frozen settings
    require_sequential_completion: Mapped[bool] = mapped_column(Boolean, default=True)
    days_per_step: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    allow_pause: Mapped[bool] = mapped_column(Boolean, default=True)

    steps: Mapped[List["StepSnapshot"]] = relationship(
        "StepSnapshot",
        back_populates="flow_snapshot",
        cascade="all, delete-orphan",
        order_by="StepSnapshot.order_key",
    )

    __table_args__ = (
        UniqueConstraint("original_flow_id", "version", name="uq_flow_snapshots_flow_version"),
    )

    @property
    def ordered_steps(self) -> List["StepSnapshot"]:
        return sorted(self.steps, key=lambda s: s.order_key)

    @property
    def required_components(self) -> List["ComponentSnapshot"]:
        return [c for s in self.steps for c in s.components if c.is_required]


class StepSnapshot(Base, UUIDMixin):
    __tablename__ = "step_snapshots"

    flow_snapshot_id: Mapped[UUID] = mapped_column(
        ForeignKey("flow_snapshots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    original_step_id: Mapped[UUID] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_key: Mapped[str] = mapped_column(String(255))
    is_required: Mapped[bool] = mapped_column(Boolean, default=True)
    estimated_minutes: Mapped[int] = mapped_column(Integer, default=0)

    flow_snapshot: Mapped["FlowSnapshot"] = relationship("FlowSnapshot", back_populates="steps")
    components: Mapped[List["ComponentSnapshot"]] = relationship(
        "ComponentSnapshot",
        back_populates="step_snapshot",
        cascade="all, delete-orphan",
        order_by="ComponentSnapshot.order_key",
    )

    @property
    def ordered_components(self) -> List["ComponentSnapshot"]:
        return sorted(self.components, key=lambda c: c.order_key)

    @property
    def required_components(self) -> List["ComponentSnapshot"]:
        return [c for c in self.ordered_components if c.is_required]


class ComponentSnapshot(Base, UUIDMixin):
    __tablename__ = "component_snapshots"

    step_snapshot_id: Mapped[UUID] = mapped_column(
        ForeignKey("step_snapshots.id", ondelete="CASCADE"), nullable=False, index=True
    )
    original_component_id: Mapped[UUID] = mapped_column()
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    component_type: Mapped[ComponentType] = mapped_column()
    title: Mapped[str] = mapped_column(String(255))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    order_key: Mapped[str] = mapped_column(String(255))
    is_required: Mapped[bool] = mapped_column(Boolean, default=True)
    estimated_minutes: Mapped[int] = mapped_column(Integer, default=0)
    max_attempts: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    minimum_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    payload: Mapped[dict] = mapped_column(JSON, default=dict)

    step_snapshot: Mapped["StepSnapshot"] = relationship("StepSnapshot", back_populates="components")
