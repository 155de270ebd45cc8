# backend/learnflow/models/progress.py
"""Learner progress against a frozen snapshot.

FlowProgress is created with the assignment. StepProgress and
ComponentProgress rows are created lazily, the first time a step or
component becomes reachable, never for the whole snapshot up front.
"""
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional
from uuid import UUID

from sqlalchemy import Integer, Float, Boolean, DateTime, ForeignKey, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learnflow.models.assignment import AssignmentStatus
from learnflow.models.base import Base, UUIDMixin, utcnow


class ProgressStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class FlowProgress(Base, UUIDMixin):
    __tablename__ = "flow_progress"

    assignment_id: Mapped[UUID] = mapped_column(
        ForeignKey("flow_assignments.id", ondelete="CASCADE"), unique=True, nullable=False
    )
    flow_snapshot_id: Mapped[UUID] = mapped_column(
        ForeignKey("flow_snapshots.id"), nullable=False, index=True
    )
    user_id: Mapped[UUID] = mapped_column(index=True)

    # Mirrors FlowAssignment.status, kept in step by FlowAssignment._set_status
    status: Mapped[AssignmentStatus] = mapped_column(default=AssignmentStatus.ASSIGNED)
    overall_progress: Mapped[float] = mapped_column(Float, default=0.0)
    completed_required_components: Mapped[int] = mapped_column(Integer, default=0)
    total_required_components: Mapped[int] = mapped_column(Integer, default=0)
    completed_steps: Mapped[int] = mapped_column(Integer, default=0)
    total_steps: Mapped[int] = mapped_column(Integer, default=0)
    time_spent_minutes: Mapped[int] = mapped_column(Integer, default=0)
    current_step_snapshot_id: Mapped[Optional[UUID]] = mapped_column(nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    assignment = relationship("FlowAssignment", back_populates="progress")
    flow_snapshot = relationship("FlowSnapshot")
    step_progress: Mapped[List["StepProgress"]] = relationship(
        "StepProgress", back_populates="flow_progress", cascade="all, delete-orphan"
    )


class StepProgress(Base, UUIDMixin):
    __tablename__ = "step_progress"

    flow_progress_id: Mapped[UUID] = mapped_column(
        ForeignKey("flow_progress.id", ondelete="CASCADE"), nullable=False, index=True
    )
    step_snapshot_id: Mapped[UUID] = mapped_column(
        ForeignKey("step_snapshots.id"), nullable=False
    )
    status: Mapped[ProgressStatus] = mapped_column(default=ProgressStatus.NOT_STARTED)
    is_unlocked: Mapped[bool] = mapped_column(Boolean, default=False)
    unlocked_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    flow_progress: Mapped["FlowProgress"] = relationship("FlowProgress", back_populates="step_progress")
    step_snapshot = relationship("StepSnapshot")
    component_progress: Mapped[List["ComponentProgress"]] = relationship(
        "ComponentProgress", back_populates="step_progress", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("flow_progress_id", "step_snapshot_id", name="uq_step_progress_flow_step"),
    )


class ComponentProgress(Base, UUIDMixin):
    __tablename__ = "component_progress"

    step_progress_id: Mapped[UUID] = mapped_column(
        ForeignKey("step_progress.id", ondelete="CASCADE"), nullable=False, index=True
    )
    component_snapshot_id: Mapped[UUID] = mapped_column(
        ForeignKey("component_snapshots.id"), nullable=False
    )
    status: Mapped[ProgressStatus] = mapped_column(default=ProgressStatus.NOT_STARTED)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0)
    last_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    best_score: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    time_spent_minutes: Mapped[int] = mapped_column(Integer, default=0)
    # Opaque learner state owned by the client (answers, bookmarks, ...)
    progress_data: Mapped[dict] = mapped_column(JSON, default=dict)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    step_progress: Mapped["StepProgress"] = relationship("StepProgress", back_populates="component_progress")
    component_snapshot = relationship("ComponentSnapshot")

    __table_args__ = (
        UniqueConstraint("step_progress_id", "component_snapshot_id", name="uq_component_progress_step_component"),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED

    def can_attempt(self, max_attempts: Optional[int]) -> bool:
        if not max_attempts or max_attempts <= 0:
            return True
        return self.attempt_count < max_attempts

    def touch(self) -> None:
        """Advance ``updated_at`` monotonically (last writer wins)."""
        now = utcnow()
        if self.updated_at is not None and now <= self.updated_at:
            now = self.updated_at + timedelta(microseconds=1)
        self.updated_at = now
