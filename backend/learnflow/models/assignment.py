# backend/learnflow/models/assignment.py
from datetime import date, datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from sqlalchemy import String, Text, Boolean, Date, DateTime, ForeignKey, Index, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from learnflow.errors import PreconditionFailedError
from learnflow.models.base import Base, TimestampMixin, UUIDMixin, utcnow


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    IN_PROGRESS = "in_progress"
    PAUSED = "paused"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    OVERDUE = "overdue"


INACTIVE_STATUSES = frozenset({AssignmentStatus.COMPLETED, AssignmentStatus.CANCELLED})


class FlowAssignment(Base, UUIDMixin, TimestampMixin):
    """A flow assigned to one learner, pinned to the snapshot taken at assignment time."""
    __tablename__ = "flow_assignments"

    user_id: Mapped[UUID] = mapped_column(index=True)
    flow_id: Mapped[UUID] = mapped_column(
        ForeignKey("flows.id", ondelete="CASCADE"), nullable=False, index=True
    )
    flow_snapshot_id: Mapped[UUID] = mapped_column(
        ForeignKey("flow_snapshots.id"), nullable=False, index=True
    )
    status: Mapped[AssignmentStatus] = mapped_column(default=AssignmentStatus.ASSIGNED)
    # Maintained with status; backs the one-active-assignment-per-pair index
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    assigned_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)
    deadline: Mapped[date] = mapped_column(Date)
    assigned_by_id: Mapped[UUID] = mapped_column()
    buddy_id: Mapped[Optional[UUID]] = mapped_column(nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    paused_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    pause_reason: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    flow = relationship("Flow")
    flow_snapshot = relationship("FlowSnapshot")
    progress = relationship("FlowProgress", back_populates="assignment", uselist=False)

    __table_args__ = (
        Index(
            "uq_flow_assignments_active_user_flow",
            "user_id",
            "flow_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
    )

    def _set_status(self, status: AssignmentStatus) -> None:
        self.status = status
        self.is_active = status not in INACTIVE_STATUSES
        if self.progress is not None:
            self.progress.status = status

    def start(self) -> None:
        if self.status == AssignmentStatus.ASSIGNED:
            self._set_status(AssignmentStatus.IN_PROGRESS)
            self.started_at = utcnow()

    def ensure_accepts_progress(self) -> None:
        if self.status == AssignmentStatus.PAUSED:
            raise PreconditionFailedError(f"Assignment {self.id} is paused", blocking_id=self.id)
        if not self.is_active:
            raise PreconditionFailedError(
                f"Assignment {self.id} is {self.status.value}", blocking_id=self.id
            )

    def pause(self, reason: str) -> None:
        if self.status not in (AssignmentStatus.IN_PROGRESS, AssignmentStatus.OVERDUE):
            raise PreconditionFailedError(
                f"Only running assignments can be paused (status: {self.status.value})",
                blocking_id=self.id,
            )
        self._set_status(AssignmentStatus.PAUSED)
        self.paused_at = utcnow()
        self.pause_reason = reason

    def resume(self, today: date) -> None:
        if self.status != AssignmentStatus.PAUSED:
            raise PreconditionFailedError(
                f"Only paused assignments can be resumed (status: {self.status.value})",
                blocking_id=self.id,
            )
        self._set_status(
            AssignmentStatus.OVERDUE if today > self.deadline else AssignmentStatus.IN_PROGRESS
        )
        self.paused_at = None
        self.pause_reason = None

    def complete(self) -> None:
        self._set_status(AssignmentStatus.COMPLETED)
        self.completed_at = utcnow()

    def cancel(self, reason: Optional[str] = None) -> None:
        if self.status == AssignmentStatus.COMPLETED:
            raise PreconditionFailedError(
                f"Completed assignment {self.id} cannot be cancelled", blocking_id=self.id
            )
        self._set_status(AssignmentStatus.CANCELLED)
        if reason:
            self.notes = reason

    def mark_overdue(self) -> None:
        if self.status in (AssignmentStatus.ASSIGNED, AssignmentStatus.IN_PROGRESS):
            self._set_status(AssignmentStatus.OVERDUE)
