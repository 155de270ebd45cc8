# backend/learnflow/repositories/__init__.py
from learnflow.repositories.flow_repository import FlowRepository
from learnflow.repositories.snapshot_repository import SnapshotRepository
from learnflow.repositories.assignment_repository import AssignmentRepository
from learnflow.repositories.progress_repository import ProgressRepository

__all__ = ["FlowRepository", "SnapshotRepository", "AssignmentRepository", "ProgressRepository"]
