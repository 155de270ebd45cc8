# learnflow/services/__init__.py
from .assignment_coordinator import AssignmentCoordinator
from .flow_editor import FlowEditor
from .progress_engine import ProgressEngine
from .snapshot_service import SnapshotService

__all__ = ['AssignmentCoordinator', 'FlowEditor', 'ProgressEngine', 'SnapshotService']
