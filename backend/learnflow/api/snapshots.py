# learnflow/api/snapshots.py
"""API endpoints for flow snapshots (read-only apart from retention)."""
import logging
from typing import List
from uuid import UUID

from fastapi import APIRouter

from learnflow.api.deps import DBSession, raise_http
from learnflow.config import get_settings
from learnflow.errors import LearnflowError
from learnflow.schemas.flow import FlowSnapshotResponse, IntegrityResponse, SnapshotCleanupRequest
from learnflow.services.snapshot_service import SnapshotService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/snapshots", tags=["Snapshots"])


@router.get("/flows/{flow_id}", response_model=List[FlowSnapshotResponse])
def list_flow_snapshots(flow_id: UUID, db: DBSession):
    """All snapshot versions of a flow, oldest first."""
    return SnapshotService(db).snapshots.get_all_versions(flow_id)


@router.get("/assignments/{assignment_id}", response_model=FlowSnapshotResponse)
def get_assignment_snapshot(assignment_id: UUID, db: DBSession):
    try:
        return SnapshotService(db).get_snapshot_by_assignment(assignment_id)
    except LearnflowError as e:
        raise_http(e)


@router.get("/{snapshot_id}", response_model=FlowSnapshotResponse)
def get_snapshot(snapshot_id: UUID, db: DBSession):
    try:
        return SnapshotService(db).get_snapshot(snapshot_id)
    except LearnflowError as e:
        raise_http(e)


@router.get("/{snapshot_id}/integrity", response_model=IntegrityResponse)
def validate_integrity(snapshot_id: UUID, db: DBSession):
    report = SnapshotService(db).validate_integrity(snapshot_id)
    return IntegrityResponse(valid=report.valid, reasons=report.reasons)


@router.get("/{snapshot_id}/differences/{flow_id}", response_model=List[str])
def get_snapshot_differences(snapshot_id: UUID, flow_id: UUID, db: DBSession):
    """How the live flow template drifted since the snapshot was taken."""
    try:
        return SnapshotService(db).get_snapshot_differences(flow_id, snapshot_id)
    except LearnflowError as e:
        raise_http(e)


@router.post("/cleanup")
def cleanup_snapshots(data: SnapshotCleanupRequest, db: DBSession):
    """Run the retention rule now instead of waiting for the scheduled job."""
    settings = get_settings()
    older_than_days = data.older_than_days if data.older_than_days is not None else settings.snapshot_retention_days
    keep_minimum = data.keep_minimum if data.keep_minimum is not None else settings.snapshot_keep_minimum
    try:
        deleted = SnapshotService(db).cleanup_old_snapshots(older_than_days, keep_minimum)
    except LearnflowError as e:
        raise_http(e)
    return {"deleted": deleted}
