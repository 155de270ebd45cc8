# backend/learnflow/main.py
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from learnflow.config import get_settings
from learnflow.api.flows import router as flows_router
from learnflow.api.assignments import router as assignments_router
from learnflow.api.progress import router as progress_router
from learnflow.api.snapshots import router as snapshots_router

settings = get_settings()
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events for startup and shutdown."""
    logger.info(f"Starting {settings.app_name} {settings.app_version}")
    yield


API_DESCRIPTION = """
# learnflow - versioned learning flows

## Concepts

- **Flow**: An editable template of ordered steps, each holding content components (article, quiz, task)
- **Snapshot**: An immutable, versioned copy of a flow taken when it is assigned
- **Assignment**: A flow assigned to one learner, pinned to its snapshot, with a working-day deadline
- **Progress**: Component, step and flow progress tracked against the snapshot

## Quick Start

1. **Create a flow**: `POST /api/v1/flows`
2. **Add steps and components**: `POST /api/v1/flows/{id}/steps`, `POST /api/v1/flows/steps/{id}/components`
3. **Publish**: `POST /api/v1/flows/{id}/publish`
4. **Assign**: `POST /api/v1/assignments`
5. **Track progress**: `POST /api/v1/progress/{flow_progress_id}/components`
"""

app = FastAPI(
    title=settings.app_name,
    description=API_DESCRIPTION,
    version=settings.app_version,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Flows", "description": "Flow template editing"},
        {"name": "Assignments", "description": "Flow assignment lifecycle"},
        {"name": "Progress", "description": "Learner progress tracking"},
        {"name": "Snapshots", "description": "Immutable flow versions"},
    ],
)

# Include routers
app.include_router(flows_router, prefix="/api/v1")
app.include_router(assignments_router, prefix="/api/v1")
app.include_router(progress_router, prefix="/api/v1")
app.include_router(snapshots_router, prefix="/api/v1")


@app.get("/health")
async def health_check():
    return {"status": "healthy", "app": settings.app_name}
