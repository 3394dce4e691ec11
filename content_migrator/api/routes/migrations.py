"""Migration run endpoints."""

import logging

from fastapi import APIRouter, BackgroundTasks, HTTPException

from ..models import (
    MigrationCreate,
    MigrationListResponse,
    MigrationResponse,
    ProgressResponse,
)
from ..storage import migration_storage
from ...models.migration import MigrationConfig, MigrationStatus
from ...orchestrator import MigrationOrchestrator

logger = logging.getLogger(__name__)

router = APIRouter()

FINISHED = (
    MigrationStatus.COMPLETED,
    MigrationStatus.COMPLETED_WITH_ERRORS,
    MigrationStatus.FAILED,
    MigrationStatus.CANCELLED,
)


def _get_or_404(migration_id: str) -> MigrationOrchestrator:
    orchestrator = migration_storage.get(migration_id)
    if not orchestrator:
        raise HTTPException(status_code=404, detail="Migration not found")
    return orchestrator


def run_migration_task(migration_id: str) -> None:
    """Background task running one stored migration."""
    orchestrator = migration_storage.get(migration_id)
    if orchestrator is None:
        return
    try:
        orchestrator.run_migration()
    except Exception as e:
        logger.exception(f"Migration {migration_id} crashed: {e}")
        orchestrator.run.status = MigrationStatus.FAILED
        orchestrator.run.errors.append({"phase": "run", "error": str(e)})


@router.post("", response_model=MigrationResponse)
async def start_migration(data: MigrationCreate, background_tasks: BackgroundTasks):
    """Create a migration run and start it in the background."""
    config = MigrationConfig.from_dict(data.model_dump())
    try:
        orchestrator = MigrationOrchestrator(config)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    migration_id = migration_storage.add(orchestrator)
    background_tasks.add_task(run_migration_task, migration_id)
    logger.info(f"Queued migration {migration_id} ({config.name})")
    return orchestrator.run.to_dict()


@router.get("", response_model=MigrationListResponse)
async def list_migrations():
    """List all migration runs, newest first."""
    runs = [o.run.to_dict() for o in migration_storage.list_all()]
    return MigrationListResponse(migrations=runs, total=len(runs))


@router.get("/{migration_id}", response_model=MigrationResponse)
async def get_migration(migration_id: str):
    """Get a specific migration run."""
    return _get_or_404(migration_id).run.to_dict()


@router.get("/{migration_id}/progress", response_model=ProgressResponse)
async def get_progress(migration_id: str):
    """Per-collection progress of a run."""
    orchestrator = _get_or_404(migration_id)
    return ProgressResponse(
        migration_id=migration_id,
        status=orchestrator.run.status.value,
        progress=orchestrator.session.progress_snapshot(),
    )


@router.post("/{migration_id}/cancel")
async def cancel_migration(migration_id: str):
    """Cancel a running migration; the item in flight finishes first."""
    orchestrator = _get_or_404(migration_id)
    if orchestrator.run.status in FINISHED:
        raise HTTPException(
            status_code=400,
            detail=f"Cannot cancel migration in status: {orchestrator.run.status.value}"
        )

    orchestrator.cancel()
    return {"status": "cancelling", "migration_id": migration_id}
