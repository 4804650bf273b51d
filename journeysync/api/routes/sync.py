"""FastAPI routes for sync runs and conflicts.

Starting a run executes it within the request and returns the finished
run with its item results. Conflicts are listed and resolved here; a
resolution is applied by the next run that covers the journey.
"""

from fastapi import APIRouter, Depends, Query

from journeysync.api.dependencies import get_sync_context, get_sync_run_service
from journeysync.api.schemas import (
    ConflictResolveRequest,
    ConflictSummaryResponse,
    SyncConflictResponse,
    SyncRunCreate,
    SyncRunDetailResponse,
    SyncRunItemResponse,
    SyncRunResponse,
)
from journeysync.db.models import SyncConflict, SyncRun, SyncRunStatus
from journeysync.errors import ValidationError
from journeysync.services import SyncRunService
from journeysync.services.conflict_detector import ResolutionPolicy, build_report
from journeysync.services.context import SyncContext
from journeysync.services.sync_orchestrator import SyncOrchestrator, SyncRequest

router = APIRouter(prefix="/sync", tags=["sync"])


def _run_detail(run: SyncRun, run_svc: SyncRunService) -> SyncRunDetailResponse:
    detail = SyncRunDetailResponse.model_validate(run)
    detail.items = [
        SyncRunItemResponse.model_validate(item) for item in run_svc.get_items(run.id)
    ]
    return detail


@router.post("/runs", response_model=SyncRunDetailResponse, status_code=201)
async def start_run(
    data: SyncRunCreate,
    context: SyncContext = Depends(get_sync_context),
    run_svc: SyncRunService = Depends(get_sync_run_service),
) -> SyncRunDetailResponse:
    """Run a sync batch and return the finished run."""
    if data.scope.value != "all" and not data.scope_value:
        raise ValidationError(f"Scope '{data.scope.value}' requires scope_value")
    request = SyncRequest(
        scope=data.scope.value,
        scope_value=data.scope_value,
        dry_run=data.dry_run,
        force=data.force,
        on_conflict=ResolutionPolicy(data.on_conflict.value) if data.on_conflict else None,
    )
    summary = await SyncOrchestrator(context).run(request)
    return _run_detail(run_svc.get_run(summary.run_id), run_svc)


@router.get("/runs", response_model=list[SyncRunResponse])
def list_runs(
    status: SyncRunStatus | None = Query(None, description="Filter by status"),
    limit: int = Query(20, ge=1, le=200),
    offset: int = Query(0, ge=0),
    run_svc: SyncRunService = Depends(get_sync_run_service),
) -> list[SyncRun]:
    """List runs, newest first."""
    return run_svc.list_runs(status=status, limit=limit, offset=offset)


@router.get("/runs/{run_id}", response_model=SyncRunDetailResponse)
def get_run(
    run_id: str,
    run_svc: SyncRunService = Depends(get_sync_run_service),
) -> SyncRunDetailResponse:
    """Get a run with its item results."""
    return _run_detail(run_svc.get_run(run_id), run_svc)


@router.get("/conflicts", response_model=list[SyncConflictResponse])
def list_conflicts(
    include_closed: bool = Query(False, description="Include applied and superseded"),
    journey_id: str | None = Query(None, description="Filter by journey"),
    run_svc: SyncRunService = Depends(get_sync_run_service),
) -> list[SyncConflict]:
    """List stored conflicts, newest first."""
    return run_svc.list_conflicts(open_only=not include_closed, journey_id=journey_id)


@router.get("/conflicts/summary", response_model=ConflictSummaryResponse)
def conflict_summary(
    include_closed: bool = Query(False, description="Include applied and superseded"),
    run_svc: SyncRunService = Depends(get_sync_run_service),
) -> dict:
    return build_report(run_svc.list_conflicts(open_only=not include_closed))


@router.post("/conflicts/{conflict_id}/resolve", response_model=SyncConflictResponse)
def resolve_conflict(
    conflict_id: str,
    data: ConflictResolveRequest,
    run_svc: SyncRunService = Depends(get_sync_run_service),
) -> SyncConflict:
    """Attach a resolution; the next run covering the journey applies it."""
    return run_svc.resolve_conflict(conflict_id, data.resolution.value)
