"""FastAPI routes for journeys.

Provides CRUD endpoints for journeys, optimistic-locked edits, status
changes, duplication and version snapshots. A stale ``version`` on any
edit yields 409 with the current journey in the body.
"""

from fastapi import APIRouter, Depends, Query, Response

from journeysync.api.dependencies import get_journey_service
from journeysync.api.schemas import (
    JourneyCreate,
    JourneyDuplicateRequest,
    JourneyListResponse,
    JourneyResponse,
    JourneyStatusEnum,
    JourneyStatusUpdate,
    JourneySummaryResponse,
    JourneyUpdate,
    JourneyVersionResponse,
    TouchpointCreate,
    TouchpointResponse,
    VersionCreate,
    VersionCreateResponse,
)
from journeysync.db.models import Journey, JourneyVersion, Touchpoint
from journeysync.errors import ValidationError
from journeysync.services import JourneyService

router = APIRouter(prefix="/journeys", tags=["journeys"])


@router.post("", response_model=JourneyResponse, status_code=201)
def create_journey(
    data: JourneyCreate,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> Journey:
    """Create a journey at version 1.

    Args:
        data: Journey creation data.
        journey_svc: Journey service dependency.

    Returns:
        The created journey.
    """
    return journey_svc.create_journey(
        client_id=data.client_id,
        name=data.name,
        description=data.description,
        category=data.category,
        goal=data.goal,
        status=data.status.value,
        metadata=data.metadata,
        trigger_config=data.trigger_config,
    )


@router.get("", response_model=JourneyListResponse)
def list_journeys(
    client_id: str | None = Query(None, description="Filter by client"),
    status: JourneyStatusEnum | None = Query(None, description="Filter by status"),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    journey_svc: JourneyService = Depends(get_journey_service),
) -> JourneyListResponse:
    """List journeys, most recently updated first."""
    status_value = status.value if status else None
    journeys = journey_svc.list_journeys(
        client_id=client_id, status=status_value, limit=limit, offset=offset
    )
    return JourneyListResponse(
        journeys=[JourneySummaryResponse.model_validate(j) for j in journeys],
        total=journey_svc.count_journeys(client_id=client_id, status=status_value),
        limit=limit,
        offset=offset,
    )


@router.get("/{journey_id}", response_model=JourneyResponse)
def get_journey(
    journey_id: str,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> Journey:
    """Get a journey with its touchpoints."""
    return journey_svc.get_journey(journey_id)


@router.put("/{journey_id}", response_model=JourneyResponse)
def update_journey(
    journey_id: str,
    data: JourneyUpdate,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> Journey:
    """Edit a journey under optimistic locking.

    The body may carry the version the caller read. On success the version
    advances by one; a stale version returns 409 with the current journey.

    Raises:
        ValidationError: If no editable field is present.
    """
    patch = data.model_dump(exclude_unset=True, exclude={"version"}, mode="json")
    if not patch:
        raise ValidationError("No fields to update")
    return journey_svc.update_journey(journey_id, patch, submitted_version=data.version)


@router.delete("/{journey_id}", status_code=204)
def delete_journey(
    journey_id: str,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> Response:
    """Delete a journey with its touchpoints, version snapshots and conflicts.

    Publish ledger entries are kept.
    """
    journey_svc.delete_journey(journey_id)
    return Response(status_code=204)


@router.put("/{journey_id}/status", response_model=JourneyResponse)
def update_journey_status(
    journey_id: str,
    data: JourneyStatusUpdate,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> Journey:
    """Change the editorial status (draft, client_review, approved, ...)."""
    return journey_svc.set_status(journey_id, data.status.value, data.version)


@router.post("/{journey_id}/duplicate", response_model=JourneyResponse, status_code=201)
def duplicate_journey(
    journey_id: str,
    data: JourneyDuplicateRequest | None = None,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> Journey:
    """Copy a journey and its touchpoints into a new draft."""
    return journey_svc.duplicate_journey(journey_id, name=data.name if data else None)


@router.get("/{journey_id}/versions", response_model=list[JourneyVersionResponse])
def list_versions(
    journey_id: str,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> list[JourneyVersion]:
    """List stored snapshots, newest first."""
    return journey_svc.list_versions(journey_id)


@router.post(
    "/{journey_id}/versions", response_model=VersionCreateResponse, status_code=201
)
def create_version(
    journey_id: str,
    data: VersionCreate,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> VersionCreateResponse:
    """Record the journey's current state as the next version."""
    version = journey_svc.create_version_snapshot(
        journey_id, change_log=data.change_log, created_by=data.created_by
    )
    return VersionCreateResponse(journey_id=journey_id, version=version)


@router.get("/{journey_id}/touchpoints", response_model=list[TouchpointResponse])
def list_touchpoints(
    journey_id: str,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> list[Touchpoint]:
    """List a journey's touchpoints in order."""
    journey_svc.get_journey(journey_id)
    return journey_svc.list_touchpoints(journey_id)


@router.post(
    "/{journey_id}/touchpoints", response_model=TouchpointResponse, status_code=201
)
def add_touchpoint(
    journey_id: str,
    data: TouchpointCreate,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> Touchpoint:
    """Add a touchpoint. Without ``order_index`` it is appended."""
    return journey_svc.add_touchpoint(
        journey_id,
        name=data.name,
        type=data.type.value,
        order_index=data.order_index,
        content=data.content,
        config=data.config,
    )
