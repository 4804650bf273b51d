"""FastAPI routes for touchpoints.

Touchpoint edits never change the parent journey's version. Publishing a
single touchpoint goes through the same publisher and ledger as a sync run.
"""

import logging

from fastapi import APIRouter, Depends, HTTPException, Response

from journeysync.api.dependencies import get_journey_service, get_sync_context
from journeysync.api.schemas import (
    PublishRequest,
    PublishResponse,
    PublishStatusResponse,
    ReorderRequest,
    TouchpointResponse,
    TouchpointUpdate,
)
from journeysync.db.models import Client, Touchpoint
from journeysync.services import JourneyService
from journeysync.services.content import is_publishable_type
from journeysync.services.context import SyncContext
from journeysync.services.touchpoint_publisher import PublishAction

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/touchpoints", tags=["touchpoints"])


# Declared before /{touchpoint_id} so "reorder" is not taken for an id.
@router.put("/reorder", response_model=list[TouchpointResponse])
def reorder_touchpoints(
    data: ReorderRequest,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> list[Touchpoint]:
    """Move touchpoints to new positions in one transaction."""
    return journey_svc.reorder_touchpoints(
        data.journey_id, [(item.id, item.order_index) for item in data.items]
    )


@router.get("/{touchpoint_id}", response_model=TouchpointResponse)
def get_touchpoint(
    touchpoint_id: str,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> Touchpoint:
    """Get a touchpoint by ID."""
    return journey_svc.get_touchpoint(touchpoint_id)


@router.put("/{touchpoint_id}", response_model=TouchpointResponse)
def update_touchpoint(
    touchpoint_id: str,
    data: TouchpointUpdate,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> Touchpoint:
    """Edit a touchpoint. Only fields present in the body change."""
    patch = data.model_dump(exclude_unset=True, mode="json")
    return journey_svc.update_touchpoint(touchpoint_id, patch)


@router.delete("/{touchpoint_id}", status_code=204)
def delete_touchpoint(
    touchpoint_id: str,
    journey_svc: JourneyService = Depends(get_journey_service),
) -> Response:
    """Delete a touchpoint. Its ledger entry is kept."""
    journey_svc.delete_touchpoint(touchpoint_id)
    return Response(status_code=204)


@router.get("/{touchpoint_id}/publish-status", response_model=PublishStatusResponse)
def get_publish_status(
    touchpoint_id: str,
    journey_svc: JourneyService = Depends(get_journey_service),
    context: SyncContext = Depends(get_sync_context),
) -> PublishStatusResponse:
    """Report published / draft / not_publishable from local data."""
    touchpoint = journey_svc.get_touchpoint(touchpoint_id)
    status = context.publisher.get_publish_status(touchpoint)
    return PublishStatusResponse(
        touchpoint_id=touchpoint.id,
        status=status.status,
        label=status.label,
        can_publish=status.can_publish,
        remote_template_id=status.remote_template_id,
    )


@router.post("/{touchpoint_id}/publish", response_model=PublishResponse)
async def publish_touchpoint(
    touchpoint_id: str,
    data: PublishRequest | None = None,
    journey_svc: JourneyService = Depends(get_journey_service),
    context: SyncContext = Depends(get_sync_context),
) -> PublishResponse:
    """Publish one email or SMS touchpoint as a remote template.

    Returns 400 for non-publishable types or a missing location id and 422
    when the platform rejects the publish.
    """
    touchpoint = journey_svc.get_touchpoint(touchpoint_id)
    if not is_publishable_type(touchpoint.type):
        raise HTTPException(
            status_code=400,
            detail=f"Touchpoint type '{touchpoint.type}' cannot be published as a template",
        )

    client = context.db.get(Client, touchpoint.journey.client_id)
    location_id = (client.remote_location_id if client else None) or context.default_location_id
    if not location_id:
        raise HTTPException(
            status_code=400,
            detail="No platform location id configured for this client",
        )

    result = await context.publisher.publish(
        touchpoint, location_id, force=data.force if data else False
    )
    if not result.success:
        logger.warning("Publish of touchpoint %s failed: %s", touchpoint_id, result.error_message)
        raise HTTPException(
            status_code=422,
            detail={"error_code": result.error_code, "message": result.error_message},
        )

    if result.action != PublishAction.unchanged and result.remote_template_id:
        journey_svc.mark_touchpoint_published(touchpoint_id, result.remote_template_id)

    return PublishResponse(
        success=True,
        touchpoint_id=touchpoint_id,
        action=result.action.value if result.action else None,
        remote_template_id=result.remote_template_id,
    )
