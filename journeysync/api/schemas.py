"""Pydantic schemas for API request/response validation.

This module defines the data contracts for the journey sync REST API:
clients, journeys and their version history, touchpoints, and sync runs.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# Enums for API validation


class JourneyStatusEnum(str, Enum):
    """Valid journey status values for API requests."""

    draft = "draft"
    client_review = "client_review"
    approved = "approved"
    published = "published"
    rejected = "rejected"
    archived = "archived"


class TouchpointTypeEnum(str, Enum):
    """Valid touchpoint types."""

    email = "email"
    sms = "sms"
    wait = "wait"
    condition = "condition"
    task = "task"
    trigger = "trigger"
    form = "form"
    call = "call"
    note = "note"


class SyncScopeEnum(str, Enum):
    """Which journeys a sync run covers."""

    all = "all"
    client = "client"
    journey = "journey"


class ResolutionEnum(str, Enum):
    """Conflict resolution choices."""

    skip = "skip"
    overwrite = "overwrite"
    merge = "merge"
    manual = "manual"


# Client schemas


class ClientCreate(BaseModel):
    """Request schema for creating a client."""

    name: str = Field(..., min_length=1, max_length=255)
    slug: str | None = Field(None, max_length=120)
    remote_location_id: str | None = None


class ClientUpdate(BaseModel):
    """Request schema for editing a client. Only fields present are applied."""

    name: str | None = Field(None, min_length=1, max_length=255)
    slug: str | None = Field(None, min_length=1, max_length=120)
    remote_location_id: str | None = None


class ClientResponse(BaseModel):
    """Response schema for a client."""

    id: str
    slug: str
    name: str
    remote_location_id: str | None
    created_at: str

    model_config = ConfigDict(from_attributes=True)


# Touchpoint schemas


class TouchpointCreate(BaseModel):
    """Request schema for adding a touchpoint to a journey."""

    name: str = Field(..., min_length=1, max_length=255)
    type: TouchpointTypeEnum
    order_index: int | None = Field(None, ge=0)
    content: dict[str, Any] = Field(default_factory=dict)
    config: dict[str, Any] = Field(default_factory=dict)


class TouchpointUpdate(BaseModel):
    """Request schema for editing a touchpoint. Unset fields are untouched."""

    name: str | None = Field(None, min_length=1, max_length=255)
    type: TouchpointTypeEnum | None = None
    order_index: int | None = Field(None, ge=0)
    content: dict[str, Any] | None = None
    config: dict[str, Any] | None = None
    status: str | None = None


class TouchpointResponse(BaseModel):
    """Response schema for a touchpoint."""

    id: str
    journey_id: str
    name: str
    type: str
    order_index: int
    content: dict[str, Any]
    config: dict[str, Any]
    remote_template_id: str | None
    status: str
    created_at: str
    updated_at: str

    model_config = ConfigDict(from_attributes=True)


class ReorderItem(BaseModel):
    """One move in a reorder request."""

    id: str
    order_index: int = Field(..., ge=0)


class ReorderRequest(BaseModel):
    """Request schema for moving touchpoints within one journey."""

    journey_id: str
    items: list[ReorderItem] = Field(..., min_length=1)


class PublishStatusResponse(BaseModel):
    """Publish status of one touchpoint."""

    touchpoint_id: str
    status: str
    label: str
    can_publish: bool
    remote_template_id: str | None = None


class PublishRequest(BaseModel):
    """Optional knobs for a single-touchpoint publish."""

    force: bool = False


class PublishResponse(BaseModel):
    """Result of a single-touchpoint publish."""

    success: bool
    touchpoint_id: str
    action: str | None = None
    remote_template_id: str | None = None


# Journey schemas


class JourneyCreate(BaseModel):
    """Request schema for creating a journey."""

    client_id: str
    name: str = Field(..., min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(None, max_length=100)
    goal: str | None = None
    status: JourneyStatusEnum = JourneyStatusEnum.draft
    metadata: dict[str, Any] | None = None
    trigger_config: dict[str, Any] | None = None


class JourneyUpdate(BaseModel):
    """Request schema for a journey edit under optimistic locking.

    ``version`` is the version the caller read; a stale value yields 409.
    Without it the edit applies unconditionally and still bumps the version.
    """

    version: int | None = Field(None, ge=1)
    name: str | None = Field(None, min_length=1, max_length=255)
    description: str | None = None
    category: str | None = Field(None, max_length=100)
    goal: str | None = None
    status: JourneyStatusEnum | None = None
    metadata: dict[str, Any] | None = None
    trigger_config: dict[str, Any] | None = None
    remote_workflow_id: str | None = None


class JourneyStatusUpdate(BaseModel):
    """Request schema for an editorial status change."""

    status: JourneyStatusEnum
    version: int | None = Field(None, ge=1)


class JourneyDuplicateRequest(BaseModel):
    """Request schema for duplicating a journey."""

    name: str | None = Field(None, min_length=1, max_length=255)


class JourneyResponse(BaseModel):
    """Response schema for a journey with its touchpoints."""

    id: str
    client_id: str
    name: str
    description: str | None
    category: str | None
    goal: str | None
    status: str
    version: int
    metadata: dict[str, Any] = Field(validation_alias="metadata_json")
    trigger_config: dict[str, Any] | None
    remote_workflow_id: str | None
    created_at: str
    updated_at: str
    touchpoints: list[TouchpointResponse] = Field(default_factory=list)

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


class JourneySummaryResponse(BaseModel):
    """Response schema for journey summary (list view)."""

    id: str
    client_id: str
    name: str
    status: str
    version: int
    updated_at: str

    model_config = ConfigDict(from_attributes=True)


class JourneyListResponse(BaseModel):
    """Paginated list of journeys."""

    journeys: list[JourneySummaryResponse]
    total: int
    limit: int
    offset: int


class VersionCreate(BaseModel):
    """Request schema for recording a version snapshot."""

    change_log: str | None = None
    created_by: str | None = None


class VersionCreateResponse(BaseModel):
    """Response after recording a snapshot."""

    journey_id: str
    version: int


class JourneyVersionResponse(BaseModel):
    """Response schema for a stored snapshot."""

    id: str
    journey_id: str
    version: int
    snapshot: dict[str, Any]
    change_log: str | None
    created_by: str | None
    created_at: str

    model_config = ConfigDict(from_attributes=True)


# Sync schemas


class SyncRunCreate(BaseModel):
    """Request schema for starting a sync run."""

    scope: SyncScopeEnum = SyncScopeEnum.all
    scope_value: str | None = None
    dry_run: bool = False
    force: bool = False
    on_conflict: ResolutionEnum | None = None


class SyncRunItemResponse(BaseModel):
    """Response schema for one item of a run."""

    id: str
    journey_id: str
    touchpoint_id: str | None
    outcome: str
    decision: str
    remote_template_id: str | None
    attempts: int
    error_code: str | None
    error_message: str | None

    model_config = ConfigDict(from_attributes=True)


class SyncRunResponse(BaseModel):
    """Response schema for a sync run."""

    id: str
    scope: str
    scope_value: str | None
    dry_run: bool
    force: bool
    status: str
    synced_count: int
    skipped_count: int
    conflicted_count: int
    failed_count: int
    error_code: str | None
    error_message: str | None
    created_at: str
    started_at: str | None
    completed_at: str | None

    model_config = ConfigDict(from_attributes=True)


class SyncRunDetailResponse(SyncRunResponse):
    """Sync run with its item results."""

    items: list[SyncRunItemResponse] = Field(default_factory=list)


class SyncConflictResponse(BaseModel):
    """Response schema for a stored conflict."""

    id: str
    run_id: str | None
    journey_id: str
    touchpoint_id: str | None
    kind: str
    message: str
    details: dict[str, Any]
    status: str
    resolution: str | None
    detected_at: str
    resolved_at: str | None

    model_config = ConfigDict(from_attributes=True)


class ConflictSummaryResponse(BaseModel):
    """Counts of conflicts by kind, severity and resolution state."""

    total: int
    by_kind: dict[str, int]
    by_severity: dict[str, int]
    resolved: int
    unresolved: int


class ConflictResolveRequest(BaseModel):
    """Request schema for resolving a conflict."""

    resolution: ResolutionEnum
