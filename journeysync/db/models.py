"""SQLAlchemy ORM models for the journey sync state database.

This module defines the data models for journeys, their touchpoints and
version history, the publish state ledger, and sync run bookkeeping.
Uses SQLAlchemy 2.0 style with Mapped and mapped_column.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy import (
    JSON,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
    relationship,
)


def generate_uuid() -> str:
    """Generate a UUID4 string for primary keys."""
    return str(uuid4())


def utc_now_iso() -> str:
    """Generate current UTC timestamp in ISO8601 format."""
    return datetime.now(UTC).isoformat()


# Enums matching the database schema constraints


class JourneyStatus(str, Enum):
    """Editorial status values for journeys.

    Lifecycle: draft -> client_review -> approved -> published
               client_review -> rejected -> draft
               any -> archived
    """

    draft = "draft"
    client_review = "client_review"
    approved = "approved"
    published = "published"
    rejected = "rejected"
    archived = "archived"


class TouchpointType(str, Enum):
    """Kinds of steps a journey can contain."""

    email = "email"
    sms = "sms"
    wait = "wait"
    condition = "condition"
    task = "task"
    trigger = "trigger"
    form = "form"
    call = "call"
    note = "note"


class TouchpointStatus(str, Enum):
    """Status values for individual touchpoints."""

    draft = "draft"
    approved = "approved"
    published = "published"


class SyncRunStatus(str, Enum):
    """Status values for sync runs.

    Lifecycle: pending -> running -> completed/failed/cancelled
    """

    pending = "pending"
    running = "running"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


class SyncOutcome(str, Enum):
    """Per-journey / per-touchpoint result within a sync run."""

    synced = "synced"
    skipped = "skipped"
    conflicted = "conflicted"
    failed = "failed"


class ConflictStatus(str, Enum):
    """Lifecycle of a recorded sync conflict.

    open -> resolved (caller chose a policy) -> applied (a run acted on it)
    open -> superseded (a later run no longer detects it)
    """

    open = "open"
    resolved = "resolved"
    applied = "applied"
    superseded = "superseded"


# SQLAlchemy Base


class Base(DeclarativeBase):
    """Base class for all ORM models."""

    pass


# Models


class Client(Base):
    """Client account that owns journeys.

    Attributes:
        id: UUID primary key
        slug: Unique URL-safe identifier
        name: Display name
        remote_location_id: Location id on the remote platform, used as the
            publish target for this client's templates
        created_at: ISO8601 timestamp of creation
    """

    __tablename__ = "clients"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    slug: Mapped[str] = mapped_column(String(120), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    remote_location_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    journeys: Mapped[list["Journey"]] = relationship(
        "Journey", back_populates="client", cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Client(id={self.id!r}, slug={self.slug!r})>"


class Journey(Base):
    """Named, ordered sequence of touchpoints belonging to a client.

    ``version`` is the optimistic-lock counter: it starts at 1 and is
    incremented by exactly one on every accepted mutation.

    Attributes:
        id: UUID primary key
        client_id: Owning client
        name: Journey name
        description: Optional description
        category: Optional grouping label
        goal: Optional goal statement
        status: Editorial status (see JourneyStatus)
        version: Optimistic concurrency counter
        metadata_json: Free-form key/value metadata
        trigger_config: Entry trigger configuration
        remote_workflow_id: Workflow id on the remote platform, if linked
        created_at: ISO8601 timestamp of creation
        updated_at: ISO8601 timestamp of last update
    """

    __tablename__ = "journeys"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    client_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("clients.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    category: Mapped[str | None] = mapped_column(String(100), nullable=True)
    goal: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=JourneyStatus.draft.value
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    # "metadata" is reserved on declarative classes
    metadata_json: Mapped[dict[str, Any]] = mapped_column(
        "metadata", JSON, nullable=False, default=dict
    )
    trigger_config: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )
    remote_workflow_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )

    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    client: Mapped["Client"] = relationship("Client", back_populates="journeys")
    touchpoints: Mapped[list["Touchpoint"]] = relationship(
        "Touchpoint",
        back_populates="journey",
        cascade="all, delete-orphan",
        order_by="Touchpoint.order_index",
    )
    versions: Mapped[list["JourneyVersion"]] = relationship(
        "JourneyVersion",
        back_populates="journey",
        cascade="all, delete-orphan",
        order_by="JourneyVersion.version.desc()",
    )

    __table_args__ = (
        Index("idx_journeys_client_id", "client_id"),
        Index("idx_journeys_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<Journey(id={self.id!r}, name={self.name!r}, "
            f"status={self.status!r}, version={self.version})>"
        )


class Touchpoint(Base):
    """One step of a journey (email, SMS, wait, condition, ...).

    Attributes:
        id: UUID primary key
        journey_id: Owning journey (exclusive ownership, cascade delete)
        name: Step name, also used as the remote template name
        type: Step kind (see TouchpointType)
        order_index: Position within the journey, unique per journey
        content: Type-specific payload (subject/body for email, body for SMS)
        config: Delay / branch parameters and legacy content fields
        remote_template_id: Template id on the remote platform once published
        status: draft, approved or published
    """

    __tablename__ = "touchpoints"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    journey_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("journeys.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(20), nullable=False)
    order_index: Mapped[int] = mapped_column(Integer, nullable=False)
    content: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    remote_template_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=TouchpointStatus.draft.value
    )

    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    updated_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso, onupdate=utc_now_iso
    )

    journey: Mapped["Journey"] = relationship("Journey", back_populates="touchpoints")

    __table_args__ = (
        UniqueConstraint("journey_id", "order_index", name="uq_touchpoint_order"),
        Index("idx_touchpoints_journey_id", "journey_id"),
    )

    def __repr__(self) -> str:
        return (
            f"<Touchpoint(id={self.id!r}, journey_id={self.journey_id!r}, "
            f"type={self.type!r}, order={self.order_index})>"
        )


class JourneyVersion(Base):
    """Immutable historical snapshot of a journey.

    Append-only: rows are never updated, and are removed only together
    with their journey.
    """

    __tablename__ = "journey_versions"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    journey_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("journeys.id", ondelete="CASCADE"), nullable=False
    )
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    snapshot: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    change_log: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_by: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    journey: Mapped["Journey"] = relationship("Journey", back_populates="versions")

    __table_args__ = (
        UniqueConstraint("journey_id", "version", name="uq_journey_version"),
        Index("idx_journey_versions_journey_id", "journey_id"),
    )

    def __repr__(self) -> str:
        return f"<JourneyVersion(journey_id={self.journey_id!r}, version={self.version})>"


class PublishStateEntry(Base):
    """Publish state ledger row, one per touchpoint ever published.

    The touchpoint id is a weak reference (no foreign key): the entry
    outlives touchpoint deletion and never owns touchpoint content.

    Attributes:
        touchpoint_id: Local touchpoint id
        content_hash: Hash of the local template payload at last publish
        remote_hash: Hash of the payload actually sent (differs from
            content_hash only after a merge)
        remote_template_id: Template id on the remote platform
        template_kind: "email" or "sms"
        name: Template name at last publish
        published_at: ISO8601 timestamp of last successful publish
    """

    __tablename__ = "publish_state"

    touchpoint_id: Mapped[str] = mapped_column(String(36), primary_key=True)
    content_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    remote_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    remote_template_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    template_kind: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    published_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    def __repr__(self) -> str:
        return (
            f"<PublishStateEntry(touchpoint_id={self.touchpoint_id!r}, "
            f"remote_template_id={self.remote_template_id!r})>"
        )


class SyncRun(Base):
    """One invocation of the sync orchestrator.

    Attributes:
        id: UUID primary key
        scope: Target scope ("all", "client" or "journey")
        scope_value: Client or journey id for narrowed scopes
        dry_run: True when no remote or ledger writes were allowed
        force: True when the ledger gate was bypassed
        status: Run status (see SyncRunStatus)
        synced_count / skipped_count / conflicted_count / failed_count:
            Aggregate per-item outcomes
        error_code: Error code if the run failed
        error_message: Human-readable failure reason
    """

    __tablename__ = "sync_runs"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    scope: Mapped[str] = mapped_column(String(20), nullable=False, default="all")
    scope_value: Mapped[str | None] = mapped_column(String(36), nullable=True)
    dry_run: Mapped[bool] = mapped_column(nullable=False, default=False)
    force: Mapped[bool] = mapped_column(nullable=False, default=False)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=SyncRunStatus.pending.value
    )

    synced_count: Mapped[int] = mapped_column(default=0, nullable=False)
    skipped_count: Mapped[int] = mapped_column(default=0, nullable=False)
    conflicted_count: Mapped[int] = mapped_column(default=0, nullable=False)
    failed_count: Mapped[int] = mapped_column(default=0, nullable=False)

    error_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    started_at: Mapped[str | None] = mapped_column(String(50), nullable=True)
    completed_at: Mapped[str | None] = mapped_column(String(50), nullable=True)

    items: Mapped[list["SyncRunItem"]] = relationship(
        "SyncRunItem", back_populates="run", cascade="all, delete-orphan"
    )

    __table_args__ = (
        Index("idx_sync_runs_status", "status"),
        Index("idx_sync_runs_created_at", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<SyncRun(id={self.id!r}, status={self.status!r})>"


class SyncRunItem(Base):
    """Per-journey or per-touchpoint record within a sync run.

    Journey-level rows (touchpoint_id is None) capture conflicted or
    skipped journeys; touchpoint rows capture publish decisions.
    """

    __tablename__ = "sync_run_items"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    run_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("sync_runs.id", ondelete="CASCADE"), nullable=False
    )
    journey_id: Mapped[str] = mapped_column(String(36), nullable=False)
    touchpoint_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    outcome: Mapped[str] = mapped_column(String(20), nullable=False)
    decision: Mapped[str] = mapped_column(String(20), nullable=False)
    remote_template_id: Mapped[str | None] = mapped_column(
        String(100), nullable=True
    )
    attempts: Mapped[int] = mapped_column(default=0, nullable=False)
    error_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )

    run: Mapped["SyncRun"] = relationship("SyncRun", back_populates="items")

    __table_args__ = (Index("idx_sync_run_items_run_id", "run_id"),)


class SyncConflict(Base):
    """Divergence detected during a sync run, awaiting or holding a resolution."""

    __tablename__ = "sync_conflicts"

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=generate_uuid
    )
    run_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    journey_id: Mapped[str] = mapped_column(String(36), nullable=False)
    touchpoint_id: Mapped[str | None] = mapped_column(String(36), nullable=True)
    kind: Mapped[str] = mapped_column(String(40), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False, default="")
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=ConflictStatus.open.value
    )
    resolution: Mapped[str | None] = mapped_column(String(20), nullable=True)
    detected_at: Mapped[str] = mapped_column(
        String(50), nullable=False, default=utc_now_iso
    )
    resolved_at: Mapped[str | None] = mapped_column(String(50), nullable=True)

    __table_args__ = (
        Index("idx_sync_conflicts_journey_id", "journey_id"),
        Index("idx_sync_conflicts_status", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<SyncConflict(id={self.id!r}, kind={self.kind!r}, "
            f"status={self.status!r})>"
        )
