"""Journey service: versioned journey edits with optimistic concurrency.

Every accepted journey mutation increments ``Journey.version`` by exactly
one through a single compare-and-increment UPDATE, so two writers holding
the same version can never both succeed. Touchpoint edits are separate
operations and leave the journey version alone.
"""

import logging
from typing import Any

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from journeysync.db.models import (
    Client,
    Journey,
    JourneyStatus,
    JourneyVersion,
    SyncConflict,
    Touchpoint,
    TouchpointStatus,
    TouchpointType,
    utc_now_iso,
)
from journeysync.errors import (
    ConflictError,
    NotFoundError,
    ValidationError,
    VersionConflict,
)

logger = logging.getLogger(__name__)

# Patch key -> mapped attribute name
EDITABLE_JOURNEY_FIELDS: dict[str, str] = {
    "name": "name",
    "description": "description",
    "category": "category",
    "goal": "goal",
    "status": "status",
    "metadata": "metadata_json",
    "trigger_config": "trigger_config",
    "remote_workflow_id": "remote_workflow_id",
}

EDITABLE_TOUCHPOINT_FIELDS = frozenset(
    {"name", "type", "content", "config", "status", "order_index"}
)

INITIAL_CHANGE_LOG = "Initial creation"


def _enum_value(enum_cls: type, value: Any, field_name: str) -> str:
    try:
        return enum_cls(getattr(value, "value", value)).value
    except ValueError as e:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ValidationError(
            f"Invalid {field_name} '{value}'. Allowed: {allowed}"
        ) from e


def _version_conflict(journey: Journey, submitted_version: int) -> VersionConflict:
    # Touchpoints load now; handlers may run after the session closes
    _ = journey.touchpoints
    return VersionConflict(journey, submitted_version, journey.version)


def touchpoint_snapshot(touchpoint: Touchpoint) -> dict[str, Any]:
    """Serialize a touchpoint for a version snapshot."""
    return {
        "id": touchpoint.id,
        "name": touchpoint.name,
        "type": touchpoint.type,
        "order_index": touchpoint.order_index,
        "content": touchpoint.content or {},
        "config": touchpoint.config or {},
        "remote_template_id": touchpoint.remote_template_id,
        "status": touchpoint.status,
    }


def journey_snapshot(journey: Journey, touchpoints: list[Touchpoint]) -> dict[str, Any]:
    """Serialize a journey and its touchpoints for a version snapshot."""
    return {
        "journey": {
            "name": journey.name,
            "description": journey.description,
            "category": journey.category,
            "trigger_config": journey.trigger_config,
            "goal": journey.goal,
        },
        "touchpoints": [touchpoint_snapshot(tp) for tp in touchpoints],
    }


class JourneyService:
    """Versioned entity store for journeys and their touchpoints.

    Attributes:
        db: SQLAlchemy session for database operations.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # =========================================================================
    # Journeys
    # =========================================================================

    def create_journey(
        self,
        client_id: str,
        name: str,
        description: str | None = None,
        category: str | None = None,
        goal: str | None = None,
        status: str = JourneyStatus.draft.value,
        metadata: dict[str, Any] | None = None,
        trigger_config: dict[str, Any] | None = None,
        remote_workflow_id: str | None = None,
    ) -> Journey:
        """Create a journey at version 1 together with its first snapshot.

        The journey row and the version-1 JourneyVersion are committed in
        one transaction.

        Raises:
            NotFoundError: If the client does not exist.
            ValidationError: If the name is empty or the status is invalid.
        """
        if not name or not name.strip():
            raise ValidationError("Journey name is required")
        status_value = _enum_value(JourneyStatus, status, "status")
        if self.db.get(Client, client_id) is None:
            raise NotFoundError("Client", client_id)

        journey = Journey(
            client_id=client_id,
            name=name.strip(),
            description=description,
            category=category,
            goal=goal,
            status=status_value,
            version=1,
            metadata_json=metadata or {},
            trigger_config=trigger_config,
            remote_workflow_id=remote_workflow_id,
        )
        try:
            self.db.add(journey)
            self.db.flush()
            self.db.add(
                JourneyVersion(
                    journey_id=journey.id,
                    version=1,
                    snapshot={},
                    change_log=INITIAL_CHANGE_LOG,
                )
            )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        self.db.refresh(journey)
        logger.info("Created journey %s (%s) for client %s", journey.id, journey.name, client_id)
        return journey

    def get_journey(self, journey_id: str) -> Journey:
        """Get a journey by id.

        Raises:
            NotFoundError: If no journey has this id.
        """
        journey = self.db.get(Journey, journey_id)
        if journey is None:
            raise NotFoundError("Journey", journey_id)
        return journey

    def list_journeys(
        self,
        client_id: str | None = None,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[Journey]:
        """List journeys, most recently updated first."""
        query = self.db.query(Journey)
        if client_id:
            query = query.filter(Journey.client_id == client_id)
        if status:
            query = query.filter(
                Journey.status == _enum_value(JourneyStatus, status, "status")
            )
        return (
            query.order_by(Journey.updated_at.desc()).offset(offset).limit(limit).all()
        )

    def count_journeys(self, client_id: str | None = None, status: str | None = None) -> int:
        query = self.db.query(func.count(Journey.id))
        if client_id:
            query = query.filter(Journey.client_id == client_id)
        if status:
            query = query.filter(Journey.status == status)
        return query.scalar() or 0

    def _journey_values(self, patch: dict[str, Any]) -> dict[Any, Any]:
        unknown = set(patch) - set(EDITABLE_JOURNEY_FIELDS)
        if unknown:
            raise ValidationError(
                f"Fields not editable: {', '.join(sorted(unknown))}"
            )
        values: dict[Any, Any] = {}
        for key, value in patch.items():
            if key == "status":
                value = _enum_value(JourneyStatus, value, "status")
            elif key == "name":
                if not value or not str(value).strip():
                    raise ValidationError("Journey name is required")
                value = str(value).strip()
            elif key == "metadata" and value is None:
                value = {}
            values[getattr(Journey, EDITABLE_JOURNEY_FIELDS[key])] = value
        return values

    def update_journey(
        self,
        journey_id: str,
        patch: dict[str, Any],
        submitted_version: int | None = None,
    ) -> Journey:
        """Apply a patch under optimistic locking.

        Args:
            journey_id: Journey to update.
            patch: Field -> new value; keys from EDITABLE_JOURNEY_FIELDS.
            submitted_version: Version the caller read. None skips the
                check but still increments the version.

        Returns:
            The updated journey (version incremented by one).

        Raises:
            NotFoundError: If the journey does not exist.
            ValidationError: If the patch has unknown keys or bad values.
            VersionConflict: If ``submitted_version`` is stale, including
                when a concurrent writer wins between read and write.
        """
        values = self._journey_values(patch)
        journey = self.get_journey(journey_id)

        if submitted_version is not None and journey.version != submitted_version:
            logger.warning(
                "Version conflict on journey %s: submitted %d, current %d",
                journey_id, submitted_version, journey.version,
            )
            raise _version_conflict(journey, submitted_version)

        values[Journey.version] = Journey.version + 1
        values[Journey.updated_at] = utc_now_iso()

        stmt = update(Journey).where(Journey.id == journey_id)
        if submitted_version is not None:
            stmt = stmt.where(Journey.version == submitted_version)
        stmt = stmt.values(values).execution_options(synchronize_session=False)

        result = self.db.execute(stmt)
        if result.rowcount == 0:
            self.db.rollback()
            self.db.expire_all()
            current = self.get_journey(journey_id)
            logger.warning(
                "Concurrent write won on journey %s (now version %d)",
                journey_id, current.version,
            )
            raise _version_conflict(current, submitted_version or current.version)

        self.db.commit()
        self.db.refresh(journey)
        logger.info("Updated journey %s to version %d", journey_id, journey.version)
        return journey

    def set_status(
        self, journey_id: str, status: str, submitted_version: int | None = None
    ) -> Journey:
        """Change the editorial status. Counts as a mutation (version + 1)."""
        return self.update_journey(journey_id, {"status": status}, submitted_version)

    def delete_journey(self, journey_id: str) -> None:
        """Delete a journey with its touchpoints, snapshots and stored conflicts.

        Publish ledger entries and sync run history are kept.

        Raises:
            NotFoundError: If the journey does not exist.
        """
        journey = self.get_journey(journey_id)
        self.db.query(SyncConflict).filter(SyncConflict.journey_id == journey_id).delete(
            synchronize_session=False
        )
        self.db.delete(journey)
        self.db.commit()
        logger.info("Deleted journey %s", journey_id)

    def duplicate_journey(self, journey_id: str, name: str | None = None) -> Journey:
        """Copy a journey and its touchpoints into a new draft journey.

        Copies never inherit remote template ids, so they publish as new
        templates instead of overwriting the source's.
        """
        source = self.get_journey(journey_id)
        source_touchpoints = self.list_touchpoints(journey_id)
        copy = Journey(
            client_id=source.client_id,
            name=name or f"{source.name} (Copy)",
            description=source.description,
            category=source.category,
            goal=source.goal,
            status=JourneyStatus.draft.value,
            version=1,
            metadata_json=dict(source.metadata_json or {}),
            trigger_config=source.trigger_config,
        )
        try:
            self.db.add(copy)
            self.db.flush()
            self.db.add(
                JourneyVersion(
                    journey_id=copy.id,
                    version=1,
                    snapshot={},
                    change_log=f"Duplicated from {source.id}",
                )
            )
            for index, tp in enumerate(source_touchpoints):
                self.db.add(
                    Touchpoint(
                        journey_id=copy.id,
                        name=tp.name,
                        type=tp.type,
                        order_index=index,
                        content=dict(tp.content or {}),
                        config=dict(tp.config or {}),
                        status=TouchpointStatus.draft.value,
                    )
                )
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        self.db.refresh(copy)
        logger.info("Duplicated journey %s as %s", source.id, copy.id)
        return copy

    # =========================================================================
    # Version snapshots
    # =========================================================================

    def create_version_snapshot(
        self,
        journey_id: str,
        change_log: str | None = None,
        created_by: str | None = None,
    ) -> int:
        """Record the journey's current state as the next version.

        The snapshot row and the version advance commit together; losing a
        race with another writer raises VersionConflict and writes nothing.

        Returns:
            The new version number.
        """
        journey = self.get_journey(journey_id)
        touchpoints = self.list_touchpoints(journey_id)
        current = journey.version
        new_version = current + 1
        snapshot = journey_snapshot(journey, touchpoints)

        try:
            result = self.db.execute(
                update(Journey)
                .where(Journey.id == journey_id, Journey.version == current)
                .values({Journey.version: new_version, Journey.updated_at: utc_now_iso()})
                .execution_options(synchronize_session=False)
            )
            if result.rowcount == 0:
                raise VersionConflict(journey, current, current + 1)
            self.db.add(
                JourneyVersion(
                    journey_id=journey_id,
                    version=new_version,
                    snapshot=snapshot,
                    change_log=change_log,
                    created_by=created_by,
                )
            )
            self.db.commit()
        except (VersionConflict, IntegrityError) as e:
            self.db.rollback()
            self.db.expire_all()
            refreshed = self.get_journey(journey_id)
            logger.warning("Snapshot of journey %s lost a race: %s", journey_id, e)
            raise _version_conflict(refreshed, current) from e

        self.db.refresh(journey)
        logger.info("Created snapshot v%d of journey %s", new_version, journey_id)
        return new_version

    def list_versions(self, journey_id: str) -> list[JourneyVersion]:
        """List snapshots for a journey, newest first."""
        self.get_journey(journey_id)
        return (
            self.db.query(JourneyVersion)
            .filter(JourneyVersion.journey_id == journey_id)
            .order_by(JourneyVersion.version.desc())
            .all()
        )

    # =========================================================================
    # Touchpoints
    # =========================================================================

    def get_touchpoint(self, touchpoint_id: str) -> Touchpoint:
        touchpoint = self.db.get(Touchpoint, touchpoint_id)
        if touchpoint is None:
            raise NotFoundError("Touchpoint", touchpoint_id)
        return touchpoint

    def list_touchpoints(self, journey_id: str) -> list[Touchpoint]:
        return (
            self.db.query(Touchpoint)
            .filter(Touchpoint.journey_id == journey_id)
            .order_by(Touchpoint.order_index)
            .all()
        )

    def _index_taken(
        self, journey_id: str, order_index: int, exclude_id: str | None = None
    ) -> bool:
        query = self.db.query(Touchpoint.id).filter(
            Touchpoint.journey_id == journey_id,
            Touchpoint.order_index == order_index,
        )
        if exclude_id:
            query = query.filter(Touchpoint.id != exclude_id)
        return query.first() is not None

    def add_touchpoint(
        self,
        journey_id: str,
        name: str,
        type: str,
        order_index: int | None = None,
        content: dict[str, Any] | None = None,
        config: dict[str, Any] | None = None,
        status: str = TouchpointStatus.draft.value,
    ) -> Touchpoint:
        """Append (or insert at a free position) a touchpoint.

        Raises:
            NotFoundError: If the journey does not exist.
            ValidationError: If name, type or status is invalid.
            ConflictError: If ``order_index`` is already used.
        """
        self.get_journey(journey_id)
        if not name or not name.strip():
            raise ValidationError("Touchpoint name is required")
        type_value = _enum_value(TouchpointType, type, "touchpoint type")
        status_value = _enum_value(TouchpointStatus, status, "touchpoint status")

        if order_index is None:
            current_max = (
                self.db.query(func.max(Touchpoint.order_index))
                .filter(Touchpoint.journey_id == journey_id)
                .scalar()
            )
            order_index = 0 if current_max is None else current_max + 1
        elif order_index < 0:
            raise ValidationError("order_index must be non-negative")
        elif self._index_taken(journey_id, order_index):
            raise ConflictError(f"Position {order_index} is already used in this journey")

        touchpoint = Touchpoint(
            journey_id=journey_id,
            name=name.strip(),
            type=type_value,
            order_index=order_index,
            content=content or {},
            config=config or {},
            status=status_value,
        )
        self.db.add(touchpoint)
        self.db.commit()
        self.db.refresh(touchpoint)
        logger.info("Added %s touchpoint %s to journey %s", type_value, touchpoint.id, journey_id)
        return touchpoint

    def update_touchpoint(self, touchpoint_id: str, patch: dict[str, Any]) -> Touchpoint:
        """Apply a patch to one touchpoint. The journey version is unchanged."""
        unknown = set(patch) - EDITABLE_TOUCHPOINT_FIELDS
        if unknown:
            raise ValidationError(f"Fields not editable: {', '.join(sorted(unknown))}")
        touchpoint = self.get_touchpoint(touchpoint_id)

        for key, value in patch.items():
            if key == "name":
                if not value or not str(value).strip():
                    raise ValidationError("Touchpoint name is required")
                value = str(value).strip()
            elif key == "type":
                value = _enum_value(TouchpointType, value, "touchpoint type")
            elif key == "status":
                value = _enum_value(TouchpointStatus, value, "touchpoint status")
            elif key in ("content", "config"):
                value = value or {}
            elif key == "order_index":
                if value is None or value < 0:
                    raise ValidationError("order_index must be non-negative")
                if self._index_taken(touchpoint.journey_id, value, exclude_id=touchpoint_id):
                    raise ConflictError(f"Position {value} is already used in this journey")
            setattr(touchpoint, key, value)

        self.db.commit()
        self.db.refresh(touchpoint)
        return touchpoint

    def delete_touchpoint(self, touchpoint_id: str) -> None:
        """Delete a touchpoint. Its ledger entry, if any, is kept."""
        touchpoint = self.get_touchpoint(touchpoint_id)
        self.db.delete(touchpoint)
        self.db.commit()
        logger.info("Deleted touchpoint %s", touchpoint_id)

    def reorder_touchpoints(
        self, journey_id: str, items: list[tuple[str, int]]
    ) -> list[Touchpoint]:
        """Move touchpoints to new positions, all or nothing.

        Args:
            journey_id: Journey whose touchpoints move.
            items: (touchpoint_id, new_order_index) pairs.

        Returns:
            The journey's touchpoints in their new order.

        Raises:
            ValidationError: Unknown or foreign ids, repeated ids, negative
                or duplicate target positions, or a target position held by
                a touchpoint not in ``items``.
        """
        self.get_journey(journey_id)
        if not items:
            raise ValidationError("Reorder requires at least one item")

        ids = [tp_id for tp_id, _ in items]
        targets = [index for _, index in items]
        if len(set(ids)) != len(ids):
            raise ValidationError("Each touchpoint may appear only once in a reorder")
        if len(set(targets)) != len(targets):
            raise ValidationError("Target positions must be distinct")
        if any(index < 0 for index in targets):
            raise ValidationError("Target positions must be non-negative")

        current = {tp.id: tp for tp in self.list_touchpoints(journey_id)}
        foreign = [tp_id for tp_id in ids if tp_id not in current]
        if foreign:
            raise ValidationError(
                f"Touchpoints not in journey {journey_id}: {', '.join(foreign)}"
            )
        untouched = {tp.order_index for tp_id, tp in current.items() if tp_id not in set(ids)}
        collisions = sorted(untouched & set(targets))
        if collisions:
            raise ValidationError(
                f"Positions already used by other touchpoints: {collisions}"
            )

        try:
            # Park moved rows on negative positions so swaps never collide
            for n, tp_id in enumerate(ids, start=1):
                current[tp_id].order_index = -n
            self.db.flush()
            for tp_id, index in items:
                current[tp_id].order_index = index
            self.db.flush()
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise

        logger.info("Reordered %d touchpoints in journey %s", len(items), journey_id)
        return self.list_touchpoints(journey_id)

    def mark_touchpoint_published(
        self, touchpoint_id: str, remote_template_id: str
    ) -> Touchpoint:
        """Link a touchpoint to its remote template and mark it published."""
        if not remote_template_id:
            raise ValidationError("remote_template_id is required")
        touchpoint = self.get_touchpoint(touchpoint_id)
        touchpoint.remote_template_id = remote_template_id
        touchpoint.status = TouchpointStatus.published.value
        self.db.commit()
        self.db.refresh(touchpoint)
        return touchpoint
