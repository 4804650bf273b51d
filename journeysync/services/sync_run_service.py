"""Sync run bookkeeping: run lifecycle, per-item results, stored conflicts.

Run status follows a small state machine validated on every transition so
a finished run can never be reopened.
"""

import logging
from typing import Any

from sqlalchemy.orm import Session

from journeysync.db.models import (
    ConflictStatus,
    SyncConflict,
    SyncOutcome,
    SyncRun,
    SyncRunItem,
    SyncRunStatus,
    utc_now_iso,
)
from journeysync.errors import NotFoundError, ValidationError

logger = logging.getLogger(__name__)


class InvalidStateTransition(Exception):
    """Raised when attempting an invalid sync run state transition.

    Attributes:
        current_state: The current state of the run.
        attempted_state: The state that was attempted.
        allowed_transitions: Valid transition targets from current state.
    """

    def __init__(
        self,
        current_state: SyncRunStatus,
        attempted_state: SyncRunStatus,
        allowed_transitions: list[SyncRunStatus],
    ) -> None:
        self.current_state = current_state
        self.attempted_state = attempted_state
        self.allowed_transitions = allowed_transitions
        allowed_str = ", ".join(s.value for s in allowed_transitions) or "none (terminal)"
        super().__init__(
            f"Cannot transition from '{current_state.value}' to '{attempted_state.value}'. "
            f"Allowed transitions: {allowed_str}"
        )


VALID_TRANSITIONS: dict[SyncRunStatus, list[SyncRunStatus]] = {
    SyncRunStatus.pending: [
        SyncRunStatus.running,
        SyncRunStatus.cancelled,
        SyncRunStatus.failed,
    ],
    SyncRunStatus.running: [
        SyncRunStatus.completed,
        SyncRunStatus.failed,
        SyncRunStatus.cancelled,
    ],
    SyncRunStatus.completed: [],  # terminal
    SyncRunStatus.failed: [],  # terminal
    SyncRunStatus.cancelled: [],  # terminal
}

_COUNTER_FOR_OUTCOME = {
    SyncOutcome.synced: "synced_count",
    SyncOutcome.skipped: "skipped_count",
    SyncOutcome.conflicted: "conflicted_count",
    SyncOutcome.failed: "failed_count",
}


class SyncRunService:
    """Persistence for sync runs, their items, and detected conflicts.

    Attributes:
        db: SQLAlchemy session for database operations.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    # =========================================================================
    # Runs
    # =========================================================================

    def create_run(
        self,
        scope: str = "all",
        scope_value: str | None = None,
        dry_run: bool = False,
        force: bool = False,
    ) -> SyncRun:
        if scope not in ("all", "client", "journey"):
            raise ValidationError(f"Invalid scope '{scope}'")
        if scope != "all" and not scope_value:
            raise ValidationError(f"Scope '{scope}' requires an id")
        run = SyncRun(
            scope=scope,
            scope_value=scope_value if scope != "all" else None,
            dry_run=dry_run,
            force=force,
            status=SyncRunStatus.pending.value,
        )
        self.db.add(run)
        self.db.commit()
        self.db.refresh(run)
        return run

    def get_run(self, run_id: str) -> SyncRun:
        run = self.db.get(SyncRun, run_id)
        if run is None:
            raise NotFoundError("Sync run", run_id)
        return run

    def list_runs(
        self,
        status: SyncRunStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> list[SyncRun]:
        """List runs, newest first."""
        query = self.db.query(SyncRun)
        if status is not None:
            query = query.filter(SyncRun.status == status.value)
        return query.order_by(SyncRun.created_at.desc()).offset(offset).limit(limit).all()

    def can_transition(self, current: SyncRunStatus, target: SyncRunStatus) -> bool:
        return target in VALID_TRANSITIONS.get(current, [])

    def update_status(self, run_id: str, new_status: SyncRunStatus) -> SyncRun:
        """Move a run to a new status.

        Raises:
            NotFoundError: If the run does not exist.
            InvalidStateTransition: If the transition is not allowed.
        """
        run = self.get_run(run_id)
        current_status = SyncRunStatus(run.status)
        if not self.can_transition(current_status, new_status):
            raise InvalidStateTransition(
                current_state=current_status,
                attempted_state=new_status,
                allowed_transitions=VALID_TRANSITIONS.get(current_status, []),
            )

        now = utc_now_iso()
        run.status = new_status.value
        if new_status == SyncRunStatus.running and run.started_at is None:
            run.started_at = now
        if new_status in (
            SyncRunStatus.completed,
            SyncRunStatus.failed,
            SyncRunStatus.cancelled,
        ):
            run.completed_at = now

        self.db.commit()
        self.db.refresh(run)
        return run

    def set_error(self, run_id: str, error_code: str, error_message: str) -> SyncRun:
        run = self.get_run(run_id)
        run.error_code = error_code
        run.error_message = error_message
        self.db.commit()
        self.db.refresh(run)
        return run

    # =========================================================================
    # Items
    # =========================================================================

    def record_item(
        self,
        run_id: str,
        journey_id: str,
        outcome: SyncOutcome,
        decision: str,
        touchpoint_id: str | None = None,
        remote_template_id: str | None = None,
        attempts: int = 0,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> SyncRunItem:
        """Store one item result and bump the matching run counter."""
        run = self.get_run(run_id)
        item = SyncRunItem(
            run_id=run_id,
            journey_id=journey_id,
            touchpoint_id=touchpoint_id,
            outcome=outcome.value,
            decision=decision,
            remote_template_id=remote_template_id,
            attempts=attempts,
            error_code=error_code,
            error_message=error_message,
        )
        self.db.add(item)
        counter = _COUNTER_FOR_OUTCOME[outcome]
        setattr(run, counter, getattr(run, counter) + 1)
        self.db.commit()
        return item

    def get_items(self, run_id: str, outcome: SyncOutcome | None = None) -> list[SyncRunItem]:
        query = self.db.query(SyncRunItem).filter(SyncRunItem.run_id == run_id)
        if outcome is not None:
            query = query.filter(SyncRunItem.outcome == outcome.value)
        return query.order_by(SyncRunItem.created_at).all()

    def get_run_summary(self, run_id: str) -> dict[str, Any]:
        run = self.get_run(run_id)
        return {
            "id": run.id,
            "status": run.status,
            "scope": run.scope,
            "scope_value": run.scope_value,
            "dry_run": run.dry_run,
            "force": run.force,
            "synced": run.synced_count,
            "skipped": run.skipped_count,
            "conflicted": run.conflicted_count,
            "failed": run.failed_count,
            "error_code": run.error_code,
            "error_message": run.error_message,
            "started_at": run.started_at,
            "completed_at": run.completed_at,
        }

    # =========================================================================
    # Conflicts
    # =========================================================================

    def find_conflict(
        self, journey_id: str, kind: str, touchpoint_id: str | None
    ) -> SyncConflict | None:
        """Latest open or resolved conflict with the same identity."""
        return (
            self.db.query(SyncConflict)
            .filter(
                SyncConflict.journey_id == journey_id,
                SyncConflict.kind == kind,
                SyncConflict.touchpoint_id.is_(None)
                if touchpoint_id is None
                else SyncConflict.touchpoint_id == touchpoint_id,
                SyncConflict.status.in_(
                    [ConflictStatus.open.value, ConflictStatus.resolved.value]
                ),
            )
            .order_by(SyncConflict.detected_at.desc())
            .first()
        )

    def record_conflict(
        self,
        run_id: str | None,
        journey_id: str,
        kind: str,
        touchpoint_id: str | None = None,
        message: str = "",
        details: dict[str, Any] | None = None,
    ) -> SyncConflict:
        """Store a detected conflict, reusing an existing record if present."""
        existing = self.find_conflict(journey_id, kind, touchpoint_id)
        if existing is not None:
            existing.run_id = run_id
            existing.message = message
            existing.details = details or {}
            self.db.commit()
            return existing

        conflict = SyncConflict(
            run_id=run_id,
            journey_id=journey_id,
            touchpoint_id=touchpoint_id,
            kind=kind,
            message=message,
            details=details or {},
            status=ConflictStatus.open.value,
        )
        self.db.add(conflict)
        self.db.commit()
        self.db.refresh(conflict)
        return conflict

    def get_conflict(self, conflict_id: str) -> SyncConflict:
        conflict = self.db.get(SyncConflict, conflict_id)
        if conflict is None:
            raise NotFoundError("Conflict", conflict_id)
        return conflict

    def list_conflicts(
        self, open_only: bool = True, journey_id: str | None = None
    ) -> list[SyncConflict]:
        """List conflicts; ``open_only`` keeps those not yet applied or superseded."""
        query = self.db.query(SyncConflict)
        if open_only:
            query = query.filter(
                SyncConflict.status.in_(
                    [ConflictStatus.open.value, ConflictStatus.resolved.value]
                )
            )
        if journey_id:
            query = query.filter(SyncConflict.journey_id == journey_id)
        return query.order_by(SyncConflict.detected_at.desc()).all()

    def resolve_conflict(self, conflict_id: str, resolution: str) -> SyncConflict:
        """Attach the caller's resolution; the next run applies it.

        Raises:
            ValidationError: If the conflict was already applied or superseded,
                or the resolution is not a known policy.
        """
        if resolution not in ("skip", "overwrite", "merge", "manual"):
            raise ValidationError(f"Invalid resolution '{resolution}'")
        conflict = self.get_conflict(conflict_id)
        if conflict.status in (ConflictStatus.applied.value, ConflictStatus.superseded.value):
            raise ValidationError(
                f"Conflict {conflict_id} is {conflict.status} and cannot be resolved"
            )
        conflict.resolution = resolution
        conflict.status = ConflictStatus.resolved.value
        conflict.resolved_at = utc_now_iso()
        self.db.commit()
        self.db.refresh(conflict)
        logger.info("Conflict %s resolved with %s", conflict_id, resolution)
        return conflict

    def mark_applied(self, conflict_id: str) -> None:
        conflict = self.get_conflict(conflict_id)
        conflict.status = ConflictStatus.applied.value
        self.db.commit()

    def supersede_open(self, journey_id: str, keep_ids: set[str]) -> int:
        """Supersede a journey's open or resolved conflicts unless re-detected.

        Returns:
            Number of conflicts superseded.
        """
        stale = [
            c
            for c in self.list_conflicts(open_only=True, journey_id=journey_id)
            if c.id not in keep_ids
        ]
        for conflict in stale:
            conflict.status = ConflictStatus.superseded.value
        if stale:
            self.db.commit()
        return len(stale)
