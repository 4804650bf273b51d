"""Sync orchestrator: batch publishing of due journeys to the remote platform.

A run enumerates journeys due for sync, reads back their remote state,
runs conflict detection, applies caller-supplied resolutions, and publishes
changed touchpoints through a bounded worker pool. Per-item failures are
recorded on the run and never abort the batch, except authentication and
permission failures which end the run as failed.

Usage:
    context = build_sync_context(db, config)
    orchestrator = SyncOrchestrator(context)
    summary = await orchestrator.run(SyncRequest(dry_run=True))
"""

import asyncio
import logging
from dataclasses import asdict, dataclass, field
from typing import Any

from journeysync.db.models import (
    Client,
    ConflictStatus,
    Journey,
    JourneyStatus,
    SyncConflict,
    SyncOutcome,
    SyncRun,
    SyncRunStatus,
)
from journeysync.errors import (
    JourneySyncError,
    LedgerUnavailableError,
    NotFoundError,
    ValidationError,
    get_error,
    group_errors,
)
from journeysync.services.conflict_detector import (
    Conflict,
    RemoteState,
    RemoteTemplate,
    ResolutionPolicy,
    has_structural_conflict,
    merge_fields,
)
from journeysync.services.context import SyncContext
from journeysync.services.errors import (
    PlatformError,
    RemoteAuthError,
    RemotePermissionError,
)
from journeysync.services.journey_service import JourneyService
from journeysync.services.platform_client import extract_template_id
from journeysync.services.sync_run_service import SyncRunService
from journeysync.services.touchpoint_publisher import (
    PublishAction,
    PublishDecision,
    PublishResult,
    TouchpointView,
)

logger = logging.getLogger(__name__)

DUE_STATUSES = (JourneyStatus.approved.value, JourneyStatus.published.value)

_OUTCOME_FOR_DECISION = {
    PublishDecision.create: SyncOutcome.synced,
    PublishDecision.update: SyncOutcome.synced,
    PublishDecision.unchanged: SyncOutcome.skipped,
    PublishDecision.not_publishable: SyncOutcome.skipped,
    PublishDecision.invalid: SyncOutcome.failed,
}


@dataclass
class SyncRequest:
    """Parameters of one sync run.

    Attributes:
        scope: "all", "client" or "journey".
        scope_value: Client or journey id for narrowed scopes.
        dry_run: Compute every decision without remote or ledger writes.
        force: Publish even when ledger hashes match.
        on_conflict: Run-wide resolution for conflicts without a stored one.
    """

    scope: str = "all"
    scope_value: str | None = None
    dry_run: bool = False
    force: bool = False
    on_conflict: ResolutionPolicy | None = None


@dataclass
class ItemReport:
    """Result for one touchpoint (or one journey-level event)."""

    journey_id: str
    touchpoint_id: str | None
    outcome: str
    decision: str
    remote_template_id: str | None = None
    attempts: int = 0
    error_code: str | None = None
    error_message: str | None = None


@dataclass
class JourneyReport:
    """Result for one journey."""

    journey_id: str
    name: str
    outcome: str
    resolution: str | None = None
    conflicts: list[dict[str, Any]] = field(default_factory=list)
    items: list[ItemReport] = field(default_factory=list)


@dataclass
class SyncSummary:
    """Per-run report returned by SyncOrchestrator.run."""

    run_id: str
    status: str
    dry_run: bool
    synced: int = 0
    skipped: int = 0
    conflicted: int = 0
    failed: int = 0
    journeys: list[JourneyReport] = field(default_factory=list)
    errors: list[JourneySyncError] = field(default_factory=list)
    error_code: str | None = None
    error_message: str | None = None

    def decisions(self) -> list[tuple[str, str | None, str]]:
        """(journey_id, touchpoint_id, decision) triples in processing order."""
        return [
            (item.journey_id, item.touchpoint_id, item.decision)
            for report in self.journeys
            for item in report.items
        ]

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status,
            "dry_run": self.dry_run,
            "synced": self.synced,
            "skipped": self.skipped,
            "conflicted": self.conflicted,
            "failed": self.failed,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "journeys": [asdict(report) for report in self.journeys],
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class _JourneyView:
    id: str
    name: str
    version: int
    client_id: str
    remote_workflow_id: str | None


class _RunAborted(Exception):
    def __init__(self, error: PlatformError) -> None:
        super().__init__(str(error))
        self.error = error


class SyncOrchestrator:
    """Runs sync batches against the remote platform.

    Attributes:
        context: Injected dependencies.
        runs: Run bookkeeping service.
        journeys: Journey service (touchpoint write-back after publish).
    """

    def __init__(self, context: SyncContext) -> None:
        self.context = context
        self.runs = SyncRunService(context.db)
        self.journeys = JourneyService(context.db)
        self._cancel_requested = False
        self._abort_error: PlatformError | None = None

    def cancel(self) -> None:
        """Request cancellation; honored before the next journey starts."""
        self._cancel_requested = True

    # =========================================================================
    # Control surface
    # =========================================================================

    def list_runs(self, limit: int = 20) -> list[SyncRun]:
        return self.runs.list_runs(limit=limit)

    def get_run(self, run_id: str) -> SyncRun:
        return self.runs.get_run(run_id)

    def list_conflicts(self, open_only: bool = True) -> list[SyncConflict]:
        return self.runs.list_conflicts(open_only=open_only)

    def resolve_conflict(
        self, conflict_id: str, resolution: ResolutionPolicy | str
    ) -> SyncConflict:
        return self.runs.resolve_conflict(
            conflict_id, getattr(resolution, "value", resolution)
        )

    # =========================================================================
    # Run
    # =========================================================================

    def _due_journeys(self, request: SyncRequest) -> list[Journey]:
        db = self.context.db
        if request.scope == "journey":
            if db.get(Journey, request.scope_value) is None:
                raise NotFoundError("Journey", request.scope_value or "")
        elif request.scope == "client":
            if db.get(Client, request.scope_value) is None:
                raise NotFoundError("Client", request.scope_value or "")
        elif request.scope != "all":
            raise ValidationError(f"Invalid scope '{request.scope}'")

        query = db.query(Journey).filter(Journey.status.in_(DUE_STATUSES))
        if request.scope == "journey":
            query = query.filter(Journey.id == request.scope_value)
        elif request.scope == "client":
            query = query.filter(Journey.client_id == request.scope_value)
        return query.order_by(Journey.created_at, Journey.id).all()

    async def run(self, request: SyncRequest) -> SyncSummary:
        """Execute one sync run.

        Args:
            request: Scope and mode of the run.

        Returns:
            SyncSummary with per-journey reports and counters.

        Raises:
            NotFoundError: If the scoped client or journey does not exist.
            ValidationError: If the scope is malformed.
            LedgerUnavailableError: If the ledger fails; the run is marked
                failed before the error propagates.

        An unexpected error inside one journey fails that journey with
        E-4002 and the batch continues. Any error escaping the batch marks
        the run failed (or cancelled, on task cancellation) before it
        propagates.
        """
        due = self._due_journeys(request)
        run = self.runs.create_run(
            scope=request.scope,
            scope_value=request.scope_value,
            dry_run=request.dry_run,
            force=request.force,
        )
        self.runs.update_status(run.id, SyncRunStatus.running)
        self._cancel_requested = False
        self._abort_error = None

        logger.info(
            "Sync run %s started: %d due journey(s), scope=%s dry_run=%s force=%s",
            run.id, len(due), request.scope, request.dry_run, request.force,
        )

        summary = SyncSummary(run_id=run.id, status=SyncRunStatus.running.value, dry_run=request.dry_run)
        final_status = SyncRunStatus.completed
        seen_journeys: set[str] = set()
        seen_touchpoints: set[str] = set()

        try:
            for journey in due:
                if self._cancel_requested:
                    logger.info("Sync run %s cancelled", run.id)
                    final_status = SyncRunStatus.cancelled
                    break
                if journey.id in seen_journeys:
                    continue
                seen_journeys.add(journey.id)
                journey_id, journey_name = journey.id, journey.name

                try:
                    report = await self._sync_journey(run.id, journey, request, seen_touchpoints)
                except _RunAborted as aborted:
                    self._abort_error = aborted.error
                    summary.journeys.append(
                        JourneyReport(journey_id, journey_name, SyncOutcome.failed.value)
                    )
                    break
                except LedgerUnavailableError:
                    raise
                except Exception as e:
                    logger.exception("Unexpected error syncing journey %s", journey_id)
                    self.context.db.rollback()
                    report = self._journey_failed(run.id, journey_id, journey_name, e)
                summary.journeys.append(report)
                if self._abort_error is not None:
                    break
        except LedgerUnavailableError as e:
            logger.error("Sync run %s failed: ledger unavailable: %s", run.id, e)
            self._end_run(run.id, SyncRunStatus.failed, e.code, str(e))
            raise
        except asyncio.CancelledError:
            logger.warning("Sync run %s interrupted", run.id)
            self._end_run(run.id, SyncRunStatus.cancelled)
            raise
        except Exception as e:
            logger.exception("Sync run %s aborted by unexpected error", run.id)
            self._end_run(run.id, SyncRunStatus.failed, "E-4002", str(e) or type(e).__name__)
            raise

        if self._abort_error is not None:
            final_status = SyncRunStatus.failed
            self.runs.set_error(run.id, self._abort_error.code, self._abort_error.message)
            logger.error("Sync run %s aborted: %s", run.id, self._abort_error)

        run = self.runs.update_status(run.id, final_status)
        summary.status = run.status
        summary.synced = run.synced_count
        summary.skipped = run.skipped_count
        summary.conflicted = run.conflicted_count
        summary.failed = run.failed_count
        summary.error_code = run.error_code
        summary.error_message = run.error_message
        summary.errors = group_errors(_collect_errors(summary.journeys))

        logger.info(
            "Sync run %s %s: synced=%d skipped=%d conflicted=%d failed=%d",
            run.id, run.status, run.synced_count, run.skipped_count,
            run.conflicted_count, run.failed_count,
        )
        return summary

    # =========================================================================
    # Per journey
    # =========================================================================

    def _record(self, run_id: str, item: ItemReport) -> ItemReport:
        self.runs.record_item(
            run_id,
            item.journey_id,
            SyncOutcome(item.outcome),
            item.decision,
            touchpoint_id=item.touchpoint_id,
            remote_template_id=item.remote_template_id,
            attempts=item.attempts,
            error_code=item.error_code,
            error_message=item.error_message,
        )
        return item

    def _end_run(
        self,
        run_id: str,
        status: SyncRunStatus,
        error_code: str | None = None,
        error_message: str | None = None,
    ) -> None:
        """Move a run that cannot finish normally to a terminal status."""
        self.context.db.rollback()
        if error_code:
            self.runs.set_error(run_id, error_code, error_message or "")
        self.runs.update_status(run_id, status)

    def _journey_failed(
        self, run_id: str, journey_id: str, journey_name: str, error: Exception
    ) -> JourneyReport:
        report = JourneyReport(journey_id, journey_name, SyncOutcome.failed.value)
        report.items.append(
            self._record(
                run_id,
                ItemReport(journey_id, None, SyncOutcome.failed.value, "invalid",
                           error_code="E-4002", error_message=str(error) or type(error).__name__),
            )
        )
        return report

    def _location_for(self, journey: _JourneyView) -> str | None:
        client = self.context.db.get(Client, journey.client_id)
        if client is not None and client.remote_location_id:
            return client.remote_location_id
        return self.context.default_location_id

    async def _sync_journey(
        self,
        run_id: str,
        journey: Journey,
        request: SyncRequest,
        seen_touchpoints: set[str],
    ) -> JourneyReport:
        # As-of-dispatch copies; later edits to the rows do not leak in
        view = _JourneyView(
            id=journey.id,
            name=journey.name,
            version=journey.version,
            client_id=journey.client_id,
            remote_workflow_id=journey.remote_workflow_id,
        )
        touchpoints: list[TouchpointView] = []
        for tp in self.journeys.list_touchpoints(journey.id):
            if tp.id in seen_touchpoints:
                continue
            seen_touchpoints.add(tp.id)
            touchpoints.append(TouchpointView.from_model(tp))

        report = JourneyReport(view.id, view.name, SyncOutcome.synced.value)

        location_id = self._location_for(view)
        if not location_id:
            report.outcome = SyncOutcome.failed.value
            report.items.append(
                self._record(
                    run_id,
                    ItemReport(
                        view.id, None, SyncOutcome.failed.value, "invalid",
                        error_code="E-5003",
                        error_message=f"No platform location id for client {view.client_id}",
                    ),
                )
            )
            return report

        try:
            remote_state, entries = await self._fetch_remote_state(view, touchpoints, location_id)
        except (RemoteAuthError, RemotePermissionError) as e:
            self._record(
                run_id,
                ItemReport(view.id, None, SyncOutcome.failed.value, "invalid",
                           error_code=e.code, error_message=e.message),
            )
            raise _RunAborted(e) from e
        except PlatformError as e:
            logger.warning("Remote read-back failed for journey %s: %s", view.id, e)
            report.outcome = SyncOutcome.failed.value
            report.items.append(
                self._record(
                    run_id,
                    ItemReport(view.id, None, SyncOutcome.failed.value, "invalid",
                               error_code=e.code, error_message=e.message),
                )
            )
            return report

        conflicts = self.context.detector.detect(view, touchpoints, remote_state, entries)
        stored = self._store_conflicts(run_id, view.id, conflicts, request.dry_run)

        force = request.force
        overrides: dict[str, dict[str, Any]] = {}
        recreate: set[str] = set()

        if conflicts:
            resolutions = [
                _resolution_for(stored.get(c.key), request.on_conflict) for c in conflicts
            ]
            report.conflicts = [
                {"kind": c.kind.value, "touchpoint_id": c.touchpoint_id, "message": c.message}
                for c in conflicts
            ]
            policy = _combine(resolutions)
            report.resolution = policy.value if policy else None

            if policy is None or policy == ResolutionPolicy.manual:
                return self._journey_conflicted(run_id, report, "unresolved conflict")

            if policy == ResolutionPolicy.skip:
                report.outcome = SyncOutcome.skipped.value
                report.items.append(
                    self._record(
                        run_id,
                        ItemReport(view.id, None, SyncOutcome.skipped.value, "conflict"),
                    )
                )
                self._mark_applied(stored, conflicts, request.dry_run)
                return report

            if policy == ResolutionPolicy.merge:
                if has_structural_conflict(conflicts):
                    logger.warning(
                        "Merge refused for journey %s: structural conflict present", view.id
                    )
                    return self._journey_conflicted(run_id, report, "merge refused: structural conflict")
                by_id = {tp.id: tp for tp in touchpoints}
                for conflict in conflicts:
                    tp = by_id.get(conflict.touchpoint_id or "")
                    if tp is None:
                        continue
                    if conflict.details.get("reason") == "missing":
                        recreate.add(tp.id)
                        continue
                    remote_payload = conflict.details.get("remote_payload")
                    if not remote_payload:
                        continue
                    try:
                        local_payload = self.context.publisher.build_template(tp).to_dict()
                    except (ValidationError, NotFoundError) as e:
                        logger.warning("Cannot merge touchpoint %s: %s", tp.id, e)
                        return self._journey_conflicted(run_id, report, str(e))
                    outcome = merge_fields(local_payload, remote_payload)
                    if not outcome.ok:
                        logger.warning(
                            "Merge aborted for touchpoint %s: overlapping fields %s",
                            tp.id, ", ".join(outcome.overlapping),
                        )
                        return self._journey_conflicted(
                            run_id, report,
                            f"merge aborted: overlapping fields {', '.join(outcome.overlapping)}",
                        )
                    overrides[tp.id] = outcome.merged

            if policy == ResolutionPolicy.overwrite:
                force = True
                recreate = {
                    c.touchpoint_id
                    for c in conflicts
                    if c.touchpoint_id and c.details.get("reason") == "missing"
                }

        items = await self._publish_all(
            run_id, touchpoints, location_id, request.dry_run, force, overrides, recreate
        )
        report.items.extend(items)
        if conflicts and self._abort_error is None:
            self._mark_applied(stored, conflicts, request.dry_run)

        outcomes = {item.outcome for item in items}
        if SyncOutcome.failed.value in outcomes:
            report.outcome = SyncOutcome.failed.value
        elif SyncOutcome.synced.value in outcomes:
            report.outcome = SyncOutcome.synced.value
        else:
            report.outcome = SyncOutcome.skipped.value
        return report

    def _journey_conflicted(self, run_id: str, report: JourneyReport, reason: str) -> JourneyReport:
        report.outcome = SyncOutcome.conflicted.value
        report.items.append(
            self._record(
                run_id,
                ItemReport(report.journey_id, None, SyncOutcome.conflicted.value, "conflict",
                           error_message=reason),
            )
        )
        return report

    async def _fetch_remote_state(
        self,
        journey: _JourneyView,
        touchpoints: list[TouchpointView],
        location_id: str,
    ) -> tuple[RemoteState, dict[str, Any]]:
        """Read back the workflow and every ledger-known template."""
        ledger = self.context.ledger
        platform = self.context.platform
        retry = self.context.retry_policy

        entries = ledger.get_many([tp.id for tp in touchpoints])
        state = RemoteState(workflow_id=journey.remote_workflow_id)

        if journey.remote_workflow_id:
            workflow = await retry.execute(
                lambda: platform.get_workflow(journey.remote_workflow_id),
                context=f"workflow {journey.remote_workflow_id}",
            )
            if workflow is None:
                logger.warning(
                    "Workflow %s for journey %s not found on platform",
                    journey.remote_workflow_id, journey.id,
                )
            else:
                steps = workflow.get("steps")
                if isinstance(steps, list):
                    state.workflow_step_count = len(steps)
                settings = workflow.get("settings")
                remote_version = (
                    settings.get("journeyVersion") if isinstance(settings, dict) else None
                )
                if isinstance(remote_version, int) and not isinstance(remote_version, bool):
                    state.workflow_journey_version = remote_version

        for tp in touchpoints:
            entry = entries.get(tp.id)
            if entry is None or not entry.remote_template_id:
                continue
            kind = entry.template_kind
            template_id = entry.remote_template_id
            remote = await retry.execute(
                lambda: platform.get_template(kind, template_id, location_id),
                context=f"template {template_id}",
            )
            if remote is None:
                state.templates[tp.id] = None
            else:
                state.templates[tp.id] = RemoteTemplate(
                    template_id=extract_template_id(remote) or template_id,
                    kind=kind,
                    payload=remote,
                )
        return state, entries

    def _store_conflicts(
        self,
        run_id: str,
        journey_id: str,
        conflicts: list[Conflict],
        dry_run: bool,
    ) -> dict[tuple[str, str, str | None], SyncConflict]:
        """Persist detected conflicts (read-only lookup in dry-run)."""
        stored: dict[tuple[str, str, str | None], SyncConflict] = {}
        for conflict in conflicts:
            if dry_run:
                existing = self.runs.find_conflict(
                    conflict.journey_id, conflict.kind.value, conflict.touchpoint_id
                )
            else:
                existing = self.runs.record_conflict(
                    run_id,
                    conflict.journey_id,
                    conflict.kind.value,
                    touchpoint_id=conflict.touchpoint_id,
                    message=conflict.message,
                    details=_json_safe(conflict.to_details()),
                )
            if existing is not None:
                stored[conflict.key] = existing
        if not dry_run:
            self.runs.supersede_open(journey_id, {c.id for c in stored.values()})
        return stored

    def _mark_applied(
        self,
        stored: dict[tuple[str, str, str | None], SyncConflict],
        conflicts: list[Conflict],
        dry_run: bool,
    ) -> None:
        if dry_run:
            return
        for conflict in conflicts:
            record = stored.get(conflict.key)
            if record is not None and record.status in (
                ConflictStatus.open.value,
                ConflictStatus.resolved.value,
            ):
                self.runs.mark_applied(record.id)

    # =========================================================================
    # Per touchpoint
    # =========================================================================

    async def _publish_all(
        self,
        run_id: str,
        touchpoints: list[TouchpointView],
        location_id: str,
        dry_run: bool,
        force: bool,
        overrides: dict[str, dict[str, Any]],
        recreate: set[str],
    ) -> list[ItemReport]:
        semaphore = asyncio.Semaphore(max(1, self.context.concurrency))
        results: dict[str, ItemReport] = {}

        async def _process(tp: TouchpointView) -> None:
            async with semaphore:
                if self._abort_error is not None:
                    return
                if dry_run:
                    item = self._plan_item(tp, force or tp.id in overrides, tp.id in recreate)
                else:
                    item = await self._publish_item(
                        tp, location_id, force, overrides.get(tp.id), tp.id in recreate
                    )
                results[tp.id] = self._record(run_id, item)

        outcomes = await asyncio.gather(
            *[_process(tp) for tp in touchpoints], return_exceptions=True
        )
        for outcome in outcomes:
            if isinstance(outcome, BaseException):
                raise outcome

        return [results[tp.id] for tp in touchpoints if tp.id in results]

    def _plan_item(self, tp: TouchpointView, force: bool, recreate: bool) -> ItemReport:
        plan = self.context.publisher.plan(tp, force=force, recreate=recreate)
        if plan.decision in (PublishDecision.create, PublishDecision.update):
            logger.info("[dry-run] Would %s template for touchpoint %s", plan.decision.value, tp.id)
        error = plan.error
        return ItemReport(
            tp.journey_id,
            tp.id,
            _OUTCOME_FOR_DECISION[plan.decision].value,
            plan.decision.value,
            remote_template_id=plan.remote_template_id,
            error_code=error.code if error is not None and plan.decision == PublishDecision.invalid else None,
            error_message=str(error) if error is not None and plan.decision == PublishDecision.invalid else None,
        )

    async def _publish_item(
        self,
        tp: TouchpointView,
        location_id: str,
        force: bool,
        override: dict[str, Any] | None,
        recreate: bool,
    ) -> ItemReport:
        policy = self.context.retry_policy
        publisher = self.context.publisher
        attempts = 0
        result: PublishResult | None = None

        try:
            for attempt in range(policy.max_attempts):
                attempts += 1
                result = await publisher.publish(
                    tp, location_id, force=force, payload_override=override, recreate=recreate
                )
                if result.success or not policy.is_retryable(result.error):
                    break
                if attempt + 1 >= policy.max_attempts:
                    break
                delay = policy.delay_for(attempt, result.error)
                logger.warning(
                    "Touchpoint %s publish failed (attempt %d/%d), retrying in %.1fs: %s",
                    tp.id, attempts, policy.max_attempts, delay, result.error_message,
                )
                await policy.sleep(delay)
        except LedgerUnavailableError:
            raise
        except Exception as e:
            logger.exception("Unexpected error publishing touchpoint %s", tp.id)
            return ItemReport(
                tp.journey_id, tp.id, SyncOutcome.failed.value, "invalid",
                attempts=attempts, error_code="E-4002", error_message=str(e),
            )

        assert result is not None
        decision = result.decision or PublishDecision.invalid

        if result.success:
            if result.action != PublishAction.unchanged and result.remote_template_id:
                try:
                    self.journeys.mark_touchpoint_published(tp.id, result.remote_template_id)
                except NotFoundError:
                    logger.warning("Touchpoint %s deleted during sync", tp.id)
            return ItemReport(
                tp.journey_id,
                tp.id,
                _OUTCOME_FOR_DECISION[decision].value,
                decision.value,
                remote_template_id=result.remote_template_id,
                attempts=attempts,
            )

        if isinstance(result.error, (RemoteAuthError, RemotePermissionError)):
            self._abort_error = result.error

        outcome = (
            SyncOutcome.skipped
            if decision == PublishDecision.not_publishable
            else SyncOutcome.failed
        )
        return ItemReport(
            tp.journey_id,
            tp.id,
            outcome.value,
            decision.value,
            remote_template_id=result.remote_template_id,
            attempts=attempts,
            error_code=None if outcome == SyncOutcome.skipped else result.error_code,
            error_message=None if outcome == SyncOutcome.skipped else result.error_message,
        )


def _resolution_for(
    stored: SyncConflict | None, default: ResolutionPolicy | None
) -> ResolutionPolicy | None:
    if stored is not None and stored.resolution:
        return ResolutionPolicy(stored.resolution)
    return default


def _combine(resolutions: list[ResolutionPolicy | None]) -> ResolutionPolicy | None:
    """Journey-level policy: unresolved/manual wins, then skip, merge, overwrite."""
    if any(r is None for r in resolutions):
        return None
    for policy in (
        ResolutionPolicy.manual,
        ResolutionPolicy.skip,
        ResolutionPolicy.merge,
        ResolutionPolicy.overwrite,
    ):
        if policy in resolutions:
            return policy
    return None


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    return str(value)


def _collect_errors(reports: list[JourneyReport]) -> list[JourneySyncError]:
    errors: list[JourneySyncError] = []
    for report in reports:
        for item in report.items:
            if item.outcome != SyncOutcome.failed.value or not item.error_code:
                continue
            definition = get_error(item.error_code)
            errors.append(
                JourneySyncError(
                    code=item.error_code,
                    message=item.error_message or (definition.title if definition else ""),
                    remediation=definition.remediation if definition else "Check the logs for details.",
                    items=[item.touchpoint_id or item.journey_id],
                    is_retryable=definition.is_retryable if definition else False,
                )
            )
    return errors
