"""Tests for SyncOrchestrator against an in-memory fake platform."""

import json
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.orm import Session

from journeysync.db.models import Client, ConflictStatus, Journey, SyncRunStatus
from journeysync.errors import LedgerUnavailableError, NotFoundError
from journeysync.services import ClientService, JourneyService, PublishLedger
from journeysync.services.conflict_detector import ConflictDetector, ResolutionPolicy
from journeysync.services.context import SyncContext
from journeysync.services.errors import RemoteAuthError, RemoteTimeout
from journeysync.services.retry_policy import RetryPolicy
from journeysync.services.sync_orchestrator import SyncOrchestrator, SyncRequest
from journeysync.services.touchpoint_publisher import TouchpointPublisher


@pytest.fixture
def context(db_session: Session, fake_platform) -> SyncContext:
    ledger = PublishLedger(db_session)
    return SyncContext(
        db=db_session,
        ledger=ledger,
        platform=fake_platform,
        publisher=TouchpointPublisher(fake_platform, ledger),
        retry_policy=RetryPolicy(max_attempts=3, jitter=False, sleep=AsyncMock()),
        detector=ConflictDetector(),
        concurrency=1,
    )


@pytest.fixture
def orchestrator(context: SyncContext) -> SyncOrchestrator:
    return SyncOrchestrator(context)


def _email_template_id(journey_service: JourneyService, journey: Journey) -> str:
    return journey_service.list_touchpoints(journey.id)[0].remote_template_id


class TestFirstSync:
    """Publishing a journey that was never synced."""

    async def test_creates_publishable_touchpoints_and_skips_wait(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        approved_journey: Journey,
        fake_platform,
    ):
        email, sms, wait = journey_service.list_touchpoints(approved_journey.id)

        summary = await orchestrator.run(SyncRequest())

        assert summary.status == SyncRunStatus.completed.value
        assert (summary.synced, summary.skipped, summary.conflicted, summary.failed) == (2, 1, 0, 0)
        assert summary.decisions() == [
            (approved_journey.id, email.id, "create"),
            (approved_journey.id, sms.id, "create"),
            (approved_journey.id, wait.id, "not_publishable"),
        ]
        assert fake_platform.calls == [("create", "email"), ("create", "sms")]

        email, sms, wait = journey_service.list_touchpoints(approved_journey.id)
        assert email.remote_template_id and email.status == "published"
        assert sms.remote_template_id
        assert wait.remote_template_id is None
        assert journey_service.get_journey(approved_journey.id).version == 1

    async def test_draft_journeys_are_not_due(
        self, orchestrator: SyncOrchestrator, sample_journey: Journey, fake_platform
    ):
        summary = await orchestrator.run(SyncRequest(scope="journey", scope_value=sample_journey.id))

        assert summary.status == SyncRunStatus.completed.value
        assert summary.journeys == []
        assert fake_platform.calls == []

    async def test_unknown_scope_target(self, orchestrator: SyncOrchestrator):
        with pytest.raises(NotFoundError):
            await orchestrator.run(SyncRequest(scope="client", scope_value="missing"))
        assert orchestrator.list_runs() == []

    async def test_summary_serializes(
        self, orchestrator: SyncOrchestrator, approved_journey: Journey
    ):
        summary = await orchestrator.run(SyncRequest())
        data = json.loads(json.dumps(summary.to_dict()))

        assert data["synced"] == 2
        assert data["journeys"][0]["name"] == "New Patient"


class TestIdempotency:
    """Re-running without changes is a no-op remotely."""

    async def test_second_run_makes_no_remote_writes(
        self, orchestrator: SyncOrchestrator, approved_journey: Journey, fake_platform
    ):
        await orchestrator.run(SyncRequest())
        fake_platform.calls.clear()

        summary = await orchestrator.run(SyncRequest())

        assert fake_platform.calls == []
        assert (summary.synced, summary.skipped) == (0, 3)
        assert [d for _, _, d in summary.decisions()] == ["unchanged", "unchanged", "not_publishable"]

    async def test_edited_touchpoint_is_updated_in_place(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        approved_journey: Journey,
        fake_platform,
    ):
        await orchestrator.run(SyncRequest())
        fake_platform.calls.clear()
        email = journey_service.list_touchpoints(approved_journey.id)[0]
        journey_service.update_touchpoint(
            email.id, {"content": {"subject": "Welcome back!", "body": "<p>Hello</p>"}}
        )

        summary = await orchestrator.run(SyncRequest())

        assert fake_platform.calls == [("update", email.remote_template_id)]
        assert fake_platform.templates[email.remote_template_id]["subject"] == "Welcome back!"
        assert (summary.synced, summary.skipped) == (1, 2)

    async def test_force_republishes_everything(
        self, orchestrator: SyncOrchestrator, approved_journey: Journey, fake_platform
    ):
        await orchestrator.run(SyncRequest())
        fake_platform.calls.clear()

        summary = await orchestrator.run(SyncRequest(force=True))

        assert [c[0] for c in fake_platform.calls] == ["update", "update"]
        assert summary.synced == 2

    async def test_ledger_turns_create_into_update_when_row_lost_its_id(
        self,
        db_session: Session,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        approved_journey: Journey,
        fake_platform,
    ):
        await orchestrator.run(SyncRequest())
        email = journey_service.list_touchpoints(approved_journey.id)[0]
        template_id = email.remote_template_id
        email.remote_template_id = None
        db_session.commit()
        fake_platform.calls.clear()

        await orchestrator.run(SyncRequest(force=True))

        assert ("update", template_id) in fake_platform.calls
        assert not any(c[0] == "create" for c in fake_platform.calls)


class TestDryRun:
    """Dry runs compute decisions without side effects."""

    async def test_dry_run_changes_nothing(
        self,
        db_session: Session,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        approved_journey: Journey,
        fake_platform,
    ):
        summary = await orchestrator.run(SyncRequest(dry_run=True))

        assert summary.dry_run is True
        assert [d for _, _, d in summary.decisions()] == ["create", "create", "not_publishable"]
        assert fake_platform.calls == []
        assert PublishLedger(db_session).entries() == []
        assert all(
            tp.remote_template_id is None
            for tp in journey_service.list_touchpoints(approved_journey.id)
        )
        run = orchestrator.get_run(summary.run_id)
        assert run.dry_run is True
        assert run.status == SyncRunStatus.completed.value

    async def test_dry_run_does_not_store_conflicts(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        approved_journey: Journey,
        fake_platform,
    ):
        await orchestrator.run(SyncRequest())
        fake_platform.templates[_email_template_id(journey_service, approved_journey)]["subject"] = "Edited"

        summary = await orchestrator.run(SyncRequest(dry_run=True))

        assert summary.conflicted == 1
        assert orchestrator.list_conflicts() == []

    async def test_dry_run_decisions_match_real_run(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        sample_client: Client,
        approved_journey: Journey,
        fake_platform,
    ):
        await orchestrator.run(SyncRequest())
        email = journey_service.list_touchpoints(approved_journey.id)[0]
        journey_service.update_touchpoint(
            email.id, {"content": {"subject": "Welcome back!", "body": "<p>Hello</p>"}}
        )
        second = journey_service.create_journey(sample_client.id, "Recall", status="approved")
        journey_service.add_touchpoint(second.id, "Recall Text", "sms", content={"body": "Due"})
        fake_platform.calls.clear()

        preview = await orchestrator.run(SyncRequest(dry_run=True))
        assert fake_platform.calls == []
        real = await orchestrator.run(SyncRequest())

        def by_item(summary):
            return {(j, t): d for j, t, d in summary.decisions()}

        assert by_item(preview) == by_item(real)
        assert sorted(by_item(real).values()) == ["create", "not_publishable", "unchanged", "update"]
        assert [r.outcome for r in preview.journeys] == [r.outcome for r in real.journeys]
        assert (preview.synced, preview.skipped) == (real.synced, real.skipped) == (2, 2)


class TestConflicts:
    """Detection, storage and explicit resolution."""

    async def test_remote_edit_blocks_journey_until_resolved(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        approved_journey: Journey,
        fake_platform,
    ):
        await orchestrator.run(SyncRequest())
        template_id = _email_template_id(journey_service, approved_journey)
        fake_platform.templates[template_id]["subject"] = "Edited on the platform"
        fake_platform.calls.clear()

        blocked = await orchestrator.run(SyncRequest())

        assert blocked.conflicted == 1
        assert blocked.journeys[0].outcome == "conflicted"
        assert fake_platform.calls == []
        [conflict] = orchestrator.list_conflicts()
        assert conflict.kind == "external_modification"
        assert conflict.status == ConflictStatus.open.value

        orchestrator.resolve_conflict(conflict.id, ResolutionPolicy.overwrite)
        resolved = await orchestrator.run(SyncRequest())

        assert resolved.journeys[0].resolution == "overwrite"
        assert resolved.synced == 2
        assert fake_platform.templates[template_id]["subject"] == "Welcome!"
        assert orchestrator.list_conflicts() == []
        assert orchestrator.runs.get_conflict(conflict.id).status == ConflictStatus.applied.value

        fake_platform.calls.clear()
        clean = await orchestrator.run(SyncRequest())
        assert clean.conflicted == 0
        assert fake_platform.calls == []

    async def test_skip_resolution(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        approved_journey: Journey,
        fake_platform,
    ):
        await orchestrator.run(SyncRequest())
        template_id = _email_template_id(journey_service, approved_journey)
        fake_platform.templates[template_id]["body"] = "<p>Remote</p>"
        fake_platform.calls.clear()

        summary = await orchestrator.run(SyncRequest(on_conflict=ResolutionPolicy.skip))

        assert summary.journeys[0].outcome == "skipped"
        assert fake_platform.calls == []
        assert fake_platform.templates[template_id]["body"] == "<p>Remote</p>"

    async def test_manual_resolution_keeps_blocking(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        approved_journey: Journey,
        fake_platform,
    ):
        await orchestrator.run(SyncRequest())
        fake_platform.templates[_email_template_id(journey_service, approved_journey)]["body"] = "x"

        summary = await orchestrator.run(SyncRequest(on_conflict=ResolutionPolicy.manual))

        assert summary.conflicted == 1

    async def test_merge_adds_remote_only_field(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        approved_journey: Journey,
        fake_platform,
    ):
        await orchestrator.run(SyncRequest())
        template_id = _email_template_id(journey_service, approved_journey)
        fake_platform.templates[template_id]["previewText"] = "Added on the platform"
        fake_platform.calls.clear()

        summary = await orchestrator.run(SyncRequest(on_conflict=ResolutionPolicy.merge))

        assert summary.journeys[0].resolution == "merge"
        assert ("update", template_id) in fake_platform.calls
        sent = fake_platform.templates[template_id]
        assert sent["previewText"] == "Added on the platform"
        assert sent["subject"] == "Welcome!"

        fake_platform.calls.clear()
        follow_up = await orchestrator.run(SyncRequest())
        assert follow_up.conflicted == 0

    async def test_merge_aborts_on_overlapping_fields(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        approved_journey: Journey,
        fake_platform,
    ):
        await orchestrator.run(SyncRequest())
        template_id = _email_template_id(journey_service, approved_journey)
        fake_platform.templates[template_id]["subject"] = "Remote subject"
        fake_platform.calls.clear()

        summary = await orchestrator.run(SyncRequest(on_conflict=ResolutionPolicy.merge))

        assert summary.conflicted == 1
        assert "subject" in summary.journeys[0].items[0].error_message
        assert fake_platform.calls == []

    async def test_merge_refused_for_step_count_mismatch(
        self,
        db_session: Session,
        orchestrator: SyncOrchestrator,
        approved_journey: Journey,
        fake_platform,
    ):
        approved_journey.remote_workflow_id = "wf-1"
        db_session.commit()
        fake_platform.workflows["wf-1"] = {"id": "wf-1", "steps": [{}, {}]}

        summary = await orchestrator.run(SyncRequest(on_conflict=ResolutionPolicy.merge))

        assert summary.conflicted == 1
        assert summary.journeys[0].conflicts[0]["kind"] == "step_count_mismatch"
        assert "structural" in summary.journeys[0].items[0].error_message

    async def test_workflow_version_ahead_is_conflict(
        self,
        db_session: Session,
        orchestrator: SyncOrchestrator,
        approved_journey: Journey,
        fake_platform,
    ):
        approved_journey.remote_workflow_id = "wf-1"
        db_session.commit()
        fake_platform.workflows["wf-1"] = {"id": "wf-1", "settings": {"journeyVersion": 4}}

        summary = await orchestrator.run(SyncRequest())

        assert summary.journeys[0].conflicts[0]["kind"] == "version_mismatch"

    async def test_overwrite_recreates_missing_template(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        approved_journey: Journey,
        fake_platform,
    ):
        await orchestrator.run(SyncRequest())
        old_id = _email_template_id(journey_service, approved_journey)
        del fake_platform.templates[old_id]
        fake_platform.calls.clear()

        summary = await orchestrator.run(SyncRequest(on_conflict=ResolutionPolicy.overwrite))

        assert ("create", "email") in fake_platform.calls
        new_id = _email_template_id(journey_service, approved_journey)
        assert new_id != old_id
        assert new_id in fake_platform.templates
        assert summary.conflicted == 0

    async def test_clean_detection_supersedes_stale_conflict(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        approved_journey: Journey,
        fake_platform,
    ):
        await orchestrator.run(SyncRequest())
        template_id = _email_template_id(journey_service, approved_journey)
        original = dict(fake_platform.templates[template_id])
        fake_platform.templates[template_id]["subject"] = "Edited"
        await orchestrator.run(SyncRequest())
        [conflict] = orchestrator.list_conflicts()

        fake_platform.templates[template_id] = original
        await orchestrator.run(SyncRequest())

        assert orchestrator.runs.get_conflict(conflict.id).status == ConflictStatus.superseded.value


class TestFailures:
    """Retries, aborts and per-item isolation."""

    async def test_transient_failure_retried(
        self, context: SyncContext, orchestrator: SyncOrchestrator, approved_journey: Journey, fake_platform
    ):
        fake_platform.fail_next = [RemoteTimeout("E-3002", "timed out")]

        summary = await orchestrator.run(SyncRequest())

        email_item = summary.journeys[0].items[0]
        assert email_item.outcome == "synced"
        assert email_item.attempts == 2
        context.retry_policy.sleep.assert_awaited_once()

    async def test_exhausted_retries_fail_item_only(
        self, orchestrator: SyncOrchestrator, approved_journey: Journey, fake_platform
    ):
        fake_platform.fail_next = [RemoteTimeout("E-3002", "timed out")] * 3

        summary = await orchestrator.run(SyncRequest())

        assert summary.status == SyncRunStatus.completed.value
        assert (summary.synced, summary.skipped, summary.failed) == (1, 1, 1)
        email_item = summary.journeys[0].items[0]
        assert (email_item.outcome, email_item.attempts, email_item.error_code) == ("failed", 3, "E-3002")
        assert [e.code for e in summary.errors] == ["E-3002"]

    async def test_auth_failure_aborts_run(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        sample_client: Client,
        approved_journey: Journey,
        fake_platform,
    ):
        second = journey_service.create_journey(sample_client.id, "Recall", status="approved")
        journey_service.add_touchpoint(second.id, "Recall Email", "email", content={"subject": "Due"})
        fake_platform.fail_next = [RemoteAuthError("E-5001", "Invalid API key", 401)]

        summary = await orchestrator.run(SyncRequest())

        assert summary.status == SyncRunStatus.failed.value
        assert summary.error_code == "E-5001"
        assert len(fake_platform.calls) == 1
        assert [r.journey_id for r in summary.journeys] == [approved_journey.id]
        run = orchestrator.get_run(summary.run_id)
        assert run.error_message == "Invalid API key"

    async def test_missing_location_fails_journey(
        self, db_session: Session, orchestrator: SyncOrchestrator, journey_service: JourneyService, fake_platform
    ):
        client = ClientService(db_session).create_client("No Location Co")
        journey = journey_service.create_journey(client.id, "Orphaned", status="approved")
        journey_service.add_touchpoint(journey.id, "Hello", "sms", content={"body": "Hi"})

        summary = await orchestrator.run(SyncRequest(scope="client", scope_value=client.id))

        assert summary.failed == 1
        assert summary.journeys[0].items[0].error_code == "E-5003"
        assert fake_platform.calls == []

    async def test_default_location_used_when_client_has_none(
        self, db_session: Session, context: SyncContext, journey_service: JourneyService, fake_platform
    ):
        context.default_location_id = "loc-default"
        client = ClientService(db_session).create_client("Fallback Co")
        journey = journey_service.create_journey(client.id, "J", status="approved")
        journey_service.add_touchpoint(journey.id, "Hello", "sms", content={"body": "Hi"})

        summary = await SyncOrchestrator(context).run(SyncRequest())

        assert summary.synced == 1
        [template] = fake_platform.templates.values()
        assert template["locationId"] == "loc-default"

    async def test_ledger_outage_fails_run_and_propagates(
        self, context: SyncContext, orchestrator: SyncOrchestrator, approved_journey: Journey
    ):
        with patch.object(context.ledger, "get_many", side_effect=LedgerUnavailableError("down")):
            with pytest.raises(LedgerUnavailableError):
                await orchestrator.run(SyncRequest())

        [run] = orchestrator.list_runs()
        assert run.status == SyncRunStatus.failed.value
        assert run.error_code == "E-4001"

    async def test_cancel_stops_before_next_journey(
        self,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        sample_client: Client,
        approved_journey: Journey,
        fake_platform,
    ):
        second = journey_service.create_journey(sample_client.id, "Recall", status="approved")
        journey_service.add_touchpoint(second.id, "Recall Text", "sms", content={"body": "Due"})
        fake_platform.on_create = orchestrator.cancel

        summary = await orchestrator.run(SyncRequest())

        assert summary.status == SyncRunStatus.cancelled.value
        assert [r.journey_id for r in summary.journeys] == [approved_journey.id]
        assert orchestrator.get_run(summary.run_id).completed_at is not None


class TestUnexpectedErrors:
    """Malformed remote data and programming errors never strand a run."""

    async def test_non_mapping_workflow_settings_ignored(
        self,
        db_session: Session,
        orchestrator: SyncOrchestrator,
        approved_journey: Journey,
        fake_platform,
    ):
        approved_journey.remote_workflow_id = "wf-1"
        db_session.commit()
        fake_platform.workflows["wf-1"] = {"id": "wf-1", "steps": [{}, {}, {}], "settings": ["legacy"]}

        summary = await orchestrator.run(SyncRequest())

        assert summary.status == SyncRunStatus.completed.value
        assert summary.journeys[0].conflicts == []
        assert summary.synced == 2
        assert orchestrator.get_run(summary.run_id).status == SyncRunStatus.completed.value

    async def test_error_in_one_journey_fails_only_that_journey(
        self,
        context: SyncContext,
        orchestrator: SyncOrchestrator,
        journey_service: JourneyService,
        sample_client: Client,
        approved_journey: Journey,
    ):
        second = journey_service.create_journey(sample_client.id, "Recall", status="approved")
        journey_service.add_touchpoint(second.id, "Recall Text", "sms", content={"body": "Due"})

        with patch.object(context.detector, "detect", side_effect=[RuntimeError("boom"), []]):
            summary = await orchestrator.run(SyncRequest())

        assert summary.status == SyncRunStatus.completed.value
        first, recall = summary.journeys
        assert first.outcome == "failed"
        assert (first.items[0].error_code, first.items[0].error_message) == ("E-4002", "boom")
        assert recall.outcome == "synced"
        assert [e.code for e in summary.errors] == ["E-4002"]

    async def test_run_marked_failed_when_batch_breaks(
        self, context: SyncContext, orchestrator: SyncOrchestrator, approved_journey: Journey
    ):
        with patch.object(context.detector, "detect", side_effect=RuntimeError("boom")):
            with patch.object(orchestrator.runs, "record_item", side_effect=RuntimeError("db gone")):
                with pytest.raises(RuntimeError):
                    await orchestrator.run(SyncRequest())

        [run] = orchestrator.list_runs()
        assert run.status == SyncRunStatus.failed.value
        assert (run.error_code, run.error_message) == ("E-4002", "db gone")
        assert run.completed_at is not None
