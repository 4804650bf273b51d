"""Tests for conflict detection and field merging."""

from types import SimpleNamespace

from journeysync.services.conflict_detector import (
    Conflict,
    ConflictDetector,
    ConflictKind,
    RemoteState,
    RemoteTemplate,
    build_report,
    check_version,
    has_structural_conflict,
    merge_fields,
    project_remote_payload,
)
from journeysync.services.publish_ledger import compute_content_hash

LOCAL = {"name": "Welcome", "subject": "Hi", "body": "<p>Hello</p>"}


def _journey(version: int = 3):
    return SimpleNamespace(id="j-1", version=version)


def _tp(tp_id: str):
    return SimpleNamespace(id=tp_id)


def _entry(template_id: str = "tmpl-1", payload: dict = LOCAL, remote_hash: str | None = None):
    return SimpleNamespace(
        remote_template_id=template_id,
        remote_hash=compute_content_hash(payload) if remote_hash is None else remote_hash,
    )


class TestCheckVersion:
    def test_match_is_clean(self):
        assert check_version("j-1", 5, 5) is None

    def test_mismatch_reports_both_versions(self):
        conflict = check_version("j-1", 5, 6)
        assert conflict.kind == ConflictKind.version_mismatch
        assert (conflict.expected, conflict.actual) == (5, 6)
        assert conflict.severity == "medium"


class TestDetect:
    """Template, structure and version checks."""

    def test_matching_remote_is_clean(self):
        state = RemoteState(templates={"tp-1": RemoteTemplate("tmpl-1", "email", dict(LOCAL))})
        conflicts = ConflictDetector().detect(_journey(), [_tp("tp-1")], state, {"tp-1": _entry()})
        assert conflicts == []

    def test_missing_template(self):
        state = RemoteState(templates={"tp-1": None})
        [conflict] = ConflictDetector().detect(_journey(), [_tp("tp-1")], state, {"tp-1": _entry()})

        assert conflict.kind == ConflictKind.external_modification
        assert conflict.touchpoint_id == "tp-1"
        assert conflict.details["reason"] == "missing"
        assert conflict.severity == "high"

    def test_changed_id(self):
        state = RemoteState(templates={"tp-1": RemoteTemplate("tmpl-other", "email", dict(LOCAL))})
        [conflict] = ConflictDetector().detect(_journey(), [_tp("tp-1")], state, {"tp-1": _entry()})
        assert conflict.details["reason"] == "id_changed"

    def test_remote_edit_detected_with_projected_payload(self):
        edited = {**LOCAL, "subject": "Edited remotely", "updatedAt": "x"}
        state = RemoteState(templates={"tp-1": RemoteTemplate("tmpl-1", "email", edited)})

        [conflict] = ConflictDetector().detect(_journey(), [_tp("tp-1")], state, {"tp-1": _entry()})

        assert conflict.details["reason"] == "content_changed"
        assert conflict.details["remote_payload"]["subject"] == "Edited remotely"

    def test_imported_entry_without_remote_hash_skips_content_check(self):
        edited = {**LOCAL, "subject": "Edited remotely"}
        state = RemoteState(templates={"tp-1": RemoteTemplate("tmpl-1", "email", edited)})
        entries = {"tp-1": _entry(remote_hash="")}
        assert ConflictDetector().detect(_journey(), [_tp("tp-1")], state, entries) == []

    def test_unlooked_and_unpublished_touchpoints_ignored(self):
        state = RemoteState(templates={})
        entries = {"tp-1": _entry()}
        assert ConflictDetector().detect(_journey(), [_tp("tp-1"), _tp("tp-2")], state, entries) == []

    def test_step_count_and_version_conflicts_last(self):
        state = RemoteState(
            workflow_id="wf-1",
            workflow_step_count=5,
            workflow_journey_version=4,
            templates={"tp-1": None},
        )
        conflicts = ConflictDetector().detect(
            _journey(version=3), [_tp("tp-1"), _tp("tp-2")], state, {"tp-1": _entry()}
        )

        assert [c.kind for c in conflicts] == [
            ConflictKind.external_modification,
            ConflictKind.step_count_mismatch,
            ConflictKind.version_mismatch,
        ]
        assert has_structural_conflict(conflicts)

    def test_older_workflow_version_is_not_a_conflict(self):
        state = RemoteState(workflow_journey_version=2)
        assert ConflictDetector().detect(_journey(version=3), [], state, {}) == []


class TestMergeFields:
    """Field-level merge."""

    def test_disjoint_changes_merge(self):
        outcome = merge_fields(
            {"name": "Welcome", "subject": "Hi", "body": ""},
            {"name": "Welcome", "subject": "", "body": "<p>Remote</p>"},
        )
        assert outcome.ok
        assert outcome.merged == {"name": "Welcome", "subject": "Hi", "body": "<p>Remote</p>"}

    def test_overlap_aborts(self):
        outcome = merge_fields(LOCAL, {**LOCAL, "subject": "Other"})
        assert not outcome.ok
        assert outcome.overlapping == ["subject"]


class TestProjection:
    def test_email_projection(self):
        remote = {"id": "t", "name": "W", "subject": "S", "html": "<p/>", "previewText": "P"}
        assert project_remote_payload("email", remote) == {
            "name": "W",
            "body": "<p/>",
            "subject": "S",
            "previewText": "P",
        }

    def test_metadata_only_returns_none(self):
        assert project_remote_payload("sms", {"id": "t", "name": "T"}) is None


class TestBuildReport:
    def test_counts(self):
        conflicts = [
            Conflict(ConflictKind.external_modification, "j-1", "tp-1"),
            Conflict(ConflictKind.step_count_mismatch, "j-1"),
            SimpleNamespace(kind="version_mismatch", resolution="overwrite"),
        ]
        report = build_report(conflicts)

        assert report["total"] == 3
        assert report["by_kind"]["external_modification"] == 1
        assert report["by_severity"] == {"high": 1, "low": 1, "medium": 1}
        assert (report["resolved"], report["unresolved"]) == (1, 2)
