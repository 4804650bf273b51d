"""Conflict detection between local journeys and their remote copies.

Detection is pure: it reads the journey, its touchpoints, a snapshot of the
remote state, and the ledger entries, and returns Conflict values. It never
writes. Resolution is always an explicit caller choice (ResolutionPolicy);
nothing here picks one automatically.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from journeysync.services.publish_ledger import compute_content_hash

logger = logging.getLogger(__name__)


class ConflictKind(str, Enum):
    """Closed set of conflict kinds."""

    version_mismatch = "version_mismatch"
    external_modification = "external_modification"
    step_count_mismatch = "step_count_mismatch"


class ResolutionPolicy(str, Enum):
    """How the caller wants a conflict handled."""

    skip = "skip"
    overwrite = "overwrite"
    merge = "merge"
    manual = "manual"


SEVERITY: dict[ConflictKind, str] = {
    ConflictKind.external_modification: "high",
    ConflictKind.version_mismatch: "medium",
    ConflictKind.step_count_mismatch: "low",
}

STRUCTURAL_KINDS = frozenset({ConflictKind.step_count_mismatch})


@dataclass
class Conflict:
    """A detected divergence.

    Attributes:
        kind: Conflict kind.
        journey_id: Affected journey.
        touchpoint_id: Affected touchpoint for template-level conflicts.
        expected: What the local side believes (version, template id, hash, count).
        actual: What was observed.
        message: Human-readable summary.
        details: Extra context for reports.
    """

    kind: ConflictKind
    journey_id: str
    touchpoint_id: str | None = None
    expected: Any = None
    actual: Any = None
    message: str = ""
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def severity(self) -> str:
        return SEVERITY[self.kind]

    @property
    def key(self) -> tuple[str, str, str | None]:
        """Identity used to match a re-detected conflict to a stored one."""
        return (self.journey_id, self.kind.value, self.touchpoint_id)

    def to_details(self) -> dict[str, Any]:
        return {
            **self.details,
            "expected": self.expected,
            "actual": self.actual,
            "severity": self.severity,
        }


@dataclass
class RemoteTemplate:
    """Remote read-back of one template.

    ``payload`` is None when the platform only returned metadata, in which
    case content drift cannot be checked.
    """

    template_id: str
    kind: str
    payload: dict[str, Any] | None = None


@dataclass
class RemoteState:
    """Snapshot of the remote side of one journey.

    Attributes:
        workflow_id: Linked remote workflow, if any.
        workflow_step_count: Steps reported by the workflow (None if unknown).
        workflow_journey_version: Journey version recorded on the workflow.
        templates: Read-backs keyed by touchpoint id. A None value means
            the template was looked up and is missing; an absent key means
            it was not looked up.
    """

    workflow_id: str | None = None
    workflow_step_count: int | None = None
    workflow_journey_version: int | None = None
    templates: dict[str, RemoteTemplate | None] = field(default_factory=dict)


@dataclass
class MergeOutcome:
    """Result of a field-level merge."""

    merged: dict[str, Any] | None
    overlapping: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.merged is not None


def check_version(
    journey_id: str, submitted_version: int, current_version: int
) -> Conflict | None:
    """Compare a submitted version against the stored one."""
    if submitted_version == current_version:
        return None
    return Conflict(
        kind=ConflictKind.version_mismatch,
        journey_id=journey_id,
        expected=submitted_version,
        actual=current_version,
        message=(
            f"Journey was modified by another user "
            f"(current {current_version}, submitted {submitted_version})"
        ),
    )


def project_remote_payload(kind: str, remote: dict[str, Any]) -> dict[str, Any] | None:
    """Reduce a template read-back to the fields the ledger hashes.

    Returns:
        Payload comparable with TemplatePayload.to_dict(), or None when the
        read-back carries no body (metadata-only).
    """
    body = remote.get("body")
    if body is None:
        body = remote.get("html")
    if body is None:
        return None

    projected: dict[str, Any] = {"name": remote.get("name"), "body": body}
    if kind == "email":
        projected["subject"] = remote.get("subject")
        preview = remote.get("previewText") or remote.get("preview_text")
        if preview:
            projected["previewText"] = preview
    return projected


def _is_empty(value: Any) -> bool:
    return value is None or value == "" or value == {} or value == []


def merge_fields(local: dict[str, Any], remote: dict[str, Any]) -> MergeOutcome:
    """Merge two payloads field by field.

    A field merges when both sides agree or exactly one side is empty. Any
    field where both sides are non-empty and differ aborts the merge.
    """
    merged: dict[str, Any] = {}
    overlapping: list[str] = []
    for key in sorted(set(local) | set(remote)):
        lv, rv = local.get(key), remote.get(key)
        if lv == rv or _is_empty(rv):
            merged[key] = lv
        elif _is_empty(lv):
            merged[key] = rv
        else:
            overlapping.append(key)
    if overlapping:
        return MergeOutcome(merged=None, overlapping=overlapping)
    return MergeOutcome(merged=merged)


def has_structural_conflict(conflicts: list[Conflict]) -> bool:
    return any(c.kind in STRUCTURAL_KINDS for c in conflicts)


class ConflictDetector:
    """Detects divergence between a journey and its remote copy."""

    def detect(
        self,
        journey: Any,
        touchpoints: list[Any],
        remote_state: RemoteState,
        ledger_entries: dict[str, Any],
    ) -> list[Conflict]:
        """Return every conflict for one journey.

        Args:
            journey: Journey (model or view) with ``id`` and ``version``.
            touchpoints: The journey's touchpoints as of dispatch.
            remote_state: Remote read-back for the journey.
            ledger_entries: Ledger entries keyed by touchpoint id.

        Returns:
            Conflicts in touchpoint order, journey-level conflicts last.
        """
        conflicts: list[Conflict] = []

        for tp in touchpoints:
            entry = ledger_entries.get(tp.id)
            if entry is None or not entry.remote_template_id:
                continue
            if tp.id not in remote_state.templates:
                continue
            conflict = self._check_template(journey.id, tp.id, entry, remote_state.templates[tp.id])
            if conflict is not None:
                conflicts.append(conflict)

        if (
            remote_state.workflow_step_count is not None
            and remote_state.workflow_step_count != len(touchpoints)
        ):
            conflicts.append(
                Conflict(
                    kind=ConflictKind.step_count_mismatch,
                    journey_id=journey.id,
                    expected=len(touchpoints),
                    actual=remote_state.workflow_step_count,
                    message=(
                        f"Step count mismatch: journey has {len(touchpoints)} steps, "
                        f"workflow has {remote_state.workflow_step_count}"
                    ),
                    details={"workflow_id": remote_state.workflow_id},
                )
            )

        remote_version = remote_state.workflow_journey_version
        if remote_version is not None and remote_version > journey.version:
            conflicts.append(
                Conflict(
                    kind=ConflictKind.version_mismatch,
                    journey_id=journey.id,
                    expected=journey.version,
                    actual=remote_version,
                    message="Workflow journey version is ahead of the local version",
                    details={"workflow_id": remote_state.workflow_id},
                )
            )

        if conflicts:
            logger.warning(
                "Detected %d conflict(s) for journey %s: %s",
                len(conflicts), journey.id, ", ".join(c.kind.value for c in conflicts),
            )
        return conflicts

    def _check_template(
        self,
        journey_id: str,
        touchpoint_id: str,
        entry: Any,
        remote: RemoteTemplate | None,
    ) -> Conflict | None:
        if remote is None:
            return Conflict(
                kind=ConflictKind.external_modification,
                journey_id=journey_id,
                touchpoint_id=touchpoint_id,
                expected=entry.remote_template_id,
                actual=None,
                message=f"Template {entry.remote_template_id} is missing on the platform",
                details={"reason": "missing"},
            )
        if remote.template_id != entry.remote_template_id:
            return Conflict(
                kind=ConflictKind.external_modification,
                journey_id=journey_id,
                touchpoint_id=touchpoint_id,
                expected=entry.remote_template_id,
                actual=remote.template_id,
                message="Remote template id no longer matches the ledger",
                details={"reason": "id_changed"},
            )
        if remote.payload is None or not entry.remote_hash:
            return None
        projected = project_remote_payload(remote.kind, remote.payload)
        if projected is None:
            return None
        remote_hash = compute_content_hash(projected)
        if remote_hash != entry.remote_hash:
            return Conflict(
                kind=ConflictKind.external_modification,
                journey_id=journey_id,
                touchpoint_id=touchpoint_id,
                expected=entry.remote_hash,
                actual=remote_hash,
                message="Template was modified outside journey sync",
                details={"reason": "content_changed", "remote_payload": projected},
            )
        return None


def build_report(conflicts: list[Any]) -> dict[str, Any]:
    """Summarize conflicts by kind and severity.

    Accepts Conflict values or stored SyncConflict rows.
    """
    report: dict[str, Any] = {
        "total": len(conflicts),
        "by_kind": {},
        "by_severity": {},
        "resolved": 0,
        "unresolved": 0,
    }
    for conflict in conflicts:
        kind = ConflictKind(getattr(conflict.kind, "value", conflict.kind))
        report["by_kind"][kind.value] = report["by_kind"].get(kind.value, 0) + 1
        severity = SEVERITY[kind]
        report["by_severity"][severity] = report["by_severity"].get(severity, 0) + 1
        if getattr(conflict, "resolution", None):
            report["resolved"] += 1
        else:
            report["unresolved"] += 1
    return report
