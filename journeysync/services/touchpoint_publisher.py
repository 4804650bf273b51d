"""Touchpoint publisher: pushes email and SMS touchpoints as remote templates.

Each publish renders the touchpoint into a TemplatePayload, compares its
hash with the publish ledger, and only calls the platform when the content
changed (or ``force`` is set). Failures come back as structured
PublishResult values; this module never retries.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from journeysync.errors import DomainError, NotPublishableError, ValidationError
from journeysync.services.content import (
    OpaqueContent,
    SmsContent,
    TemplatePayload,
    is_publishable_type,
    resolve_content,
)
from journeysync.services.errors import PlatformError, RemoteUnknownError
from journeysync.services.platform_client import PlatformClient, extract_template_id
from journeysync.services.publish_ledger import PublishLedger
from journeysync.services.retry_policy import default_is_retryable

logger = logging.getLogger(__name__)


class PublishDecision(str, Enum):
    """What a publish would do, computed without remote calls."""

    create = "create"
    update = "update"
    unchanged = "unchanged"
    not_publishable = "not_publishable"
    invalid = "invalid"


class PublishAction(str, Enum):
    """What a successful publish did."""

    created = "created"
    updated = "updated"
    unchanged = "unchanged"


@dataclass(frozen=True)
class TouchpointView:
    """Immutable copy of the touchpoint fields publishing depends on.

    Sync runs capture this at dispatch time so concurrent edits to the row
    do not leak into an in-flight publish.
    """

    id: str
    journey_id: str
    name: str
    type: str
    content: dict[str, Any] = field(default_factory=dict)
    config: dict[str, Any] = field(default_factory=dict)
    remote_template_id: str | None = None
    order_index: int = 0

    @classmethod
    def from_model(cls, touchpoint: Any) -> "TouchpointView":
        return cls(
            id=touchpoint.id,
            journey_id=touchpoint.journey_id,
            name=touchpoint.name or "",
            type=touchpoint.type or "",
            content=dict(touchpoint.content or {}),
            config=dict(touchpoint.config or {}),
            remote_template_id=touchpoint.remote_template_id,
            order_index=touchpoint.order_index or 0,
        )


@dataclass
class PublishPlan:
    """Decision for one touchpoint.

    Attributes:
        touchpoint_id: Touchpoint the plan is for.
        decision: create, update, unchanged, not_publishable or invalid.
        payload: Rendered template, absent for not_publishable/invalid.
        remote_template_id: Known remote id (touchpoint's, else ledger's).
        error: Validation error behind an invalid/not_publishable decision.
    """

    touchpoint_id: str
    decision: PublishDecision
    payload: TemplatePayload | None = None
    remote_template_id: str | None = None
    error: DomainError | None = None


@dataclass
class PublishResult:
    """Outcome of a publish attempt."""

    success: bool
    touchpoint_id: str
    remote_template_id: str | None = None
    action: PublishAction | None = None
    error: Exception | None = None
    error_code: str | None = None
    retryable: bool = False
    decision: PublishDecision | None = None

    @property
    def error_message(self) -> str | None:
        if self.error is None:
            return None
        if isinstance(self.error, PlatformError):
            return self.error.message
        return str(self.error)


@dataclass
class PublishStatus:
    """Publish status derived from local data only."""

    status: str
    label: str
    can_publish: bool
    remote_template_id: str | None = None


class TouchpointPublisher:
    """Publishes touchpoints as remote templates, gated by the ledger.

    Attributes:
        platform: Remote platform client.
        ledger: Publish state ledger.
    """

    def __init__(self, platform: PlatformClient, ledger: PublishLedger) -> None:
        self.platform = platform
        self.ledger = ledger

    def build_template(self, touchpoint: Any) -> TemplatePayload:
        """Render a touchpoint into the payload that is hashed and sent.

        Raises:
            NotPublishableError: Type is not email or SMS.
            ValidationError: Name is missing or the SMS body is empty.
        """
        content = resolve_content(touchpoint.type, touchpoint.content, touchpoint.config)
        if isinstance(content, OpaqueContent):
            raise NotPublishableError(touchpoint.type)
        if not touchpoint.name:
            raise ValidationError(f"Touchpoint '{touchpoint.id}' has no name")
        if isinstance(content, SmsContent) and not content.body:
            raise ValidationError(f"Touchpoint '{touchpoint.id}' has an empty SMS body")
        return TemplatePayload(name=touchpoint.name, content=content)

    def plan(
        self, touchpoint: Any, force: bool = False, recreate: bool = False
    ) -> PublishPlan:
        """Decide what publishing would do, without calling the platform.

        Args:
            touchpoint: Touchpoint model or TouchpointView.
            force: Ignore the ledger hash gate.
            recreate: Ignore known remote ids and plan a create (the remote
                template was deleted externally).
        """
        try:
            payload = self.build_template(touchpoint)
        except NotPublishableError as e:
            return PublishPlan(touchpoint.id, PublishDecision.not_publishable, error=e)
        except ValidationError as e:
            return PublishPlan(touchpoint.id, PublishDecision.invalid, error=e)

        entry = self.ledger.get(touchpoint.id)
        remote_id = touchpoint.remote_template_id or (
            entry.remote_template_id if entry is not None else None
        )
        if not remote_id or recreate:
            return PublishPlan(touchpoint.id, PublishDecision.create, payload, None)
        if force or self.ledger.should_publish(touchpoint.id, payload.to_dict()):
            return PublishPlan(touchpoint.id, PublishDecision.update, payload, remote_id)
        return PublishPlan(touchpoint.id, PublishDecision.unchanged, payload, remote_id)

    async def publish(
        self,
        touchpoint: Any,
        location_id: str,
        force: bool = False,
        payload_override: dict[str, Any] | None = None,
        recreate: bool = False,
    ) -> PublishResult:
        """Publish one touchpoint if its content changed.

        Holds the ledger lock for the touchpoint across the decision, the
        remote call, and the ledger write.

        Args:
            touchpoint: Touchpoint model or TouchpointView.
            location_id: Remote location receiving the template.
            force: Publish even when the ledger hash matches.
            payload_override: Payload to send instead of the rendered one
                (merge resolutions). The ledger still hashes the local
                payload as content and the override as remote state.
            recreate: Create a new template even if a remote id is known.

        Returns:
            PublishResult; failures are returned, not raised.

        Raises:
            LedgerUnavailableError: If the ledger cannot be read or written.
        """
        async with self.ledger.lock_for(touchpoint.id):
            plan = self.plan(
                touchpoint,
                force=force or payload_override is not None,
                recreate=recreate,
            )

            if plan.decision in (PublishDecision.not_publishable, PublishDecision.invalid):
                return PublishResult(
                    success=False,
                    touchpoint_id=touchpoint.id,
                    error=plan.error,
                    error_code=plan.error.code if plan.error else None,
                    decision=plan.decision,
                )

            if plan.decision == PublishDecision.unchanged:
                logger.debug("Touchpoint %s unchanged, skipping publish", touchpoint.id)
                return PublishResult(
                    success=True,
                    touchpoint_id=touchpoint.id,
                    remote_template_id=plan.remote_template_id,
                    action=PublishAction.unchanged,
                    decision=plan.decision,
                )

            assert plan.payload is not None
            local_payload = plan.payload.to_dict()
            sent_payload = payload_override if payload_override is not None else local_payload
            kind = plan.payload.kind

            logger.info(
                "Publishing touchpoint %s as %s template (%s)",
                touchpoint.id, kind, plan.decision.value,
            )
            try:
                if plan.decision == PublishDecision.update:
                    response = await self.platform.update_template(
                        kind, plan.remote_template_id, sent_payload, location_id
                    )
                else:
                    response = await self.platform.create_template(
                        kind, sent_payload, location_id
                    )
            except PlatformError as e:
                logger.warning(
                    "Publish failed for touchpoint %s: %s", touchpoint.id, e
                )
                return PublishResult(
                    success=False,
                    touchpoint_id=touchpoint.id,
                    remote_template_id=plan.remote_template_id,
                    error=e,
                    error_code=e.code,
                    retryable=default_is_retryable(e),
                    decision=plan.decision,
                )

            remote_id = extract_template_id(response)
            if not remote_id and plan.decision == PublishDecision.update:
                remote_id = plan.remote_template_id
            if not remote_id:
                error = RemoteUnknownError(
                    "E-3003", "Platform did not return a template id", None, response
                )
                return PublishResult(
                    success=False,
                    touchpoint_id=touchpoint.id,
                    error=error,
                    error_code=error.code,
                    decision=plan.decision,
                )

            self.ledger.record_publish(
                touchpoint.id,
                local_payload,
                remote_id,
                kind,
                name=plan.payload.name,
                sent_payload=payload_override,
            )

            action = (
                PublishAction.updated
                if plan.decision == PublishDecision.update
                else PublishAction.created
            )
            logger.info(
                "Touchpoint %s %s remote template %s", touchpoint.id, action.value, remote_id
            )
            return PublishResult(
                success=True,
                touchpoint_id=touchpoint.id,
                remote_template_id=remote_id,
                action=action,
                decision=plan.decision,
            )

    def get_publish_status(self, touchpoint: Any) -> PublishStatus:
        """Report published / draft / not_publishable from local data."""
        if touchpoint.remote_template_id:
            return PublishStatus(
                status="published",
                label="Published",
                can_publish=True,
                remote_template_id=touchpoint.remote_template_id,
            )
        if is_publishable_type(touchpoint.type):
            return PublishStatus(status="draft", label="Draft", can_publish=True)
        return PublishStatus(
            status="not_publishable", label="Not Publishable", can_publish=False
        )
