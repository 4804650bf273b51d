"""Typed template content for publishable touchpoints.

Touchpoint rows store free-form ``content`` and ``config`` JSON. Before
anything is hashed or sent, that JSON is resolved into one of the content
variants below with explicit, ordered fallbacks.
"""

from dataclasses import dataclass, field
from typing import Any

DEFAULT_EMAIL_SUBJECT = "No Subject"
DEFAULT_EMAIL_BODY = "<p>No content</p>"

PUBLISHABLE_TYPES = frozenset({"email", "sms"})


def first_present(*candidates: Any, default: Any = None) -> Any:
    """Return the first candidate that is neither None nor an empty string.

    Args:
        *candidates: Values in precedence order.
        default: Returned when every candidate is missing.

    Returns:
        The first present value, or ``default``.
    """
    for value in candidates:
        if value is None:
            continue
        if isinstance(value, str) and value == "":
            continue
        return value
    return default


@dataclass(frozen=True)
class EmailContent:
    """Resolved email template content."""

    subject: str
    body: str
    preview_text: str = ""
    kind: str = "email"


@dataclass(frozen=True)
class SmsContent:
    """Resolved SMS template content."""

    body: str
    kind: str = "sms"


@dataclass(frozen=True)
class OpaqueContent:
    """Content of a non-publishable step, carried through untouched."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)
    kind: str = "opaque"


TemplateContent = EmailContent | SmsContent | OpaqueContent


def is_publishable_type(touchpoint_type: str | None) -> bool:
    """Check whether a touchpoint type maps to a remote template (case-insensitive)."""
    return (touchpoint_type or "").lower() in PUBLISHABLE_TYPES


def resolve_content(
    touchpoint_type: str,
    content: dict[str, Any] | None,
    config: dict[str, Any] | None,
) -> TemplateContent:
    """Resolve raw touchpoint JSON into a typed content variant.

    Precedence:
        email subject: content.subject, config.subject, "No Subject"
        email body: content.body, config.content, content.html,
            "<p>No content</p>"
        sms body: content.body, config.content, config.body,
            content.message, "" (callers reject the empty body)
    """
    content = content or {}
    config = config or {}
    kind = (touchpoint_type or "").lower()

    if kind == "email":
        return EmailContent(
            subject=first_present(
                content.get("subject"),
                config.get("subject"),
                default=DEFAULT_EMAIL_SUBJECT,
            ),
            body=first_present(
                content.get("body"),
                config.get("content"),
                content.get("html"),
                default=DEFAULT_EMAIL_BODY,
            ),
            preview_text=first_present(
                content.get("preview_text"),
                content.get("previewText"),
                default="",
            ),
        )
    if kind == "sms":
        return SmsContent(
            body=first_present(
                content.get("body"),
                config.get("content"),
                config.get("body"),
                content.get("message"),
                default="",
            )
        )
    return OpaqueContent(type=touchpoint_type, data=dict(content))


@dataclass(frozen=True)
class TemplatePayload:
    """Rendered template ready to hash and send.

    ``to_dict`` is both the hashed representation and the request body
    (minus the location id, which is added at send time).
    """

    name: str
    content: EmailContent | SmsContent

    @property
    def kind(self) -> str:
        return self.content.kind

    def to_dict(self) -> dict[str, Any]:
        if isinstance(self.content, EmailContent):
            data: dict[str, Any] = {
                "name": self.name,
                "subject": self.content.subject,
                "body": self.content.body,
            }
            if self.content.preview_text:
                data["previewText"] = self.content.preview_text
            return data
        return {"name": self.name, "body": self.content.body}
