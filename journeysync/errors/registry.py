"""Error code registry with E-XXXX format codes.

This module defines the error code system for journey sync, organizing
errors into categories:
- E-2xxx: Validation errors (journeys, touchpoints, reorder requests)
- E-3xxx: Remote platform errors
- E-4xxx: System/internal errors
- E-5xxx: Authentication errors

Each error includes a code, title, message template, and remediation steps.
"""

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Categories for error codes."""

    VALIDATION = "validation"  # E-2xxx
    PLATFORM = "platform"  # E-3xxx
    SYSTEM = "system"  # E-4xxx
    AUTH = "auth"  # E-5xxx


@dataclass
class ErrorCode:
    """Definition of an error code with metadata.

    Attributes:
        code: Error code in E-XXXX format.
        category: Error category for grouping.
        title: Short title for display.
        message_template: Message with {placeholders} for context.
        remediation: Action user should take to resolve.
        is_retryable: Whether the operation can be retried without user action.
    """

    code: str
    category: ErrorCategory
    title: str
    message_template: str
    remediation: str
    is_retryable: bool = False


ERROR_REGISTRY: dict[str, ErrorCode] = {
    # Validation errors (E-2xxx)
    "E-2001": ErrorCode(
        code="E-2001",
        category=ErrorCategory.VALIDATION,
        title="Invalid Request",
        message_template="{message}",
        remediation="Correct the highlighted fields and resubmit.",
    ),
    "E-2002": ErrorCode(
        code="E-2002",
        category=ErrorCategory.VALIDATION,
        title="Touchpoint Not Publishable",
        message_template="Touchpoint type '{type}' cannot be published as a template.",
        remediation="Only email and SMS touchpoints are published. Other steps live in the workflow.",
    ),
    "E-2003": ErrorCode(
        code="E-2003",
        category=ErrorCategory.VALIDATION,
        title="Empty Template Body",
        message_template="Touchpoint '{touchpoint_id}' has no message body.",
        remediation="Add body text to the touchpoint content before publishing.",
    ),
    "E-2004": ErrorCode(
        code="E-2004",
        category=ErrorCategory.VALIDATION,
        title="Missing Template Name",
        message_template="Touchpoint '{touchpoint_id}' has no name.",
        remediation="Give the touchpoint a name; it becomes the remote template name.",
    ),
    "E-2005": ErrorCode(
        code="E-2005",
        category=ErrorCategory.VALIDATION,
        title="Invalid Reorder",
        message_template="Reorder rejected for journey '{journey_id}': {reason}",
        remediation="Send each touchpoint of the journey once with a distinct position.",
    ),
    "E-2006": ErrorCode(
        code="E-2006",
        category=ErrorCategory.VALIDATION,
        title="Not Found",
        message_template="{resource} '{identifier}' not found.",
        remediation="Check the identifier and retry.",
    ),
    "E-2010": ErrorCode(
        code="E-2010",
        category=ErrorCategory.VALIDATION,
        title="Version Conflict",
        message_template=(
            "Journey '{journey_id}' was modified by another user "
            "(current version {current}, submitted {submitted})."
        ),
        remediation="Reload the journey, re-apply your change, and save again.",
    ),
    # Remote platform errors (E-3xxx)
    "E-3001": ErrorCode(
        code="E-3001",
        category=ErrorCategory.PLATFORM,
        title="Rate Limited",
        message_template="The platform rate limit was reached.",
        remediation="Wait for the rate limit window to pass. Sync retries automatically.",
        is_retryable=True,
    ),
    "E-3002": ErrorCode(
        code="E-3002",
        category=ErrorCategory.PLATFORM,
        title="Platform Timeout",
        message_template="The platform did not respond in time.",
        remediation="Retry the sync. If timeouts persist, raise platform.timeout_seconds.",
        is_retryable=True,
    ),
    "E-3003": ErrorCode(
        code="E-3003",
        category=ErrorCategory.PLATFORM,
        title="Platform Error",
        message_template="Platform request failed: {message}",
        remediation="Review the platform response and the touchpoint content.",
    ),
    "E-3004": ErrorCode(
        code="E-3004",
        category=ErrorCategory.PLATFORM,
        title="Remote Template Missing",
        message_template="Template '{template_id}' no longer exists on the platform.",
        remediation="Resolve the conflict with 'overwrite' to recreate it, or 'skip'.",
    ),
    "E-3005": ErrorCode(
        code="E-3005",
        category=ErrorCategory.PLATFORM,
        title="External Modification",
        message_template="Template for touchpoint '{touchpoint_id}' was changed outside journey sync.",
        remediation="Choose skip, overwrite, merge or manual for this conflict.",
    ),
    "E-3006": ErrorCode(
        code="E-3006",
        category=ErrorCategory.PLATFORM,
        title="Step Count Mismatch",
        message_template="Workflow has {remote} steps but the journey has {local}.",
        remediation="Reconcile the workflow manually, then resolve the conflict.",
    ),
    # System errors (E-4xxx)
    "E-4001": ErrorCode(
        code="E-4001",
        category=ErrorCategory.SYSTEM,
        title="Publish Ledger Unavailable",
        message_template="Publish state ledger could not be accessed: {message}",
        remediation="Check database connectivity and disk space, then rerun the sync.",
    ),
    "E-4002": ErrorCode(
        code="E-4002",
        category=ErrorCategory.SYSTEM,
        title="Unexpected Error",
        message_template="An unexpected error occurred: {message}",
        remediation="Check the logs for details.",
    ),
    # Authentication errors (E-5xxx)
    "E-5001": ErrorCode(
        code="E-5001",
        category=ErrorCategory.AUTH,
        title="Authentication Failed",
        message_template="Authentication failed. Check your API key.",
        remediation="Set platform.api_key (or PLATFORM_API_KEY) to a valid key.",
    ),
    "E-5002": ErrorCode(
        code="E-5002",
        category=ErrorCategory.AUTH,
        title="Permission Denied",
        message_template="Permission denied. Check API key permissions.",
        remediation="Grant the key template and workflow scopes for this location.",
    ),
    "E-5003": ErrorCode(
        code="E-5003",
        category=ErrorCategory.AUTH,
        title="Missing Location",
        message_template="No platform location id configured for client '{client_id}'.",
        remediation="Set the client's remote location id or platform.default_location_id.",
    ),
}


def get_error(code: str) -> ErrorCode | None:
    """Get error definition by code.

    Args:
        code: Error code in E-XXXX format.

    Returns:
        ErrorCode if found, None otherwise.
    """
    return ERROR_REGISTRY.get(code)


def get_errors_by_category(category: ErrorCategory) -> list[ErrorCode]:
    """Get all errors in a category."""
    return [e for e in ERROR_REGISTRY.values() if e.category == category]
