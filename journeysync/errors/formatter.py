"""Sync error reporting.

A sync run can fail the same way on many touchpoints (a platform timeout
during a busy batch, say). JourneySyncError carries one failure together
with every touchpoint or journey id it hit; group_errors folds repeats so
the run summary lists each failure once.
"""

from dataclasses import dataclass, field
from typing import Any

from journeysync.errors.registry import get_error

MAX_LISTED_ITEMS = 10


@dataclass
class JourneySyncError(Exception):
    """One sync failure and the touchpoints (or journeys) it affected.

    Attributes:
        code: Error code in E-XXXX format.
        message: Human-readable error message.
        remediation: What the operator should do next.
        items: Touchpoint ids, or the journey id for journey-level failures.
        is_retryable: True when rerunning the sync may succeed unchanged.
        details: Extra context for JSON output.
    """

    code: str
    message: str
    remediation: str
    items: list[str] = field(default_factory=list)
    is_retryable: bool = False
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "remediation": self.remediation,
            "items": list(self.items),
            "retryable": self.is_retryable,
        }

    @classmethod
    def from_code(
        cls,
        code: str,
        items: list[str] | None = None,
        details: dict | None = None,
        **context: object,
    ) -> "JourneySyncError":
        """Build an error from its registry entry.

        Args:
            code: Error code in E-XXXX format.
            items: Affected touchpoint or journey ids.
            details: Extra context kept on the error.
            **context: Values for the registry message template, e.g.
                ``client_id`` for E-5003. Missing values leave the
                placeholder in place.
        """
        items = list(items) if isinstance(items, list) else []
        details = dict(details) if isinstance(details, dict) else {}

        definition = get_error(code)
        if definition is None:
            return cls(
                code=code,
                message=f"Unknown error: {code}",
                remediation="Check the logs for details.",
                items=items,
                details=details,
            )

        try:
            message = definition.message_template.format(**context)
        except KeyError:
            message = definition.message_template

        return cls(
            code=definition.code,
            message=message,
            remediation=definition.remediation,
            items=items,
            is_retryable=definition.is_retryable,
            details=details,
        )


def _affected_line(items: list[str]) -> str:
    if len(items) == 1:
        return f"  Affected: {items[0]}"
    listed = ", ".join(items[:MAX_LISTED_ITEMS])
    if len(items) > MAX_LISTED_ITEMS:
        listed += f" (and {len(items) - MAX_LISTED_ITEMS} more)"
    return f"  Affected ({len(items)}): {listed}"


def format_error(error: JourneySyncError, include_remediation: bool = True) -> str:
    """Render one sync error for the CLI.

    The first line is ``CODE: message``; following lines are indented and
    name the affected touchpoints, the next step, and whether a plain
    rerun may succeed.
    """
    lines = [str(error)]
    if error.items:
        lines.append(_affected_line(error.items))
    if include_remediation:
        lines.append(f"  Action: {error.remediation}")
        if error.is_retryable:
            lines.append("  Rerunning the sync may succeed without changes.")
    return "\n".join(lines)


def group_errors(errors: list[JourneySyncError]) -> list[JourneySyncError]:
    """Fold identical failures into one error per code and message.

    Example:
        E-3002 timeouts on tp-2, tp-1 and tp-2 again
        -> one E-3002 error with items=["tp-1", "tp-2"]

    Returns:
        New error objects in first-seen order, items deduplicated and sorted.
    """
    groups: dict[tuple[str, str], JourneySyncError] = {}
    for error in errors:
        key = (error.code, error.message)
        grouped = groups.get(key)
        if grouped is None:
            groups[key] = JourneySyncError(
                code=error.code,
                message=error.message,
                remediation=error.remediation,
                items=list(error.items),
                is_retryable=error.is_retryable,
                details=error.details.copy(),
            )
        else:
            grouped.items.extend(error.items)

    for grouped in groups.values():
        grouped.items = sorted(set(grouped.items))
    return list(groups.values())


def format_error_summary(errors: list[JourneySyncError]) -> str:
    """Render the error section of a sync run summary."""
    if not errors:
        return "No sync errors."

    grouped = group_errors(errors)
    if len(grouped) == 1:
        return format_error(grouped[0])

    affected = len({item for error in grouped for item in error.items})
    lines = [f"{len(grouped)} kinds of sync error across {affected} item(s):", ""]
    for i, error in enumerate(grouped, 1):
        lines.append(f"{i}. {format_error(error)}")
        lines.append("")
    return "\n".join(lines)
