"""CLI output formatters for Rich tables and JSON.

Provides human-readable Rich table output (default) and machine-parseable
JSON output (--json flag). All formatting goes through these functions
so the CLI commands stay clean.
"""

import json
from typing import Any

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from journeysync.db.models import PublishStateEntry, SyncConflict, SyncRun
from journeysync.errors import format_error_summary
from journeysync.services.sync_orchestrator import SyncSummary

console = Console()

# Status color map for runs, items and conflicts
STATUS_COLORS = {
    "pending": "yellow",
    "running": "blue",
    "completed": "green",
    "failed": "red",
    "cancelled": "dim",
    "synced": "green",
    "skipped": "dim",
    "conflicted": "yellow",
    "open": "yellow",
    "resolved": "cyan",
    "applied": "green",
    "superseded": "dim",
}


def _colored(value: str) -> str:
    color = STATUS_COLORS.get(value, "white")
    return f"[{color}]{value}[/{color}]"


def _render(renderable: Any) -> str:
    with console.capture() as capture:
        console.print(renderable)
    return capture.get()


def format_summary(summary: SyncSummary, as_json: bool = False) -> str:
    """Format a finished run's report.

    Args:
        summary: Report returned by the orchestrator.
        as_json: If True, return JSON string instead of Rich output.

    Returns:
        Formatted string output.
    """
    if as_json:
        return json.dumps(summary.to_dict(), indent=2)

    mode = " (dry run)" if summary.dry_run else ""
    lines = [
        f"[bold]Run:[/bold]        {summary.run_id}{mode}",
        f"[bold]Status:[/bold]     {_colored(summary.status)}",
        f"[bold]Synced:[/bold]     [green]{summary.synced}[/green]",
        f"[bold]Skipped:[/bold]    {summary.skipped}",
        f"[bold]Conflicted:[/bold] [yellow]{summary.conflicted}[/yellow]",
        f"[bold]Failed:[/bold]     [red]{summary.failed}[/red]",
    ]
    if summary.error_code:
        lines.append(f"[bold]Error:[/bold]      [red]{summary.error_code}: {summary.error_message}[/red]")
    panel = Panel("\n".join(lines), title="Sync Run", border_style="blue")

    table = Table(title="Decisions", show_lines=False)
    table.add_column("Journey", style="white")
    table.add_column("Touchpoint", style="cyan", no_wrap=True)
    table.add_column("Decision")
    table.add_column("Outcome")
    table.add_column("Error", style="red")
    for report in summary.journeys:
        for item in report.items:
            table.add_row(
                report.name,
                item.touchpoint_id[:12] if item.touchpoint_id else "—",
                item.decision,
                _colored(item.outcome),
                f"{item.error_code}: {item.error_message}" if item.error_code else "",
            )

    output = _render(panel)
    if table.row_count:
        output += _render(table)
    if summary.errors:
        output += "\n" + format_error_summary(summary.errors) + "\n"
    return output


def format_run_table(runs: list[SyncRun], as_json: bool = False) -> str:
    """Format run history as a Rich table or JSON."""
    if as_json:
        return json.dumps(
            [
                {
                    "id": run.id,
                    "status": run.status,
                    "scope": run.scope,
                    "scope_value": run.scope_value,
                    "dry_run": run.dry_run,
                    "synced": run.synced_count,
                    "skipped": run.skipped_count,
                    "conflicted": run.conflicted_count,
                    "failed": run.failed_count,
                    "created_at": run.created_at,
                }
                for run in runs
            ],
            indent=2,
        )

    if not runs:
        return "No sync runs found."

    table = Table(title="Sync Runs", show_lines=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Scope")
    table.add_column("Synced", justify="right", style="green")
    table.add_column("Skipped", justify="right")
    table.add_column("Conflicted", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")
    table.add_column("Created")

    for run in runs:
        scope = run.scope if not run.scope_value else f"{run.scope}:{run.scope_value[:8]}"
        if run.dry_run:
            scope += " (dry)"
        table.add_row(
            run.id[:12],
            _colored(run.status),
            scope,
            str(run.synced_count),
            str(run.skipped_count),
            str(run.conflicted_count),
            str(run.failed_count),
            run.created_at[:19] if run.created_at else "—",
        )
    return _render(table)


def format_conflict_table(conflicts: list[SyncConflict], as_json: bool = False) -> str:
    """Format stored conflicts as a Rich table or JSON."""
    if as_json:
        return json.dumps(
            [
                {
                    "id": c.id,
                    "journey_id": c.journey_id,
                    "touchpoint_id": c.touchpoint_id,
                    "kind": c.kind,
                    "message": c.message,
                    "status": c.status,
                    "resolution": c.resolution,
                    "detected_at": c.detected_at,
                }
                for c in conflicts
            ],
            indent=2,
        )

    if not conflicts:
        return "No conflicts."

    table = Table(title="Conflicts", show_lines=True)
    table.add_column("ID", style="cyan", no_wrap=True)
    table.add_column("Kind")
    table.add_column("Journey", no_wrap=True)
    table.add_column("Touchpoint", no_wrap=True)
    table.add_column("Status")
    table.add_column("Resolution")
    table.add_column("Message")
    for c in conflicts:
        table.add_row(
            c.id,
            c.kind,
            c.journey_id[:12],
            c.touchpoint_id[:12] if c.touchpoint_id else "—",
            _colored(c.status),
            c.resolution or "—",
            c.message,
        )
    return _render(table)


def format_ledger_table(entries: list[PublishStateEntry], as_json: bool = False) -> str:
    """Format publish ledger entries as a Rich table or JSON."""
    if as_json:
        return json.dumps(
            [
                {
                    "touchpoint_id": e.touchpoint_id,
                    "content_hash": e.content_hash,
                    "remote_template_id": e.remote_template_id,
                    "template_kind": e.template_kind,
                    "name": e.name,
                    "published_at": e.published_at,
                }
                for e in entries
            ],
            indent=2,
        )

    if not entries:
        return "Ledger is empty."

    table = Table(title="Publish Ledger")
    table.add_column("Touchpoint", style="cyan", no_wrap=True)
    table.add_column("Kind")
    table.add_column("Name")
    table.add_column("Remote Template")
    table.add_column("Hash", style="dim")
    table.add_column("Published")
    for e in entries:
        table.add_row(
            e.touchpoint_id,
            e.template_kind,
            e.name or "—",
            e.remote_template_id or "—",
            e.content_hash[:12],
            e.published_at[:19] if e.published_at else "—",
        )
    return _render(table)
