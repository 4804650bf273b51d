"""Journey sync CLI.

Runs sync batches, inspects run history and conflicts, manages the publish
ledger, and serves the HTTP API.

Usage:
    journeysync init-db                      Create database tables
    journeysync check --location LOC         Verify platform credentials
    journeysync sync run --dry-run           Preview a sync of all due journeys
    journeysync sync conflicts               List unresolved conflicts
    journeysync sync resolve ID --overwrite  Resolve a conflict for the next run
    journeysync serve                        Start the API server
"""

import asyncio
import logging
from typing import Optional

import typer
from rich.console import Console
from sqlalchemy.orm import Session

from journeysync.cli.config import JourneySyncConfig, load_config
from journeysync.cli.output import (
    format_conflict_table,
    format_ledger_table,
    format_run_table,
    format_summary,
)
from journeysync.db.connection import SessionLocal, init_db, session_factory_for
from journeysync.db.models import SyncRunStatus
from journeysync.errors import DomainError
from journeysync.services import PublishLedger, SyncRunService
from journeysync.services.conflict_detector import ResolutionPolicy
from journeysync.services.context import build_sync_context
from journeysync.services.errors import PlatformError
from journeysync.services.sync_orchestrator import SyncOrchestrator, SyncRequest

_log = logging.getLogger(__name__)

app = typer.Typer(
    name="journeysync",
    help="Versioned customer journeys and their sync to the messaging platform",
    no_args_is_help=True,
)
sync_app = typer.Typer(help="Run and inspect sync batches")
ledger_app = typer.Typer(help="Inspect and import publish state")

app.add_typer(sync_app, name="sync")
app.add_typer(ledger_app, name="ledger")

console = Console()

# --- Global state ---
_config_path: str | None = None


@app.callback()
def main(
    config: Optional[str] = typer.Option(
        None, "--config", help="Path to journeysync.yaml config file"
    ),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Journey sync: edit journeys locally, publish them remotely."""
    global _config_path
    _config_path = config
    level = "DEBUG" if verbose else _load_config().log_level.upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(levelname)s:%(name)s:%(message)s",
    )


def _load_config() -> JourneySyncConfig:
    try:
        return load_config(config_path=_config_path)
    except FileNotFoundError as e:
        console.print(f"[red]Config file not found:[/red] {e}")
        raise typer.Exit(1)
    except ValueError as e:
        console.print(f"[red]Config validation failed:[/red] {e}")
        raise typer.Exit(1)


def _open_session(cfg: JourneySyncConfig) -> Session:
    """Session for the configured database (default store if unset)."""
    factory = session_factory_for(cfg.database_url)
    if factory is SessionLocal:
        init_db()
    return factory()


def _emit(output: str) -> None:
    typer.echo(output.rstrip("\n"))


# --- Version ---


@app.command()
def version():
    """Show journey sync version."""
    from importlib.metadata import PackageNotFoundError
    from importlib.metadata import version as pkg_version

    try:
        v = pkg_version("journey-sync")
    except PackageNotFoundError:
        v = "unknown"
    console.print(f"[bold]Journey Sync[/bold] v{v}")


# --- Database ---


@app.command("init-db")
def init_db_cmd():
    """Create database tables (safe to run repeatedly)."""
    cfg = _load_config()
    db = _open_session(cfg)
    db.close()
    console.print("[green]Database initialized.[/green]")


@app.command()
def check(
    location: Optional[str] = typer.Option(
        None, "--location", help="Location id (defaults to platform.default_location_id)"
    ),
):
    """Verify the API key can reach a platform location."""
    cfg = _load_config()
    location_id = location or cfg.platform.default_location_id
    if not location_id:
        console.print("[red]No location id. Pass --location or set platform.default_location_id.[/red]")
        raise typer.Exit(2)

    db = _open_session(cfg)
    context = build_sync_context(db, cfg)

    async def _check():
        try:
            return await context.platform.test_connection(location_id)
        finally:
            await context.platform.aclose()

    try:
        record = asyncio.run(_check())
    except PlatformError as e:
        console.print(f"[red]Error [{e.code}]:[/red] {e.message}")
        raise typer.Exit(1)
    finally:
        db.close()
    if isinstance(record.get("location"), dict):
        record = record["location"]
    name = record.get("name") or location_id
    console.print(f"[green]Connected to location {name}.[/green]")


# --- Sync commands ---


@sync_app.command("run")
def sync_run(
    client: Optional[str] = typer.Option(None, "--client", help="Only this client's journeys"),
    journey: Optional[str] = typer.Option(None, "--journey", help="Only this journey"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Report decisions, change nothing"),
    force: bool = typer.Option(False, "--force", help="Publish even unchanged content"),
    on_conflict: Optional[ResolutionPolicy] = typer.Option(
        None, "--on-conflict", help="Resolution for conflicts without a stored one"
    ),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Sync due journeys to the platform."""
    if client and journey:
        console.print("[red]Use either --client or --journey, not both.[/red]")
        raise typer.Exit(2)
    scope, scope_value = "all", None
    if client:
        scope, scope_value = "client", client
    elif journey:
        scope, scope_value = "journey", journey

    cfg = _load_config()
    db = _open_session(cfg)
    context = build_sync_context(db, cfg)
    request = SyncRequest(
        scope=scope,
        scope_value=scope_value,
        dry_run=dry_run,
        force=force,
        on_conflict=on_conflict,
    )

    async def _run():
        try:
            return await SyncOrchestrator(context).run(request)
        finally:
            await context.platform.aclose()

    try:
        summary = asyncio.run(_run())
    except DomainError as e:
        console.print(f"[red]Error [{e.code}]:[/red] {e}")
        raise typer.Exit(1)
    finally:
        db.close()

    _emit(format_summary(summary, as_json=json_output))
    if summary.status == SyncRunStatus.failed.value:
        raise typer.Exit(1)


@sync_app.command("history")
def sync_history(
    limit: int = typer.Option(20, "--limit", "-n", help="Number of runs to show"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List recent sync runs, newest first."""
    cfg = _load_config()
    db = _open_session(cfg)
    try:
        runs = SyncRunService(db).list_runs(limit=limit)
        _emit(format_run_table(runs, as_json=json_output))
    finally:
        db.close()


@sync_app.command("conflicts")
def sync_conflicts(
    include_all: bool = typer.Option(False, "--all", help="Include applied and superseded"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List stored conflicts."""
    cfg = _load_config()
    db = _open_session(cfg)
    try:
        conflicts = SyncRunService(db).list_conflicts(open_only=not include_all)
        _emit(format_conflict_table(conflicts, as_json=json_output))
    finally:
        db.close()


@sync_app.command("resolve")
def sync_resolve(
    conflict_id: str = typer.Argument(help="Conflict ID to resolve"),
    skip: bool = typer.Option(False, "--skip", help="Leave the journey out of syncs"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace remote with local"),
    merge: bool = typer.Option(False, "--merge", help="Merge non-overlapping fields"),
    manual: bool = typer.Option(False, "--manual", help="Keep blocked for manual handling"),
):
    """Attach a resolution to a conflict; the next run applies it."""
    chosen = [
        policy
        for flag, policy in (
            (skip, ResolutionPolicy.skip),
            (overwrite, ResolutionPolicy.overwrite),
            (merge, ResolutionPolicy.merge),
            (manual, ResolutionPolicy.manual),
        )
        if flag
    ]
    if len(chosen) != 1:
        console.print("[red]Choose exactly one of --skip, --overwrite, --merge, --manual.[/red]")
        raise typer.Exit(2)

    cfg = _load_config()
    db = _open_session(cfg)
    try:
        conflict = SyncRunService(db).resolve_conflict(conflict_id, chosen[0].value)
    except DomainError as e:
        console.print(f"[red]Error [{e.code}]:[/red] {e}")
        raise typer.Exit(1)
    finally:
        db.close()
    console.print(f"[green]Conflict {conflict.id} resolved with {chosen[0].value}.[/green]")


# --- Ledger commands ---


@ledger_app.command("show")
def ledger_show(
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show publish state entries."""
    cfg = _load_config()
    db = _open_session(cfg)
    try:
        entries = PublishLedger(db).entries()
        _emit(format_ledger_table(entries, as_json=json_output))
    finally:
        db.close()


@ledger_app.command("import")
def ledger_import(
    path: str = typer.Argument(help="Legacy publish state JSON file"),
):
    """Import a legacy publish state file. Existing entries are kept."""
    cfg = _load_config()
    db = _open_session(cfg)
    try:
        count = PublishLedger(db).import_state_file(path)
    except DomainError as e:
        console.print(f"[red]Error [{e.code}]:[/red] {e}")
        raise typer.Exit(1)
    finally:
        db.close()
    console.print(f"[green]Imported {count} ledger entr{'y' if count == 1 else 'ies'}.[/green]")


# --- Server ---


@app.command()
def serve(
    host: str = typer.Option("127.0.0.1", "--host", help="Bind address"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
):
    """Start the HTTP API with uvicorn."""
    import os

    import uvicorn

    if _config_path:
        os.environ["JOURNEYSYNC_CONFIG_PATH"] = _config_path
    console.print(f"[bold]Serving journey sync API on http://{host}:{port}[/bold]")
    uvicorn.run("journeysync.api.main:app", host=host, port=port)


if __name__ == "__main__":
    app()
