"""Shared FastAPI dependencies."""

import os
from collections.abc import AsyncGenerator, Generator

from fastapi import Depends
from sqlalchemy.orm import Session

from journeysync.cli.config import JourneySyncConfig, load_config
from journeysync.db.connection import session_factory_for
from journeysync.services import ClientService, JourneyService, SyncRunService
from journeysync.services.context import SyncContext, build_sync_context


def get_config() -> JourneySyncConfig:
    """Load configuration, honoring JOURNEYSYNC_CONFIG_PATH."""
    return load_config(config_path=os.environ.get("JOURNEYSYNC_CONFIG_PATH"))


def get_session(
    config: JourneySyncConfig = Depends(get_config),
) -> Generator[Session, None, None]:
    """Request-scoped session on the configured database.

    Uses ``database_url`` from config when set, as the CLI does, so
    ``journeysync serve --config`` reads what ``journeysync sync`` writes.
    """
    db = session_factory_for(config.database_url)()
    try:
        yield db
    finally:
        db.close()


def get_journey_service(db: Session = Depends(get_session)) -> JourneyService:
    """Dependency to get JourneyService instance."""
    return JourneyService(db)


def get_client_service(db: Session = Depends(get_session)) -> ClientService:
    """Dependency to get ClientService instance."""
    return ClientService(db)


def get_sync_run_service(db: Session = Depends(get_session)) -> SyncRunService:
    """Dependency to get SyncRunService instance."""
    return SyncRunService(db)


async def get_sync_context(
    db: Session = Depends(get_session),
    config: JourneySyncConfig = Depends(get_config),
) -> AsyncGenerator[SyncContext, None]:
    """Per-request sync context; the platform client is closed afterwards."""
    context = build_sync_context(db, config)
    try:
        yield context
    finally:
        await context.platform.aclose()
