"""Database module for journey sync state and persistence."""

from journeysync.db.connection import (
    SessionLocal,
    engine,
    init_db,
    session_factory_for,
)
from journeysync.db.models import (
    Base,
    Client,
    ConflictStatus,
    Journey,
    JourneyStatus,
    JourneyVersion,
    PublishStateEntry,
    SyncConflict,
    SyncOutcome,
    SyncRun,
    SyncRunItem,
    SyncRunStatus,
    Touchpoint,
    TouchpointStatus,
    TouchpointType,
)

__all__ = [
    # Models
    "Base",
    "Client",
    "Journey",
    "JourneyVersion",
    "Touchpoint",
    "PublishStateEntry",
    "SyncRun",
    "SyncRunItem",
    "SyncConflict",
    # Enums
    "JourneyStatus",
    "TouchpointType",
    "TouchpointStatus",
    "SyncRunStatus",
    "SyncOutcome",
    "ConflictStatus",
    # Connection
    "engine",
    "SessionLocal",
    "init_db",
    "session_factory_for",
]
