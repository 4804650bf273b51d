"""Database connection management for journey sync.

Provides synchronous database access using SQLAlchemy. SQLite is the
default store; any SQLAlchemy URL can be supplied through DATABASE_URL.

Usage:
    from journeysync.db.connection import SessionLocal, init_db

    init_db()  # Create tables
    with SessionLocal() as db:
        ...
"""

import os
from typing import Any

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import sessionmaker

from journeysync.db.models import Base


# Configuration
def get_database_url() -> str:
    """Get database URL from environment or use default SQLite.

    Precedence:
    1. DATABASE_URL (canonical)
    2. JOURNEYSYNC_DB_PATH (file path, converted to sqlite URL)
    3. sqlite:///<data dir>/journeysync.db
    """
    database_url = os.environ.get("DATABASE_URL", "").strip()
    if database_url:
        return database_url

    db_path = os.environ.get("JOURNEYSYNC_DB_PATH", "").strip()
    if db_path:
        if db_path.startswith("sqlite:"):
            return db_path
        return f"sqlite:///{db_path}"

    from journeysync.utils.paths import ensure_dirs_exist, get_default_db_path

    ensure_dirs_exist()
    return f"sqlite:///{get_default_db_path()}"


# Engine creation
def set_sqlite_pragma(dbapi_connection: Any, connection_record: Any) -> None:
    """Configure SQLite pragmas for correctness and concurrency.

    Enables:
    - foreign_keys=ON: cascade deletes from journeys to touchpoints.
    - journal_mode=WAL: API readers are not blocked while a sync run writes.
    """
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL;")
    cursor.execute("PRAGMA synchronous=NORMAL;")
    cursor.close()


def build_engine(url: str) -> Engine:
    """Create an engine for ``url``, with SQLite pragmas when applicable."""
    is_sqlite = url.startswith("sqlite")
    new_engine = create_engine(
        url,
        connect_args={"check_same_thread": False} if is_sqlite else {},
        echo=os.environ.get("SQL_ECHO", "").lower() == "true",
    )
    if is_sqlite:
        event.listen(new_engine, "connect", set_sqlite_pragma)
    return new_engine


def make_session_factory(url: str) -> sessionmaker:
    """Session factory bound to a dedicated engine for ``url``.

    Used when configuration names a database other than the default.
    """
    new_engine = build_engine(url)
    Base.metadata.create_all(bind=new_engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=new_engine)


DATABASE_URL = get_database_url()

engine = build_engine(DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)


_configured_factories: dict[str, sessionmaker] = {}


def session_factory_for(url: str | None = None) -> sessionmaker:
    """Session factory for a configured database URL.

    Returns SessionLocal when ``url`` is unset or names the default
    database. Other URLs get one cached factory each, so the API and the
    CLI open the same store for the same config.
    """
    if not url or url == DATABASE_URL:
        return SessionLocal
    if url not in _configured_factories:
        _configured_factories[url] = make_session_factory(url)
    return _configured_factories[url]


def init_db() -> None:
    """Create all database tables.

    Safe to call multiple times - existing tables are left untouched.
    """
    Base.metadata.create_all(bind=engine)


def close_db() -> None:
    """Dispose of the default and configured engine pools."""
    engine.dispose()
    for factory in _configured_factories.values():
        factory.kw["bind"].dispose()
    _configured_factories.clear()
