"""Pytest fixtures for API tests.

Provides a TestClient whose database and sync context are overridden with
the in-memory session and the fake platform.
"""

from collections.abc import Generator
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from journeysync.api.dependencies import get_session, get_sync_context
from journeysync.api.main import app
from journeysync.services import PublishLedger
from journeysync.services.conflict_detector import ConflictDetector
from journeysync.services.context import SyncContext
from journeysync.services.retry_policy import RetryPolicy
from journeysync.services.touchpoint_publisher import TouchpointPublisher


@pytest.fixture
def sync_context(db_session: Session, fake_platform) -> SyncContext:
    ledger = PublishLedger(db_session)
    return SyncContext(
        db=db_session,
        ledger=ledger,
        platform=fake_platform,
        publisher=TouchpointPublisher(fake_platform, ledger),
        retry_policy=RetryPolicy(max_attempts=2, jitter=False, sleep=AsyncMock()),
        detector=ConflictDetector(),
        concurrency=2,
    )


@pytest.fixture
def client(db_session: Session, sync_context: SyncContext) -> Generator[TestClient, None, None]:
    """Create a TestClient with overridden database and sync dependencies.

    Args:
        db_session: Test database session fixture.
        sync_context: Sync context wired to the fake platform.

    Yields:
        TestClient configured for testing.
    """

    def override_get_session():
        try:
            yield db_session
        finally:
            pass

    async def override_get_sync_context():
        yield sync_context

    app.dependency_overrides[get_session] = override_get_session
    app.dependency_overrides[get_sync_context] = override_get_sync_context
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()
