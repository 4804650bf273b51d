"""Root-level pytest fixtures for all tests.

Provides an in-memory database session and small data builders shared by
service, API and CLI tests.
"""

import itertools
import os
from collections.abc import Generator

# Keep the module-level engine off the user's data directory
os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import Session, sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from journeysync.db.models import Base, Client, Journey, JourneyStatus  # noqa: E402
from journeysync.services import ClientService, JourneyService  # noqa: E402


@pytest.fixture
def session_factory() -> Generator[sessionmaker, None, None]:
    """Session factory bound to one shared in-memory SQLite database."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def db_session(session_factory: sessionmaker) -> Generator[Session, None, None]:
    """Create an in-memory SQLite session for testing."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def sample_client(db_session: Session) -> Client:
    """A client with a remote location id."""
    return ClientService(db_session).create_client("Acme Dental", remote_location_id="loc-1")


@pytest.fixture
def journey_service(db_session: Session) -> JourneyService:
    return JourneyService(db_session)


@pytest.fixture
def sample_journey(journey_service: JourneyService, sample_client: Client) -> Journey:
    """A draft journey at version 1 with no touchpoints."""
    return journey_service.create_journey(sample_client.id, "Welcome Series")


@pytest.fixture
def approved_journey(journey_service: JourneyService, sample_client: Client) -> Journey:
    """An approved journey with an email, an SMS and a wait step."""
    journey = journey_service.create_journey(
        sample_client.id, "New Patient", status=JourneyStatus.approved.value
    )
    journey_service.add_touchpoint(
        journey.id,
        "Welcome Email",
        "email",
        content={"subject": "Welcome!", "body": "<p>Hello</p>"},
    )
    journey_service.add_touchpoint(
        journey.id, "Reminder Text", "sms", content={"body": "See you soon"}
    )
    journey_service.add_touchpoint(journey.id, "Wait 2 days", "wait", config={"days": 2})
    return journey


class FakePlatform:
    """In-memory stand-in for PlatformClient.

    Stores templates by id so read-backs return what was last written.
    ``fail_next`` holds exceptions raised by upcoming create/update calls;
    ``on_create`` is invoked before every create.
    """

    def __init__(self) -> None:
        self.templates: dict[str, dict] = {}
        self.workflows: dict[str, dict] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_next: list[Exception] = []
        self.on_create = None
        self.closed = False
        self._ids = itertools.count(1)

    def _maybe_fail(self) -> None:
        if self.fail_next:
            raise self.fail_next.pop(0)

    async def create_template(self, kind: str, payload: dict, location_id: str) -> dict:
        if self.on_create is not None:
            self.on_create()
        self.calls.append(("create", kind))
        self._maybe_fail()
        template_id = f"tmpl-{next(self._ids)}"
        self.templates[template_id] = {"id": template_id, **payload, "locationId": location_id}
        return {"id": template_id}

    async def update_template(
        self, kind: str, template_id: str, payload: dict, location_id: str
    ) -> dict:
        self.calls.append(("update", template_id))
        self._maybe_fail()
        self.templates[template_id] = {"id": template_id, **payload, "locationId": location_id}
        return {"id": template_id}

    async def get_template(self, kind: str, template_id: str, location_id: str) -> dict | None:
        template = self.templates.get(template_id)
        return dict(template) if template is not None else None

    async def get_workflow(self, workflow_id: str) -> dict | None:
        return self.workflows.get(workflow_id)

    async def test_connection(self, location_id: str) -> dict:
        self.calls.append(("check", location_id))
        self._maybe_fail()
        return {"id": location_id, "name": "Fake Location"}

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_platform() -> FakePlatform:
    return FakePlatform()
