"""Tests for ClientService."""

import pytest
from sqlalchemy.orm import Session

from journeysync.db.models import Client, Journey, JourneyVersion, SyncConflict, Touchpoint
from journeysync.errors import ConflictError, NotFoundError, ValidationError
from journeysync.services import ClientService
from journeysync.services.client_service import slugify


class TestClientService:
    """Client CRUD."""

    def test_slug_generated_from_name(self, sample_client: Client):
        assert sample_client.slug == "acme-dental"
        assert sample_client.remote_location_id == "loc-1"

    def test_duplicate_slug_conflicts(self, db_session: Session, sample_client: Client):
        with pytest.raises(ConflictError):
            ClientService(db_session).create_client("Acme  Dental!")

    def test_invalid_slug_rejected(self, db_session: Session):
        with pytest.raises(ValidationError):
            ClientService(db_session).create_client("Beta", slug="Not A Slug")

    def test_lookup_by_id_and_slug(self, db_session: Session, sample_client: Client):
        service = ClientService(db_session)
        assert service.get_client(sample_client.id).name == "Acme Dental"
        assert service.get_by_slug("acme-dental").id == sample_client.id
        with pytest.raises(NotFoundError):
            service.get_by_slug("missing")

    def test_set_and_clear_location(self, db_session: Session, sample_client: Client):
        service = ClientService(db_session)
        assert service.set_location(sample_client.id, "loc-2").remote_location_id == "loc-2"
        assert service.set_location(sample_client.id, "").remote_location_id is None

    def test_list_sorted_by_name(self, db_session: Session, sample_client: Client):
        service = ClientService(db_session)
        service.create_client("Zeta Clinic")
        service.create_client("Beta Ortho")
        assert [c.name for c in service.list_clients()] == ["Acme Dental", "Beta Ortho", "Zeta Clinic"]


class TestClientEdits:
    """Partial updates and cascading deletion."""

    def test_update_fields(self, db_session: Session, sample_client: Client):
        service = ClientService(db_session)

        updated = service.update_client(
            sample_client.id, {"name": " Acme Family Dental ", "slug": "acme-family"}
        )

        assert (updated.name, updated.slug) == ("Acme Family Dental", "acme-family")
        assert updated.remote_location_id == "loc-1"

    def test_update_rejects_taken_slug(self, db_session: Session, sample_client: Client):
        service = ClientService(db_session)
        other = service.create_client("Beta Ortho")

        with pytest.raises(ConflictError):
            service.update_client(other.id, {"slug": "acme-dental"})
        assert service.get_client(other.id).slug == "beta-ortho"

    def test_update_rejects_bad_input(self, db_session: Session, sample_client: Client):
        service = ClientService(db_session)
        with pytest.raises(ValidationError):
            service.update_client(sample_client.id, {"name": "  "})
        with pytest.raises(ValidationError):
            service.update_client(sample_client.id, {"id": "other"})

    def test_delete_cascades_to_journeys(
        self, db_session: Session, sample_client: Client, approved_journey: Journey
    ):
        journey_id = approved_journey.id
        db_session.add(SyncConflict(journey_id=journey_id, kind="version_mismatch", message="ahead"))
        db_session.commit()

        ClientService(db_session).delete_client(sample_client.id)

        assert db_session.query(Client).count() == 0
        assert db_session.get(Journey, journey_id) is None
        assert db_session.query(Touchpoint).count() == 0
        assert db_session.query(JourneyVersion).count() == 0
        assert db_session.query(SyncConflict).count() == 0

    def test_delete_unknown_client(self, db_session: Session):
        with pytest.raises(NotFoundError):
            ClientService(db_session).delete_client("missing")


def test_slugify_fallback():
    assert slugify("  Café & Co ") == "caf-co"
    assert slugify("!!!") == "client"
