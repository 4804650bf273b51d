"""API sessions follow the config file's database_url."""

import yaml
from fastapi.testclient import TestClient

from journeysync.api.main import app
from journeysync.db.connection import SessionLocal, session_factory_for
from journeysync.services import ClientService, JourneyService


class TestConfiguredDatabase:
    def test_api_reads_database_named_in_config(self, tmp_path, monkeypatch):
        url = f"sqlite:///{tmp_path / 'journeys.db'}"
        config_path = tmp_path / "journeysync.yaml"
        config_path.write_text(yaml.safe_dump({"database_url": url}))
        monkeypatch.setenv("JOURNEYSYNC_CONFIG_PATH", str(config_path))
        monkeypatch.delenv("JOURNEYSYNC_API_KEY", raising=False)

        factory = session_factory_for(url)
        assert factory is not SessionLocal
        with factory() as db:
            client = ClientService(db).create_client("Config Dental", remote_location_id="loc-c")
            JourneyService(db).create_journey(client.id, "Recall", status="approved")

        with TestClient(app) as api:
            data = api.get("/api/v1/journeys").json()
            health = api.get("/health").json()

        assert data["total"] == 1
        assert data["journeys"][0]["name"] == "Recall"
        assert health["database"] == "ok"

    def test_same_url_shares_one_factory(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'shared.db'}"
        assert session_factory_for(url) is session_factory_for(url)
        assert session_factory_for(None) is SessionLocal
