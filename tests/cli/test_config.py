"""Tests for CLI configuration loading and validation."""

import pydantic
import pytest
import yaml

from journeysync.cli.config import (
    JourneySyncConfig,
    PlatformConfig,
    SyncConfig,
    load_config,
    resolve_env_vars,
)


@pytest.fixture(autouse=True)
def isolated_env(tmp_path, monkeypatch):
    """Keep config discovery and env fallbacks away from the real machine."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("HOME", str(tmp_path))
    for name in ("PLATFORM_API_KEY", "PLATFORM_BASE_URL", "PLATFORM_LOCATION_ID", "SYNC_CONCURRENCY", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)


class TestDefaults:
    """Tests for config model defaults."""

    def test_defaults(self):
        """Defaults target the hosted platform with modest concurrency."""
        cfg = JourneySyncConfig()
        assert cfg.platform.base_url.startswith("https://")
        assert cfg.platform.api_key == ""
        assert cfg.sync.concurrency == 5
        assert cfg.sync.max_attempts == 5
        assert cfg.database_url is None
        assert cfg.log_level == "info"

    def test_empty_location_becomes_none(self):
        assert PlatformConfig(default_location_id="").default_location_id is None

    def test_concurrency_bounds(self):
        with pytest.raises(pydantic.ValidationError):
            SyncConfig(concurrency=0)


class TestLoadConfig:
    """Tests for YAML loading and environment handling."""

    def test_no_file_uses_environment(self, monkeypatch):
        monkeypatch.setenv("PLATFORM_API_KEY", "pit-123")
        monkeypatch.setenv("PLATFORM_LOCATION_ID", "loc-env")
        monkeypatch.setenv("SYNC_CONCURRENCY", "3")

        cfg = load_config()

        assert cfg.platform.api_key == "pit-123"
        assert cfg.platform.default_location_id == "loc-env"
        assert cfg.sync.concurrency == 3

    def test_yaml_with_env_references(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MY_KEY", "from-env")
        path = tmp_path / "custom.yaml"
        path.write_text(
            yaml.safe_dump(
                {
                    "platform": {"api_key": "${MY_KEY}", "default_location_id": "loc-yaml"},
                    "sync": {"max_attempts": 2},
                }
            )
        )

        cfg = load_config(config_path=str(path))

        assert cfg.platform.api_key == "from-env"
        assert cfg.platform.default_location_id == "loc-yaml"
        assert cfg.sync.max_attempts == 2

    def test_working_directory_file_discovered(self, tmp_path):
        (tmp_path / "journeysync.yaml").write_text("log_level: debug\n")
        assert load_config().log_level == "debug"

    def test_prefixed_env_overrides_yaml(self, tmp_path, monkeypatch):
        (tmp_path / "journeysync.yaml").write_text("sync:\n  concurrency: 2\n")
        monkeypatch.setenv("JOURNEYSYNC_SYNC_CONCURRENCY", "8")
        monkeypatch.setenv("JOURNEYSYNC_LOG_LEVEL", "warning")

        cfg = load_config()

        assert cfg.sync.concurrency == 8
        assert cfg.log_level == "warning"

    def test_yaml_value_wins_over_plain_fallback(self, tmp_path, monkeypatch):
        (tmp_path / "journeysync.yaml").write_text("platform:\n  api_key: yaml-key\n")
        monkeypatch.setenv("PLATFORM_API_KEY", "env-key")
        assert load_config().platform.api_key == "yaml-key"

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(config_path=str(tmp_path / "nope.yaml"))

    def test_invalid_values_rejected(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("sync:\n  concurrency: 0\n")
        with pytest.raises(ValueError):
            load_config(config_path=str(path))


def test_resolve_env_vars_missing_is_empty(monkeypatch):
    monkeypatch.delenv("NOT_SET_ANYWHERE", raising=False)
    assert resolve_env_vars("key=${NOT_SET_ANYWHERE}") == "key="
