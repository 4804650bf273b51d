"""YAML configuration loader with env var resolution and Pydantic validation.

Loads config from (priority order):
1. --config <path> CLI flag
2. ./journeysync.yaml (working directory)
3. ~/.journeysync/config.yaml (user home)

Environment variables override YAML: JOURNEYSYNC_<SECTION>_<KEY>.
${VAR} references in YAML values resolve from environment at load time.
Without a config file, settings come from PLATFORM_API_KEY,
PLATFORM_BASE_URL, PLATFORM_LOCATION_ID, SYNC_CONCURRENCY and DATABASE_URL.
"""

import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

from journeysync.services.platform_client import DEFAULT_API_VERSION, DEFAULT_BASE_URL
from journeysync.utils.paths import get_config_dir

logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")

ENV_PREFIX = "JOURNEYSYNC_"


def resolve_env_vars(value: str) -> str:
    """Resolve ${VAR} references in a string from environment variables.

    Missing env vars resolve to empty string.
    """
    def _replace(match: re.Match) -> str:
        return os.environ.get(match.group(1), "")

    return _ENV_VAR_PATTERN.sub(_replace, value)


def _resolve_env_vars_recursive(data: Any) -> Any:
    if isinstance(data, str):
        return resolve_env_vars(data)
    elif isinstance(data, dict):
        return {k: _resolve_env_vars_recursive(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_resolve_env_vars_recursive(item) for item in data]
    return data


class PlatformConfig(BaseModel):
    """Remote platform connection settings."""

    base_url: str = DEFAULT_BASE_URL
    api_key: str = ""
    api_version: str = DEFAULT_API_VERSION
    default_location_id: str | None = None
    timeout_seconds: float = Field(default=30.0, gt=0)

    @field_validator("default_location_id")
    @classmethod
    def empty_location_is_none(cls, value: str | None) -> str | None:
        return value or None


class SyncConfig(BaseModel):
    """Sync orchestrator tuning."""

    concurrency: int = Field(default=5, ge=1, le=50)
    max_attempts: int = Field(default=5, ge=1)
    base_delay_seconds: float = Field(default=1.0, ge=0)
    max_delay_seconds: float = Field(default=60.0, ge=0)


class JourneySyncConfig(BaseModel):
    """Top-level configuration."""

    platform: PlatformConfig = PlatformConfig()
    sync: SyncConfig = SyncConfig()
    database_url: str | None = None
    log_level: str = "info"


def _find_config_file() -> Path | None:
    candidates = [
        Path.cwd() / "journeysync.yaml",
        Path.cwd() / "journeysync.yml",
        get_config_dir() / "config.yaml",
        get_config_dir() / "config.yml",
    ]
    for candidate in candidates:
        if candidate.exists():
            return candidate
    return None


def _coerce(value: str) -> Any:
    try:
        return int(value)
    except ValueError:
        pass
    try:
        return float(value)
    except ValueError:
        pass
    if value.lower() in ("true", "false"):
        return value.lower() == "true"
    return value


def _apply_env_fallbacks(data: dict[str, Any]) -> dict[str, Any]:
    """Fill unset fields from the plain environment variables."""
    platform = data.setdefault("platform", {}) or {}
    data["platform"] = platform
    sync = data.setdefault("sync", {}) or {}
    data["sync"] = sync

    fallbacks = [
        (platform, "api_key", "PLATFORM_API_KEY"),
        (platform, "base_url", "PLATFORM_BASE_URL"),
        (platform, "default_location_id", "PLATFORM_LOCATION_ID"),
        (sync, "concurrency", "SYNC_CONCURRENCY"),
        (data, "database_url", "DATABASE_URL"),
    ]
    for section, key, env_name in fallbacks:
        env_value = os.environ.get(env_name, "").strip()
        if env_value and not section.get(key):
            section[key] = _coerce(env_value) if key == "concurrency" else env_value
    return data


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply JOURNEYSYNC_<SECTION>_<KEY> env var overrides to config data.

    Top-level scalar keys use JOURNEYSYNC_<KEY> (e.g. JOURNEYSYNC_LOG_LEVEL).
    """
    sections = [
        name
        for name, info in JourneySyncConfig.model_fields.items()
        if isinstance(info.default, BaseModel)
    ]
    scalars = [name for name in JourneySyncConfig.model_fields if name not in sections]
    for key, value in os.environ.items():
        if not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX):].lower()
        if suffix in scalars:
            data[suffix] = value
            continue
        for section in sections:
            if suffix.startswith(section + "_"):
                field_name = suffix[len(section) + 1:]
                if field_name:
                    data.setdefault(section, {})[field_name] = _coerce(value)
                break
    return data


def load_config(config_path: str | None = None) -> JourneySyncConfig:
    """Load configuration from YAML (if any) plus the environment.

    Args:
        config_path: Explicit path to config file. If None, searches
            standard locations (cwd, then ~/.journeysync/).

    Returns:
        Validated JourneySyncConfig.

    Raises:
        FileNotFoundError: If ``config_path`` is given and missing.
    """
    raw_data: dict[str, Any] = {}
    if config_path:
        path: Path | None = Path(config_path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        path = _find_config_file()

    if path is not None:
        logger.info("Loading config from %s", path)
        with open(path) as f:
            raw_data = yaml.safe_load(f) or {}

    data = _resolve_env_vars_recursive(raw_data)
    data = _apply_env_overrides(data)
    data = _apply_env_fallbacks(data)
    return JourneySyncConfig(**data)
