"""
ProjectHub Configuration — Load and validate projecthub.yaml + environment at startup.

The backend URL and access key normally come from the process environment.
When either is missing every remote operation is disabled and the data layer
serves static sample data instead.

Usage:
    from projecthub.engine.config import load_config, get_config
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import BaseModel, field_validator

from projecthub.engine.errors import ConfigError

CONFIG_FILENAME = "projecthub.yaml"

# Environment variable → (section, key). First match wins per key.
ENV_OVERRIDES = [
    ("PROJECTHUB_BACKEND_URL", "backend", "url"),
    ("SUPABASE_URL", "backend", "url"),
    ("PROJECTHUB_BACKEND_KEY", "backend", "anon_key"),
    ("SUPABASE_ANON_KEY", "backend", "anon_key"),
    ("PROJECTHUB_REDIS_URL", "redis", "url"),
    ("PROJECTHUB_LOG_DIR", "logging", "directory"),
]


# ---------------------------------------------------------------------------
# Pydantic models for projecthub.yaml
# ---------------------------------------------------------------------------

class BackendConfig(BaseModel):
    url: str = ""
    anon_key: str = ""
    schema_name: str = "public"
    timeout: int = 30

    @property
    def enabled(self) -> bool:
        """Remote operations run only when both URL and key are set."""
        return bool(self.url.strip()) and bool(self.anon_key.strip())

    @property
    def rest_url(self) -> str:
        return f"{self.url.rstrip('/')}/rest/v1"

    @property
    def storage_url(self) -> str:
        return f"{self.url.rstrip('/')}/storage/v1"

    @property
    def auth_url(self) -> str:
        return f"{self.url.rstrip('/')}/auth/v1"

    @property
    def realtime_url(self) -> str:
        base = self.url.rstrip("/")
        if base.startswith("https://"):
            base = "wss://" + base[len("https://"):]
        elif base.startswith("http://"):
            base = "ws://" + base[len("http://"):]
        return f"{base}/realtime/v1/websocket"


class StorageConfig(BaseModel):
    file_bucket: str = "project-files"
    image_bucket: str = "brochure-images"
    signed_url_ttl: int = 300
    max_image_size_mb: int = 5


class RedisConfig(BaseModel):
    url: str = "redis://localhost:6379/0"
    db: int = 0
    fallback_ttl: int = 7 * 24 * 3600


class LogAsyncQueueConfig(BaseModel):
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".projecthub/logs"
    structured: bool = True
    async_queue: LogAsyncQueueConfig = LogAsyncQueueConfig()

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"invalid log level '{v}'")
        return v


class RealtimeConfig(BaseModel):
    enabled: bool = True
    heartbeat_interval: float = 30.0
    reconnect_delay: float = 5.0


class HubConfig(BaseModel):
    """Root model for projecthub.yaml."""
    name: str = "ProjectHub"
    environment: str = "dev"

    backend: BackendConfig = BackendConfig()
    storage: StorageConfig = StorageConfig()
    redis: RedisConfig = RedisConfig()
    logging: LoggingConfig = LoggingConfig()
    realtime: RealtimeConfig = RealtimeConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v

    def masked(self) -> Dict[str, Any]:
        """Dump for display with the access key hidden."""
        data = self.model_dump()
        key = data["backend"]["anon_key"]
        if key:
            data["backend"]["anon_key"] = f"{key[:4]}…" if len(key) > 4 else "****"
        return data


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[HubConfig] = None


def _find_config_file() -> Optional[Path]:
    """Walk up from CWD looking for projecthub.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        candidate = parent / CONFIG_FILENAME
        if candidate.exists():
            return candidate
    return None


def _apply_environment(raw: Dict[str, Any], environ: Dict[str, str]) -> Dict[str, Any]:
    """Overlay environment variables on the raw YAML dict."""
    applied = set()
    for var, section, key in ENV_OVERRIDES:
        if (section, key) in applied:
            continue
        value = environ.get(var)
        if value:
            raw.setdefault(section, {})[key] = value
            applied.add((section, key))

    env_name = environ.get("PROJECTHUB_ENV")
    if env_name:
        raw["environment"] = env_name
    return raw


def load_config(
    config_path: Optional[str] = None,
    environ: Optional[Dict[str, str]] = None,
) -> HubConfig:
    """
    Load and validate projecthub.yaml, then apply environment overrides.

    Args:
        config_path: Explicit path to projecthub.yaml. If None, auto-discovers.
        environ: Environment mapping (defaults to os.environ).

    Returns:
        Validated HubConfig instance.
    """
    global _config

    path = Path(config_path) if config_path else _find_config_file()
    raw: Dict[str, Any] = {}
    if path is not None and path.exists():
        with open(path, "r", encoding="utf-8") as f:
            try:
                raw = yaml.safe_load(f) or {}
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in {path}: {e}", path=str(path)) from e
        if not isinstance(raw, dict):
            raise ConfigError(f"{path} must contain a mapping", path=str(path))

    raw = _apply_environment(raw, dict(os.environ if environ is None else environ))

    try:
        _config = HubConfig(**raw)
    except ValueError as e:
        raise ConfigError(f"Invalid configuration: {e}") from e
    return _config


def get_config() -> HubConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached config (tests, reloads)."""
    global _config
    _config = None
