"""
collabcore Configuration — Load and validate collabcore.yaml.

Usage:
    from collabcore.engine.config import load_config, get_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator

from collabcore.engine.errors import CollabConfigError

CONFIG_FILENAME = "collabcore.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for collabcore.yaml
# ---------------------------------------------------------------------------

class DatabaseConfig(BaseModel):
    url: str = "sqlite:///collabcore.db"
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True
    create_tables: bool = False


class HistoryConfig(BaseModel):
    default_page_size: int = Field(default=50, ge=1)
    max_page_size: int = Field(default=500, ge=1)

    @model_validator(mode="after")
    def check_page_sizes(self) -> "HistoryConfig":
        if self.default_page_size > self.max_page_size:
            raise ValueError("history.default_page_size must not exceed history.max_page_size")
        return self


class SessionsConfig(BaseModel):
    gap_minutes: float = Field(default=15, gt=0)


class AuditConfig(BaseModel):
    preview_chars: int = Field(default=200, ge=1)


class IdentityConfig(BaseModel):
    base_url: Optional[str] = None
    timeout_seconds: float = 5.0
    api_token: Optional[str] = None


class LogAsyncQueueConfig(BaseModel):
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".collabcore/logs"
    structured: bool = True
    async_queue: LogAsyncQueueConfig = LogAsyncQueueConfig()

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"logging.level must be a standard level name, got '{v}'")
        return v


class CollabConfig(BaseModel):
    """Root model for collabcore.yaml."""
    name: str = "collabcore"
    environment: str = "dev"

    database: DatabaseConfig = DatabaseConfig()
    history: HistoryConfig = HistoryConfig()
    sessions: SessionsConfig = SessionsConfig()
    audit: AuditConfig = AuditConfig()
    identity: IdentityConfig = IdentityConfig()
    logging: LoggingConfig = LoggingConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[CollabConfig] = None


def _find_project_root() -> Path:
    """Find the project root by looking for collabcore.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return current


def load_config(config_path: Optional[str] = None) -> CollabConfig:
    """
    Load and validate collabcore.yaml.

    Args:
        config_path: Explicit path to collabcore.yaml. If None, auto-discovers.

    Returns:
        Validated CollabConfig instance (defaults if no file exists).

    Raises:
        CollabConfigError: the file is not valid YAML or fails validation.
    """
    global _config

    if config_path is None:
        config_path = str(_find_project_root() / CONFIG_FILENAME)

    path = Path(config_path)
    if not path.exists():
        _config = CollabConfig()
        return _config

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise CollabConfigError(f"Invalid YAML in {path}: {e}", config_path=str(path)) from e

    if not isinstance(raw, dict):
        raise CollabConfigError(
            f"{path} must contain a mapping at the top level",
            config_path=str(path),
        )

    # Allow the service name/environment under a top-level "collabcore:" key
    service_data = raw.pop("collabcore", None) or {}
    for key in ("name", "environment"):
        if key in service_data and key not in raw:
            raw[key] = service_data[key]

    try:
        _config = CollabConfig(**raw)
    except ValidationError as e:
        raise CollabConfigError(
            f"Invalid configuration in {path}",
            config_path=str(path),
            validation_errors=e.errors(),
        ) from e
    return _config


def get_config() -> CollabConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def set_config(config: CollabConfig) -> None:
    """Install an explicit config (tests, embedded use)."""
    global _config
    _config = config
