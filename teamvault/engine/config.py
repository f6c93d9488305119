"""
TeamVault Configuration — Load and validate teamvault.yaml at startup.

Usage:
    from teamvault.engine.config import load_config, get_config
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import yaml
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from teamvault.engine.errors import ConfigError

CONFIG_FILENAME = "teamvault.yaml"


# ---------------------------------------------------------------------------
# Pydantic models for teamvault.yaml
# ---------------------------------------------------------------------------

class DatabaseConfig(BaseModel):
    url: str = "sqlite:///.teamvault/teamvault.db"
    pool_size: int = 10
    max_overflow: int = 20
    pool_timeout: int = 30
    pool_recycle: int = 1800
    pool_pre_ping: bool = True
    echo: bool = False


class StorageConfig(BaseModel):
    root: str = ".teamvault/storage"
    originals_dir: str = "originals"
    versions_dir: str = "versions"

    @field_validator("originals_dir", "versions_dir")
    @classmethod
    def validate_namespace(cls, v: str) -> str:
        if not v or "/" in v or "\\" in v or v in (".", ".."):
            raise ValueError(f"storage namespace must be a plain directory name, got '{v}'")
        return v


class SecurityConfig(BaseModel):
    password_min_length: int = 4
    bcrypt_rounds: int = Field(default=12, ge=4, le=31)


class LogAsyncQueueConfig(BaseModel):
    flush_interval_ms: int = 100
    flush_batch_size: int = 50
    max_queue_size: int = 10000


class LoggingConfig(BaseModel):
    level: str = "INFO"
    directory: str = ".teamvault/logs"
    async_queue: LogAsyncQueueConfig = LogAsyncQueueConfig()


class TrashConfig(BaseModel):
    retention_days: int = Field(default=30, ge=0)


class VaultConfig(BaseModel):
    """Root model for teamvault.yaml."""
    name: str = "TeamVault"
    environment: str = "dev"

    database: DatabaseConfig = DatabaseConfig()
    storage: StorageConfig = StorageConfig()
    security: SecurityConfig = SecurityConfig()
    logging: LoggingConfig = LoggingConfig()
    trash: TrashConfig = TrashConfig()

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        if v not in ("dev", "staging", "prod"):
            raise ValueError(f"environment must be dev/staging/prod, got '{v}'")
        return v

    @field_validator("storage")
    @classmethod
    def validate_distinct_namespaces(cls, v: StorageConfig) -> StorageConfig:
        if v.originals_dir == v.versions_dir:
            raise ValueError("originals_dir and versions_dir must differ")
        return v


# ---------------------------------------------------------------------------
# Config Loading Functions
# ---------------------------------------------------------------------------

_config: Optional[VaultConfig] = None


def _find_project_root() -> Path:
    """Find the project root by looking for teamvault.yaml."""
    current = Path.cwd()
    for parent in [current, *current.parents]:
        if (parent / CONFIG_FILENAME).exists():
            return parent
    return current


def load_config(config_path: Optional[str] = None) -> VaultConfig:
    """
    Load and validate teamvault.yaml.

    Args:
        config_path: Explicit path to teamvault.yaml. If None, auto-discovers.

    Returns:
        Validated VaultConfig instance. Defaults when no file exists.

    Raises:
        ConfigError: The file is not valid YAML or fails validation.
    """
    global _config

    if config_path is None:
        config_path = str(_find_project_root() / CONFIG_FILENAME)

    path = Path(config_path)
    if not path.exists():
        _config = VaultConfig()
        return _config

    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Could not parse {path}: {e}", object_ref=str(path)) from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level", object_ref=str(path))

    try:
        _config = VaultConfig(**raw)
    except PydanticValidationError as e:
        raise ConfigError(f"Invalid configuration in {path}: {e}", object_ref=str(path)) from e
    return _config


def get_config() -> VaultConfig:
    """Get the currently loaded config, loading if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the loaded config (used by tests)."""
    global _config
    _config = None
