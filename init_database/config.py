"""
Application configuration management.

Load order (each layer overrides the previous):
  1. ``config/default.toml``      — committed static defaults
  2. ``config/local.toml``        — optional local overrides (gitignored)
  3. ``.env``                     — local secrets and env overrides (gitignored)
  4. Environment variables        — ``INIT_DATABASE_*`` prefix

Entry point: ``load_config(config_path=None) -> AppConfig``

``DatabaseConfig`` doubles as the validated form of the raw connection
parameters accepted by ``Connection`` and ``Database``.
"""

from __future__ import annotations

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, field_validator

logger = logging.getLogger(__name__)

# ── Sub-config models ─────────────────────────────────────────────────────────


class DatabaseConfig(BaseModel):
    """SQLite connection settings.

    Unknown keys are rejected so a misspelt connection parameter fails at
    construction instead of being silently ignored.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    db_path: str = "data/db/app.db"
    wal_mode: bool = True
    busy_timeout_ms: int = 5000
    foreign_keys: bool = True
    query_log: bool = False

    @field_validator("busy_timeout_ms")
    @classmethod
    def validate_busy_timeout(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"busy_timeout_ms must be >= 0, got {v}.")
        return v


class TransactionConfig(BaseModel):
    """Defaults for ``Database.transaction()``."""

    model_config = ConfigDict(frozen=True)

    default_attempts: int = 1

    @field_validator("default_attempts")
    @classmethod
    def validate_attempts(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"default_attempts must be >= 1, got {v}.")
        return v


class LoggingConfig(BaseModel):
    """Logging output settings."""

    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    log_file: Optional[str] = None
    json_format: bool = False

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"Log level must be one of {sorted(valid)}, got '{v}'.")
        return v.upper()


class AppConfig(BaseModel):
    """Complete application configuration.

    Constructed by ``load_config()`` which merges TOML + .env + environment.
    """

    model_config = ConfigDict(frozen=True)

    database: DatabaseConfig = DatabaseConfig()
    transaction: TransactionConfig = TransactionConfig()
    logging: LoggingConfig = LoggingConfig()
    debug: bool = False


# ── Loader ────────────────────────────────────────────────────────────────────

_PROJECT_ROOT = Path(__file__).parent.parent


def _find_project_root() -> Path:
    """Walk up from this file to find the project root (contains pyproject.toml)."""
    candidate = Path(__file__).parent
    for _ in range(5):
        if (candidate / "pyproject.toml").exists():
            return candidate
        candidate = candidate.parent
    return _PROJECT_ROOT


def load_config(config_path: Optional[Path] = None) -> AppConfig:
    """Load and merge application configuration.

    Args:
        config_path: Explicit path to a TOML config file. Defaults to
            ``<project_root>/config/default.toml``; when that default file is
            absent (e.g. an installed package) built-in defaults are used.

    Returns:
        Fully validated ``AppConfig`` instance.

    Raises:
        FileNotFoundError: If an explicitly given ``config_path`` does not exist.
        pydantic.ValidationError: If merged config values fail validation.
    """
    root = _find_project_root()

    load_dotenv(dotenv_path=root / ".env", override=False)

    raw: dict[str, Any] = {}
    if config_path is None:
        default_path = root / "config" / "default.toml"
        if default_path.exists():
            raw = _read_toml_with_local(default_path)
        else:
            logger.debug("No config file at %s; using built-in defaults.", default_path)
    else:
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
        raw = _read_toml_with_local(config_path)

    raw = _apply_env_overrides(raw)

    return _build_app_config(raw)


def _read_toml_with_local(config_path: Path) -> dict[str, Any]:
    with open(config_path, "rb") as f:
        raw: dict[str, Any] = tomllib.load(f)

    local_config_path = config_path.parent / "local.toml"
    if local_config_path.exists():
        with open(local_config_path, "rb") as f:
            raw = _deep_merge(raw, tomllib.load(f))
    return raw


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into ``base``."""
    result = dict(base)
    for key, val in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(val, dict):
            result[key] = _deep_merge(result[key], val)
        else:
            result[key] = val
    return result


def _apply_env_overrides(raw: dict[str, Any]) -> dict[str, Any]:
    """Apply INIT_DATABASE_* env vars to the raw config dict.

    Supported overrides:
      INIT_DATABASE_DB_PATH    → raw["database"]["db_path"]
      INIT_DATABASE_QUERY_LOG  → raw["database"]["query_log"]
      INIT_DATABASE_LOG_LEVEL  → raw["logging"]["level"]
      INIT_DATABASE_DEBUG      → raw["debug"]
    """
    if db_path := os.environ.get("INIT_DATABASE_DB_PATH"):
        raw.setdefault("database", {})["db_path"] = db_path

    if query_log := os.environ.get("INIT_DATABASE_QUERY_LOG"):
        raw.setdefault("database", {})["query_log"] = _truthy(query_log)

    if log_level := os.environ.get("INIT_DATABASE_LOG_LEVEL"):
        raw.setdefault("logging", {})["level"] = log_level

    if debug := os.environ.get("INIT_DATABASE_DEBUG"):
        raw["debug"] = _truthy(debug)

    return raw


def _truthy(value: str) -> bool:
    return value.lower() in ("1", "true", "yes")


def _build_app_config(raw: dict[str, Any]) -> AppConfig:
    """Map raw TOML dict to ``AppConfig`` model structure."""
    project = raw.pop("project", {})

    return AppConfig(
        database=DatabaseConfig(**raw.get("database", {})),
        transaction=TransactionConfig(**raw.get("transaction", {})),
        logging=LoggingConfig(**raw.get("logging", {})),
        debug=raw.get("debug", project.get("debug", False)),
    )
