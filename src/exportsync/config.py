"""Typed configuration: single source of truth for all exportsync settings.

Loading priority (highest to lowest):
  1. Explicit init kwargs (programmatic overrides, tests)
  2. Environment variables: EXPORTSYNC_<SECTION>__<KEY>  (double-underscore separator)
  3. Config file: EXPORTSYNC_CONFIG_FILE env var, or conf/settings.toml at project root
  4. Model field defaults

Example env overrides:
  EXPORTSYNC_STORAGE__CONNECTION_STRING="DefaultEndpointsProtocol=https;…"
  EXPORTSYNC_AXIOM__TOKEN=xapt-…
  EXPORTSYNC_SCHEDULER__WORKER_POOL_SIZE=16
  EXPORTSYNC_LOGGING__LEVEL=DEBUG
"""

import os
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, SecretStr, ValidationInfo, field_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    TomlConfigSettingsSource,
)

# Derive project root from this file's location: src/exportsync/config.py → ../../..
_PROJECT_ROOT = Path(__file__).parent.parent.parent
_DEFAULT_CONFIG = _PROJECT_ROOT / "conf" / "settings.toml"


def _config_file() -> Path:
    """Resolve the config file path.

    Returns EXPORTSYNC_CONFIG_FILE if set (raises FileNotFoundError if missing),
    otherwise returns the bundled default at conf/settings.toml.
    """
    if env_val := os.environ.get("EXPORTSYNC_CONFIG_FILE"):
        p = Path(env_val)
        if not p.is_file():
            raise FileNotFoundError(f"EXPORTSYNC_CONFIG_FILE not found: {p}")
        return p
    return _DEFAULT_CONFIG


# ---------------------------------------------------------------------------
# Section models: each maps to a [section] in conf/settings.toml
# ---------------------------------------------------------------------------


class StorageSettings(BaseModel):
    """Where export files are read from."""

    backend: Literal["azure", "local"] = "azure"
    # Azure: a connection string wins over account_url + DefaultAzureCredential.
    account_url: str = ""
    connection_string: SecretStr = SecretStr("")
    # Local: directory whose subdirectories stand in for containers.
    local_root: Path = Path("export")
    # Log Analytics data export names every container am-<table>.
    container_prefix: str = "am-"
    page_size: int = 5000

    @field_validator("page_size")
    @classmethod
    def _positive_page_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"page_size must be at least 1, got {v}")
        return v


class AxiomSettings(BaseModel):
    """Where export files are delivered."""

    url: str = "https://api.axiom.co"
    token: SecretStr = SecretStr("")
    # Only needed with personal tokens.
    org_id: str = ""
    dataset_prefix: str = ""
    dataset_description: str = "imported from Sentinel"
    timestamp_field: str = "TimeGenerated"
    timeout_seconds: float = 60.0


class SchedulerSettings(BaseModel):
    """Concurrency and pacing of the sync cycle."""

    # More workers == more streams transferred concurrently.
    worker_pool_size: int = 8
    max_queued: int = 16
    cycle_interval_seconds: float = 30.0
    backoff_initial_seconds: float = 1.0
    backoff_max_seconds: float = 60.0

    @field_validator("worker_pool_size")
    @classmethod
    def _positive_pool(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"worker_pool_size must be at least 1, got {v}")
        return v

    @field_validator("max_queued")
    @classmethod
    def _non_negative_queue(cls, v: int) -> int:
        if v < 0:
            raise ValueError(f"max_queued must not be negative, got {v}")
        return v

    @field_validator("cycle_interval_seconds", "backoff_initial_seconds", "backoff_max_seconds")
    @classmethod
    def _non_negative_seconds(cls, v: float, info: ValidationInfo) -> float:
        if v < 0:
            raise ValueError(f"{info.field_name} must not be negative, got {v}")
        return v


class LoggingSettings(BaseModel):
    """Logging verbosity and output format."""

    level: str = "INFO"
    format: Literal["json", "text"] = "json"

    @field_validator("level", mode="before")
    @classmethod
    def _normalise_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"level must be one of {sorted(valid)}, got {v!r}")
        return v.upper()


# ---------------------------------------------------------------------------
# Root settings class
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """All exportsync runtime settings, fully resolved and validated."""

    storage: StorageSettings = StorageSettings()
    axiom: AxiomSettings = AxiomSettings()
    scheduler: SchedulerSettings = SchedulerSettings()
    logging: LoggingSettings = LoggingSettings()

    model_config = SettingsConfigDict(
        env_prefix="EXPORTSYNC_",
        env_nested_delimiter="__",  # EXPORTSYNC_AXIOM__TOKEN → axiom.token
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Exclude dotenv and file-secret sources; exportsync uses TOML + env only.
        return (
            init_settings,
            env_settings,
            TomlConfigSettingsSource(settings_cls, toml_file=_config_file()),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the process-wide Settings instance (loaded once, cached thereafter).

    Tests should call ``get_settings.cache_clear()`` before each test that
    patches environment variables or the config file.
    """
    return Settings()
