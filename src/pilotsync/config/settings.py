"""Application configuration settings."""

from typing import Literal, Optional
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class StateSettings(BaseSettings):
    """Sync state storage configuration."""

    directory: str = Field(default="./data/state", description="Directory holding per-collection state files")

    model_config = SettingsConfigDict(env_prefix="PILOTSYNC_STATE_")


class LocalStoreSettings(BaseSettings):
    """Local collection store configuration."""

    base_path: str = Field(default="./data/collections")
    name_attempt_limit: int = Field(default=10000, ge=1)

    model_config = SettingsConfigDict(env_prefix="PILOTSYNC_LOCAL_")


class SyncSettings(BaseSettings):
    """Synchronization behaviour defaults."""

    conflict_policy: Literal["keep_local", "keep_remote", "prefer_newer", "skip", "escalate"] = "keep_local"
    mode: Literal["sync", "copy_local_to_remote", "copy_remote_to_local", "backup"] = "sync"
    parallel_load: bool = Field(default=False)
    volatility_threshold: float = Field(default=70.0, ge=0, le=100)
    volatility_min_records: int = Field(default=5, ge=0)

    model_config = SettingsConfigDict(env_prefix="PILOTSYNC_SYNC_")


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO")
    format: str = Field(default="console")
    file_path: Optional[str] = Field(default=None)

    model_config = SettingsConfigDict(env_prefix="PILOTSYNC_LOG_")


class AppSettings(BaseSettings):
    """Main application settings."""

    state: StateSettings = Field(default_factory=StateSettings)
    local_store: LocalStoreSettings = Field(default_factory=LocalStoreSettings)
    sync: SyncSettings = Field(default_factory=SyncSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix="PILOTSYNC_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )


# Global settings instance
_settings: Optional[AppSettings] = None


def get_settings() -> AppSettings:
    """Get application settings."""
    global _settings
    if _settings is None:
        _settings = AppSettings()
    return _settings


def reload_settings() -> AppSettings:
    """Re-read settings from the environment."""
    global _settings
    _settings = AppSettings()
    return _settings
