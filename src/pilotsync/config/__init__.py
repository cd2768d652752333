"""Configuration package for pilotsync; profiles live in the schema, loader and manager modules."""

from .settings import (
    AppSettings,
    LocalStoreSettings,
    LoggingSettings,
    StateSettings,
    SyncSettings,
    get_settings,
    reload_settings,
)

__all__ = [
    "AppSettings",
    "LocalStoreSettings",
    "LoggingSettings",
    "StateSettings",
    "SyncSettings",
    "get_settings",
    "reload_settings",
]
