"""Persisted sync state package."""

from .models import Base, SyncMetaModel, SyncStateEntry, SyncStateModel
from .database import StateDatabaseManager, state_file_name
from .repository import SyncStateRepository
from .store import StateStoreError, SyncStateStore

__all__ = [
    # Models
    "Base",
    "SyncMetaModel",
    "SyncStateEntry",
    "SyncStateModel",

    # Database
    "StateDatabaseManager",
    "state_file_name",
    "SyncStateRepository",

    # Store
    "StateStoreError",
    "SyncStateStore",
]
