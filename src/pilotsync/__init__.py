"""Record synchronization between handheld device databases and local collection stores."""

from .backends import (
    Backend,
    BackendFactory,
    BackendResult,
    BackendType,
    CollectionDescriptor,
    ErrorKind,
    FileLayout,
    InMemoryBackend,
    LocalFileBackend,
    Record,
    RecordKind,
)
from .core import (
    ConflictInfo,
    ConflictPolicy,
    OutcomeStatus,
    SessionResult,
    SessionState,
    SyncBusyError,
    SyncEngine,
    SyncEngineError,
    SyncMode,
    SyncObserver,
)
from .state import SyncStateEntry, SyncStateStore

__version__ = "1.0.0"

__all__ = [
    "Backend",
    "BackendFactory",
    "BackendResult",
    "BackendType",
    "CollectionDescriptor",
    "ErrorKind",
    "FileLayout",
    "InMemoryBackend",
    "LocalFileBackend",
    "Record",
    "RecordKind",
    "ConflictInfo",
    "ConflictPolicy",
    "OutcomeStatus",
    "SessionResult",
    "SessionState",
    "SyncBusyError",
    "SyncEngine",
    "SyncEngineError",
    "SyncMode",
    "SyncObserver",
    "SyncStateEntry",
    "SyncStateStore",
]
