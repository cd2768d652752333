"""Core synchronization components."""

from .resolver import (
    ConflictPolicy,
    ConflictResolver,
    RecordStatus,
    SyncAction,
    SyncMode,
    is_conflict,
)

from .conduit import Conduit, ConduitOrderError, order_conduits
from .planner import RecordPair, build_pairs
from .results import (
    ConflictInfo,
    OutcomeStatus,
    PairOutcome,
    SessionResult,
    SessionState,
    SideStats,
)
from .observer import SyncObserver
from .sync_engine import SyncBusyError, SyncEngine, SyncEngineError

__all__ = [
    # Resolution
    "ConflictPolicy",
    "ConflictResolver",
    "RecordStatus",
    "SyncAction",
    "SyncMode",
    "is_conflict",

    # Conduits and pairing
    "Conduit",
    "ConduitOrderError",
    "order_conduits",
    "RecordPair",
    "build_pairs",

    # Results and events
    "ConflictInfo",
    "OutcomeStatus",
    "PairOutcome",
    "SessionResult",
    "SessionState",
    "SideStats",
    "SyncObserver",

    # Engine
    "SyncBusyError",
    "SyncEngine",
    "SyncEngineError",
]
