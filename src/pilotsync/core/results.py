"""Result types reported by a synchronization session."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import List, Optional

from ..backends.base import ErrorKind, Record
from .resolver import RecordStatus, SyncAction


class SessionState(str, Enum):
    """Lifecycle of a sync session."""
    IDLE = "idle"
    PREPARING = "preparing"
    SYNCING = "syncing"
    CANCELLED = "cancelled"
    FAILED = "failed"
    COMPLETED = "completed"


class OutcomeStatus(str, Enum):
    """How a single pair ended up."""
    SYNCED = "synced"
    UNCHANGED = "unchanged"
    SKIPPED = "skipped"
    CONFLICTED = "conflicted"
    FAILED = "failed"


@dataclass
class SideStats:
    """Mutations applied to one side."""

    created: int = 0
    updated: int = 0
    deleted: int = 0

    @property
    def total(self) -> int:
        """All mutations on this side."""
        return self.created + self.updated + self.deleted


@dataclass
class PairOutcome:
    """Result for one record pair."""

    collection_id: str
    pair_key: str
    label: str
    local_status: RecordStatus
    remote_status: RecordStatus
    action: SyncAction
    status: OutcomeStatus
    mutations: int = 0
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None


@dataclass(frozen=True)
class ConflictInfo:
    """A conflict handed to the conflict handler and observers."""

    collection_id: str
    pair_key: str
    local_status: RecordStatus
    remote_status: RecordStatus
    local: Optional[Record] = None
    remote: Optional[Record] = None

    @property
    def label(self) -> str:
        """Label of whichever side still has the record."""
        record = self.local or self.remote
        return record.label if record else self.pair_key


@dataclass
class SessionResult:
    """Aggregated result of one sync session."""

    state: SessionState = SessionState.IDLE
    outcomes: List[PairOutcome] = field(default_factory=list)
    collections: List[str] = field(default_factory=list)
    local_stats: SideStats = field(default_factory=SideStats)
    remote_stats: SideStats = field(default_factory=SideStats)
    warnings: List[str] = field(default_factory=list)
    error_kind: Optional[ErrorKind] = None
    error_message: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    def _count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)

    @property
    def synced_count(self) -> int:
        """Pairs whose data was changed on at least one side."""
        return self._count(OutcomeStatus.SYNCED)

    @property
    def unchanged_count(self) -> int:
        """Pairs that needed no record I/O."""
        return self._count(OutcomeStatus.UNCHANGED)

    @property
    def skipped_count(self) -> int:
        """Conflicts left alone by the skip policy."""
        return self._count(OutcomeStatus.SKIPPED)

    @property
    def conflicted_count(self) -> int:
        """Escalated conflicts that received no resolution."""
        return self._count(OutcomeStatus.CONFLICTED)

    @property
    def failed_count(self) -> int:
        """Pairs that failed with a backend error."""
        return self._count(OutcomeStatus.FAILED)

    @property
    def applied_mutations(self) -> int:
        """Creates, updates and deletes performed on either side."""
        return sum(outcome.mutations for outcome in self.outcomes)

    @property
    def success(self) -> bool:
        """Session completed without failed pairs."""
        return self.state == SessionState.COMPLETED and self.failed_count == 0

    @property
    def duration(self) -> Optional[float]:
        """Session duration in seconds."""
        if self.started_at is None or self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def outcome_for(self, collection_id: str, pair_key: str) -> Optional[PairOutcome]:
        """Find the outcome of a pair."""
        for outcome in self.outcomes:
            if outcome.collection_id == collection_id and outcome.pair_key == pair_key:
                return outcome
        return None

    def summary(self) -> str:
        """One-line human-readable summary."""
        parts = [
            f"{self.state.value}:",
            f"{self.synced_count} synced,",
            f"{self.unchanged_count} unchanged,",
            f"{self.skipped_count} skipped,",
            f"{self.conflicted_count} conflicted,",
            f"{self.failed_count} failed",
            f"(local +{self.local_stats.created} ~{self.local_stats.updated} -{self.local_stats.deleted},",
            f"remote +{self.remote_stats.created} ~{self.remote_stats.updated} -{self.remote_stats.deleted})",
        ]
        if self.error_message:
            parts.append(f"error: {self.error_message}")
        return " ".join(parts)
