"""Base backend interface and the record types shared by all backends."""

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Generic, List, Optional, TypeVar

from ..utils.hashing import hash_content
from ..utils.logging import get_logger


T = TypeVar("T")


class RecordKind(str, Enum):
    """Kinds of records a collection can hold."""
    MEMO = "memo"
    CONTACT = "contact"
    EVENT = "event"
    TODO = "todo"
    UNKNOWN = "unknown"


class ErrorKind(str, Enum):
    """Failure categories reported by backends and the engine."""
    BACKEND_UNAVAILABLE = "backend_unavailable"
    NOT_FOUND = "not_found"
    IO_FAILURE = "io_failure"
    NAME_COLLISION_EXHAUSTED = "name_collision_exhausted"
    CONFLICT_UNRESOLVED = "conflict_unresolved"
    INVALID_RECORD = "invalid_record"
    INVALID_CONFIGURATION = "invalid_configuration"


@dataclass(frozen=True)
class Record:
    """A single record as loaded from one side.

    Records are values: the content hash is derived from the payload when
    the record is built and cannot be supplied or changed afterwards.
    """

    identity: str
    payload: bytes
    last_modified: Optional[datetime] = None
    is_deleted: bool = False
    kind: RecordKind = RecordKind.UNKNOWN
    display_name: Optional[str] = None
    collection_id: Optional[str] = None
    content_hash: str = field(init=False, compare=False)

    def __post_init__(self):
        object.__setattr__(self, "content_hash", hash_content(self.payload))

    @property
    def label(self) -> str:
        """Human-readable label for progress reporting."""
        if self.display_name:
            return self.display_name
        return os.path.basename(self.identity) or self.identity

    def with_payload(self, payload: bytes, last_modified: Optional[datetime] = None) -> "Record":
        """Return a copy carrying a new payload and a recomputed hash."""
        return replace(
            self,
            payload=payload,
            last_modified=last_modified or self.last_modified,
        )

    def with_identity(self, identity: str) -> "Record":
        """Return a copy addressed to another identity."""
        return replace(self, identity=identity)


@dataclass(frozen=True)
class CollectionDescriptor:
    """Describes one named collection on a backend."""

    id: str
    display_name: str
    storage_locator: Optional[str] = None
    kind: RecordKind = RecordKind.UNKNOWN
    is_builtin: bool = False

    @property
    def locator(self) -> str:
        """Backend-specific location, defaulting to the collection id."""
        return self.storage_locator or self.id


@dataclass(frozen=True)
class BackendError:
    """Error detail carried by a failed backend result."""

    kind: ErrorKind
    message: str
    identity: Optional[str] = None

    def __str__(self) -> str:
        if self.identity:
            return f"{self.kind.value}: {self.message} ({self.identity})"
        return f"{self.kind.value}: {self.message}"


@dataclass(frozen=True)
class BackendResult(Generic[T]):
    """Outcome of a backend operation; backends never raise across their boundary."""

    ok: bool
    value: Optional[T] = None
    error: Optional[BackendError] = None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "BackendResult[T]":
        """Build a successful result."""
        return cls(ok=True, value=value)

    @classmethod
    def failure(
        cls,
        kind: ErrorKind,
        message: str,
        identity: Optional[str] = None
    ) -> "BackendResult[T]":
        """Build a failed result."""
        return cls(ok=False, error=BackendError(kind, message, identity))

    @property
    def error_kind(self) -> Optional[ErrorKind]:
        """Kind of the carried error, if any."""
        return self.error.kind if self.error else None


class Backend(ABC):
    """Abstract base class for record stores taking part in a sync."""

    backend_id: str = "backend"
    display_name: str = "Backend"
    supports_delete_tracking: bool = False

    def __init__(self, **kwargs):
        self.logger = get_logger(self.__class__.__name__)

    @abstractmethod
    def is_available(self) -> bool:
        """Report whether the store can be used right now, without side effects."""

    @abstractmethod
    def list_collections(self) -> BackendResult[List[CollectionDescriptor]]:
        """List the collections this store knows about."""

    @abstractmethod
    def ensure_collection(self, descriptor: CollectionDescriptor) -> BackendResult[str]:
        """Make sure a collection exists; calling it again is harmless.

        Returns:
            Result carrying the collection id
        """

    @abstractmethod
    def load_all(self, collection_id: str) -> BackendResult[List[Record]]:
        """Load every record of a collection, tombstones included."""

    @abstractmethod
    def load_one(self, identity: str) -> BackendResult[Optional[Record]]:
        """Load a single record; the value is None when it no longer exists."""

    @abstractmethod
    def create(self, collection_id: str, record: Record) -> BackendResult[str]:
        """Store a new record.

        Args:
            collection_id: Target collection
            record: Record to store; its identity is ignored

        Returns:
            Result carrying the identity assigned by this store
        """

    @abstractmethod
    def update(self, record: Record) -> BackendResult[None]:
        """Replace the payload of an existing record.

        Fails with NOT_FOUND when the identity does not exist.
        """

    @abstractmethod
    def delete(self, identity: str) -> BackendResult[None]:
        """Delete a record; deleting a missing identity succeeds."""

    @abstractmethod
    def changed_since(self, collection_id: str, timestamp: datetime) -> BackendResult[List[Record]]:
        """Records modified after the timestamp.

        Stores without delete tracking only report modifications here.
        """

    def deleted_since(self, collection_id: str, timestamp: datetime) -> BackendResult[List[str]]:
        """Identities deleted after the timestamp, when the store tracks deletions."""
        return BackendResult.success([])

    def purge_deleted(self, identity: str) -> BackendResult[None]:
        """Acknowledge a propagated deletion so the store can drop its tombstone."""
        return BackendResult.success(None)

    def get_backend_info(self) -> Dict[str, Any]:
        """Get information about this backend.

        Returns:
            Dictionary describing the backend
        """
        return {
            "backend_id": self.backend_id,
            "display_name": self.display_name,
            "backend_type": self.__class__.__name__,
            "supports_delete_tracking": self.supports_delete_tracking,
            "available": self.is_available(),
        }
