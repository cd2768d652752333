"""In-memory record store that behaves like a handheld device database."""

import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional

from .base import (
    Backend,
    BackendResult,
    CollectionDescriptor,
    ErrorKind,
    Record,
    RecordKind,
)


@dataclass
class _StoredRecord:
    collection_id: str
    payload: bytes
    kind: RecordKind
    display_name: Optional[str]
    last_modified: Optional[datetime]
    is_deleted: bool = False
    deleted_at: Optional[datetime] = None


class InMemoryBackend(Backend):
    """Device-style backend keeping records in memory.

    Records get numeric identities. With tombstones enabled, deleting a
    record only marks it deleted until the deletion is acknowledged with
    ``purge_deleted`` (or the record is deleted a second time).
    """

    backend_id = "memory"
    display_name = "In-Memory Store"
    supports_delete_tracking = True

    def __init__(
        self,
        collections: Optional[List[CollectionDescriptor]] = None,
        use_tombstones: bool = True,
        clock: Optional[Callable[[], datetime]] = None,
        **kwargs
    ):
        """Initialize the in-memory backend.

        Args:
            collections: Collections present from the start
            use_tombstones: Keep deleted records as tombstones
            clock: Source of modification timestamps
        """
        super().__init__(**kwargs)
        self.use_tombstones = use_tombstones
        self.available = True
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._lock = threading.RLock()
        self._next_id = 1
        self._records: Dict[str, _StoredRecord] = {}
        self._collections: Dict[str, CollectionDescriptor] = {
            descriptor.id: descriptor for descriptor in (collections or [])
        }

    def is_available(self) -> bool:
        """Availability is switched through the ``available`` attribute."""
        return self.available

    def list_collections(self) -> BackendResult[List[CollectionDescriptor]]:
        """List known collections."""
        if not self.available:
            return self._unavailable()
        with self._lock:
            return BackendResult.success(list(self._collections.values()))

    def ensure_collection(self, descriptor: CollectionDescriptor) -> BackendResult[str]:
        """Register the collection if it is not known yet."""
        if not self.available:
            return self._unavailable()
        with self._lock:
            self._collections.setdefault(descriptor.id, descriptor)
        return BackendResult.success(descriptor.id)

    def load_all(self, collection_id: str) -> BackendResult[List[Record]]:
        """Load all records of a collection, tombstones included."""
        if not self.available:
            return self._unavailable()
        with self._lock:
            return BackendResult.success([
                self._to_record(identity, stored)
                for identity, stored in sorted(self._records.items(), key=lambda item: int(item[0]))
                if stored.collection_id == collection_id
            ])

    def load_one(self, identity: str) -> BackendResult[Optional[Record]]:
        """Load a single record by its handle."""
        if not self.available:
            return self._unavailable()
        with self._lock:
            stored = self._records.get(identity)
            return BackendResult.success(self._to_record(identity, stored) if stored else None)

    def create(self, collection_id: str, record: Record) -> BackendResult[str]:
        """Store a new record under the next free handle."""
        if not self.available:
            return self._unavailable()
        with self._lock:
            identity = str(self._next_id)
            self._next_id += 1
            self._records[identity] = _StoredRecord(
                collection_id=collection_id,
                payload=record.payload,
                kind=record.kind,
                display_name=record.display_name,
                last_modified=self._clock(),
            )
        return BackendResult.success(identity)

    def update(self, record: Record) -> BackendResult[None]:
        """Replace a live record's payload."""
        if not self.available:
            return self._unavailable()
        with self._lock:
            stored = self._records.get(record.identity)
            if stored is None or stored.is_deleted:
                return BackendResult.failure(ErrorKind.NOT_FOUND, "No such record", record.identity)
            stored.payload = record.payload
            stored.last_modified = self._clock()
            if record.display_name:
                stored.display_name = record.display_name
        return BackendResult.success(None)

    def delete(self, identity: str) -> BackendResult[None]:
        """Delete a record, leaving a tombstone when tombstones are enabled."""
        if not self.available:
            return self._unavailable()
        with self._lock:
            stored = self._records.get(identity)
            if stored is None:
                return BackendResult.success(None)
            if self.use_tombstones and not stored.is_deleted:
                stored.is_deleted = True
                stored.deleted_at = self._clock()
            else:
                del self._records[identity]
        return BackendResult.success(None)

    def purge_deleted(self, identity: str) -> BackendResult[None]:
        """Drop a tombstone once its deletion has been propagated."""
        if not self.available:
            return self._unavailable()
        with self._lock:
            stored = self._records.get(identity)
            if stored is not None and stored.is_deleted:
                del self._records[identity]
        return BackendResult.success(None)

    def changed_since(self, collection_id: str, timestamp: datetime) -> BackendResult[List[Record]]:
        """Live records modified after the timestamp."""
        loaded = self.load_all(collection_id)
        if not loaded.ok:
            return loaded
        return BackendResult.success([
            record for record in loaded.value
            if not record.is_deleted and record.last_modified and record.last_modified > timestamp
        ])

    def deleted_since(self, collection_id: str, timestamp: datetime) -> BackendResult[List[str]]:
        """Handles of tombstones created after the timestamp."""
        if not self.available:
            return self._unavailable()
        with self._lock:
            return BackendResult.success([
                identity for identity, stored in self._records.items()
                if stored.collection_id == collection_id and stored.is_deleted
                and stored.deleted_at is not None and stored.deleted_at > timestamp
            ])

    def put(
        self,
        collection_id: str,
        payload: bytes,
        display_name: Optional[str] = None,
        kind: RecordKind = RecordKind.UNKNOWN,
        last_modified: Optional[datetime] = None
    ) -> str:
        """Seed a record directly, as if it had been edited on the device.

        Returns:
            The new record's handle
        """
        with self._lock:
            identity = str(self._next_id)
            self._next_id += 1
            self._records[identity] = _StoredRecord(
                collection_id=collection_id,
                payload=payload,
                kind=kind,
                display_name=display_name,
                last_modified=last_modified or self._clock(),
            )
        return identity

    def edit(self, identity: str, payload: bytes, last_modified: Optional[datetime] = None) -> None:
        """Change a record's payload in place, as a device user would."""
        with self._lock:
            stored = self._records[identity]
            stored.payload = payload
            stored.last_modified = last_modified or self._clock()

    def count(self, collection_id: str, include_deleted: bool = False) -> int:
        """Number of records in a collection."""
        with self._lock:
            return sum(
                1 for stored in self._records.values()
                if stored.collection_id == collection_id and (include_deleted or not stored.is_deleted)
            )

    def _to_record(self, identity: str, stored: _StoredRecord) -> Record:
        return Record(
            identity=identity,
            payload=stored.payload,
            last_modified=stored.deleted_at if stored.is_deleted else stored.last_modified,
            is_deleted=stored.is_deleted,
            kind=stored.kind,
            display_name=stored.display_name,
            collection_id=stored.collection_id,
        )

    def _unavailable(self) -> BackendResult:
        return BackendResult.failure(ErrorKind.BACKEND_UNAVAILABLE, "Store is not available")
