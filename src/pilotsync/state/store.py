"""Durable store for per-pair sync state."""

from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Union

from sqlalchemy.exc import SQLAlchemyError

from .database import StateDatabaseManager
from .models import SyncStateEntry
from .repository import LAST_SYNC_KEY, SyncStateRepository
from ..utils.logging import get_logger


class StateStoreError(Exception):
    """Raised when the sync state cannot be read or written."""
    pass


class SyncStateStore:
    """Persisted sync state, one database per collection.

    Every write is committed before the call returns, so a crash can lose at
    most the write that was in progress.
    """

    def __init__(self, state_directory: Union[str, Path]):
        """Initialize the state store.

        Args:
            state_directory: Directory holding the state databases
        """
        self.logger = get_logger(self.__class__.__name__)
        self.db_manager = StateDatabaseManager(state_directory)

    @property
    def state_directory(self) -> Path:
        """Directory holding the state databases."""
        return self.db_manager.state_directory

    def get(self, collection_id: str, pair_key: str) -> Optional[SyncStateEntry]:
        """Get the entry for a pair, if any."""
        try:
            with self.db_manager.session_scope(collection_id) as session:
                row = SyncStateRepository(session).get(pair_key)
                return SyncStateEntry.model_validate(row) if row else None
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to read state for {pair_key}: {e}") from e

    def put(self, entry: SyncStateEntry) -> None:
        """Insert or replace an entry."""
        try:
            with self.db_manager.session_scope(entry.collection_id) as session:
                SyncStateRepository(session).upsert(entry)
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to write state for {entry.pair_key}: {e}") from e

    def remove(self, collection_id: str, pair_key: str) -> None:
        """Remove an entry; removing a missing entry is a no-op."""
        try:
            with self.db_manager.session_scope(collection_id) as session:
                SyncStateRepository(session).delete(pair_key)
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to remove state for {pair_key}: {e}") from e

    def all_for_collection(self, collection_id: str) -> List[SyncStateEntry]:
        """All entries of a collection, ordered by pair key."""
        try:
            with self.db_manager.session_scope(collection_id) as session:
                rows = SyncStateRepository(session).get_all(collection_id)
                return [SyncStateEntry.model_validate(row) for row in rows]
        except SQLAlchemyError as e:
            raise StateStoreError(f"Failed to read state for {collection_id}: {e}") from e

    def find_by_local_identity(self, collection_id: str, identity: str) -> Optional[SyncStateEntry]:
        """Entry paired with a local identity."""
        with self.db_manager.session_scope(collection_id) as session:
            row = SyncStateRepository(session).find_by_local_identity(identity)
            return SyncStateEntry.model_validate(row) if row else None

    def find_by_remote_identity(self, collection_id: str, identity: str) -> Optional[SyncStateEntry]:
        """Entry paired with a remote identity."""
        with self.db_manager.session_scope(collection_id) as session:
            row = SyncStateRepository(session).find_by_remote_identity(identity)
            return SyncStateEntry.model_validate(row) if row else None

    def last_sync_time(self, collection_id: str) -> Optional[datetime]:
        """When the collection last finished a sync."""
        with self.db_manager.session_scope(collection_id) as session:
            value = SyncStateRepository(session).get_meta(LAST_SYNC_KEY)
        if not value:
            return None
        parsed = datetime.fromisoformat(value)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)

    def set_last_sync_time(self, collection_id: str, when: datetime) -> None:
        """Record when the collection finished a sync."""
        with self.db_manager.session_scope(collection_id) as session:
            SyncStateRepository(session).set_meta(LAST_SYNC_KEY, when.isoformat())

    def is_first_sync(self, collection_id: str) -> bool:
        """No pair has ever been recorded for the collection."""
        return self.last_sync_time(collection_id) is None and not self.all_for_collection(collection_id)

    def clear(self, collection_id: str) -> int:
        """Forget all state of a collection, forcing a fresh first sync."""
        with self.db_manager.session_scope(collection_id) as session:
            count = SyncStateRepository(session).delete_all(collection_id)
        self.logger.info("Sync state cleared", collection_id=collection_id, entries=count)
        return count

    def close(self) -> None:
        """Close the underlying databases."""
        self.db_manager.close()
