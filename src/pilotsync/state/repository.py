"""Row-level operations on the sync state tables."""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from .models import SyncMetaModel, SyncStateModel, SyncStateEntry
from ..utils.logging import get_logger


logger = get_logger("state.repository")

LAST_SYNC_KEY = "last_sync_time"


def _naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


class SyncStateRepository:
    """Repository for sync state rows of one collection database."""

    def __init__(self, session: Session):
        self.session = session

    def get(self, pair_key: str) -> Optional[SyncStateModel]:
        """Get a row by pair key."""
        return self.session.get(SyncStateModel, pair_key)

    def get_all(self, collection_id: str) -> List[SyncStateModel]:
        """All rows of a collection, ordered by pair key."""
        return (
            self.session.query(SyncStateModel)
            .filter(SyncStateModel.collection_id == collection_id)
            .order_by(SyncStateModel.pair_key)
            .all()
        )

    def find_by_local_identity(self, identity: str) -> Optional[SyncStateModel]:
        """Row referencing a local identity."""
        return (
            self.session.query(SyncStateModel)
            .filter(SyncStateModel.local_identity == identity)
            .first()
        )

    def find_by_remote_identity(self, identity: str) -> Optional[SyncStateModel]:
        """Row referencing a remote identity."""
        return (
            self.session.query(SyncStateModel)
            .filter(SyncStateModel.remote_identity == identity)
            .first()
        )

    def upsert(self, entry: SyncStateEntry) -> SyncStateModel:
        """Insert or replace a row.

        Rows under other pair keys that still reference either identity are
        stale mappings and are removed first, so an identity is never claimed
        by two pairs.
        """
        conditions = []
        if entry.local_identity:
            conditions.append(SyncStateModel.local_identity == entry.local_identity)
        if entry.remote_identity:
            conditions.append(SyncStateModel.remote_identity == entry.remote_identity)

        stale = (
            self.session.query(SyncStateModel)
            .filter(SyncStateModel.pair_key != entry.pair_key)
            .filter(or_(*conditions))
            .all()
        )
        for row in stale:
            logger.debug(
                "Dropping stale state mapping",
                pair_key=row.pair_key,
                replaced_by=entry.pair_key
            )
            self.session.delete(row)
        if stale:
            self.session.flush()

        row = self.get(entry.pair_key)
        if row is None:
            row = SyncStateModel(pair_key=entry.pair_key)
            self.session.add(row)

        row.collection_id = entry.collection_id
        row.local_identity = entry.local_identity
        row.remote_identity = entry.remote_identity
        row.last_synced_hash = entry.last_synced_hash
        row.last_synced_at = _naive_utc(entry.last_synced_at)
        self.session.flush()
        return row

    def delete(self, pair_key: str) -> bool:
        """Delete a row; returns whether one existed."""
        row = self.get(pair_key)
        if row is None:
            return False
        self.session.delete(row)
        self.session.flush()
        return True

    def delete_all(self, collection_id: str) -> int:
        """Delete every row of a collection."""
        count = (
            self.session.query(SyncStateModel)
            .filter(SyncStateModel.collection_id == collection_id)
            .delete(synchronize_session=False)
        )
        self.session.query(SyncMetaModel).filter(SyncMetaModel.key == LAST_SYNC_KEY).delete()
        return count

    def get_meta(self, key: str) -> Optional[str]:
        """Read a metadata value."""
        row = self.session.get(SyncMetaModel, key)
        return row.value if row else None

    def set_meta(self, key: str, value: str) -> None:
        """Write a metadata value."""
        row = self.session.get(SyncMetaModel, key)
        if row is None:
            self.session.add(SyncMetaModel(key=key, value=value))
        else:
            row.value = value
        self.session.flush()
