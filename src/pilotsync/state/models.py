"""Database models for persisted sync state."""

from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, DateTime, String, Text
from sqlalchemy.orm import declarative_base
from pydantic import BaseModel, ConfigDict, field_validator, model_validator


Base = declarative_base()

STATE_SCHEMA_VERSION = 1


# SQLAlchemy Models (Database Tables)

class SyncStateModel(Base):
    """One row per paired record: what both sides held at the last sync."""

    __tablename__ = "sync_state"

    pair_key = Column(String(512), primary_key=True)
    collection_id = Column(String(255), nullable=False, index=True)
    local_identity = Column(Text, nullable=True, unique=True)
    remote_identity = Column(Text, nullable=True, unique=True)
    last_synced_hash = Column(String(64), nullable=False)
    last_synced_at = Column(DateTime, nullable=False)

    def __repr__(self):
        """Short representation for debugging."""
        return (
            f"<SyncStateModel(pair_key='{self.pair_key}', "
            f"local='{self.local_identity}', remote='{self.remote_identity}')>"
        )


class SyncMetaModel(Base):
    """Key/value metadata kept next to the state rows."""

    __tablename__ = "sync_meta"

    key = Column(String(100), primary_key=True)
    value = Column(Text, nullable=True)


# Pydantic Models (Transfer Objects)

class SyncStateEntry(BaseModel):
    """Persisted knowledge about one record pair."""

    model_config = ConfigDict(from_attributes=True, frozen=True)

    collection_id: str
    pair_key: str
    local_identity: Optional[str] = None
    remote_identity: Optional[str] = None
    last_synced_hash: str
    last_synced_at: datetime

    @field_validator("last_synced_at")
    @classmethod
    def ensure_utc(cls, v: datetime) -> datetime:
        """SQLite hands timestamps back without a zone; they are stored as UTC."""
        if v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v.astimezone(timezone.utc)

    @model_validator(mode="after")
    def check_identities(self) -> "SyncStateEntry":
        """An entry must reference at least one side."""
        if not self.local_identity and not self.remote_identity:
            raise ValueError("A sync state entry needs a local or a remote identity")
        return self

    @property
    def is_paired(self) -> bool:
        """Both sides hold the record."""
        return bool(self.local_identity and self.remote_identity)
