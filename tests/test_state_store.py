"""Tests for the persisted sync state store."""

import os
import sys
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pilotsync.state import SyncStateEntry, SyncStateStore, state_file_name


SYNCED_AT = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


def entry(pair_key: str, local: str = None, remote: str = None, content_hash: str = "h1") -> SyncStateEntry:
    """Build a memos state entry."""
    return SyncStateEntry(
        collection_id="memos",
        pair_key=pair_key,
        local_identity=local,
        remote_identity=remote,
        last_synced_hash=content_hash,
        last_synced_at=SYNCED_AT,
    )


class TestSyncStateEntry:
    """Test the state transfer object."""

    def test_requires_an_identity(self):
        """An entry pointing at neither side is rejected."""
        with pytest.raises(ValidationError):
            entry("local:x")

    def test_naive_timestamps_are_utc(self):
        """Timestamps without a zone are read as UTC."""
        naive = SyncStateEntry(
            collection_id="memos",
            pair_key="k",
            local_identity="a",
            last_synced_hash="h",
            last_synced_at=datetime(2024, 3, 1, 9, 30),
        )
        assert naive.last_synced_at == SYNCED_AT

    def test_is_paired(self):
        """Paired entries reference both sides."""
        assert entry("k", "a", "1").is_paired
        assert not entry("k", "a").is_paired


class TestSyncStateStore:
    """Test storing, replacing and reopening sync state."""

    @pytest.fixture(autouse=True)
    def store(self, tmp_path):
        """Store in a fresh state directory."""
        self.state_dir = tmp_path / "state"
        self.store = SyncStateStore(self.state_dir)
        yield self.store
        self.store.close()

    def test_put_and_get(self):
        """Entries are read back unchanged."""
        self.store.put(entry("local:/a.md", "/a.md", "1"))
        loaded = self.store.get("memos", "local:/a.md")
        assert loaded == entry("local:/a.md", "/a.md", "1")

    def test_get_missing(self):
        """Unknown pairs have no entry."""
        assert self.store.get("memos", "nope") is None

    def test_one_database_per_collection(self):
        """Each collection gets its own database file."""
        self.store.put(entry("k", "/a.md", "1"))
        assert (self.state_dir / "memos.sqlite3").exists()
        assert state_file_name("my/contacts") == "my_contacts.sqlite3"

    def test_all_for_collection_is_sorted(self):
        """Entries come back ordered by pair key."""
        for key in ("remote:3", "local:/b.md", "local:/a.md"):
            self.store.put(entry(key, local=key.split(":", 1)[1] if key.startswith("local") else None,
                                 remote=key.split(":", 1)[1] if key.startswith("remote") else None))
        keys = [e.pair_key for e in self.store.all_for_collection("memos")]
        assert keys == ["local:/a.md", "local:/b.md", "remote:3"]

    def test_put_replaces(self):
        """A second put for a pair replaces the first."""
        self.store.put(entry("k", "/a.md", "1", "h1"))
        self.store.put(entry("k", "/a.md", "1", "h2"))
        entries = self.store.all_for_collection("memos")
        assert len(entries) == 1
        assert entries[0].last_synced_hash == "h2"

    def test_identity_claimed_by_new_pair_evicts_old(self):
        """An identity can only belong to one pair."""
        self.store.put(entry("local:/a.md", "/a.md", "1"))
        self.store.put(entry("remote:1", None, "1"))
        assert self.store.get("memos", "local:/a.md") is None
        assert self.store.find_by_remote_identity("memos", "1").pair_key == "remote:1"

    def test_find_by_identity(self):
        """Entries are found through either identity."""
        self.store.put(entry("k", "/a.md", "7"))
        assert self.store.find_by_local_identity("memos", "/a.md").pair_key == "k"
        assert self.store.find_by_remote_identity("memos", "7").pair_key == "k"
        assert self.store.find_by_local_identity("memos", "/b.md") is None

    def test_remove(self):
        """Removed entries are gone; removing twice is harmless."""
        self.store.put(entry("k", "/a.md", "1"))
        self.store.remove("memos", "k")
        self.store.remove("memos", "k")
        assert self.store.all_for_collection("memos") == []

    def test_survives_reopen(self):
        """State written by one store is read by the next."""
        self.store.put(entry("k", "/a.md", "1"))
        self.store.set_last_sync_time("memos", SYNCED_AT)
        self.store.close()

        reopened = SyncStateStore(self.state_dir)
        try:
            assert reopened.get("memos", "k") == entry("k", "/a.md", "1")
            assert reopened.last_sync_time("memos") == SYNCED_AT
        finally:
            reopened.close()

    def test_first_sync_and_clear(self):
        """Clearing state makes the next sync a first sync again."""
        assert self.store.is_first_sync("memos")
        self.store.put(entry("k", "/a.md", "1"))
        self.store.set_last_sync_time("memos", SYNCED_AT)
        assert not self.store.is_first_sync("memos")

        assert self.store.clear("memos") == 1
        assert self.store.is_first_sync("memos")

    def test_database_manager_tracks_open_collections(self):
        """Databases are opened per collection on first use and closed together."""
        assert self.store.db_manager.open_collections() == []
        assert self.store.db_manager.test_connection("memos")
        assert self.store.db_manager.open_collections() == ["memos"]
        self.store.close()
        assert self.store.db_manager.open_collections() == []
