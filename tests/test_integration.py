"""Integration tests for multi-session, multi-collection synchronization."""

import os
import sys
import threading

import pytest
import yaml
from sqlalchemy import create_engine, text

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pilotsync.backends import CollectionDescriptor, InMemoryBackend, LocalFileBackend, RecordKind
from pilotsync.config.manager import ConfigManager
from pilotsync.core import ConflictPolicy, SessionState, SyncAction, SyncBusyError, SyncEngine
from pilotsync.state.models import STATE_SCHEMA_VERSION


VCARD = b"BEGIN:VCARD\r\nFN:Ada Lovelace\r\nEND:VCARD\r\n"
VEVENT = b"BEGIN:VEVENT\r\nSUMMARY:Standup\r\nEND:VEVENT\r\n"


@pytest.mark.integration
class TestProfileDrivenSync:
    """A device synced repeatedly through an engine built from a profile."""

    @pytest.fixture(autouse=True)
    def setup_profile(self, tmp_path):
        """Profile on disk, device with a few records, engine from the profile."""
        self.collections_dir = tmp_path / "collections"
        self.state_dir = tmp_path / "state"
        profile = {
            "name": "handheld",
            "local_base_path": str(self.collections_dir),
            "state_directory": str(self.state_dir),
            "conflict_policy": "keep_remote",
            "collections": [
                {"id": "memos", "display_name": "Memos", "kind": "memo"},
                {"id": "contacts", "display_name": "Contacts", "kind": "contact"},
                {"id": "calendar", "display_name": "Calendar", "kind": "event", "run_after": ["contacts"]},
            ],
        }
        profile_path = tmp_path / "pilotsync.yaml"
        profile_path.write_text(yaml.safe_dump(profile))

        self.device = InMemoryBackend()
        self.device.put("memos", b"# Packing list\nsocks", kind=RecordKind.MEMO)
        self.device.put("contacts", VCARD, display_name="Ada Lovelace", kind=RecordKind.CONTACT)
        self.device.put("calendar", VEVENT, display_name="Standup", kind=RecordKind.EVENT)

        self.manager = ConfigManager(str(profile_path))
        self.engine = self.manager.create_engine(self.device)
        yield
        self.engine.close()

    def files(self, collection_id):
        """File names in a local collection directory."""
        directory = self.collections_dir / collection_id
        return sorted(p.name for p in directory.iterdir()) if directory.exists() else []

    def test_full_workflow(self):
        """Initial import, edits on both sides, deletions and a quiet final run."""
        first = self.engine.run_sync()
        assert first.success
        assert first.collections == ["memos", "contacts", "calendar"]
        assert first.local_stats.created == 3
        assert self.files("memos") == ["Packing list.md"]
        assert self.files("contacts") == ["Ada Lovelace.vcf"]
        assert self.files("calendar") == ["Standup.ics"]

        # Edit on both sides, add locally, delete on the device
        memo_path = self.collections_dir / "memos" / "Packing list.md"
        memo_path.write_bytes(b"# Packing list\nsocks\ntoothbrush")
        self.device.edit("1", b"# Packing list\nsocks\ncharger")
        (self.collections_dir / "memos" / "Ideas.md").write_bytes(b"sync engine")
        self.device.delete("3")

        second = self.engine.run_sync()
        assert second.success
        actions = {outcome.label: outcome.action for outcome in second.outcomes}
        assert actions["Packing list"] == SyncAction.PULL
        assert actions["Ideas"] == SyncAction.CREATE_REMOTE
        assert actions["Standup"] == SyncAction.DELETE_LOCAL
        assert memo_path.read_bytes() == b"# Packing list\nsocks\ncharger"
        assert self.files("calendar") == []
        assert self.device.count("calendar", include_deleted=True) == 0

        third = self.engine.run_sync()
        assert third.success
        assert third.applied_mutations == 0
        assert {outcome.action for outcome in third.outcomes} == {SyncAction.NONE}

    def test_state_files_are_versioned(self):
        """Each collection's state lives in its own stamped database."""
        self.engine.run_sync()
        self.engine.close()

        assert sorted(p.name for p in self.state_dir.glob("*.sqlite3")) == [
            "calendar.sqlite3", "contacts.sqlite3", "memos.sqlite3",
        ]
        db = create_engine(f"sqlite:///{self.state_dir / 'memos.sqlite3'}")
        try:
            with db.connect() as conn:
                version = conn.execute(
                    text("SELECT value FROM sync_meta WHERE key = 'version'")
                ).scalar()
                pairs = conn.execute(text("SELECT COUNT(*) FROM sync_state")).scalar()
        finally:
            db.dispose()
        assert version == str(STATE_SCHEMA_VERSION)
        assert pairs == 1

    def test_concurrent_session_is_refused(self):
        """A second thread cannot start a session while one is running."""
        entered = threading.Event()
        release = threading.Event()

        def progress(done, total, label):
            entered.set()
            release.wait(timeout=10)

        self.engine.set_progress_callback(progress)
        results = []
        worker = threading.Thread(target=lambda: results.append(self.engine.run_sync()))
        worker.start()
        try:
            assert entered.wait(timeout=10)
            with pytest.raises(SyncBusyError):
                self.engine.run_sync()
        finally:
            release.set()
            worker.join(timeout=10)

        assert results[0].state == SessionState.COMPLETED


@pytest.mark.integration
class TestTwoFileStores:
    """Two local file trees kept in step through the same engine."""

    def test_file_to_file_sync(self, tmp_path):
        """Any backend pair can be synchronized."""
        left = LocalFileBackend(str(tmp_path / "left"))
        right = LocalFileBackend(str(tmp_path / "right"))
        (tmp_path / "left" / "memos").mkdir(parents=True)
        (tmp_path / "left" / "memos" / "todo.md").write_bytes(b"write docs")

        engine = SyncEngine(
            left,
            right,
            state_directory=tmp_path / "state",
            conflict_policy=ConflictPolicy.PREFER_NEWER,
        )
        engine.register_collection(CollectionDescriptor("memos", "Memos", "memos", RecordKind.MEMO, True))
        try:
            assert engine.run_sync().success
            right_file = tmp_path / "right" / "memos" / "todo.md"
            assert right_file.read_bytes() == b"write docs"

            right_file.write_bytes(b"write docs and tests")
            result = engine.run_sync()
            assert [outcome.action for outcome in result.outcomes] == [SyncAction.PULL]
            assert (tmp_path / "left" / "memos" / "todo.md").read_bytes() == b"write docs and tests"
        finally:
            engine.close()
