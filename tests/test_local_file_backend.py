"""Tests for the local file backend and content hashing."""

import os
import re
import sys
from datetime import datetime, timedelta, timezone

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pilotsync.backends import (
    CollectionDescriptor,
    ErrorKind,
    FileLayout,
    LocalFileBackend,
    Record,
    RecordKind,
    sanitize_filename,
)
from pilotsync.backends import local_file as local_file_module
from pilotsync.utils.hashing import hash_content, short_hash


MEMOS = CollectionDescriptor("memos", "Memos", "memos", RecordKind.MEMO, True)


def memo(payload: bytes, name: str = None) -> Record:
    """Build an outgoing memo record."""
    return Record(identity="", payload=payload, kind=RecordKind.MEMO, display_name=name)


class TestContentHasher:
    """Test content hashing."""

    def test_equal_payloads_hash_equal(self):
        """Hashing is a pure function of the bytes."""
        assert hash_content(b"milk, eggs") == hash_content(b"milk, eggs")
        assert hash_content(b"milk, eggs") != hash_content(b"milk, eggs ")

    def test_full_digest_length(self):
        """The stored hash is a full SHA-256 hex digest."""
        assert len(hash_content(b"")) == 64

    def test_short_hash_is_prefix(self):
        """Short hashes abbreviate the full digest."""
        assert short_hash(b"abc") == hash_content(b"abc")[:16]
        assert short_hash("abc") == short_hash(b"abc")

    def test_record_hash_follows_payload(self):
        """Records carry the hash of their payload."""
        record = memo(b"first")
        assert record.content_hash == hash_content(b"first")
        changed = record.with_payload(b"second")
        assert changed.content_hash == hash_content(b"second")
        assert record.content_hash == hash_content(b"first")


class TestSanitizeFilename:
    """Test file name generation from labels."""

    @pytest.mark.parametrize("label,expected", [
        ("a/b:c", "a_b_c"),
        ("what?*", "what_"),
        ("line1\nline2", "line1 line2"),
        ("  spaced    out  ", "spaced out"),
        ("a__b", "a_b"),
        ("..hidden", "hidden"),
        ("", "unnamed"),
        ("///", "_"),
    ])
    def test_sanitize(self, label, expected):
        """Unsafe characters are replaced and whitespace normalized."""
        assert sanitize_filename(label) == expected

    def test_length_cap(self):
        """Names are capped at 100 characters."""
        assert len(sanitize_filename("x" * 150)) == 100


class TestFileLayout:
    """Test kind and extension mapping."""

    def setup_method(self):
        """Set up test fixtures."""
        self.layout = FileLayout()

    def test_default_extensions(self):
        """Each kind has its default extension."""
        assert self.layout.extension_for(RecordKind.MEMO) == ".md"
        assert self.layout.extension_for(RecordKind.CONTACT) == ".vcf"
        assert self.layout.extension_for(RecordKind.EVENT) == ".ics"
        assert self.layout.extension_for(RecordKind.TODO) == ".ics"
        assert self.layout.extension_for(RecordKind.UNKNOWN) == ".txt"

    def test_shared_extension_resolved_by_collection(self):
        """The shared calendar extension follows the owning collection's kind."""
        assert self.layout.infer_kind(".ics", RecordKind.TODO) == RecordKind.TODO
        assert self.layout.infer_kind(".ics", RecordKind.EVENT) == RecordKind.EVENT
        assert self.layout.infer_kind(".ICS", RecordKind.UNKNOWN) == RecordKind.EVENT
        assert self.layout.infer_kind(".bin", RecordKind.MEMO) == RecordKind.UNKNOWN

    def test_overrides(self):
        """Extension overrides replace single kinds."""
        layout = FileLayout.from_overrides({"memo": "txt"})
        assert layout.extension_for(RecordKind.MEMO) == ".txt"
        assert layout.extension_for(RecordKind.CONTACT) == ".vcf"

    def test_layout_is_immutable(self):
        """The extension mapping cannot be changed after construction."""
        with pytest.raises(TypeError):
            self.layout.extensions[RecordKind.MEMO] = ".txt"


class TestLocalFileBackend:
    """Test record storage in collection directories."""

    @pytest.fixture(autouse=True)
    def backend(self, tmp_path):
        """Backend rooted in a fresh directory."""
        self.root = tmp_path / "store"
        self.backend = LocalFileBackend(str(self.root))
        return self.backend

    def test_availability_has_no_side_effects(self):
        """Checking availability does not create the store."""
        assert self.backend.is_available()
        assert not self.root.exists()

    def test_unavailable_when_base_is_a_file(self, tmp_path):
        """A base path occupied by a file is not usable."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        assert not LocalFileBackend(str(blocker)).is_available()

    def test_ensure_collection_is_idempotent(self):
        """Ensuring twice succeeds and creates one directory."""
        assert self.backend.ensure_collection(MEMOS).value == "memos"
        assert self.backend.ensure_collection(MEMOS).ok
        assert (self.root / "memos").is_dir()

    def test_list_collections(self):
        """Built-in and on-disk collections are listed."""
        (self.root / "projects").mkdir(parents=True)
        listed = {descriptor.id: descriptor for descriptor in self.backend.list_collections().value}
        assert {"memos", "contacts", "calendar", "todos", "projects"} <= set(listed)
        assert listed["memos"].is_builtin
        assert listed["calendar"].kind == RecordKind.EVENT
        assert not listed["projects"].is_builtin

    def test_create_and_load(self):
        """A created record is loaded back with its kind and hash."""
        created = self.backend.create("memos", memo(b"# Shopping\nmilk"))
        assert created.ok
        assert os.path.basename(created.value) == "Shopping.md"

        records = self.backend.load_all("memos").value
        assert len(records) == 1
        record = records[0]
        assert record.identity == created.value
        assert record.kind == RecordKind.MEMO
        assert record.display_name == "Shopping"
        assert record.collection_id == "memos"
        assert record.content_hash == hash_content(b"# Shopping\nmilk")
        assert record.last_modified is not None

    def test_create_applies_record_timestamp(self):
        """A record's modification time is kept on the file."""
        when = datetime(2023, 5, 1, 12, 0, tzinfo=timezone.utc)
        created = self.backend.create("memos", Record("", b"x", last_modified=when, display_name="t"))
        loaded = self.backend.load_one(created.value).value
        assert loaded.last_modified == when

    def test_create_uses_collection_extension(self):
        """A record of another kind is stored with its collection's extension."""
        card = Record("", b"BEGIN:VCARD\r\nEND:VCARD\r\n", kind=RecordKind.CONTACT, display_name="card")
        created = self.backend.create("memos", card)
        assert os.path.basename(created.value) == "card.md"
        assert [r.identity for r in self.backend.load_all("memos").value] == [created.value]

    def test_create_in_untyped_collection_uses_record_kind(self):
        """Collections without a declared kind take the extension from the record."""
        self.backend.ensure_collection(CollectionDescriptor("misc", "Misc", "misc"))
        card = Record("", b"BEGIN:VCARD", kind=RecordKind.CONTACT, display_name="card")
        created = self.backend.create("misc", card)
        assert os.path.basename(created.value) == "card.vcf"
        assert len(self.backend.load_all("misc").value) == 1

    def test_load_missing_collection_is_empty(self):
        """A collection without a directory has no records."""
        assert self.backend.load_all("memos").value == []

    def test_load_filters_by_extension(self):
        """Only files of the collection's kind are loaded."""
        directory = self.root / "memos"
        directory.mkdir(parents=True)
        (directory / "note.md").write_bytes(b"note")
        (directory / "stray.vcf").write_bytes(b"BEGIN:VCARD")
        (directory / ".hidden.md").write_bytes(b"hidden")

        records = self.backend.load_all("memos").value
        assert [r.display_name for r in records] == ["note"]

    def test_ics_kind_follows_directory(self):
        """Calendar files load as events or todos depending on their collection."""
        (self.root / "calendar").mkdir(parents=True)
        (self.root / "todos").mkdir(parents=True)
        (self.root / "calendar" / "meeting.ics").write_bytes(b"BEGIN:VEVENT")
        (self.root / "todos" / "task.ics").write_bytes(b"BEGIN:VEVENT")

        assert self.backend.load_all("calendar").value[0].kind == RecordKind.EVENT
        todo = self.backend.load_all("todos").value[0]
        assert todo.kind == RecordKind.TODO
        assert self.backend.load_one(todo.identity).value.kind == RecordKind.TODO

    def test_load_one_missing(self):
        """A missing file loads as None."""
        assert self.backend.load_one(str(self.root / "memos" / "gone.md")).value is None

    def test_update(self):
        """Updates replace the file content."""
        identity = self.backend.create("memos", memo(b"v1", "note")).value
        record = self.backend.load_one(identity).value

        assert self.backend.update(record.with_payload(b"v2")).ok
        assert self.backend.load_one(identity).value.payload == b"v2"
        assert [p.name for p in (self.root / "memos").iterdir()] == ["note.md"]

    def test_update_missing_is_not_found(self):
        """Updating a vanished file reports not found."""
        result = self.backend.update(Record(str(self.root / "memos" / "gone.md"), b"x"))
        assert not result.ok
        assert result.error_kind == ErrorKind.NOT_FOUND

    def test_update_empty_identity_is_invalid(self):
        """An update needs an identity."""
        assert self.backend.update(Record("", b"x")).error_kind == ErrorKind.INVALID_RECORD

    def test_delete(self):
        """Deleting removes the file; deleting again still succeeds."""
        identity = self.backend.create("memos", memo(b"bye", "old")).value
        assert self.backend.delete(identity).ok
        assert not os.path.exists(identity)
        assert self.backend.delete(identity).ok

    def test_changed_since(self):
        """Only files modified after the timestamp are reported."""
        self.backend.create("memos", memo(b"recent", "recent"))
        past = datetime.now(timezone.utc) - timedelta(hours=1)
        future = datetime.now(timezone.utc) + timedelta(hours=1)

        assert len(self.backend.changed_since("memos", past).value) == 1
        assert self.backend.changed_since("memos", future).value == []

    def test_backend_info(self):
        """Backend info describes the store."""
        info = self.backend.get_backend_info()
        assert info["backend_id"] == "local_file"
        assert info["supports_delete_tracking"] is False
        assert info["base_path"] == str(self.root.resolve())


class TestUniqueNaming:
    """Test collision handling when generating file names."""

    def test_numbered_then_hash_derived_names(self, tmp_path):
        """Collisions get numbered suffixes up to the limit, then hash-derived names."""
        backend = LocalFileBackend(str(tmp_path), name_attempt_limit=2)
        names = [
            os.path.basename(backend.create("memos", memo(f"body {i}".encode(), "note")).value)
            for i in range(4)
        ]

        assert names[:3] == ["note.md", "note_1.md", "note_2.md"]
        assert re.fullmatch(r"[0-9a-f]{16}\.md", names[3])
        assert len(backend.load_all("memos").value) == 4

    def test_identical_records_get_distinct_names(self, tmp_path):
        """Records with the same name and content never run out of names."""
        backend = LocalFileBackend(str(tmp_path), name_attempt_limit=1)
        results = [backend.create("memos", memo(b"same", "note")) for _ in range(8)]

        assert all(result.ok for result in results)
        assert len({result.value for result in results}) == 8
        assert len(backend.load_all("memos").value) == 8

    def test_exhausted_names(self, tmp_path, monkeypatch):
        """When even hash-derived names collide the create fails cleanly."""
        monkeypatch.setattr(local_file_module, "short_hash", lambda *args, **kwargs: "0" * 16)
        backend = LocalFileBackend(str(tmp_path), name_attempt_limit=1)

        for i in range(3):
            assert backend.create("memos", memo(f"body {i}".encode(), "note")).ok

        result = backend.create("memos", memo(b"one too many", "note"))
        assert not result.ok
        assert result.error_kind == ErrorKind.NAME_COLLISION_EXHAUSTED
        assert len(backend.load_all("memos").value) == 3

    def test_invalid_limit(self, tmp_path):
        """The attempt limit must be positive."""
        with pytest.raises(ValueError):
            LocalFileBackend(str(tmp_path), name_attempt_limit=0)
