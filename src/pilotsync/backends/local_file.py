"""Local collection store keeping one file per record."""

import os
import re
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Iterator, List, Mapping, Optional, Tuple

from .base import (
    Backend,
    BackendResult,
    CollectionDescriptor,
    ErrorKind,
    Record,
    RecordKind,
)
from ..utils.hashing import short_hash


MAX_FILENAME_LENGTH = 100
DEFAULT_NAME = "unnamed"

_UNSAFE_CHARS = re.compile(r'[/\\:*?"<>|\x00-\x1f\x7f]')
_REPEATED_SPACES = re.compile(r" {2,}")
_REPEATED_UNDERSCORES = re.compile(r"_{2,}")


def _default_extensions() -> Mapping[RecordKind, str]:
    return MappingProxyType({
        RecordKind.MEMO: ".md",
        RecordKind.CONTACT: ".vcf",
        RecordKind.EVENT: ".ics",
        RecordKind.TODO: ".ics",
        RecordKind.UNKNOWN: ".txt",
    })


def _default_collections() -> Tuple[CollectionDescriptor, ...]:
    return (
        CollectionDescriptor("memos", "Memos", "memos", RecordKind.MEMO, True),
        CollectionDescriptor("contacts", "Contacts", "contacts", RecordKind.CONTACT, True),
        CollectionDescriptor("calendar", "Calendar", "calendar", RecordKind.EVENT, True),
        CollectionDescriptor("todos", "Todos", "todos", RecordKind.TODO, True),
    )


@dataclass(frozen=True)
class FileLayout:
    """Immutable mapping between record kinds, file extensions and built-in collections."""

    extensions: Mapping[RecordKind, str] = field(default_factory=_default_extensions)
    builtin_collections: Tuple[CollectionDescriptor, ...] = field(default_factory=_default_collections)

    @classmethod
    def from_overrides(cls, overrides: Mapping[str, str]) -> "FileLayout":
        """Build a layout whose extensions are replaced per kind name."""
        extensions = dict(_default_extensions())
        for kind_name, extension in overrides.items():
            if not extension.startswith("."):
                extension = f".{extension}"
            extensions[RecordKind(kind_name)] = extension.lower()
        return cls(extensions=MappingProxyType(extensions))

    def extension_for(self, kind: RecordKind) -> str:
        """File extension used when storing a record of this kind."""
        return self.extensions.get(kind, self.extensions[RecordKind.UNKNOWN])

    def kinds_for(self, extension: str) -> List[RecordKind]:
        """All kinds sharing an extension, in declaration order."""
        extension = extension.lower()
        return [kind for kind, ext in self.extensions.items() if ext == extension]

    def infer_kind(self, extension: str, collection_kind: RecordKind) -> RecordKind:
        """Infer a record kind from its extension.

        An extension shared by several kinds resolves to the kind declared by
        the owning collection.
        """
        candidates = self.kinds_for(extension)
        if not candidates:
            return RecordKind.UNKNOWN
        if collection_kind in candidates:
            return collection_kind
        return candidates[0]

    def accepted_extensions(self, collection_kind: RecordKind) -> List[str]:
        """Extensions loaded for a collection of the given kind."""
        if collection_kind == RecordKind.UNKNOWN:
            return sorted(set(self.extensions.values()))
        return [self.extension_for(collection_kind)]


def sanitize_filename(name: str) -> str:
    """Turn an arbitrary label into a safe file name stem."""
    cleaned = name.replace("\r", " ").replace("\n", " ")
    cleaned = _UNSAFE_CHARS.sub("_", cleaned)
    cleaned = _REPEATED_SPACES.sub(" ", cleaned)
    cleaned = _REPEATED_UNDERSCORES.sub("_", cleaned)
    # Leading dots would hide the file from enumeration
    cleaned = cleaned.strip().lstrip(".").strip()
    cleaned = cleaned[:MAX_FILENAME_LENGTH].strip()
    return cleaned or DEFAULT_NAME


class LocalFileBackend(Backend):
    """Backend storing each collection as a directory of record files.

    A record's identity is the absolute path of its file.
    """

    backend_id = "local_file"
    display_name = "Local Files"

    def __init__(
        self,
        base_path: str,
        layout: Optional[FileLayout] = None,
        name_attempt_limit: int = 10000,
        **kwargs
    ):
        """Initialize the local file backend.

        Args:
            base_path: Directory holding one subdirectory per collection
            layout: Extension and built-in collection layout
            name_attempt_limit: Numbered name attempts before falling back to
                hash-derived names
        """
        super().__init__(**kwargs)
        if name_attempt_limit < 1:
            raise ValueError("name_attempt_limit must be at least 1")

        self.base_path = Path(base_path).expanduser().resolve()
        self.layout = layout or FileLayout()
        self.name_attempt_limit = name_attempt_limit
        self._collections: Dict[str, CollectionDescriptor] = {
            descriptor.id: descriptor for descriptor in self.layout.builtin_collections
        }

    def is_available(self) -> bool:
        """The base directory is writable, or can be created under a writable parent."""
        if self.base_path.exists():
            return self.base_path.is_dir() and os.access(self.base_path, os.W_OK | os.X_OK)

        parent = self.base_path.parent
        while not parent.exists() and parent != parent.parent:
            parent = parent.parent
        return parent.is_dir() and os.access(parent, os.W_OK | os.X_OK)

    def list_collections(self) -> BackendResult[List[CollectionDescriptor]]:
        """List built-in, ensured and on-disk collections."""
        collections = dict(self._collections)
        known_locators = {descriptor.locator for descriptor in collections.values()}

        try:
            if self.base_path.is_dir():
                for entry in sorted(self.base_path.iterdir()):
                    if entry.is_dir() and not entry.name.startswith(".") \
                            and entry.name not in known_locators and entry.name not in collections:
                        collections[entry.name] = CollectionDescriptor(
                            id=entry.name,
                            display_name=entry.name,
                            storage_locator=entry.name,
                        )
        except OSError as e:
            self.logger.error("Failed to list collections", base_path=str(self.base_path), error=str(e))
            return BackendResult.failure(ErrorKind.IO_FAILURE, str(e))

        return BackendResult.success(list(collections.values()))

    def ensure_collection(self, descriptor: CollectionDescriptor) -> BackendResult[str]:
        """Create the collection directory if needed and remember the descriptor."""
        directory = self.base_path / descriptor.locator
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            self.logger.error("Failed to create collection", collection_id=descriptor.id, error=str(e))
            return BackendResult.failure(ErrorKind.IO_FAILURE, str(e), str(directory))

        self._collections[descriptor.id] = descriptor
        self.logger.debug("Collection ready", collection_id=descriptor.id, directory=str(directory))
        return BackendResult.success(descriptor.id)

    def load_all(self, collection_id: str) -> BackendResult[List[Record]]:
        """Load every record file of a collection."""
        descriptor = self._collection(collection_id)
        directory = self.base_path / descriptor.locator
        if not directory.is_dir():
            return BackendResult.success([])

        accepted = set(self.layout.accepted_extensions(descriptor.kind))
        records: List[Record] = []
        try:
            for path in sorted(directory.iterdir()):
                if path.name.startswith(".") or not path.is_file():
                    continue
                if path.suffix.lower() not in accepted:
                    continue
                records.append(self._read_record(path, descriptor))
        except OSError as e:
            self.logger.error("Failed to load collection", collection_id=collection_id, error=str(e))
            return BackendResult.failure(ErrorKind.IO_FAILURE, str(e), str(directory))

        return BackendResult.success(records)

    def load_one(self, identity: str) -> BackendResult[Optional[Record]]:
        """Load a record file; a missing file yields None."""
        if not identity:
            return BackendResult.failure(ErrorKind.INVALID_RECORD, "Empty identity")

        path = Path(identity)
        try:
            if not path.is_file():
                return BackendResult.success(None)
            return BackendResult.success(self._read_record(path, self._collection_for_path(path)))
        except FileNotFoundError:
            return BackendResult.success(None)
        except OSError as e:
            self.logger.error("Failed to load record", identity=identity, error=str(e))
            return BackendResult.failure(ErrorKind.IO_FAILURE, str(e), identity)

    def create(self, collection_id: str, record: Record) -> BackendResult[str]:
        """Write a new record file under a unique name."""
        descriptor = self._collection(collection_id)
        directory = self.base_path / descriptor.locator
        # The collection's kind decides the extension so load_all lists the file again
        kind = descriptor.kind if descriptor.kind != RecordKind.UNKNOWN else record.kind
        extension = self.layout.extension_for(kind)
        stem = sanitize_filename(self._name_source(record, kind))

        try:
            directory.mkdir(parents=True, exist_ok=True)
            # One more hash-derived name than there are entries always leaves a free one
            hashed_attempts = len(os.listdir(directory)) + 1
            for candidate in self._candidate_names(stem, extension, record.content_hash, hashed_attempts):
                path = directory / candidate
                try:
                    with open(path, "xb") as f:
                        f.write(record.payload)
                        f.flush()
                        os.fsync(f.fileno())
                except FileExistsError:
                    continue
                self._apply_mtime(path, record.last_modified)
                self.logger.debug("Record file created", collection_id=collection_id, path=str(path))
                return BackendResult.success(str(path))
        except OSError as e:
            self.logger.error("Failed to create record", collection_id=collection_id, error=str(e))
            return BackendResult.failure(ErrorKind.IO_FAILURE, str(e))

        self.logger.warning(
            "No free file name left",
            collection_id=collection_id,
            stem=stem,
            attempts=self.name_attempt_limit + hashed_attempts
        )
        return BackendResult.failure(
            ErrorKind.NAME_COLLISION_EXHAUSTED,
            f"No free file name for '{stem}{extension}'"
        )

    def update(self, record: Record) -> BackendResult[None]:
        """Atomically replace the content of an existing record file."""
        if not record.identity:
            return BackendResult.failure(ErrorKind.INVALID_RECORD, "Empty identity")

        path = Path(record.identity)
        if not path.is_file():
            return BackendResult.failure(ErrorKind.NOT_FOUND, "Record file does not exist", record.identity)

        tmp_name = None
        try:
            fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
            with os.fdopen(fd, "wb") as f:
                f.write(record.payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
            tmp_name = None
            self._apply_mtime(path, record.last_modified)
        except OSError as e:
            self.logger.error("Failed to update record", identity=record.identity, error=str(e))
            return BackendResult.failure(ErrorKind.IO_FAILURE, str(e), record.identity)
        finally:
            if tmp_name and os.path.exists(tmp_name):
                os.unlink(tmp_name)

        return BackendResult.success(None)

    def delete(self, identity: str) -> BackendResult[None]:
        """Remove a record file; a file that is already gone counts as deleted."""
        if not identity:
            return BackendResult.failure(ErrorKind.INVALID_RECORD, "Empty identity")

        try:
            os.remove(identity)
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.error("Failed to delete record", identity=identity, error=str(e))
            return BackendResult.failure(ErrorKind.IO_FAILURE, str(e), identity)

        return BackendResult.success(None)

    def changed_since(self, collection_id: str, timestamp: datetime) -> BackendResult[List[Record]]:
        """Records whose file modification time is after the timestamp."""
        loaded = self.load_all(collection_id)
        if not loaded.ok:
            return loaded
        return BackendResult.success([
            record for record in loaded.value
            if record.last_modified is not None and record.last_modified > timestamp
        ])

    def get_backend_info(self):
        """Get information about this backend, including its base path."""
        info = super().get_backend_info()
        info["base_path"] = str(self.base_path)
        info["name_attempt_limit"] = self.name_attempt_limit
        return info

    def _collection(self, collection_id: str) -> CollectionDescriptor:
        descriptor = self._collections.get(collection_id)
        if descriptor is None:
            descriptor = CollectionDescriptor(id=collection_id, display_name=collection_id)
        return descriptor

    def _collection_for_path(self, path: Path) -> CollectionDescriptor:
        parent = path.parent.resolve()
        for descriptor in self._collections.values():
            if (self.base_path / descriptor.locator).resolve() == parent:
                return descriptor
        return CollectionDescriptor(id=parent.name, display_name=parent.name)

    def _read_record(self, path: Path, descriptor: CollectionDescriptor) -> Record:
        payload = path.read_bytes()
        stat = path.stat()
        return Record(
            identity=str(path.resolve()),
            payload=payload,
            last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            kind=self.layout.infer_kind(path.suffix, descriptor.kind),
            display_name=path.stem,
            collection_id=descriptor.id,
        )

    def _name_source(self, record: Record, kind: RecordKind) -> str:
        if record.display_name:
            return record.display_name
        if kind == RecordKind.MEMO:
            text = record.payload.decode("utf-8", errors="replace")
            for line in text.splitlines():
                if line.strip():
                    return line.strip().lstrip("#").strip()
        return DEFAULT_NAME

    def _candidate_names(
        self, stem: str, extension: str, content_hash: str, hashed_attempts: int
    ) -> Iterator[str]:
        yield f"{stem}{extension}"
        for counter in range(1, self.name_attempt_limit + 1):
            yield f"{stem}_{counter}{extension}"
        for attempt in range(hashed_attempts):
            yield f"{short_hash(f'{stem}:{content_hash}:{attempt}')}{extension}"

    @staticmethod
    def _apply_mtime(path: Path, last_modified: Optional[datetime]) -> None:
        if last_modified is None:
            return
        timestamp = last_modified.timestamp()
        os.utime(path, (timestamp, timestamp))
