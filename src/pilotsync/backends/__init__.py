"""Backends package: the record stores taking part in a sync."""

from .base import (
    Backend,
    BackendError,
    BackendResult,
    CollectionDescriptor,
    ErrorKind,
    Record,
    RecordKind,
)

from .local_file import FileLayout, LocalFileBackend, sanitize_filename
from .memory import InMemoryBackend
from .factory import BackendFactory, BackendType

__all__ = [
    # Base classes and types
    "Backend",
    "BackendError",
    "BackendResult",
    "CollectionDescriptor",
    "ErrorKind",
    "Record",
    "RecordKind",

    # Implementations
    "FileLayout",
    "LocalFileBackend",
    "InMemoryBackend",
    "sanitize_filename",

    # Factory
    "BackendFactory",
    "BackendType",
]
