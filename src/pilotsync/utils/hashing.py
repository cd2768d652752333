"""Content hashing for change detection."""

import hashlib
from typing import Union


SHORT_HASH_LENGTH = 16


def hash_content(data: bytes) -> str:
    """Return the SHA-256 hex digest of a record payload.

    Equal payloads always produce equal digests; the digest is what gets
    stored as a record's content hash and as the last-synced hash.
    """
    return hashlib.sha256(data).hexdigest()


def short_hash(data: Union[bytes, str], length: int = SHORT_HASH_LENGTH) -> str:
    """Return an abbreviated digest for log lines and generated names."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return hashlib.sha256(data).hexdigest()[:length]
