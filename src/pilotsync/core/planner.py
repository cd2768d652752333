"""Builds record pairs from both sides and the persisted sync state."""

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Set

from ..backends.base import Record
from ..state.models import SyncStateEntry
from .resolver import RecordStatus


LOCAL_KEY_PREFIX = "local:"
REMOTE_KEY_PREFIX = "remote:"


@dataclass
class RecordPair:
    """Both sides of one logical record plus its sync state."""

    collection_id: str
    pair_key: str
    local_status: RecordStatus
    remote_status: RecordStatus
    entry: Optional[SyncStateEntry] = None
    local: Optional[Record] = None
    remote: Optional[Record] = None
    linked: bool = False

    @property
    def local_identity(self) -> Optional[str]:
        """Local identity from the loaded record or the state entry."""
        if self.local is not None:
            return self.local.identity
        return self.entry.local_identity if self.entry else None

    @property
    def remote_identity(self) -> Optional[str]:
        """Remote identity from the loaded record or the state entry."""
        if self.remote is not None:
            return self.remote.identity
        return self.entry.remote_identity if self.entry else None

    @property
    def label(self) -> str:
        """Label for progress reporting."""
        for record in (self.local, self.remote):
            if record is not None:
                return record.label
        return self.pair_key


def side_status(identity: Optional[str], record: Optional[Record], last_hash: Optional[str]) -> RecordStatus:
    """Change status of one side of a known pair."""
    if not identity:
        return RecordStatus.ABSENT
    if record is None or record.is_deleted:
        return RecordStatus.DELETED
    if record.content_hash == last_hash:
        return RecordStatus.UNCHANGED
    return RecordStatus.MODIFIED


def pair_from_entry(
    entry: SyncStateEntry,
    local: Optional[Record],
    remote: Optional[Record]
) -> RecordPair:
    """Build a pair for a state entry from freshly loaded records."""
    return RecordPair(
        collection_id=entry.collection_id,
        pair_key=entry.pair_key,
        local_status=side_status(entry.local_identity, local, entry.last_synced_hash),
        remote_status=side_status(entry.remote_identity, remote, entry.last_synced_hash),
        entry=entry,
        local=local,
        remote=remote,
    )


def _unpaired_status(record: Record) -> RecordStatus:
    return RecordStatus.DELETED if record.is_deleted else RecordStatus.NEW


def build_pairs(
    collection_id: str,
    local_records: Sequence[Record],
    remote_records: Sequence[Record],
    entries: Sequence[SyncStateEntry]
) -> List[RecordPair]:
    """Pair every record on both sides, ordered by pair key.

    Records covered by a state entry are paired through it. Unpaired live
    records with identical content on both sides are linked to each other;
    everything else becomes a one-sided pair keyed by its originating side
    and identity.
    """
    local_by_id: Dict[str, Record] = {record.identity: record for record in local_records}
    remote_by_id: Dict[str, Record] = {record.identity: record for record in remote_records}
    pairs: List[RecordPair] = []
    used_keys: Set[str] = set()

    for entry in entries:
        local = local_by_id.pop(entry.local_identity, None) if entry.local_identity else None
        remote = remote_by_id.pop(entry.remote_identity, None) if entry.remote_identity else None
        pairs.append(pair_from_entry(entry, local, remote))
        used_keys.add(entry.pair_key)

    def _new_key(prefix: str, identity: str) -> str:
        key = f"{prefix}{identity}"
        suffix = 1
        while key in used_keys:
            key = f"{prefix}{identity}#{suffix}"
            suffix += 1
        used_keys.add(key)
        return key

    # Content matching between records no state knows about
    remote_by_hash: Dict[str, List[Record]] = defaultdict(list)
    for record in sorted(remote_by_id.values(), key=lambda r: r.identity):
        if not record.is_deleted:
            remote_by_hash[record.content_hash].append(record)

    for local in sorted(local_by_id.values(), key=lambda r: r.identity):
        candidates = remote_by_hash.get(local.content_hash) if not local.is_deleted else None
        if candidates:
            remote = candidates.pop(0)
            del remote_by_id[remote.identity]
            pairs.append(RecordPair(
                collection_id=collection_id,
                pair_key=_new_key(LOCAL_KEY_PREFIX, local.identity),
                local_status=RecordStatus.NEW,
                remote_status=RecordStatus.NEW,
                local=local,
                remote=remote,
                linked=True,
            ))
        else:
            pairs.append(RecordPair(
                collection_id=collection_id,
                pair_key=_new_key(LOCAL_KEY_PREFIX, local.identity),
                local_status=_unpaired_status(local),
                remote_status=RecordStatus.ABSENT,
                local=local,
            ))

    for remote in sorted(remote_by_id.values(), key=lambda r: r.identity):
        pairs.append(RecordPair(
            collection_id=collection_id,
            pair_key=_new_key(REMOTE_KEY_PREFIX, remote.identity),
            local_status=RecordStatus.ABSENT,
            remote_status=_unpaired_status(remote),
            remote=remote,
        ))

    pairs.sort(key=lambda pair: pair.pair_key)
    return pairs
