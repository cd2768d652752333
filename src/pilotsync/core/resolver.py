"""Conflict resolution: maps per-side change statuses to a sync action."""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from ..backends.base import Record


class RecordStatus(str, Enum):
    """Change status of one side of a pair relative to the last sync."""
    UNCHANGED = "unchanged"
    MODIFIED = "modified"
    DELETED = "deleted"
    NEW = "new"
    ABSENT = "absent"


class ConflictPolicy(str, Enum):
    """How conflicting changes on both sides are settled."""
    KEEP_LOCAL = "keep_local"
    KEEP_REMOTE = "keep_remote"
    PREFER_NEWER = "prefer_newer"
    SKIP = "skip"
    ESCALATE = "escalate"


class SyncMode(str, Enum):
    """Direction of a synchronization session."""
    SYNC = "sync"
    COPY_LOCAL_TO_REMOTE = "copy_local_to_remote"
    COPY_REMOTE_TO_LOCAL = "copy_remote_to_local"
    BACKUP = "backup"


class SyncAction(str, Enum):
    """What the engine does for a pair."""
    NONE = "none"
    PUSH = "push"
    PULL = "pull"
    CREATE_REMOTE = "create_remote"
    CREATE_LOCAL = "create_local"
    DELETE_REMOTE = "delete_remote"
    DELETE_LOCAL = "delete_local"
    FORGET = "forget"
    ADOPT = "adopt"
    LINK = "link"
    SKIP = "skip"
    ESCALATE = "escalate"


_PRESENT = (RecordStatus.UNCHANGED, RecordStatus.MODIFIED, RecordStatus.NEW)
_GONE = (RecordStatus.DELETED, RecordStatus.ABSENT)

_SETTLED_POLICIES = (
    ConflictPolicy.KEEP_LOCAL,
    ConflictPolicy.KEEP_REMOTE,
    ConflictPolicy.PREFER_NEWER,
    ConflictPolicy.SKIP,
)

# Outcomes that do not depend on the conflict policy
_TWO_WAY_TABLE = {
    (RecordStatus.UNCHANGED, RecordStatus.UNCHANGED): SyncAction.NONE,
    (RecordStatus.MODIFIED, RecordStatus.UNCHANGED): SyncAction.PUSH,
    (RecordStatus.UNCHANGED, RecordStatus.MODIFIED): SyncAction.PULL,
    (RecordStatus.DELETED, RecordStatus.UNCHANGED): SyncAction.DELETE_REMOTE,
    (RecordStatus.UNCHANGED, RecordStatus.DELETED): SyncAction.DELETE_LOCAL,
    (RecordStatus.DELETED, RecordStatus.DELETED): SyncAction.FORGET,
    (RecordStatus.ABSENT, RecordStatus.ABSENT): SyncAction.FORGET,
    (RecordStatus.DELETED, RecordStatus.ABSENT): SyncAction.FORGET,
    (RecordStatus.ABSENT, RecordStatus.DELETED): SyncAction.FORGET,
}

_CONFLICTS = {
    (RecordStatus.MODIFIED, RecordStatus.MODIFIED),
    (RecordStatus.MODIFIED, RecordStatus.DELETED),
    (RecordStatus.DELETED, RecordStatus.MODIFIED),
}

# (local, remote) -> (action when local wins, action when remote wins)
_CONFLICT_OUTCOMES = {
    (RecordStatus.MODIFIED, RecordStatus.MODIFIED): (SyncAction.PUSH, SyncAction.PULL),
    (RecordStatus.MODIFIED, RecordStatus.DELETED): (SyncAction.CREATE_REMOTE, SyncAction.DELETE_LOCAL),
    (RecordStatus.DELETED, RecordStatus.MODIFIED): (SyncAction.DELETE_REMOTE, SyncAction.CREATE_LOCAL),
}

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def is_conflict(local_status: RecordStatus, remote_status: RecordStatus) -> bool:
    """Both sides changed the same record since the last sync."""
    return (local_status, remote_status) in _CONFLICTS


def _timestamp(record: Optional[Record]) -> datetime:
    if record is None or record.last_modified is None:
        return _EPOCH
    if record.last_modified.tzinfo is None:
        return record.last_modified.replace(tzinfo=timezone.utc)
    return record.last_modified


def _same_content(local: Optional[Record], remote: Optional[Record]) -> bool:
    return (
        local is not None and remote is not None
        and not local.is_deleted and not remote.is_deleted
        and local.content_hash == remote.content_hash
    )


class ConflictResolver:
    """Decides the action for a pair from its two change statuses.

    The decision depends only on the statuses, the session's mode and
    conflict policy, and (for prefer-newer) the records' timestamps.
    """

    def __init__(
        self,
        policy: ConflictPolicy = ConflictPolicy.KEEP_LOCAL,
        mode: SyncMode = SyncMode.SYNC
    ):
        """Initialize the resolver.

        Args:
            policy: Session-wide conflict policy
            mode: Session direction
        """
        self.policy = ConflictPolicy(policy)
        self.mode = SyncMode(mode)

    def resolve(
        self,
        local_status: RecordStatus,
        remote_status: RecordStatus,
        local: Optional[Record] = None,
        remote: Optional[Record] = None,
        policy: Optional[ConflictPolicy] = None
    ) -> SyncAction:
        """Decide what to do with a pair.

        Args:
            local_status: Change status of the local side
            remote_status: Change status of the remote side
            local: Current local record, if loaded
            remote: Current remote record, if loaded
            policy: Override for the session policy, used for escalated choices

        Returns:
            The action to apply
        """
        if self.mode != SyncMode.SYNC:
            return self.resolve_mirror(local_status, remote_status, local, remote)

        if _same_content(local, remote):
            if local_status == RecordStatus.UNCHANGED and remote_status == RecordStatus.UNCHANGED:
                return SyncAction.NONE
            return SyncAction.ADOPT

        # A new record facing a paired side is a modification of that pair
        if local_status == RecordStatus.NEW and remote_status != RecordStatus.ABSENT:
            local_status = RecordStatus.MODIFIED
        if remote_status == RecordStatus.NEW and local_status != RecordStatus.ABSENT:
            remote_status = RecordStatus.MODIFIED

        key = (local_status, remote_status)
        if key in _TWO_WAY_TABLE:
            return _TWO_WAY_TABLE[key]
        if key in _CONFLICTS:
            return self.resolve_conflict(local_status, remote_status, local, remote, policy)

        # One side has no counterpart: copy whatever still exists across
        if remote_status == RecordStatus.ABSENT and local_status in _PRESENT:
            return SyncAction.CREATE_REMOTE
        return SyncAction.CREATE_LOCAL

    def resolve_conflict(
        self,
        local_status: RecordStatus,
        remote_status: RecordStatus,
        local: Optional[Record] = None,
        remote: Optional[Record] = None,
        policy: Optional[ConflictPolicy] = None
    ) -> SyncAction:
        """Apply a conflict policy to a conflicting status pair."""
        policy = ConflictPolicy(policy or self.policy)
        local_wins, remote_wins = _CONFLICT_OUTCOMES[(local_status, remote_status)]

        if policy == ConflictPolicy.KEEP_LOCAL:
            return local_wins
        if policy == ConflictPolicy.KEEP_REMOTE:
            return remote_wins
        if policy == ConflictPolicy.PREFER_NEWER:
            # Ties go to the local side
            return remote_wins if _timestamp(remote) > _timestamp(local) else local_wins
        if policy == ConflictPolicy.SKIP:
            return SyncAction.SKIP
        return SyncAction.ESCALATE

    def resolve_mirror(
        self,
        local_status: RecordStatus,
        remote_status: RecordStatus,
        local: Optional[Record] = None,
        remote: Optional[Record] = None
    ) -> SyncAction:
        """Decide an action for the one-directional modes.

        The source side is authoritative; the conflict policy is never consulted.
        """
        if self.mode == SyncMode.COPY_LOCAL_TO_REMOTE:
            source_status, target_status = local_status, remote_status
            update, create, delete = SyncAction.PUSH, SyncAction.CREATE_REMOTE, SyncAction.DELETE_REMOTE
        else:
            source_status, target_status = remote_status, local_status
            update, create, delete = SyncAction.PULL, SyncAction.CREATE_LOCAL, SyncAction.DELETE_LOCAL

        source_present = source_status in _PRESENT
        target_present = target_status in _PRESENT

        if source_present and target_present:
            if _same_content(local, remote):
                both_unchanged = (
                    local_status == RecordStatus.UNCHANGED and remote_status == RecordStatus.UNCHANGED
                )
                return SyncAction.NONE if both_unchanged else SyncAction.ADOPT
            return update
        if source_present:
            return create
        if target_present:
            if self.mode == SyncMode.BACKUP:
                # Backups never remove local records; an unpaired one is left alone
                return SyncAction.FORGET if target_status != RecordStatus.NEW else SyncAction.NONE
            return delete
        return SyncAction.FORGET


def settled_policy(choice: Optional[ConflictPolicy]) -> Optional[ConflictPolicy]:
    """Normalize an escalation answer; anything but a concrete policy counts as no answer."""
    if choice is None:
        return None
    try:
        choice = ConflictPolicy(choice)
    except ValueError:
        return None
    return choice if choice in _SETTLED_POLICIES else None
