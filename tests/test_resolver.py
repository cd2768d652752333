"""Tests for the conflict resolver decision table."""

import os
import sys
from datetime import datetime, timezone

import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from pilotsync.backends import Record
from pilotsync.core import (
    ConflictPolicy,
    ConflictResolver,
    RecordStatus,
    SyncAction,
    SyncMode,
    is_conflict,
)
from pilotsync.core.resolver import settled_policy


U = RecordStatus.UNCHANGED
M = RecordStatus.MODIFIED
D = RecordStatus.DELETED
N = RecordStatus.NEW
A = RecordStatus.ABSENT

EARLY = datetime(2024, 1, 1, 8, 0, tzinfo=timezone.utc)
LATE = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


def record(payload: bytes, when: datetime = None, deleted: bool = False) -> Record:
    """Build a record with the given content and timestamp."""
    return Record("id", payload, last_modified=when, is_deleted=deleted)


class TestTwoWayTable:
    """Non-conflicting status pairs resolve the same under every policy."""

    @pytest.mark.parametrize("policy", list(ConflictPolicy))
    @pytest.mark.parametrize("local_status,remote_status,expected", [
        (U, U, SyncAction.NONE),
        (M, U, SyncAction.PUSH),
        (U, M, SyncAction.PULL),
        (D, U, SyncAction.DELETE_REMOTE),
        (U, D, SyncAction.DELETE_LOCAL),
        (D, D, SyncAction.FORGET),
        (A, A, SyncAction.FORGET),
        (D, A, SyncAction.FORGET),
        (A, D, SyncAction.FORGET),
        (N, A, SyncAction.CREATE_REMOTE),
        (A, N, SyncAction.CREATE_LOCAL),
        (U, A, SyncAction.CREATE_REMOTE),
        (A, M, SyncAction.CREATE_LOCAL),
    ])
    def test_table(self, policy, local_status, remote_status, expected):
        """Each status pair maps to its action."""
        resolver = ConflictResolver(policy)
        local = record(b"local") if local_status in (U, M, N) else None
        remote = record(b"remote") if remote_status in (U, M, N) else None
        assert resolver.resolve(local_status, remote_status, local, remote) == expected

    def test_same_content_is_adopted(self):
        """Identical content on both sides needs no copying."""
        resolver = ConflictResolver(ConflictPolicy.ESCALATE)
        same_local, same_remote = record(b"same"), record(b"same")
        assert resolver.resolve(M, M, same_local, same_remote) == SyncAction.ADOPT
        assert resolver.resolve(N, N, same_local, same_remote) == SyncAction.ADOPT
        assert resolver.resolve(U, U, same_local, same_remote) == SyncAction.NONE

    def test_new_against_paired_side_is_modification(self):
        """A fresh record facing a live side conflicts like a modification."""
        resolver = ConflictResolver(ConflictPolicy.KEEP_REMOTE)
        assert resolver.resolve(N, U, record(b"a"), record(b"b")) == SyncAction.PUSH
        assert resolver.resolve(N, M, record(b"a"), record(b"b")) == SyncAction.PULL


class TestConflictPolicies:
    """Conflicting pairs follow the selected policy."""

    @pytest.mark.parametrize("local_status,remote_status,policy,expected", [
        (M, M, ConflictPolicy.KEEP_LOCAL, SyncAction.PUSH),
        (M, M, ConflictPolicy.KEEP_REMOTE, SyncAction.PULL),
        (M, M, ConflictPolicy.PREFER_NEWER, SyncAction.PUSH),
        (M, M, ConflictPolicy.SKIP, SyncAction.SKIP),
        (M, M, ConflictPolicy.ESCALATE, SyncAction.ESCALATE),
        (M, D, ConflictPolicy.KEEP_LOCAL, SyncAction.CREATE_REMOTE),
        (M, D, ConflictPolicy.KEEP_REMOTE, SyncAction.DELETE_LOCAL),
        (M, D, ConflictPolicy.PREFER_NEWER, SyncAction.CREATE_REMOTE),
        (M, D, ConflictPolicy.SKIP, SyncAction.SKIP),
        (M, D, ConflictPolicy.ESCALATE, SyncAction.ESCALATE),
        (D, M, ConflictPolicy.KEEP_LOCAL, SyncAction.DELETE_REMOTE),
        (D, M, ConflictPolicy.KEEP_REMOTE, SyncAction.CREATE_LOCAL),
        (D, M, ConflictPolicy.PREFER_NEWER, SyncAction.CREATE_LOCAL),
        (D, M, ConflictPolicy.SKIP, SyncAction.SKIP),
        (D, M, ConflictPolicy.ESCALATE, SyncAction.ESCALATE),
    ])
    def test_policy(self, local_status, remote_status, policy, expected):
        """Each conflict resolves according to the policy.

        Live sides share a timestamp, so prefer-newer sees a tie on M/M and
        beats a deleted side that has none.
        """
        local = record(b"local", EARLY) if local_status == M else None
        remote = record(b"remote", EARLY) if remote_status == M else None
        resolver = ConflictResolver(policy)
        assert is_conflict(local_status, remote_status)
        assert resolver.resolve(local_status, remote_status, local, remote) == expected

    def test_prefer_newer(self):
        """The more recently modified side wins."""
        resolver = ConflictResolver(ConflictPolicy.PREFER_NEWER)
        assert resolver.resolve(M, M, record(b"a", LATE), record(b"b", EARLY)) == SyncAction.PUSH
        assert resolver.resolve(M, M, record(b"a", EARLY), record(b"b", LATE)) == SyncAction.PULL

    def test_prefer_newer_tie_goes_local(self):
        """Equal timestamps keep the local side."""
        resolver = ConflictResolver(ConflictPolicy.PREFER_NEWER)
        assert resolver.resolve(M, M, record(b"a", LATE), record(b"b", LATE)) == SyncAction.PUSH

    def test_prefer_newer_missing_timestamp_loses(self):
        """A side without a timestamp counts as oldest."""
        resolver = ConflictResolver(ConflictPolicy.PREFER_NEWER)
        assert resolver.resolve(M, M, record(b"a"), record(b"b", EARLY)) == SyncAction.PULL
        assert resolver.resolve(M, D, record(b"a", EARLY), None) == SyncAction.CREATE_REMOTE

    def test_policy_override(self):
        """An escalation answer overrides the session policy."""
        resolver = ConflictResolver(ConflictPolicy.ESCALATE)
        action = resolver.resolve(M, M, record(b"a"), record(b"b"), policy=ConflictPolicy.KEEP_REMOTE)
        assert action == SyncAction.PULL

    def test_not_a_conflict(self):
        """One-sided changes are not conflicts."""
        assert not is_conflict(M, U)
        assert not is_conflict(D, D)


class TestMirrorModes:
    """One-directional modes copy from an authoritative side."""

    @pytest.mark.parametrize("mode,local_status,remote_status,expected", [
        (SyncMode.COPY_LOCAL_TO_REMOTE, U, M, SyncAction.PUSH),
        (SyncMode.COPY_LOCAL_TO_REMOTE, N, A, SyncAction.CREATE_REMOTE),
        (SyncMode.COPY_LOCAL_TO_REMOTE, A, N, SyncAction.DELETE_REMOTE),
        (SyncMode.COPY_LOCAL_TO_REMOTE, D, U, SyncAction.DELETE_REMOTE),
        (SyncMode.COPY_REMOTE_TO_LOCAL, M, U, SyncAction.PULL),
        (SyncMode.COPY_REMOTE_TO_LOCAL, N, A, SyncAction.DELETE_LOCAL),
        (SyncMode.COPY_REMOTE_TO_LOCAL, D, M, SyncAction.CREATE_LOCAL),
        (SyncMode.BACKUP, M, U, SyncAction.PULL),
        (SyncMode.BACKUP, A, N, SyncAction.CREATE_LOCAL),
        (SyncMode.BACKUP, N, A, SyncAction.NONE),
        (SyncMode.BACKUP, U, D, SyncAction.FORGET),
        (SyncMode.BACKUP, D, D, SyncAction.FORGET),
    ])
    def test_mirror(self, mode, local_status, remote_status, expected):
        """The source side always wins."""
        resolver = ConflictResolver(ConflictPolicy.ESCALATE, mode)
        local = record(b"local") if local_status in (U, M, N) else None
        remote = record(b"remote") if remote_status in (U, M, N) else None
        assert resolver.resolve(local_status, remote_status, local, remote) == expected

    def test_mirror_same_content(self):
        """Matching content is adopted rather than copied."""
        resolver = ConflictResolver(mode=SyncMode.COPY_LOCAL_TO_REMOTE)
        assert resolver.resolve(N, N, record(b"x"), record(b"x")) == SyncAction.ADOPT


class TestSettledPolicy:
    """Escalation answers are normalized."""

    @pytest.mark.parametrize("choice,expected", [
        (None, None),
        (ConflictPolicy.ESCALATE, None),
        ("not-a-policy", None),
        ("keep_remote", ConflictPolicy.KEEP_REMOTE),
        (ConflictPolicy.SKIP, ConflictPolicy.SKIP),
    ])
    def test_settled_policy(self, choice, expected):
        """Only concrete policies count as answers."""
        assert settled_policy(choice) == expected
