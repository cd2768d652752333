"""Core sync engine reconciling a local collection store with a device."""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Union

from ..backends.base import Backend, BackendResult, CollectionDescriptor, ErrorKind, Record
from ..config.settings import get_settings
from ..state.models import SyncStateEntry
from ..state.store import SyncStateStore
from ..utils.hashing import short_hash
from ..utils.logging import get_logger, log_execution_time
from .conduit import Conduit, ConduitOrderError, order_conduits
from .observer import SyncObserver
from .planner import RecordPair, build_pairs, pair_from_entry
from .resolver import (
    ConflictPolicy,
    ConflictResolver,
    RecordStatus,
    SyncAction,
    SyncMode,
    settled_policy,
)
from .results import (
    ConflictInfo,
    OutcomeStatus,
    PairOutcome,
    SessionResult,
    SessionState,
)


ProgressCallback = Callable[[int, int, str], None]
CancelCheck = Callable[[], bool]
ConflictHandler = Callable[[ConflictInfo], Optional[ConflictPolicy]]

_DELETE_ACTIONS = (SyncAction.DELETE_LOCAL, SyncAction.DELETE_REMOTE)
_ACTIVE_STATES = (SessionState.PREPARING, SessionState.SYNCING)


class SyncEngineError(Exception):
    """Base class for errors raised by the sync engine to its callers."""
    pass


class SyncBusyError(SyncEngineError):
    """Raised when a session is requested while another one is running."""
    pass


class _SessionAborted(Exception):
    """A fatal condition ends the session in the failed state."""

    def __init__(self, kind: ErrorKind, message: str):
        """Keep the error kind for the session result."""
        super().__init__(message)
        self.kind = kind


class _SessionCancelled(Exception):
    """The cancel check fired between two pairs."""


class SyncEngine:
    """Synchronizes registered collections between a local and a remote backend.

    One session runs at a time. Pairs are processed one after another and
    the sync state of each pair is written before the next one starts, so
    an interrupted session can simply be run again.
    """

    def __init__(
        self,
        local_backend: Backend,
        remote_backend: Backend,
        state_directory: Optional[Union[str, Path]] = None,
        conflict_policy: Optional[ConflictPolicy] = None,
        mode: Optional[SyncMode] = None,
        parallel_load: Optional[bool] = None,
        volatility_threshold: Optional[float] = None,
        volatility_min_records: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """Initialize sync engine.

        Args:
            local_backend: Local collection store
            remote_backend: Device-side store
            state_directory: Directory for persisted sync state
            conflict_policy: Session-wide conflict policy, defaults to settings
            mode: Sync direction, defaults to settings
            parallel_load: Load both sides of a collection concurrently, defaults to settings
            volatility_threshold: Percentage of deletions that triggers a warning
            volatility_min_records: Pairs a collection needs before the check applies
            clock: Source of sync timestamps
        """
        settings = get_settings()

        self.local_backend = local_backend
        self.remote_backend = remote_backend
        self.logger = get_logger(self.__class__.__name__)

        self.parallel_load = settings.sync.parallel_load if parallel_load is None else parallel_load
        self.volatility_threshold = (
            settings.sync.volatility_threshold if volatility_threshold is None else volatility_threshold
        )
        self.volatility_min_records = (
            settings.sync.volatility_min_records if volatility_min_records is None
            else volatility_min_records
        )

        self._resolver = ConflictResolver(
            conflict_policy or ConflictPolicy(settings.sync.conflict_policy),
            mode or SyncMode(settings.sync.mode)
        )
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._state_directory = Path(state_directory or settings.state.directory)
        self._state_store: Optional[SyncStateStore] = None

        self._conduits: Dict[str, Conduit] = {}
        self._observers: List[SyncObserver] = []
        self._progress_callback: Optional[ProgressCallback] = None
        self._cancel_check: Optional[CancelCheck] = None
        self._conflict_handler: Optional[ConflictHandler] = None
        self._resolutions: Dict[Tuple[str, str], ConflictPolicy] = {}
        self._resolutions_lock = threading.Lock()

        self._state = SessionState.IDLE
        self._run_lock = threading.Lock()
        self._cancel_event = threading.Event()

        self.logger.info(
            "Sync engine initialized",
            local_backend=local_backend.backend_id,
            remote_backend=remote_backend.backend_id,
            conflict_policy=self._resolver.policy.value,
            mode=self._resolver.mode.value
        )

    # Configuration

    @property
    def state(self) -> SessionState:
        """Current session state."""
        return self._state

    @property
    def conflict_policy(self) -> ConflictPolicy:
        """Session-wide conflict policy."""
        return self._resolver.policy

    @property
    def sync_mode(self) -> SyncMode:
        """Sync direction."""
        return self._resolver.mode

    @property
    def conduits(self) -> List[Conduit]:
        """Registered conduits in registration order."""
        return list(self._conduits.values())

    @property
    def state_store(self) -> SyncStateStore:
        """The persisted sync state, opened on first use."""
        if self._state_store is None:
            self._state_store = SyncStateStore(self._state_directory)
        return self._state_store

    def register_collection(
        self,
        descriptor: CollectionDescriptor,
        enabled: bool = True,
        run_after: Iterable[str] = (),
        run_before: Iterable[str] = ()
    ) -> Conduit:
        """Register a collection to be synced.

        Args:
            descriptor: Collection to sync
            enabled: Whether the collection takes part in sessions
            run_after: Collections that must be synced before this one
            run_before: Collections that must be synced after this one

        Returns:
            The registered conduit
        """
        self._ensure_idle()
        conduit = Conduit(
            descriptor=descriptor,
            enabled=enabled,
            run_after=tuple(run_after),
            run_before=tuple(run_before),
        )
        self._conduits[descriptor.id] = conduit
        self.logger.debug("Collection registered", collection_id=descriptor.id, enabled=enabled)
        return conduit

    def unregister_collection(self, collection_id: str) -> None:
        """Stop syncing a collection; its persisted state is kept."""
        self._ensure_idle()
        if self._conduits.pop(collection_id, None) is None:
            raise ValueError(f"Unknown collection: {collection_id}")

    def set_collection_enabled(self, collection_id: str, enabled: bool) -> None:
        """Enable or disable a registered collection."""
        self._ensure_idle()
        conduit = self._conduits.get(collection_id)
        if conduit is None:
            raise ValueError(f"Unknown collection: {collection_id}")
        conduit.enabled = enabled

    def set_conflict_policy(self, policy: ConflictPolicy) -> None:
        """Set the session-wide conflict policy."""
        self._ensure_idle()
        self._resolver.policy = ConflictPolicy(policy)

    def set_sync_mode(self, mode: SyncMode) -> None:
        """Set the sync direction."""
        self._ensure_idle()
        self._resolver.mode = SyncMode(mode)

    def set_state_directory(self, state_directory: Union[str, Path]) -> None:
        """Point the engine at another state directory."""
        self._ensure_idle()
        if self._state_store is not None:
            self._state_store.close()
            self._state_store = None
        self._state_directory = Path(state_directory)

    def set_progress_callback(self, callback: Optional[ProgressCallback]) -> None:
        """Receive (completed, total, label) after each pair of a collection."""
        self._progress_callback = callback

    def set_cancel_check(self, check: Optional[CancelCheck]) -> None:
        """Predicate consulted between pairs; returning True cancels the session."""
        self._cancel_check = check

    def set_conflict_handler(self, handler: Optional[ConflictHandler]) -> None:
        """Callback asked to settle conflicts under the escalate policy.

        It may return a policy to apply right away, or None to defer the
        decision to a later ``supply_resolution`` call.
        """
        self._conflict_handler = handler

    def supply_resolution(self, collection_id: str, pair_key: str, choice: ConflictPolicy) -> None:
        """Provide the decision for a deferred conflict."""
        policy = settled_policy(choice)
        if policy is None:
            raise ValueError(f"Not a usable resolution: {choice}")
        with self._resolutions_lock:
            self._resolutions[(collection_id, pair_key)] = policy

    def add_observer(self, observer: SyncObserver) -> None:
        """Subscribe to session events."""
        if observer not in self._observers:
            self._observers.append(observer)

    def remove_observer(self, observer: SyncObserver) -> None:
        """Unsubscribe from session events."""
        if observer in self._observers:
            self._observers.remove(observer)

    def cancel(self) -> None:
        """Ask the running session to stop before its next pair."""
        self._cancel_event.set()

    def is_syncing(self) -> bool:
        """A session is preparing or syncing."""
        return self._state in _ACTIVE_STATES

    def close(self) -> None:
        """Release the state databases."""
        self._ensure_idle()
        if self._state_store is not None:
            self._state_store.close()
            self._state_store = None

    # Session

    @log_execution_time
    def run_sync(self, collection_ids: Optional[Iterable[str]] = None) -> SessionResult:
        """Run one sync session.

        Args:
            collection_ids: Sync only these collections, whether enabled or
                not. All enabled collections are synced when omitted.

        Returns:
            SessionResult describing every pair that was processed

        Raises:
            SyncBusyError: If a session is already running
            ValueError: If a named collection is not registered
        """
        selected = None
        if collection_ids is not None:
            selected = list(dict.fromkeys(collection_ids))
            unknown = [cid for cid in selected if cid not in self._conduits]
            if unknown:
                raise ValueError(f"Unknown collection: {', '.join(unknown)}")

        if not self._run_lock.acquire(blocking=False):
            raise SyncBusyError("A sync session is already running")

        try:
            return self._run_session(selected)
        finally:
            self._run_lock.release()

    def _run_session(self, selected: Optional[List[str]]) -> SessionResult:
        result = SessionResult(started_at=self._clock())
        self._cancel_event.clear()
        self._state = SessionState.PREPARING
        self._notify("on_session_started")

        self.logger.info(
            "Starting sync session",
            mode=self._resolver.mode.value,
            conflict_policy=self._resolver.policy.value,
            collections=[c.id for c in self._selected_conduits(selected)]
        )

        try:
            conduits = self._prepare(selected)
            self._state = SessionState.SYNCING

            for conduit in conduits:
                if self._cancel_requested():
                    raise _SessionCancelled()
                self._sync_collection(conduit.descriptor, result)

            self._state = SessionState.COMPLETED

        except _SessionCancelled:
            self._state = SessionState.CANCELLED
            self.logger.warning("Sync session cancelled", processed_pairs=len(result.outcomes))

        except _SessionAborted as e:
            self._state = SessionState.FAILED
            result.error_kind = e.kind
            result.error_message = str(e)
            self.logger.error("Sync session failed", error_kind=e.kind.value, error=str(e))

        except Exception as e:
            self._state = SessionState.FAILED
            result.error_kind = ErrorKind.IO_FAILURE
            result.error_message = f"Unexpected error during sync: {e}"
            self.logger.error("Sync session failed with unexpected error", error=str(e), exc_info=True)

        finally:
            result.state = self._state
            result.finished_at = self._clock()

        self.logger.info("Sync session finished", summary=result.summary(), duration=result.duration)
        self._notify("on_session_finished", result)
        return result

    def _selected_conduits(self, selected: Optional[List[str]]) -> List[Conduit]:
        if selected is None:
            return [conduit for conduit in self._conduits.values() if conduit.enabled]
        return [conduit for conduit in self._conduits.values() if conduit.id in selected]

    def _prepare(self, selected: Optional[List[str]]) -> List[Conduit]:
        for side, backend in (("local", self.local_backend), ("remote", self.remote_backend)):
            if not backend.is_available():
                raise _SessionAborted(
                    ErrorKind.BACKEND_UNAVAILABLE,
                    f"The {side} backend ({backend.display_name}) is not available"
                )

        try:
            ordered = order_conduits(self._selected_conduits(selected))
        except ConduitOrderError as e:
            raise _SessionAborted(ErrorKind.INVALID_CONFIGURATION, str(e))

        for conduit in ordered:
            for backend in (self.local_backend, self.remote_backend):
                ensured = backend.ensure_collection(conduit.descriptor)
                if not ensured.ok:
                    raise _SessionAborted(
                        ensured.error_kind,
                        f"Cannot prepare collection '{conduit.id}' on "
                        f"{backend.display_name}: {ensured.error.message}"
                    )

        return ordered

    def _cancel_requested(self) -> bool:
        if self._cancel_event.is_set():
            return True
        if self._cancel_check is not None and self._cancel_check():
            self._cancel_event.set()
            return True
        return False

    def _sync_collection(self, descriptor: CollectionDescriptor, result: SessionResult) -> None:
        collection_id = descriptor.id
        store = self.state_store

        local_records, remote_records = self._load_both(collection_id)
        entries = store.all_for_collection(collection_id)
        pairs = build_pairs(collection_id, local_records, remote_records, entries)

        result.collections.append(collection_id)
        self.logger.info(
            "Syncing collection",
            collection_id=collection_id,
            pairs=len(pairs),
            local_records=len(local_records),
            remote_records=len(remote_records),
            first_sync=not entries
        )
        self._notify("on_collection_started", collection_id, len(pairs))
        self._check_volatility(collection_id, pairs, result)

        deferred: List[RecordPair] = []
        total = len(pairs)

        for index, pair in enumerate(pairs):
            if self._cancel_requested():
                raise _SessionCancelled()

            outcome = self._process_pair(pair, result)
            if outcome is None:
                deferred.append(pair)
            else:
                self._record(outcome, result)
            self._report_progress(index + 1, total, pair.label)

        for pair in deferred:
            if self._cancel_requested():
                raise _SessionCancelled()
            self._record(self._revisit(pair, result), result)

        store.set_last_sync_time(collection_id, self._clock())
        self._notify("on_collection_finished", collection_id)

    def _load_both(self, collection_id: str) -> Tuple[List[Record], List[Record]]:
        if self.parallel_load:
            with ThreadPoolExecutor(max_workers=2, thread_name_prefix="pilotsync-load") as executor:
                local_future = executor.submit(self.local_backend.load_all, collection_id)
                remote_future = executor.submit(self.remote_backend.load_all, collection_id)
                local_loaded, remote_loaded = local_future.result(), remote_future.result()
        else:
            local_loaded = self.local_backend.load_all(collection_id)
            remote_loaded = self.remote_backend.load_all(collection_id)

        for side, loaded in (("local", local_loaded), ("remote", remote_loaded)):
            if not loaded.ok:
                # Without a full enumeration deletions cannot be told apart
                raise _SessionAborted(
                    loaded.error_kind,
                    f"Failed to load {side} collection '{collection_id}': {loaded.error.message}"
                )

        return local_loaded.value, remote_loaded.value

    def _check_volatility(self, collection_id: str, pairs: List[RecordPair], result: SessionResult) -> None:
        if not pairs or len(pairs) < self.volatility_min_records:
            return

        deletions = sum(1 for pair in pairs if self._decide(pair) in _DELETE_ACTIONS)
        percentage = deletions * 100.0 / len(pairs)
        if percentage > self.volatility_threshold:
            message = (
                f"{deletions} of {len(pairs)} records in '{collection_id}' "
                f"will be deleted ({percentage:.0f}%)"
            )
            result.warnings.append(message)
            self.logger.warning("High deletion volatility", collection_id=collection_id, message=message)
            self._notify("on_warning", collection_id, message)

    def _decide(self, pair: RecordPair, policy: Optional[ConflictPolicy] = None) -> SyncAction:
        if pair.linked:
            return SyncAction.LINK
        return self._resolver.resolve(
            pair.local_status,
            pair.remote_status,
            pair.local,
            pair.remote,
            policy=policy
        )

    def _process_pair(self, pair: RecordPair, result: SessionResult) -> Optional[PairOutcome]:
        action = self._decide(pair)
        if action != SyncAction.ESCALATE:
            return self._apply(pair, action, result)

        conflict = self._conflict_info(pair)
        self._notify("on_conflict", conflict)

        choice = None
        if self._conflict_handler is not None:
            choice = settled_policy(self._conflict_handler(conflict))
        if choice is None:
            choice = self._take_resolution(pair)
        if choice is None:
            self.logger.info(
                "Conflict deferred",
                collection_id=pair.collection_id,
                pair_key=pair.pair_key
            )
            return None

        return self._apply(pair, self._decide(pair, choice), result)

    def _revisit(self, pair: RecordPair, result: SessionResult) -> PairOutcome:
        choice = self._take_resolution(pair)
        if choice is None:
            return self._outcome(
                pair,
                SyncAction.ESCALATE,
                OutcomeStatus.CONFLICTED,
                error_kind=ErrorKind.CONFLICT_UNRESOLVED,
                error_message="No resolution was supplied"
            )

        # The records may have changed while the decision was pending
        fresh = self._reload(pair)
        return self._apply(fresh, self._decide(fresh, choice), result)

    def _reload(self, pair: RecordPair) -> RecordPair:
        local = self._load_current(self.local_backend, pair.local_identity)
        remote = self._load_current(self.remote_backend, pair.remote_identity)
        if pair.entry is not None:
            return pair_from_entry(pair.entry, local, remote)
        return replace(pair, local=local, remote=remote)

    def _load_current(self, backend: Backend, identity: Optional[str]) -> Optional[Record]:
        if not identity:
            return None
        loaded = backend.load_one(identity)
        self._raise_if_unavailable(loaded)
        return loaded.value if loaded.ok else None

    def _take_resolution(self, pair: RecordPair) -> Optional[ConflictPolicy]:
        with self._resolutions_lock:
            return self._resolutions.pop((pair.collection_id, pair.pair_key), None)

    def _conflict_info(self, pair: RecordPair) -> ConflictInfo:
        return ConflictInfo(
            collection_id=pair.collection_id,
            pair_key=pair.pair_key,
            local_status=pair.local_status,
            remote_status=pair.remote_status,
            local=pair.local,
            remote=pair.remote,
        )

    # Applying actions

    def _apply(
        self,
        pair: RecordPair,
        action: SyncAction,
        result: SessionResult,
        retried: bool = False
    ) -> PairOutcome:
        self.logger.debug(
            "Applying action",
            collection_id=pair.collection_id,
            pair_key=pair.pair_key,
            local_status=pair.local_status.value,
            remote_status=pair.remote_status.value,
            action=action.value
        )

        if action in (SyncAction.NONE, SyncAction.SKIP):
            status = OutcomeStatus.SKIPPED if action == SyncAction.SKIP else OutcomeStatus.UNCHANGED
            return self._outcome(pair, action, status)

        if action == SyncAction.ESCALATE:
            return self._outcome(
                pair,
                action,
                OutcomeStatus.CONFLICTED,
                error_kind=ErrorKind.CONFLICT_UNRESOLVED,
                error_message="Conflict needs a decision"
            )

        if action in (SyncAction.ADOPT, SyncAction.LINK):
            self._save_pair(pair, pair.local.identity, pair.remote.identity, pair.local.content_hash)
            return self._outcome(pair, action, OutcomeStatus.UNCHANGED)

        if action == SyncAction.FORGET:
            self._acknowledge_deletions(pair)
            self._forget_pair(pair)
            return self._outcome(pair, action, OutcomeStatus.UNCHANGED)

        if action in (SyncAction.PUSH, SyncAction.PULL):
            return self._apply_update(pair, action, result, retried)

        if action in (SyncAction.CREATE_REMOTE, SyncAction.CREATE_LOCAL):
            return self._apply_create(pair, action, result)

        return self._apply_delete(pair, action, result)

    def _apply_update(
        self,
        pair: RecordPair,
        action: SyncAction,
        result: SessionResult,
        retried: bool
    ) -> PairOutcome:
        if action == SyncAction.PUSH:
            source, target_backend, target_identity = pair.local, self.remote_backend, pair.remote_identity
            stats = result.remote_stats
        else:
            source, target_backend, target_identity = pair.remote, self.local_backend, pair.local_identity
            stats = result.local_stats

        updated = target_backend.update(source.with_identity(target_identity))
        if not updated.ok:
            if updated.error_kind == ErrorKind.NOT_FOUND and not retried:
                return self._reevaluate_missing(pair, action, result)
            return self._failed(pair, action, updated)

        stats.updated += 1
        self._save_pair(pair, pair.local_identity, pair.remote_identity, source.content_hash)
        return self._outcome(pair, action, OutcomeStatus.SYNCED, mutations=1)

    def _apply_create(self, pair: RecordPair, action: SyncAction, result: SessionResult) -> PairOutcome:
        if action == SyncAction.CREATE_REMOTE:
            source, target_backend, stats = pair.local, self.remote_backend, result.remote_stats
            stale_identity = pair.remote_identity
        else:
            source, target_backend, stats = pair.remote, self.local_backend, result.local_stats
            stale_identity = pair.local_identity

        created = target_backend.create(pair.collection_id, source)
        if not created.ok:
            return self._failed(pair, action, created)

        stats.created += 1
        if stale_identity:
            # The record being replaced may linger as a tombstone
            self._purge(target_backend, stale_identity)

        if action == SyncAction.CREATE_REMOTE:
            self._save_pair(pair, source.identity, created.value, source.content_hash)
        else:
            self._save_pair(pair, created.value, source.identity, source.content_hash)

        self.logger.debug(
            "Record created",
            collection_id=pair.collection_id,
            pair_key=pair.pair_key,
            identity=created.value,
            content=short_hash(source.payload)
        )
        return self._outcome(pair, action, OutcomeStatus.SYNCED, mutations=1)

    def _apply_delete(self, pair: RecordPair, action: SyncAction, result: SessionResult) -> PairOutcome:
        if action == SyncAction.DELETE_REMOTE:
            target_backend, target_identity, stats = self.remote_backend, pair.remote_identity, result.remote_stats
        else:
            target_backend, target_identity, stats = self.local_backend, pair.local_identity, result.local_stats

        deleted = target_backend.delete(target_identity)
        if not deleted.ok:
            return self._failed(pair, action, deleted)

        stats.deleted += 1
        # Both sides now agree the record is gone
        self._purge(target_backend, target_identity)
        self._acknowledge_deletions(pair)
        self._forget_pair(pair)
        return self._outcome(pair, action, OutcomeStatus.SYNCED, mutations=1)

    def _reevaluate_missing(self, pair: RecordPair, action: SyncAction, result: SessionResult) -> PairOutcome:
        self.logger.info(
            "Record vanished during sync, re-evaluating",
            collection_id=pair.collection_id,
            pair_key=pair.pair_key,
            action=action.value
        )
        if action == SyncAction.PUSH:
            fresh = replace(pair, remote=None, remote_status=RecordStatus.DELETED)
        else:
            fresh = replace(pair, local=None, local_status=RecordStatus.DELETED)
        return self._apply(fresh, self._decide(fresh), result, retried=True)

    def _acknowledge_deletions(self, pair: RecordPair) -> None:
        if pair.local is not None and pair.local.is_deleted:
            self._purge(self.local_backend, pair.local.identity)
        if pair.remote is not None and pair.remote.is_deleted:
            self._purge(self.remote_backend, pair.remote.identity)

    def _purge(self, backend: Backend, identity: str) -> None:
        purged = backend.purge_deleted(identity)
        self._raise_if_unavailable(purged)
        if not purged.ok:
            self.logger.warning("Failed to purge tombstone", identity=identity, error=str(purged.error))

    def _save_pair(
        self,
        pair: RecordPair,
        local_identity: Optional[str],
        remote_identity: Optional[str],
        content_hash: str
    ) -> None:
        self.state_store.put(SyncStateEntry(
            collection_id=pair.collection_id,
            pair_key=pair.pair_key,
            local_identity=local_identity,
            remote_identity=remote_identity,
            last_synced_hash=content_hash,
            last_synced_at=self._clock(),
        ))

    def _forget_pair(self, pair: RecordPair) -> None:
        if pair.entry is not None:
            self.state_store.remove(pair.collection_id, pair.pair_key)

    # Bookkeeping

    def _failed(self, pair: RecordPair, action: SyncAction, failed: BackendResult) -> PairOutcome:
        self._raise_if_unavailable(failed)
        self.logger.error(
            "Pair failed",
            collection_id=pair.collection_id,
            pair_key=pair.pair_key,
            action=action.value,
            error=str(failed.error)
        )
        return self._outcome(
            pair,
            action,
            OutcomeStatus.FAILED,
            error_kind=failed.error_kind,
            error_message=failed.error.message
        )

    @staticmethod
    def _raise_if_unavailable(outcome: BackendResult) -> None:
        if not outcome.ok and outcome.error_kind == ErrorKind.BACKEND_UNAVAILABLE:
            raise _SessionAborted(ErrorKind.BACKEND_UNAVAILABLE, outcome.error.message)

    @staticmethod
    def _outcome(
        pair: RecordPair,
        action: SyncAction,
        status: OutcomeStatus,
        mutations: int = 0,
        error_kind: Optional[ErrorKind] = None,
        error_message: Optional[str] = None
    ) -> PairOutcome:
        return PairOutcome(
            collection_id=pair.collection_id,
            pair_key=pair.pair_key,
            label=pair.label,
            local_status=pair.local_status,
            remote_status=pair.remote_status,
            action=action,
            status=status,
            mutations=mutations,
            error_kind=error_kind,
            error_message=error_message,
        )

    def _record(self, outcome: PairOutcome, result: SessionResult) -> None:
        result.outcomes.append(outcome)
        self._notify("on_pair_completed", outcome)

    def _report_progress(self, completed: int, total: int, label: str) -> None:
        if self._progress_callback is not None:
            self._progress_callback(completed, total, label)

    def _notify(self, event: str, *args) -> None:
        for observer in list(self._observers):
            try:
                getattr(observer, event)(*args)
            except Exception as e:
                self.logger.warning("Observer failed", observer=type(observer).__name__, event=event, error=str(e))

    def _ensure_idle(self) -> None:
        if self.is_syncing():
            raise SyncBusyError("Cannot change the engine while a session is running")
