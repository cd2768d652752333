"""Observer interface for sync session events."""

from .results import ConflictInfo, PairOutcome, SessionResult


class SyncObserver:
    """Receives session events synchronously on the syncing thread.

    Every hook is a no-op; subclasses override the ones they need.
    """

    def on_session_started(self) -> None:
        """A session has entered the preparing state."""

    def on_collection_started(self, collection_id: str, pair_count: int) -> None:
        """A collection's pairs have been built and are about to be processed."""

    def on_conflict(self, conflict: ConflictInfo) -> None:
        """A conflict needs a decision under the escalate policy."""

    def on_pair_completed(self, outcome: PairOutcome) -> None:
        """A pair reached its final outcome for this session."""

    def on_warning(self, collection_id: str, message: str) -> None:
        """Something unusual happened that did not stop the session."""

    def on_collection_finished(self, collection_id: str) -> None:
        """All pairs of a collection have been processed."""

    def on_session_finished(self, result: SessionResult) -> None:
        """The session reached a terminal state."""
