"""In-memory owner of the tracked assessment progress state.

The store is the only place where aggregated progress is kept. Each tracked
assessment moves through ``UNINITIALIZED -> LOADING -> TRACKING -> TERMINAL``
and leaves the store only through :meth:`ProgressStore.untrack` (directly or
after the optional terminal grace period).

Every mutation runs under a single re-entrant lock, so updates delivered by
concurrent channel threads are applied one at a time. Listeners are invoked
inside that serialised section, right after the update that changed the state.
"""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Dict, List, Optional

from assessment_progress.domain.progress import (
    AssessmentProgress,
    Estimator,
    NotTracked,
    ProgressChanged,
    ProgressError,
    ProgressStats,
    ProgressUpdate,
    UnknownDomain,
    apply_update,
    derive_stats,
)
from assessment_progress.ports.progress.channel_port import Subscription

from .fetcher import ProgressFetcher

LOG = logging.getLogger("assessment_progress.store")

Listener = Callable[[ProgressChanged], None]
DegradedListener = Callable[[ProgressError], None]


class TrackingState(str, Enum):
    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    TRACKING = "tracking"
    TERMINAL = "terminal"
    UNTRACKED = "untracked"


@dataclass
class _TrackingEntry:
    assessment_id: str
    state: TrackingState = TrackingState.LOADING
    progress: Optional[AssessmentProgress] = None
    subscription: Optional[Subscription] = None
    degraded: bool = False
    grace_timer: Optional[threading.Timer] = None
    ready: threading.Event = field(default_factory=threading.Event)


class ProgressStore:
    """Tracks assessments, applies fragments and notifies listeners."""

    def __init__(
        self,
        fetcher: ProgressFetcher,
        *,
        estimator: Optional[Estimator] = None,
        terminal_grace_seconds: Optional[float] = None,
    ) -> None:
        if terminal_grace_seconds is not None and terminal_grace_seconds < 0:
            raise ValueError("terminal_grace_seconds cannot be negative")
        self._fetcher = fetcher
        self._estimator = estimator
        self._grace = terminal_grace_seconds
        self._entries: Dict[str, _TrackingEntry] = {}
        self._listeners: Dict[str, List[Listener]] = {}
        self._degraded_listeners: Dict[str, List[DegradedListener]] = {}
        self._lock = threading.RLock()

    def __enter__(self) -> "ProgressStore":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def track(self, assessment_id: str) -> Subscription:
        """Start tracking ``assessment_id``; repeated calls return the existing handle."""

        while True:
            with self._lock:
                entry = self._entries.get(assessment_id)
                if entry is None:
                    entry = _TrackingEntry(assessment_id)
                    self._entries[assessment_id] = entry
                    break
            entry.ready.wait()
            with self._lock:
                if self._entries.get(assessment_id) is entry and entry.subscription is not None:
                    return entry.subscription
            # the load we waited on failed or was untracked; start our own

        try:
            return self._load(entry)
        finally:
            entry.ready.set()

    def _load(self, entry: _TrackingEntry) -> Subscription:
        assessment_id = entry.assessment_id
        LOG.info("Loading progress snapshot for %s", assessment_id)
        try:
            snapshot = self._fetcher.fetch_snapshot(assessment_id)
        except ProgressError as exc:
            with self._lock:
                if self._entries.get(assessment_id) is entry:
                    del self._entries[assessment_id]
            LOG.warning("Could not load progress for %s: %s", assessment_id, exc)
            raise

        with self._lock:
            if self._entries.get(assessment_id) is not entry:
                raise NotTracked(assessment_id)
            entry.progress = snapshot
            entry.state = TrackingState.TRACKING
            entry.subscription = self._fetcher.subscribe(
                assessment_id,
                lambda update: self._apply(entry, update),
                lambda error: self._on_channel_failure(entry, error),
            )
            if snapshot.is_complete:
                self._enter_terminal(entry)
            LOG.info("Tracking %s (%s, %d domains)", assessment_id, entry.state.value, len(snapshot.domains))
            return entry.subscription

    def untrack(self, assessment_id: str) -> None:
        with self._lock:
            entry = self._entries.pop(assessment_id, None)
            self._listeners.pop(assessment_id, None)
            self._degraded_listeners.pop(assessment_id, None)
            if entry is None:
                return
            entry.state = TrackingState.UNTRACKED
            if entry.subscription is not None:
                entry.subscription.cancel()
            if entry.grace_timer is not None:
                entry.grace_timer.cancel()
        LOG.info("Stopped tracking %s", assessment_id)

    def close(self) -> None:
        """Untrack everything and drop listeners registered for any id."""

        for assessment_id in self.tracked_ids():
            self.untrack(assessment_id)
        with self._lock:
            self._listeners.clear()
            self._degraded_listeners.clear()

    def get_current(self, assessment_id: str) -> AssessmentProgress:
        with self._lock:
            entry = self._entries.get(assessment_id)
            if entry is None or entry.progress is None:
                raise NotTracked(assessment_id)
            return entry.progress

    def get_stats(self, assessment_id: str) -> ProgressStats:
        return derive_stats(self.get_current(assessment_id), self._estimator)

    def on_change(self, assessment_id: str, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for ``assessment_id``; returns a callable that removes it.

        Listeners live until removed, until the id is untracked or until
        :meth:`close`, even when the id is never tracked.
        """

        return self._register(self._listeners, assessment_id, listener)

    def on_degraded(self, assessment_id: str, listener: DegradedListener) -> Callable[[], None]:
        """Register ``listener`` for the failure that marks ``assessment_id`` degraded."""

        return self._register(self._degraded_listeners, assessment_id, listener)

    def state(self, assessment_id: str) -> TrackingState:
        with self._lock:
            entry = self._entries.get(assessment_id)
            return entry.state if entry is not None else TrackingState.UNINITIALIZED

    def is_degraded(self, assessment_id: str) -> bool:
        with self._lock:
            entry = self._entries.get(assessment_id)
            return entry.degraded if entry is not None else False

    def tracked_ids(self) -> List[str]:
        with self._lock:
            return sorted(self._entries)

    def _register(self, registry: Dict[str, list], assessment_id: str, listener: Callable) -> Callable[[], None]:
        with self._lock:
            registry.setdefault(assessment_id, []).append(listener)

        def remove() -> None:
            with self._lock:
                listeners = registry.get(assessment_id, [])
                if listener in listeners:
                    listeners.remove(listener)
                if not listeners:
                    registry.pop(assessment_id, None)

        return remove

    def _apply(self, entry: _TrackingEntry, update: ProgressUpdate) -> None:
        with self._lock:
            if self._entries.get(entry.assessment_id) is not entry or entry.state is not TrackingState.TRACKING:
                LOG.debug(
                    "Discarding update %s#%d for %s in state %s",
                    update.domain_id,
                    update.sequence,
                    entry.assessment_id,
                    entry.state.value,
                )
                return
            current = entry.progress
            try:
                updated = apply_update(current, update)
            except UnknownDomain as exc:
                LOG.warning("Dropping update #%d: %s", update.sequence, exc)
                return
            if updated is current:
                existing = current.domains[update.domain_id]
                if update.sequence == existing.sequence and (
                    update.status is not existing.status or update.percent_complete != existing.percent_complete
                ):
                    LOG.warning(
                        "Ignoring changed progress for %s/%s: version %d was already applied",
                        entry.assessment_id,
                        update.domain_id,
                        update.sequence,
                    )
                return

            entry.progress = updated
            if updated.is_complete:
                self._enter_terminal(entry)
            self._notify(self._listeners, entry.assessment_id, ProgressChanged.emit(updated, update))

    def _enter_terminal(self, entry: _TrackingEntry) -> None:
        entry.state = TrackingState.TERMINAL
        if entry.subscription is not None:
            entry.subscription.cancel()
        LOG.info("Assessment %s completed; subscription closed", entry.assessment_id)
        if self._grace is None:
            return
        timer = threading.Timer(self._grace, self._expire, args=(entry,))
        timer.daemon = True
        entry.grace_timer = timer
        timer.start()

    def _expire(self, entry: _TrackingEntry) -> None:
        with self._lock:
            if self._entries.get(entry.assessment_id) is not entry:
                return
            self.untrack(entry.assessment_id)

    def _on_channel_failure(self, entry: _TrackingEntry, error: ProgressError) -> None:
        with self._lock:
            if self._entries.get(entry.assessment_id) is not entry:
                return
            entry.degraded = True
            LOG.error("Progress updates for %s are degraded: %s", entry.assessment_id, error)
            self._notify(self._degraded_listeners, entry.assessment_id, error)

    def _notify(self, registry: Dict[str, list], assessment_id: str, event: object) -> None:
        for listener in list(registry.get(assessment_id, [])):
            try:
                listener(event)
            except Exception:
                LOG.error("Progress listener failed for %s", assessment_id, exc_info=True)
