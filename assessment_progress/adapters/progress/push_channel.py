"""Update channel fed by an external push source (websocket, message bus, tests)."""
from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Mapping, Optional, Union

from assessment_progress.domain.progress import ProgressError, ProgressUpdate
from assessment_progress.ports.progress.channel_port import (
    FailureCallback,
    Subscription,
    UpdateCallback,
    UpdateChannelPort,
)

LOG = logging.getLogger("assessment_progress.push")


class _PushSubscription(Subscription):
    def __init__(
        self,
        channel: "PushUpdateChannel",
        assessment_id: str,
        on_update: UpdateCallback,
        on_failure: Optional[FailureCallback],
    ) -> None:
        self.assessment_id = assessment_id
        self.on_update = on_update
        self.on_failure = on_failure
        self._channel = channel
        self._cancelled = threading.Event()

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        if self._cancelled.is_set():
            return
        self._cancelled.set()
        self._channel._detach(self)


class PushUpdateChannel(UpdateChannelPort):
    """Dispatches pushed fragments to the subscriptions of their assessment."""

    def __init__(self) -> None:
        self._subscriptions: Dict[str, List[_PushSubscription]] = {}
        self._lock = threading.Lock()

    def open(
        self,
        assessment_id: str,
        on_update: UpdateCallback,
        on_failure: Optional[FailureCallback] = None,
    ) -> Subscription:
        subscription = _PushSubscription(self, assessment_id, on_update, on_failure)
        with self._lock:
            self._subscriptions.setdefault(assessment_id, []).append(subscription)
        return subscription

    def publish(self, message: Union[ProgressUpdate, Mapping[str, Any]]) -> int:
        """Delivers one fragment and returns the number of subscribers reached.

        Malformed payloads are logged and dropped. A failing subscriber is
        logged and skipped; the others still receive the fragment.
        """

        if isinstance(message, ProgressUpdate):
            update = message
        else:
            try:
                update = ProgressUpdate.from_payload(message)
            except (ValueError, TypeError) as exc:
                LOG.warning("Dropping malformed pushed update: %s", exc)
                return 0
        delivered = 0
        for subscription in self._active(update.assessment_id):
            if subscription.cancelled:
                continue
            try:
                subscription.on_update(update)
            except Exception:
                LOG.error("Subscriber for %s failed to handle update", update.assessment_id, exc_info=True)
                continue
            delivered += 1
        return delivered

    def fail(self, assessment_id: str, error: ProgressError) -> None:
        """Reports a broken push source to subscribers of ``assessment_id``."""

        for subscription in self._active(assessment_id):
            if not subscription.cancelled and subscription.on_failure is not None:
                subscription.on_failure(error)

    def subscriber_count(self, assessment_id: str) -> int:
        return len(self._active(assessment_id))

    def _active(self, assessment_id: str) -> List[_PushSubscription]:
        with self._lock:
            return list(self._subscriptions.get(assessment_id, []))

    def _detach(self, subscription: _PushSubscription) -> None:
        with self._lock:
            bucket = self._subscriptions.get(subscription.assessment_id, [])
            if subscription in bucket:
                bucket.remove(subscription)
            if not bucket:
                self._subscriptions.pop(subscription.assessment_id, None)
