"""Update channel that re-fetches the progress snapshot on an interval."""
from __future__ import annotations

import logging
import threading
from typing import Optional

from assessment_progress.domain.progress import AssessmentProgress, ProgressError, TransportError
from assessment_progress.ports.progress.channel_port import (
    FailureCallback,
    Subscription,
    UpdateCallback,
    UpdateChannelPort,
)
from assessment_progress.ports.progress.transport_port import ProgressTransport, snapshot_path
from assessment_progress.retry import RetryPolicy

LOG = logging.getLogger("assessment_progress.polling")


class _PollingSubscription(Subscription):
    def __init__(
        self,
        transport: ProgressTransport,
        assessment_id: str,
        on_update: UpdateCallback,
        on_failure: Optional[FailureCallback],
        interval_seconds: float,
        retry_policy: RetryPolicy,
    ) -> None:
        self._transport = transport
        self._assessment_id = assessment_id
        self._on_update = on_update
        self._on_failure = on_failure
        self._interval = interval_seconds
        self._retry_policy = retry_policy
        self._stop = threading.Event()
        self.thread = threading.Thread(
            target=self._run,
            name=f"progress-poll-{assessment_id}",
            daemon=True,
        )

    @property
    def cancelled(self) -> bool:
        return self._stop.is_set()

    def cancel(self) -> None:
        self._stop.set()

    def start(self) -> None:
        self.thread.start()

    def _poll_once(self) -> AssessmentProgress:
        payload = self._transport.get(snapshot_path(self._assessment_id))
        try:
            return AssessmentProgress.from_payload(payload)
        except (ValueError, TypeError, AttributeError) as exc:
            raise TransportError(
                f"Malformed progress snapshot for {self._assessment_id}: {exc}",
                code="INVALID_RESPONSE",
            ) from exc

    def _run(self) -> None:
        try:
            self._poll_loop()
        except Exception as exc:
            LOG.error("Polling %s crashed", self._assessment_id, exc_info=True)
            self._fail(ProgressError(f"Polling {self._assessment_id} stopped unexpectedly: {exc}"))

    def _poll_loop(self) -> None:
        failures = 0
        while not self._stop.is_set():
            try:
                snapshot = self._poll_once()
            except TransportError as exc:
                failures += 1
                if failures > self._retry_policy.max_retries:
                    LOG.error("Polling %s gave up after %d attempts: %s", self._assessment_id, failures, exc)
                    self._fail(exc)
                    return
                delay = self._retry_policy.delay_for(failures)
                LOG.warning(
                    "Polling %s failed (attempt %d/%d), reconnecting in %.2fs: %s",
                    self._assessment_id,
                    failures,
                    self._retry_policy.max_retries + 1,
                    delay,
                    exc,
                )
                if self._stop.wait(delay):
                    return
                continue
            except ProgressError as exc:
                LOG.error("Polling %s stopped: %s", self._assessment_id, exc)
                self._fail(exc)
                return

            failures = 0
            for update in snapshot.as_updates():
                if self._stop.is_set():
                    return
                self._on_update(update)
            if self._stop.wait(self._interval):
                return

    def _fail(self, error: ProgressError) -> None:
        if self._stop.is_set() or self._on_failure is None:
            return
        self._on_failure(error)


class PollingUpdateChannel(UpdateChannelPort):
    """Strategy that turns periodic snapshots into per-domain fragments.

    Every poll emits one fragment per domain; fragments whose sequence did not
    advance are discarded downstream as stale duplicates.
    """

    def __init__(
        self,
        transport: ProgressTransport,
        *,
        interval_seconds: float = 5.0,
        retry_policy: Optional[RetryPolicy] = None,
    ) -> None:
        if interval_seconds <= 0:
            raise ValueError("interval_seconds must be positive")
        self._transport = transport
        self._interval = interval_seconds
        self._retry_policy = retry_policy or RetryPolicy()

    def open(
        self,
        assessment_id: str,
        on_update: UpdateCallback,
        on_failure: Optional[FailureCallback] = None,
    ) -> Subscription:
        subscription = _PollingSubscription(
            self._transport,
            assessment_id,
            on_update,
            on_failure,
            self._interval,
            self._retry_policy,
        )
        subscription.start()
        LOG.debug("Opened polling subscription for %s every %.2fs", assessment_id, self._interval)
        return subscription
