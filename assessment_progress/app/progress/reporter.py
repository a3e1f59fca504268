"""Reports client-side assessment activity back to the backend."""
from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from assessment_progress.domain.progress import ProgressError, ProgressReport
from assessment_progress.ports.progress.transport_port import PROGRESS_UPDATE_PATH, ProgressTransport
from assessment_progress.retry import RetryPolicy, with_retry

LOG = logging.getLogger("assessment_progress.reporter")


class ProgressReporter:
    def __init__(
        self,
        transport: ProgressTransport,
        *,
        retry_policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._transport = transport
        self._retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

    def update_progress(self, report: ProgressReport) -> None:
        payload = report.to_payload()
        with_retry(
            lambda: self._transport.post(PROGRESS_UPDATE_PATH, payload),
            self._retry_policy,
            sleep=self._sleep,
        )

    def track_question_response(self, assessment_id: str, domain_id: str, question_id: str, time_spent: int) -> None:
        # completion is recalculated by the backend
        self.update_progress(
            ProgressReport(
                assessment_id=assessment_id,
                action="question_answered",
                domain_id=domain_id,
                question_id=question_id,
                time_spent=time_spent,
            )
        )

    def track_domain_completion(self, assessment_id: str, domain_id: str, completion_percentage: int) -> None:
        self.update_progress(
            ProgressReport(
                assessment_id=assessment_id,
                action="domain_completed",
                domain_id=domain_id,
                completion_percentage=completion_percentage,
            )
        )

    def track_session_start(self, assessment_id: str) -> None:
        self.update_progress(ProgressReport(assessment_id=assessment_id, action="session_start"))

    def track_session_end(self, assessment_id: str, session_seconds: int) -> None:
        self.update_progress(
            ProgressReport(assessment_id=assessment_id, action="session_end", time_spent=session_seconds)
        )

    def send_heartbeat(self, assessment_id: str, session_seconds: int, current_domain: Optional[str] = None) -> None:
        metadata = {"currentDomain": current_domain} if current_domain else {}
        self.update_progress(
            ProgressReport(
                assessment_id=assessment_id,
                action="heartbeat",
                time_spent=session_seconds,
                metadata=metadata,
            )
        )


class ReportingSession:
    """A timed assessment session with periodic heartbeats."""

    def __init__(
        self,
        reporter: ProgressReporter,
        assessment_id: str,
        *,
        heartbeat_interval_seconds: float = 30.0,
        current_domain: Optional[Callable[[], Optional[str]]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if heartbeat_interval_seconds <= 0:
            raise ValueError("heartbeat_interval_seconds must be positive")
        self._reporter = reporter
        self._assessment_id = assessment_id
        self._interval = heartbeat_interval_seconds
        self._current_domain = current_domain
        self._clock = clock
        self._started_at: Optional[float] = None
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def active(self) -> bool:
        return self._started_at is not None

    @property
    def elapsed_seconds(self) -> int:
        if self._started_at is None:
            return 0
        return int(self._clock() - self._started_at)

    def start(self) -> None:
        if self.active:
            return
        self._reporter.track_session_start(self._assessment_id)
        self._started_at = self._clock()
        self._stop.clear()
        self._thread = threading.Thread(
            target=self._heartbeat_loop,
            name=f"progress-heartbeat-{self._assessment_id}",
            daemon=True,
        )
        self._thread.start()

    def end(self) -> int:
        """Stops heartbeats, reports the session end and returns its length in seconds."""

        if not self.active:
            return 0
        elapsed = self.elapsed_seconds
        self._stop.set()
        if self._thread is not None:
            self._thread.join()
            self._thread = None
        self._started_at = None
        self._reporter.track_session_end(self._assessment_id, elapsed)
        return elapsed

    def __enter__(self) -> "ReportingSession":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.end()

    def _heartbeat_loop(self) -> None:
        while not self._stop.wait(self._interval):
            try:
                domain = self._current_domain() if self._current_domain else None
            except Exception:
                LOG.warning("current_domain callback failed for %s", self._assessment_id, exc_info=True)
                domain = None
            try:
                self._reporter.send_heartbeat(self._assessment_id, self.elapsed_seconds, domain)
            except ProgressError as exc:
                LOG.warning("Failed to send progress heartbeat for %s: %s", self._assessment_id, exc)
