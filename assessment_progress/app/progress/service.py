"""Composition root wiring transport, channel, store and reporter."""
from __future__ import annotations

from typing import Callable, Optional

from assessment_progress.adapters.progress import PollingUpdateChannel, RequestsTransport
from assessment_progress.config import ClientConfig, env_token_provider
from assessment_progress.domain.progress import Estimator
from assessment_progress.ports.progress.channel_port import UpdateChannelPort
from assessment_progress.ports.progress.transport_port import ProgressTransport

from .fetcher import ProgressFetcher
from .reporter import ProgressReporter, ReportingSession
from .store import ProgressStore


class ProgressClient:
    """Owns one store instance and the collaborators it depends on."""

    def __init__(
        self,
        transport: ProgressTransport,
        channel: UpdateChannelPort,
        *,
        config: Optional[ClientConfig] = None,
        estimator: Optional[Estimator] = None,
    ) -> None:
        self.config = config or ClientConfig()
        self.transport = transport
        self.fetcher = ProgressFetcher(transport, channel)
        self.store = ProgressStore(
            self.fetcher,
            estimator=estimator,
            terminal_grace_seconds=self.config.terminal_grace_seconds,
        )
        self.reporter = ProgressReporter(transport, retry_policy=self.config.retry)

    @classmethod
    def default(
        cls,
        config: Optional[ClientConfig] = None,
        *,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        estimator: Optional[Estimator] = None,
    ) -> "ProgressClient":
        config = config or ClientConfig()
        transport = RequestsTransport(
            config.base_url,
            timeout=config.timeout_seconds,
            token_provider=token_provider or env_token_provider(),
        )
        channel = PollingUpdateChannel(
            transport,
            interval_seconds=config.poll_interval_seconds,
            retry_policy=config.retry,
        )
        return cls(transport, channel, config=config, estimator=estimator)

    def session(
        self,
        assessment_id: str,
        current_domain: Optional[Callable[[], Optional[str]]] = None,
    ) -> ReportingSession:
        return ReportingSession(
            self.reporter,
            assessment_id,
            heartbeat_interval_seconds=self.config.heartbeat_interval_seconds,
            current_domain=current_domain,
        )

    def close(self) -> None:
        self.store.close()
        close_transport = getattr(self.transport, "close", None)
        if callable(close_transport):
            close_transport()

    def __enter__(self) -> "ProgressClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
