"""Assessment progress client: fetch, aggregate and observe per-domain progress."""

from .domain.progress import (
    AssessmentProgress,
    DomainProgress,
    DomainStatus,
    NotFound,
    NotTracked,
    ProgressChanged,
    ProgressError,
    ProgressReport,
    ProgressStats,
    ProgressUpdate,
    ProgressValue,
    TransportError,
    Unauthorized,
    UnknownDomain,
    apply_update,
    derive_stats,
)
from .retry import RetryPolicy, with_retry
from .config import ClientConfig, load_config
from .adapters.progress import PollingUpdateChannel, PushUpdateChannel, RequestsTransport
from .app.progress import (
    ProgressClient,
    ProgressFetcher,
    ProgressReporter,
    ProgressStore,
    ReportingSession,
    TrackingState,
)

__all__ = [
    "AssessmentProgress",
    "ClientConfig",
    "DomainProgress",
    "DomainStatus",
    "NotFound",
    "NotTracked",
    "PollingUpdateChannel",
    "ProgressChanged",
    "ProgressClient",
    "ProgressError",
    "ProgressFetcher",
    "ProgressReport",
    "ProgressReporter",
    "ProgressStats",
    "ProgressStore",
    "ProgressUpdate",
    "ProgressValue",
    "PushUpdateChannel",
    "ReportingSession",
    "RequestsTransport",
    "RetryPolicy",
    "TrackingState",
    "TransportError",
    "Unauthorized",
    "UnknownDomain",
    "apply_update",
    "derive_stats",
    "load_config",
    "with_retry",
]
