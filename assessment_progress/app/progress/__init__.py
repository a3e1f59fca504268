"""Application services for assessment progress tracking."""

from .fetcher import ProgressFetcher
from .reporter import ProgressReporter, ReportingSession
from .service import ProgressClient
from .store import DegradedListener, Listener, ProgressStore, TrackingState

__all__ = [
    "DegradedListener",
    "Listener",
    "ProgressClient",
    "ProgressFetcher",
    "ProgressReporter",
    "ProgressStore",
    "ReportingSession",
    "TrackingState",
]
