"""Domain objects for assessment progress aggregation."""

from .aggregate import AssessmentProgress, DomainProgress, apply_update, reduce_overall_status
from .errors import NotFound, NotTracked, ProgressError, TransportError, Unauthorized, UnknownDomain
from .events import ProgressChanged, ProgressReport, ProgressUpdate
from .stats import Estimator, ProgressStats, derive_stats
from .value_object import DomainStatus, ProgressValue

__all__ = [
    "AssessmentProgress",
    "DomainProgress",
    "DomainStatus",
    "Estimator",
    "NotFound",
    "NotTracked",
    "ProgressChanged",
    "ProgressError",
    "ProgressReport",
    "ProgressStats",
    "ProgressUpdate",
    "ProgressValue",
    "TransportError",
    "Unauthorized",
    "UnknownDomain",
    "apply_update",
    "derive_stats",
    "reduce_overall_status",
]
