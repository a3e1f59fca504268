"""Summary statistics derived from an assessment progress snapshot."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from .aggregate import AssessmentProgress
from .value_object import DomainStatus, format_timestamp

Estimator = Callable[[AssessmentProgress], Optional[timedelta]]


@dataclass(frozen=True, slots=True)
class ProgressStats:
    """Read-only view over an AssessmentProgress."""

    assessment_id: str
    total_domains: int
    domains_completed: int
    domains_blocked: int
    percent_complete: int
    last_activity: Optional[datetime] = None
    estimated_time_remaining: Optional[timedelta] = None

    @property
    def domains_remaining(self) -> int:
        return self.total_domains - self.domains_completed

    def to_serialisable(self) -> Dict[str, Any]:
        remaining = self.estimated_time_remaining
        return {
            "assessmentId": self.assessment_id,
            "totalDomains": self.total_domains,
            "domainsCompleted": self.domains_completed,
            "domainsRemaining": self.domains_remaining,
            "domainsBlocked": self.domains_blocked,
            "percentComplete": self.percent_complete,
            "lastActivity": format_timestamp(self.last_activity),
            "estimatedSecondsRemaining": int(remaining.total_seconds()) if remaining is not None else None,
        }


def derive_stats(progress: AssessmentProgress, estimator: Optional[Estimator] = None) -> ProgressStats:
    statuses = [domain.status for domain in progress.domains.values()]
    total = len(statuses)
    completed = sum(1 for status in statuses if status is DomainStatus.COMPLETED)
    blocked = sum(1 for status in statuses if status is DomainStatus.BLOCKED)
    percent = completed * 100 // total if total else 0
    return ProgressStats(
        assessment_id=progress.assessment_id,
        total_domains=total,
        domains_completed=completed,
        domains_blocked=blocked,
        percent_complete=percent,
        last_activity=progress.updated_at,
        estimated_time_remaining=estimator(progress) if estimator is not None else None,
    )
