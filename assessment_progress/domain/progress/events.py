"""Progress fragments received from the backend and events emitted to listeners."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from .value_object import DomainStatus, ProgressValue, format_timestamp, parse_timestamp, resolve_sequence

if TYPE_CHECKING:
    from .aggregate import AssessmentProgress


@dataclass(frozen=True, slots=True)
class ProgressUpdate:
    """A single incoming fragment describing one domain's change."""

    assessment_id: str
    domain_id: str
    status: DomainStatus
    percent_complete: ProgressValue
    sequence: int
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.assessment_id:
            raise ValueError("assessment_id cannot be empty")
        if not self.domain_id:
            raise ValueError("domain_id cannot be empty")
        if self.sequence < 0:
            raise ValueError("sequence must be non-negative")
        if not self.percent_complete.matches(self.status):
            raise ValueError(
                f"Update for {self.domain_id} is {self.status.value} but reports {self.percent_complete.value}%"
            )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "ProgressUpdate":
        if not isinstance(payload, Mapping):
            raise ValueError("progress update must be a JSON object")
        try:
            assessment_id = str(payload["assessmentId"])
            domain_id = str(payload["domainId"])
        except KeyError as exc:
            raise ValueError(f"progress update is missing field {exc.args[0]!r}") from exc
        updated_at = parse_timestamp(payload.get("updatedAt") or payload.get("lastUpdated"))
        sequence = resolve_sequence(payload.get("sequence"), updated_at)
        if sequence is None:
            raise ValueError("progress update carries neither 'sequence' nor 'updatedAt'")
        status = DomainStatus.parse(payload.get("status", DomainStatus.NOT_STARTED.value))
        return cls(
            assessment_id=assessment_id,
            domain_id=domain_id,
            status=status,
            percent_complete=ProgressValue.for_status(status, payload.get("percentComplete")),
            sequence=sequence,
            updated_at=updated_at,
        )

    def to_serialisable(self) -> Dict[str, Any]:
        return {
            "assessmentId": self.assessment_id,
            "domainId": self.domain_id,
            "status": self.status.value,
            "percentComplete": self.percent_complete.value,
            "sequence": self.sequence,
            "updatedAt": format_timestamp(self.updated_at),
        }


@dataclass(frozen=True, slots=True)
class ProgressChanged:
    """Signal that the tracked progress of an assessment changed."""

    assessment_id: str
    progress: "AssessmentProgress"
    update: ProgressUpdate
    occurred_at: datetime

    @classmethod
    def emit(cls, progress: "AssessmentProgress", update: ProgressUpdate) -> "ProgressChanged":
        return cls(
            assessment_id=progress.assessment_id,
            progress=progress,
            update=update,
            occurred_at=datetime.now(timezone.utc),
        )


@dataclass(frozen=True, slots=True)
class ProgressReport:
    """Client activity reported back to the backend."""

    assessment_id: str
    action: str
    completion_percentage: int = 0
    domain_id: Optional[str] = None
    question_id: Optional[str] = None
    time_spent: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def __post_init__(self) -> None:
        if not self.assessment_id:
            raise ValueError("assessment_id cannot be empty")
        if not self.action:
            raise ValueError("action cannot be empty")
        if self.time_spent is not None and self.time_spent < 0:
            raise ValueError("time_spent cannot be negative")
        ProgressValue(self.completion_percentage)

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "assessmentId": self.assessment_id,
            "completionPercentage": self.completion_percentage,
        }
        if self.domain_id is not None:
            payload["domainId"] = self.domain_id
        if self.question_id is not None:
            payload["questionId"] = self.question_id
        if self.time_spent is not None:
            payload["timeSpent"] = self.time_spent
        metadata = dict(self.metadata)
        metadata["action"] = self.action
        metadata["timestamp"] = self.timestamp.isoformat()
        payload["metadata"] = metadata
        return payload
