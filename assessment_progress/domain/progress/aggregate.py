"""Aggregate representing the progress of one multi-domain assessment."""
from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional

from .errors import UnknownDomain
from .events import ProgressUpdate
from .value_object import DomainStatus, ProgressValue, format_timestamp, parse_timestamp, resolve_sequence


@dataclass(frozen=True, slots=True)
class DomainProgress:
    """Progress of a single assessment domain."""

    domain_id: str
    status: DomainStatus = DomainStatus.NOT_STARTED
    percent_complete: ProgressValue = ProgressValue(0)
    sequence: int = 0
    updated_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if not self.domain_id:
            raise ValueError("domain_id cannot be empty")
        if self.status is DomainStatus.NOT_STARTED and self.percent_complete.value != 0:
            raise ValueError(f"Domain {self.domain_id} is not_started but reports {self.percent_complete.value}%")
        if self.status is DomainStatus.COMPLETED and self.percent_complete.value != 100:
            raise ValueError(f"Domain {self.domain_id} is completed but reports {self.percent_complete.value}%")

    @classmethod
    def from_update(cls, update: ProgressUpdate) -> "DomainProgress":
        return cls(
            domain_id=update.domain_id,
            status=update.status,
            percent_complete=update.percent_complete,
            sequence=update.sequence,
            updated_at=update.updated_at,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any], domain_id: Optional[str] = None) -> "DomainProgress":
        resolved_id = str(payload.get("domainId") or domain_id or "")
        status = DomainStatus.parse(payload.get("status", DomainStatus.NOT_STARTED.value))
        updated_at = parse_timestamp(payload.get("updatedAt") or payload.get("lastUpdated"))
        try:
            sequence = resolve_sequence(payload.get("sequence"), updated_at)
        except ValueError as exc:
            raise ValueError(f"Domain {resolved_id}: {exc}") from exc
        return cls(
            domain_id=resolved_id,
            status=status,
            percent_complete=ProgressValue.for_status(status, payload.get("percentComplete")),
            sequence=sequence or 0,
            updated_at=updated_at,
        )

    def to_serialisable(self) -> Dict[str, Any]:
        return {
            "domainId": self.domain_id,
            "status": self.status.value,
            "percentComplete": self.percent_complete.value,
            "sequence": self.sequence,
            "updatedAt": format_timestamp(self.updated_at),
        }


def reduce_overall_status(statuses: Iterable[DomainStatus]) -> DomainStatus:
    """Deterministic reduction of domain statuses into the assessment status."""

    seen = set(statuses)
    if not seen:
        return DomainStatus.NOT_STARTED
    if seen == {DomainStatus.COMPLETED}:
        return DomainStatus.COMPLETED
    if DomainStatus.IN_PROGRESS in seen:
        return DomainStatus.IN_PROGRESS
    if DomainStatus.BLOCKED in seen:
        return DomainStatus.BLOCKED
    if seen == {DomainStatus.NOT_STARTED}:
        return DomainStatus.NOT_STARTED
    # completed mixed with not_started
    return DomainStatus.IN_PROGRESS


@dataclass(frozen=True, slots=True)
class AssessmentProgress:
    """Consistent overall progress view of one assessment."""

    assessment_id: str
    domains: Mapping[str, DomainProgress]

    def __post_init__(self) -> None:
        if not self.assessment_id:
            raise ValueError("assessment_id cannot be empty")
        ordered: Dict[str, DomainProgress] = {}
        for key in sorted(self.domains):
            domain = self.domains[key]
            if domain.domain_id != key:
                raise ValueError(f"Domain key '{key}' does not match domain id '{domain.domain_id}'")
            ordered[key] = domain
        object.__setattr__(self, "domains", ordered)

    @classmethod
    def empty(cls, assessment_id: str, domain_ids: Iterable[str]) -> "AssessmentProgress":
        return cls(assessment_id, {domain_id: DomainProgress(domain_id) for domain_id in domain_ids})

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AssessmentProgress":
        if not isinstance(payload, Mapping):
            raise ValueError("assessment progress must be a JSON object")
        assessment_id = str(payload.get("assessmentId", ""))
        raw_domains = payload.get("domains", [])
        domains: Dict[str, DomainProgress] = {}
        if isinstance(raw_domains, Mapping):
            items: List[DomainProgress] = [
                DomainProgress.from_payload(value, domain_id=str(key)) for key, value in raw_domains.items()
            ]
        else:
            items = [DomainProgress.from_payload(value) for value in raw_domains]
        for domain in items:
            if domain.domain_id in domains:
                raise ValueError(f"Duplicate domain '{domain.domain_id}' in assessment '{assessment_id}'")
            domains[domain.domain_id] = domain
        return cls(assessment_id, domains)

    @property
    def overall_status(self) -> DomainStatus:
        return reduce_overall_status(domain.status for domain in self.domains.values())

    @property
    def updated_at(self) -> Optional[datetime]:
        stamps = [domain.updated_at for domain in self.domains.values() if domain.updated_at is not None]
        return max(stamps) if stamps else None

    @property
    def is_complete(self) -> bool:
        return self.overall_status is DomainStatus.COMPLETED

    def with_domain(self, domain: DomainProgress) -> "AssessmentProgress":
        domains = dict(self.domains)
        domains[domain.domain_id] = domain
        return replace(self, domains=domains)

    def apply(self, update: ProgressUpdate) -> "AssessmentProgress":
        return apply_update(self, update)

    def as_updates(self) -> List[ProgressUpdate]:
        """Express every domain as a fragment, used by snapshot polling."""

        return [
            ProgressUpdate(
                assessment_id=self.assessment_id,
                domain_id=domain.domain_id,
                status=domain.status,
                percent_complete=domain.percent_complete,
                sequence=domain.sequence,
                updated_at=domain.updated_at,
            )
            for domain in self.domains.values()
        ]

    def to_serialisable(self) -> Dict[str, Any]:
        return {
            "assessmentId": self.assessment_id,
            "overallStatus": self.overall_status.value,
            "updatedAt": format_timestamp(self.updated_at),
            "domains": [domain.to_serialisable() for domain in self.domains.values()],
        }


def apply_update(current: AssessmentProgress, update: ProgressUpdate) -> AssessmentProgress:
    """Merge one fragment into the assessment; stale fragments return ``current`` untouched."""

    if update.assessment_id != current.assessment_id:
        raise UnknownDomain(current.assessment_id, update.domain_id, f"update addressed to '{update.assessment_id}'")
    existing = current.domains.get(update.domain_id)
    if existing is None:
        raise UnknownDomain(current.assessment_id, update.domain_id)
    if update.sequence <= existing.sequence:
        return current
    return current.with_domain(DomainProgress.from_update(update))
