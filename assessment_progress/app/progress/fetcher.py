"""Fetches progress snapshots and opens update subscriptions."""
from __future__ import annotations

from typing import Any, Dict, List, Optional

from assessment_progress.domain.progress import AssessmentProgress, DomainProgress, NotFound, TransportError
from assessment_progress.ports.progress.channel_port import (
    FailureCallback,
    Subscription,
    UpdateCallback,
    UpdateChannelPort,
)
from assessment_progress.ports.progress.transport_port import (
    ProgressTransport,
    domain_path,
    history_path,
    snapshot_path,
)


class ProgressFetcher:
    def __init__(self, transport: ProgressTransport, channel: UpdateChannelPort) -> None:
        self._transport = transport
        self._channel = channel

    def fetch_snapshot(self, assessment_id: str) -> AssessmentProgress:
        payload = self._transport.get(snapshot_path(assessment_id))
        if payload is None:
            raise NotFound(f"No progress recorded for assessment '{assessment_id}'", status_code=404)
        progress = _decode(AssessmentProgress.from_payload, payload, assessment_id)
        if progress.assessment_id != assessment_id:
            raise TransportError(
                f"Snapshot for '{assessment_id}' describes '{progress.assessment_id}'",
                code="INVALID_RESPONSE",
            )
        return progress

    def fetch_domain(self, assessment_id: str, domain_id: str) -> DomainProgress:
        payload = self._transport.get(domain_path(assessment_id, domain_id))
        if payload is None:
            raise NotFound(f"Domain '{domain_id}' not found in assessment '{assessment_id}'", status_code=404)
        return _decode(lambda body: DomainProgress.from_payload(body, domain_id=domain_id), payload, assessment_id)

    def fetch_history(
        self,
        user_id: str,
        *,
        limit: Optional[int] = None,
        offset: Optional[int] = None,
        date_from: Optional[str] = None,
        date_to: Optional[str] = None,
    ) -> List[AssessmentProgress]:
        params: Dict[str, Any] = {}
        if limit:
            params["limit"] = str(limit)
        if offset:
            params["offset"] = str(offset)
        if date_from:
            params["dateFrom"] = date_from
        if date_to:
            params["dateTo"] = date_to
        payload = self._transport.get(history_path(user_id), params=params or None)
        if payload is None:
            return []
        if not isinstance(payload, list):
            raise TransportError(f"History for user '{user_id}' is not a list", code="INVALID_RESPONSE")
        return [_decode(AssessmentProgress.from_payload, item, user_id) for item in payload]

    def subscribe(
        self,
        assessment_id: str,
        on_update: UpdateCallback,
        on_failure: Optional[FailureCallback] = None,
    ) -> Subscription:
        return self._channel.open(assessment_id, on_update, on_failure)


def _decode(decoder, payload: Any, context: str):
    try:
        return decoder(payload)
    except (ValueError, TypeError, AttributeError) as exc:
        raise TransportError(f"Malformed progress payload for '{context}': {exc}", code="INVALID_RESPONSE") from exc
