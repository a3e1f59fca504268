"""Error taxonomy for the assessment progress bounded context."""
from __future__ import annotations

from typing import Any, Dict, Optional


class ProgressError(RuntimeError):
    """Base class for every failure surfaced by the progress client."""

    default_code = "PROGRESS_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.code = code or self.default_code
        self.status_code = status_code
        self.details = dict(details or {})


class NotFound(ProgressError):
    """The assessment (or domain) does not exist on the backend."""

    default_code = "NOT_FOUND"


class Unauthorized(ProgressError):
    """The caller lacks access to the requested assessment."""

    default_code = "UNAUTHORIZED"


class TransportError(ProgressError):
    """Network failure, timeout or unusable backend response."""

    default_code = "NETWORK_ERROR"

    @property
    def retryable(self) -> bool:
        if self.code in {"NETWORK_ERROR", "TIMEOUT"}:
            return True
        if self.status_code is None:
            return False
        return self.status_code == 429 or 500 <= self.status_code < 600


class UnknownDomain(ProgressError):
    """An update references a domain outside the assessment's known set."""

    default_code = "UNKNOWN_DOMAIN"

    def __init__(self, assessment_id: str, domain_id: str, reason: str = "") -> None:
        message = f"Domain '{domain_id}' is not part of assessment '{assessment_id}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message, details={"assessment_id": assessment_id, "domain_id": domain_id})
        self.assessment_id = assessment_id
        self.domain_id = domain_id


class NotTracked(ProgressError):
    """Query against an assessment the store is not tracking."""

    default_code = "NOT_TRACKED"

    def __init__(self, assessment_id: str) -> None:
        super().__init__(f"Assessment '{assessment_id}' is not tracked", details={"assessment_id": assessment_id})
        self.assessment_id = assessment_id
