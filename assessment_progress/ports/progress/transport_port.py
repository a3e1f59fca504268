"""Transport port for the progress bounded context."""
from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol
from urllib.parse import quote

PROGRESS_UPDATE_PATH = "/progress/update"


def snapshot_path(assessment_id: str) -> str:
    return f"/assessments/{quote(assessment_id, safe='')}/progress"


def domain_path(assessment_id: str, domain_id: str) -> str:
    return f"{snapshot_path(assessment_id)}/domains/{quote(domain_id, safe='')}"


def history_path(user_id: str) -> str:
    return f"/progress/user/{quote(user_id, safe='')}"


class ProgressTransport(Protocol):
    """Issues authenticated requests against the assessment backend.

    Implementations return decoded JSON and raise ``NotFound``, ``Unauthorized``
    or ``TransportError`` from ``assessment_progress.domain.progress.errors``.
    """

    def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        ...

    def post(self, path: str, payload: Mapping[str, Any]) -> Any:
        ...
