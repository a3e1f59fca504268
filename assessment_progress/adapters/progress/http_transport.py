"""requests-backed transport for the assessment backend."""
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Optional

import requests

from assessment_progress.domain.progress.errors import NotFound, TransportError, Unauthorized
from assessment_progress.ports.progress.transport_port import ProgressTransport

LOG = logging.getLogger("assessment_progress.transport")

TokenProvider = Callable[[], Optional[str]]

_ERROR_CODES = {
    "NOT_FOUND": NotFound,
    "UNAUTHORIZED": Unauthorized,
    "FORBIDDEN": Unauthorized,
}


class RequestsTransport(ProgressTransport):
    """JSON over HTTP with bearer credentials and the ``{success, data}`` envelope."""

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float = 10.0,
        token_provider: Optional[TokenProvider] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not base_url:
            raise ValueError("base_url cannot be empty")
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._token_provider = token_provider
        self._session = session or requests.Session()

    @property
    def base_url(self) -> str:
        return self._base_url

    def get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        return self._request("GET", path, params=dict(params) if params else None)

    def post(self, path: str, payload: Mapping[str, Any]) -> Any:
        return self._request("POST", path, json=dict(payload))

    def close(self) -> None:
        self._session.close()

    def _headers(self) -> dict:
        headers = {"Accept": "application/json"}
        token = self._token_provider() if self._token_provider else None
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        url = f"{self._base_url}/{path.lstrip('/')}"
        LOG.debug("%s %s", method, url)
        try:
            response = self._session.request(method, url, headers=self._headers(), timeout=self._timeout, **kwargs)
        except requests.Timeout as exc:
            raise TransportError(f"{method} {url} timed out after {self._timeout}s", code="TIMEOUT") from exc
        except requests.RequestException as exc:
            raise TransportError(f"{method} {url} failed: {exc}", code="NETWORK_ERROR") from exc

        status = response.status_code
        if status in (401, 403):
            raise Unauthorized(f"{method} {url} returned HTTP {status}", status_code=status)
        if status == 404:
            raise NotFound(f"{method} {url} returned HTTP 404", status_code=status)
        if status >= 400:
            raise TransportError(
                f"{method} {url} returned HTTP {status}: {response.text[:200]}",
                code="HTTP_ERROR",
                status_code=status,
            )
        if not response.content:
            return None
        try:
            body = response.json()
        except ValueError as exc:
            raise TransportError(f"{method} {url} returned invalid JSON", code="INVALID_RESPONSE", status_code=status) from exc
        return _unwrap_envelope(body, status)


def _unwrap_envelope(body: Any, status: int) -> Any:
    if not isinstance(body, dict) or "success" not in body:
        return body
    if body.get("success"):
        return body.get("data")
    error = body.get("error") or {}
    if isinstance(error, str):
        error = {"message": error}
    code = str(error.get("code", "HTTP_ERROR"))
    message = str(error.get("message", "request was not successful"))
    error_cls = _ERROR_CODES.get(code)
    if error_cls is not None:
        raise error_cls(message, code=code, status_code=status)
    details = error.get("details")
    raise TransportError(message, code=code, status_code=status, details=details if isinstance(details, dict) else None)
