"""HTTP client for the admin API (the remote store).

Writes carry the mutation's correlation id and the session id as headers.
Transport errors and error statuses become NetworkFailure with a
FailureKind the candidate chain uses to decide on fallback.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from sla_console.core.config import Settings
from sla_console.domain.enums import FailureKind
from sla_console.domain.exceptions import NetworkFailure
from sla_console.domain.mutations import ServerRecord
from sla_console.infrastructure.remote.candidates import Candidate, CandidateChain

logger = logging.getLogger(__name__)

# Statuses meaning "this backend has no such endpoint": safe to try the next one.
_UNAVAILABLE_STATUSES = frozenset({404, 405, 501})


def failure_from_transport(exc: httpx.TransportError) -> NetworkFailure:
    """Classify an httpx transport error."""
    if isinstance(exc, (httpx.ConnectError, httpx.ConnectTimeout)):
        kind = FailureKind.UNREACHABLE
    elif isinstance(exc, httpx.TimeoutException):
        kind = FailureKind.TIMEOUT
    else:
        kind = FailureKind.INTERRUPTED
    return NetworkFailure(f"{type(exc).__name__}: {exc}", kind=kind)


def failure_from_response(response: httpx.Response) -> NetworkFailure:
    """Classify an error response (status >= 400)."""
    status = response.status_code
    if status in _UNAVAILABLE_STATUSES:
        kind = FailureKind.UNAVAILABLE
    elif status >= 500:
        kind = FailureKind.SERVER
    else:
        kind = FailureKind.REJECTED
    return NetworkFailure(_error_message(response), kind=kind, status_code=status)


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        for field in ("detail", "message", "error"):
            if isinstance(body.get(field), str):
                return body[field]
    return f"{response.request.method} {response.request.url.path} failed with {response.status_code}"


class AdminApiClient:
    """Async admin API client with optional fallback backend."""

    def __init__(
        self,
        base_url: str,
        fallback_base_url: str | None = None,
        *,
        session_id: str | None = None,
        timeout: float = 30.0,
        correlation_id_header: str = "X-Correlation-ID",
        session_id_header: str = "X-Session-ID",
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        self._bases = [base_url.rstrip("/")]
        if fallback_base_url:
            self._bases.append(fallback_base_url.rstrip("/"))
        self._session_id = session_id
        self._correlation_id_header = correlation_id_header
        self._session_id_header = session_id_header
        self._http = http_client if http_client is not None else httpx.AsyncClient(timeout=timeout)
        self._owns_http = http_client is None

    @classmethod
    def from_settings(
        cls, settings: Settings, http_client: httpx.AsyncClient | None = None
    ) -> AdminApiClient:
        return cls(
            settings.api_base_url,
            settings.api_fallback_base_url,
            session_id=settings.session_id.get_secret_value() if settings.session_id else None,
            timeout=settings.api_timeout_seconds,
            correlation_id_header=settings.correlation_id_header,
            session_id_header=settings.session_id_header,
            http_client=http_client,
        )

    @property
    def base_urls(self) -> list[str]:
        return list(self._bases)

    async def aclose(self) -> None:
        """Close the HTTP client only if we created it."""
        if self._owns_http:
            await self._http.aclose()

    def _headers(self, correlation_id: str | None) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if self._session_id:
            headers[self._session_id_header] = self._session_id
        if correlation_id:
            headers[self._correlation_id_header] = correlation_id
        return headers

    async def request(
        self,
        method: str,
        path: str,
        *,
        base_url: str | None = None,
        json: Any = None,
        params: dict[str, Any] | None = None,
        correlation_id: str | None = None,
    ) -> ServerRecord:
        """Send one request and return the decoded JSON body (None when empty).

        Raises:
            NetworkFailure: On transport errors and statuses >= 400.
        """
        url = f"{base_url or self._bases[0]}{path}"
        try:
            response = await self._http.request(
                method,
                url,
                json=json,
                params=params,
                headers=self._headers(correlation_id),
            )
        except httpx.TransportError as e:
            failure = failure_from_transport(e)
            logger.warning("%s %s: %s", method, url, failure.message)
            raise failure from e
        if response.status_code >= 400:
            failure = failure_from_response(response)
            logger.warning("%s %s -> %s", method, url, response.status_code)
            raise failure
        if response.status_code == 204 or not response.content:
            return None
        try:
            return response.json()
        except ValueError as e:
            raise NetworkFailure(
                f"Invalid JSON from {method} {url}",
                kind=FailureKind.SERVER,
                status_code=response.status_code,
            ) from e

    async def get(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET from the primary backend, falling back like a write would."""
        chain = CandidateChain(
            [self._bound("GET", path, base, None, params) for base in self._bases],
            labels=self._bases,
        )
        return await chain("")

    def write(self, method: str, path: str, json: Any = None) -> CandidateChain:
        """Return a RemoteCall performing this write across all backends."""
        return CandidateChain(
            [self._bound(method, path, base, json, None) for base in self._bases],
            labels=self._bases,
        )

    def _bound(
        self,
        method: str,
        path: str,
        base_url: str,
        json: Any,
        params: dict[str, Any] | None,
    ) -> Candidate:
        async def call(correlation_id: str) -> ServerRecord:
            return await self.request(
                method,
                path,
                base_url=base_url,
                json=json,
                params=params,
                correlation_id=correlation_id or None,
            )

        return call
