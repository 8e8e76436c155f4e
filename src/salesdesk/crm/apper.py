"""Hosted backend client -- RemoteClient over the Apper REST API.

Implements RemoteClient with a single long-lived httpx.AsyncClient that is
constructed once at startup and injected into every entity service.

Key implementation details:
- Project id and public key travel as request headers
- Transport failures (connection errors, timeouts, 5xx, non-JSON bodies)
  raise RemoteTransportError; well-formed error bodies are returned as
  RemoteResponse with ``success=False``
- Only idempotent reads are retried, and only when APPER_MAX_RETRIES > 1;
  writes are always single-shot
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from src.salesdesk.crm.client import RemoteClient
from src.salesdesk.crm.errors import RemoteTransportError
from src.salesdesk.crm.schemas import RemoteResponse

logger = structlog.get_logger(__name__)


class ApperClient(RemoteClient):
    """Async client for the Apper record API.

    Args:
        project_id: Apper project identifier.
        public_key: Apper public API key.
        base_url: API root, e.g. ``https://api.apper.io/v1``.
        timeout: Per-request timeout in seconds.
        max_retries: Attempts for idempotent reads (1 disables retry).
        transport: Optional httpx transport, used by tests.
    """

    def __init__(
        self,
        project_id: str,
        public_key: str,
        base_url: str,
        timeout: float = 30.0,
        max_retries: int = 1,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._max_retries = max(1, max_retries)
        self._http = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers={
                "X-Apper-Project-Id": project_id,
                "X-Apper-Public-Key": public_key,
                "Content-Type": "application/json",
            },
            timeout=timeout,
            transport=transport,
        )

    def _read_retrying(self) -> AsyncRetrying:
        return AsyncRetrying(
            stop=stop_after_attempt(self._max_retries),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(RemoteTransportError),
            reraise=True,
        )

    async def _send(
        self,
        method: str,
        url: str,
        payload: dict[str, Any],
        *,
        missing_ok: bool = False,
    ) -> RemoteResponse:
        """Issue one request and decode the response envelope."""
        try:
            response = await self._http.request(method, url, json=payload)
        except httpx.HTTPError as exc:
            logger.error("apper.transport_error", method=method, url=url, error=str(exc))
            raise RemoteTransportError(f"Request to {url} failed: {exc}") from exc

        if missing_ok and response.status_code == 404:
            return RemoteResponse(success=True, data=None)

        if response.status_code >= 500:
            logger.error("apper.server_error", method=method, url=url, status=response.status_code)
            raise RemoteTransportError(
                f"Backend error {response.status_code} for {method} {url}"
            )

        try:
            body = response.json()
        except ValueError as exc:
            raise RemoteTransportError(f"Unreadable response from {url}") from exc

        if not isinstance(body, dict):
            raise RemoteTransportError(f"Unexpected response shape from {url}")

        if response.is_error:
            body.setdefault("success", False)
            body.setdefault("message", response.reason_phrase)

        return RemoteResponse.model_validate(body)

    async def fetch_records(self, table: str, query: dict[str, Any]) -> RemoteResponse:
        """POST /tables/{table}/records/query."""
        return await self._read_retrying()(
            self._send, "POST", f"/tables/{table}/records/query", query
        )

    async def get_record_by_id(
        self, table: str, record_id: int, query: dict[str, Any]
    ) -> RemoteResponse:
        """POST /tables/{table}/records/{id}/query; 404 maps to empty data."""
        return await self._read_retrying()(
            self._send,
            "POST",
            f"/tables/{table}/records/{record_id}/query",
            query,
            missing_ok=True,
        )

    async def create_record(self, table: str, payload: dict[str, Any]) -> RemoteResponse:
        """POST /tables/{table}/records."""
        response = await self._send("POST", f"/tables/{table}/records", payload)
        logger.debug("apper.records_created", table=table, success=response.success)
        return response

    async def update_record(self, table: str, payload: dict[str, Any]) -> RemoteResponse:
        """PATCH /tables/{table}/records."""
        response = await self._send("PATCH", f"/tables/{table}/records", payload)
        logger.debug("apper.records_updated", table=table, success=response.success)
        return response

    async def delete_record(self, table: str, payload: dict[str, Any]) -> RemoteResponse:
        """DELETE /tables/{table}/records with a RecordIds body."""
        response = await self._send("DELETE", f"/tables/{table}/records", payload)
        logger.debug("apper.records_deleted", table=table, success=response.success)
        return response

    async def aclose(self) -> None:
        await self._http.aclose()
