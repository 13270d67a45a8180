"""httpx helpers shared by the HTTP streaming adapters."""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from chatdesk.errors import APIError, NetworkError

logger = logging.getLogger(__name__)


class HTTPClientMixin:
    """Creates ``httpx.AsyncClient`` instances for an adapter.

    ``transport`` can be set to an ``httpx.MockTransport`` in tests.
    """

    timeout: float
    transport: httpx.AsyncBaseTransport | None = None

    def create_http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)


@asynccontextmanager
async def translate_http_errors() -> AsyncIterator[None]:
    """Map httpx transport failures to ``NetworkError``."""
    try:
        yield
    except httpx.TransportError as e:
        raise NetworkError(f"Connection error: {e}") from e


async def error_detail(response: httpx.Response) -> str:
    """Extract a readable message from an error response body."""
    body = await response.aread()
    try:
        data = json.loads(body)
    except ValueError:
        return body.decode("utf-8", errors="replace") or f"HTTP {response.status_code}"
    if isinstance(data, dict):
        for key in ("detail", "error", "message"):
            value = data.get(key)
            if isinstance(value, str):
                return value
            if isinstance(value, dict) and isinstance(value.get("message"), str):
                return value["message"]
    return json.dumps(data)


async def raise_for_api_status(response: httpx.Response) -> None:
    """Raise ``APIError`` for non-200 responses (401/403 hint ``refresh``)."""
    if response.status_code == 200:
        return
    detail = await error_detail(response)
    code = "refresh" if response.status_code in (401, 403) else None
    logger.debug("API returned %s: %s", response.status_code, detail)
    raise APIError(detail, code=code)


__all__ = ["HTTPClientMixin", "translate_http_errors", "error_detail", "raise_for_api_status"]
