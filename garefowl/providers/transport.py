"""
providers/transport.py
======================
The one place that talks HTTP.

requests is blocking, so every call is pushed onto a worker thread with
asyncio.to_thread(); the awaiting coroutine resumes on the event loop
once the response (or failure) is in. Cancelling that coroutine drops
the result on the floor.

Failures are classified into the TransportError kinds:
  - CONNECTION  → DNS, refused, reset, TLS ...
  - TIMEOUT     → no answer within timeout_seconds
  - EMPTY_BODY  → 2xx with nothing in it
  - HTTP_STATUS → anything outside 2xx (401/403 → ConfigurationError)
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any

import requests

from garefowl.errors import ConfigurationError, TransportError

logger = logging.getLogger(__name__)

DEFAULT_HEADERS = {"Content-Type": "application/json"}


@dataclass(frozen=True)
class HttpResponse:
    status_code: int
    text:        str

    def json(self) -> Any:
        return json.loads(self.text)


class HttpTransport:
    """
    Usage:
        transport = HttpTransport()
        response  = await transport.send("POST", url, headers, body, timeout_seconds=300)
    """

    def __init__(self, session: requests.Session | None = None):
        self._session = session or requests.Session()

    async def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        body: Any = None,
        timeout_seconds: float = 300.0,
        params: dict[str, str] | None = None,
    ) -> HttpResponse:
        """
        Issues one request without blocking the event loop.

        Args:
            body: dict/list is JSON-encoded; a str is sent as-is; None sends nothing.

        Returns:
            HttpResponse for any 2xx status with a non-empty body.

        Raises:
            TransportError / ConfigurationError as described in the module docstring.
        """
        payload = json.dumps(body) if isinstance(body, (dict, list)) else body
        merged  = {**DEFAULT_HEADERS, **(headers or {})} if payload is not None else dict(headers or {})

        logger.debug("%s %s", method, url)
        return await asyncio.to_thread(
            self._send_blocking, method, url, merged, payload, timeout_seconds, params
        )

    def _send_blocking(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        payload: str | None,
        timeout_seconds: float,
        params: dict[str, str] | None,
    ) -> HttpResponse:
        try:
            response = self._session.request(
                method,
                url,
                headers = headers,
                data    = payload.encode("utf-8") if payload is not None else None,
                params  = params,
                timeout = timeout_seconds,
            )
        except requests.exceptions.Timeout as e:
            raise TransportError(
                f"Request timed out after {timeout_seconds:g}s",
                kind=TransportError.TIMEOUT, url=url, request_body=payload,
            ) from e
        except requests.exceptions.RequestException as e:
            raise TransportError(
                f"Network error: {e}",
                kind=TransportError.CONNECTION, url=url, request_body=payload,
            ) from e

        text = response.content.decode("utf-8", errors="replace")
        logger.debug("Response status %s, %d chars", response.status_code, len(text))

        if not 200 <= response.status_code < 300:
            error_cls = ConfigurationError if response.status_code in (401, 403) else TransportError
            raise error_cls(
                f"HTTP error {response.status_code}",
                kind=TransportError.HTTP_STATUS,
                url=url,
                request_body=payload,
                status_code=response.status_code,
                response_text=text,
            )

        if not text.strip():
            raise TransportError(
                "No response data received",
                kind=TransportError.EMPTY_BODY, url=url, request_body=payload,
                status_code=response.status_code,
            )

        return HttpResponse(status_code=response.status_code, text=text)

    def close(self):
        self._session.close()
