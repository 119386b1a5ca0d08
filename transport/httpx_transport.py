"""httpx-backed transport adapter."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

from utils.exceptions import (
    ExecutionError,
    RequestCancelledError,
    RequestTimeoutError,
    ServerConnectionError,
    error_from_status,
)

from .base import ResponseBody, TransportRequest


logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 30.0


class HttpxTransport:
    """Async HTTP transport with cancellation and error normalization."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        *,
        default_timeout_s: float = DEFAULT_TIMEOUT_S,
        follow_redirects: bool = True,
    ) -> None:
        self.default_timeout_s = float(default_timeout_s)
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(follow_redirects=follow_redirects)

    async def request(self, request: TransportRequest) -> ResponseBody:
        timeout = request.timeout_s or self.default_timeout_s
        logger.debug(f"HTTP {request.method} {request.url} (timeout={timeout}s)")

        if request.cancel_event is not None and request.cancel_event.is_set():
            raise RequestCancelledError(f"Request was cancelled: {request.method} {request.url}")

        send = asyncio.ensure_future(self._send(request, timeout))
        if request.cancel_event is None:
            return await send

        cancelled = asyncio.ensure_future(request.cancel_event.wait())
        try:
            done, _ = await asyncio.wait({send, cancelled}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            send.cancel()
            raise
        finally:
            cancelled.cancel()

        if send not in done:
            send.cancel()
            try:
                await send
            except asyncio.CancelledError:
                pass
            raise RequestCancelledError(f"Request was cancelled: {request.method} {request.url}")
        return send.result()

    async def _send(self, request: TransportRequest, timeout: float) -> ResponseBody:
        try:
            response = await self._client.request(
                request.method,
                request.url,
                headers=request.headers or None,
                params=request.params or None,
                json=request.json_body,
                files=request.files,
                data=request.data,
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            raise RequestTimeoutError(
                f"Connection timeout while requesting {request.url}", {"error": str(exc)}
            ) from exc
        except httpx.ConnectError as exc:
            raise ServerConnectionError(
                f"Failed to connect to {request.url}. Please check if the server is running and accessible.",
                {"error": str(exc)},
            ) from exc
        except httpx.RequestError as exc:
            raise ServerConnectionError(f"Request to {request.url} failed: {exc}") from exc

        if response.status_code >= 400:
            raise error_from_status(
                response.status_code,
                f"{request.method} {request.url} failed",
                url=request.url,
                body=response.text,
            )

        if request.expect == "bytes":
            return response.content

        try:
            payload = response.json()
        except ValueError as exc:
            raise ExecutionError(
                f"Expected JSON from {request.url}, got {response.headers.get('content-type', 'unknown content')}"
            ) from exc
        if not isinstance(payload, dict):
            raise ExecutionError(f"Expected JSON object from {request.url}, got {type(payload).__name__}")
        return payload

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
