"""Request/response channel over HTTP."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

import httpx

from collector_exporter.exceptions import ExportError
from collector_exporter.transport.base import DeliveryChannel
from collector_exporter.transport.completion import CANCELLED_MESSAGE, InFlightCalls

if TYPE_CHECKING:
    from collector_exporter.model import ExportRequest
    from collector_exporter.transport.completion import Completion

logger = logging.getLogger(__name__)

OT_REQUEST_HEADER = "x-opentelemetry-outgoing-request"
DEFAULT_HEADERS: dict[str, str] = {OT_REQUEST_HEADER: "1"}


class HttpChannel(DeliveryChannel):
    """POSTs the JSON request body and reports the response status.

    2xx is success. Any other status, and any transport failure (timeout,
    connection reset, DNS), resolves the call with an ExportError. There is
    no retry at this layer.

    Args:
        endpoint: Collector URL.
        headers: Custom headers. When given they replace the default
            ``x-opentelemetry-outgoing-request`` header.
        timeout: Per-request timeout in seconds.
        transport: Optional httpx transport (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        endpoint: str,
        headers: dict[str, str] | None = None,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._headers = {
            **(headers or DEFAULT_HEADERS),
            "Content-Type": "application/json",
        }
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)
        self._inflight = InFlightCalls()
        self._closed = False
        self._close_task: asyncio.Task[None] | None = None

    @property
    def endpoint(self) -> str:
        return self._endpoint

    @property
    def headers(self) -> dict[str, str]:
        return dict(self._headers)

    def deliver(self, request: ExportRequest, completion: Completion) -> None:
        if self._closed:
            completion.fail(ExportError("HTTP channel is closed"))
            return

        body = request.to_json()
        task = asyncio.get_running_loop().create_task(self._post(body, completion))
        self._inflight.track(task, completion)

    async def _post(self, body: bytes, completion: Completion) -> None:
        try:
            response = await self._client.post(
                self._endpoint, content=body, headers=self._headers
            )
        except asyncio.CancelledError:
            completion.fail(ExportError(CANCELLED_MESSAGE))
            raise
        except httpx.HTTPError as exc:
            logger.error("xhr error: %s", exc)
            completion.fail(
                ExportError(f"HTTP transport error: {type(exc).__name__}: {exc}")
            )
            return
        except Exception as exc:
            # InvalidURL and friends sit outside the HTTPError hierarchy
            logger.error("xhr error: %s", exc)
            completion.fail(
                ExportError(f"HTTP export failed: {type(exc).__name__}: {exc}")
            )
            return

        if response.is_success:
            logger.debug("xhr success")
            completion.succeed()
            return

        logger.error("%s", response.text)
        logger.error("xhr error")
        completion.fail(
            ExportError(
                f"Failed to export to {self._endpoint}: HTTP {response.status_code}",
                code=response.status_code,
                response_body=response.text,
            )
        )

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            failed = self._inflight.fail_unfinished(ExportError(CANCELLED_MESSAGE))
            logger.debug(
                "No running event loop, failed %d in-flight request(s), "
                "leaving HTTP client for collection",
                failed,
            )
            return
        self._close_task = loop.create_task(self._aclose())

    async def _aclose(self) -> None:
        if self._inflight:
            await asyncio.gather(*self._inflight.tasks(), return_exceptions=True)
        await self._client.aclose()
