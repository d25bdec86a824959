from __future__ import annotations

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

import httpx
from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .errors import DownstreamStatusError
from .observability import record_downstream
from .tracing import trace_headers

logger = logging.getLogger(__name__)

RETRY_MAX = 2
RETRY_BASE_DELAY_S = 0.25


def default_timeout(per_attempt_s: float = 120.0) -> httpx.Timeout:
    return httpx.Timeout(per_attempt_s, connect=10.0)


def default_limits() -> httpx.Limits:
    return httpx.Limits(max_connections=100, max_keepalive_connections=20)


class HttpClientFactory:
    """Creates shared httpx clients with sane defaults.

    Keep one client per service process; do not create per-request.
    """

    @staticmethod
    def client(
        base_url: str | None = None,
        headers: dict | None = None,
        *,
        timeout_s: float = 120.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=base_url or "",
            headers=headers,
            timeout=default_timeout(timeout_s),
            limits=default_limits(),
            follow_redirects=True,
            transport=transport,
        )


TransientHttpError = (httpx.TimeoutException, httpx.NetworkError, httpx.RemoteProtocolError)
BodyReadError = (httpx.DecodingError, httpx.StreamError)
RetryableError = (*TransientHttpError, *BodyReadError, DownstreamStatusError)


def retryable_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


@dataclass(frozen=True, slots=True)
class DownstreamResponse:
    status_code: int
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300

    def json(self) -> Any:
        return json.loads(self.body)


class DownstreamClient:
    """Outbound HTTP with bounded retries, trace propagation and per-attempt observations.

    Retries transport timeouts/network errors, body read failures and 429/5xx
    responses with exponential backoff (250ms, 500ms). Cancellation and caller
    deadlines are never retried. Any other status is returned to the caller.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        service: str = "agent",
        max_retries: int = RETRY_MAX,
        base_delay_s: float = RETRY_BASE_DELAY_S,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._client = client
        self.service = service
        self.max_retries = max_retries
        self.base_delay_s = base_delay_s
        self._sleep = sleep

    async def aclose(self) -> None:
        await self._client.aclose()

    async def send(
        self,
        method: str,
        url: str,
        *,
        body: bytes | None = None,
        headers: dict[str, str] | None = None,
        operation: str = "",
    ) -> DownstreamResponse:
        retrying = AsyncRetrying(
            reraise=True,
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.base_delay_s, exp_base=2),
            retry=retry_if_exception_type(RetryableError),
            sleep=self._sleep,
            before_sleep=before_sleep_log(logger, logging.WARNING),
        )
        async for attempt in retrying:
            with attempt:
                response = await self._attempt(method, url, body, headers, operation)
        return response

    async def post_json(self, url: str, payload: dict[str, Any], *, operation: str) -> DownstreamResponse:
        return await self.send(
            "POST",
            url,
            body=json.dumps(payload, ensure_ascii=False).encode("utf-8"),
            headers={"Content-Type": "application/json"},
            operation=operation,
        )

    async def _attempt(
        self,
        method: str,
        url: str,
        body: bytes | None,
        headers: dict[str, str] | None,
        operation: str,
    ) -> DownstreamResponse:
        request_headers = dict(headers or {})
        request_headers.update(trace_headers())
        request = self._client.build_request(method, url, content=body, headers=request_headers)

        start = time.perf_counter()
        try:
            response = await self._client.send(request, stream=True)
        except BaseException:
            record_downstream(self.service, operation, 0, time.perf_counter() - start)
            raise

        try:
            try:
                payload = await response.aread()
            finally:
                await response.aclose()
        except BaseException:
            record_downstream(self.service, operation, response.status_code, time.perf_counter() - start)
            raise

        record_downstream(self.service, operation, response.status_code, time.perf_counter() - start)
        if retryable_status(response.status_code):
            raise DownstreamStatusError(response.status_code, payload, operation=operation)
        return DownstreamResponse(status_code=response.status_code, body=payload)
