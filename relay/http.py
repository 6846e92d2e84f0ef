from __future__ import annotations

import asyncio
import logging

import httpx

from .constants import LOGGER

MAX_RETRY_WAIT_SECONDS = 5


def _seconds_from_retry_after(header: str | None) -> int | None:
    if header is None:
        return None
    try:
        return max(0, int(header))
    except ValueError:
        return None


class RetryTransport(httpx.AsyncBaseTransport):
    """Retry idempotent upstream calls on 429 and 5xx responses."""

    def __init__(
        self,
        transport: httpx.AsyncBaseTransport,
        *,
        max_retries: int = 2,
        max_wait_seconds: float = MAX_RETRY_WAIT_SECONDS,
        sleep=asyncio.sleep,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._max_retries = max(0, max_retries)
        self._max_wait_seconds = max_wait_seconds
        self._sleep = sleep
        self._logger = logger or LOGGER

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        body = request.content
        retries = 0

        while True:
            next_request = httpx.Request(
                method=request.method,
                url=request.url,
                headers=request.headers,
                content=body,
                extensions=request.extensions,
            )
            response = await self._transport.handle_async_request(next_request)

            if self._max_retries == 0 or retries >= self._max_retries:
                return response

            if response.status_code == 429 and retries < 1:
                wait_seconds = _seconds_from_retry_after(response.headers.get("retry-after"))
                if wait_seconds is None:
                    wait_seconds = 1
            elif 500 <= response.status_code < 600:
                wait_seconds = 2**retries
            else:
                return response
            wait_seconds = min(wait_seconds, self._max_wait_seconds)

            self._logger.warning(
                "Retrying %s after %ss (%s %s)",
                response.status_code,
                wait_seconds,
                request.method,
                request.url,
            )
            await response.aclose()
            await self._sleep(wait_seconds)
            retries += 1

    async def aclose(self) -> None:
        await self._transport.aclose()


async def log_request(request: httpx.Request) -> None:
    LOGGER.info("Upstream request %s %s", request.method, request.url)


async def log_response(response: httpx.Response) -> None:
    request = response.request
    LOGGER.info(
        "Upstream response %s %s -> %s",
        request.method,
        request.url,
        response.status_code,
    )
    if response.status_code >= 400:
        body = await response.aread()
        text = body.decode("utf-8", errors="replace")
        if len(text) > 1000:
            text = text[:1000] + "...<truncated>"
        LOGGER.warning("Upstream error body: %s", text)


def build_async_client(
    *,
    timeout: float,
    max_retries: int = 0,
    debug_enabled: bool = False,
) -> httpx.AsyncClient:
    transport: httpx.AsyncBaseTransport = httpx.AsyncHTTPTransport()
    if max_retries:
        transport = RetryTransport(transport, max_retries=max_retries, logger=LOGGER)

    event_hooks: dict[str, list] = {"request": [], "response": []}
    if debug_enabled:
        event_hooks["request"].append(log_request)
        event_hooks["response"].append(log_response)

    return httpx.AsyncClient(timeout=timeout, transport=transport, event_hooks=event_hooks)
