"""aiohttp-backed server-sent events transport."""
from __future__ import annotations

import asyncio
import codecs
import logging
from typing import AsyncIterator

import aiohttp

from chat_sync.application.exceptions import TransportError
from chat_sync.infrastructure.stream.sse import DEFAULT_EVENT, SseDecoder, SseEvent

logger = logging.getLogger(__name__)

_SSE_HEADERS = {
    "Accept": "text/event-stream",
    "Cache-Control": "no-cache",
}


class SseConnection:
    """One open text/event-stream response."""

    def __init__(
        self,
        session: aiohttp.ClientSession,
        response: aiohttp.ClientResponse,
        *,
        owns_session: bool,
    ) -> None:
        self._session = session
        self._response = response
        self._owns_session = owns_session
        self._closed = False

    async def frames(self) -> AsyncIterator[str]:
        decoder = SseDecoder()
        text = codecs.getincrementaldecoder("utf-8")(errors="replace")
        async for chunk in self._response.content.iter_any():
            for data in _message_data(decoder.feed(text.decode(chunk))):
                yield data
        for data in _message_data(decoder.feed(text.decode(b"", final=True)) + decoder.flush()):
            yield data

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._response.close()
        if self._owns_session:
            await self._session.close()


class AiohttpSseTransport:
    """Implements application.ports.transport.StreamTransport over HTTP."""

    def __init__(
        self,
        session: aiohttp.ClientSession | None = None,
        *,
        headers: dict[str, str] | None = None,
        connect_timeout: float = 30.0,
    ) -> None:
        self._session = session
        self._headers = {**_SSE_HEADERS, **(headers or {})}
        # No total timeout: the response body is open-ended.
        self._timeout = aiohttp.ClientTimeout(total=None, sock_connect=connect_timeout)

    async def connect(self, url: str) -> SseConnection:
        owns_session = self._session is None
        session = self._session or aiohttp.ClientSession(timeout=self._timeout)
        try:
            response = await session.get(url, headers=self._headers, timeout=self._timeout)
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            if owns_session:
                await session.close()
            raise TransportError(f"stream connect failed: {exc}") from exc

        content_type = response.headers.get("Content-Type", "")
        if response.status != 200 or not content_type.startswith("text/event-stream"):
            response.close()
            if owns_session:
                await session.close()
            raise TransportError(
                f"stream rejected: status={response.status} content-type={content_type!r}"
            )

        logger.info("SSE stream opened: %s", url)
        return SseConnection(session, response, owns_session=owns_session)


def _message_data(events: list[SseEvent]) -> list[str]:
    payloads = []
    for event in events:
        if event.event != DEFAULT_EVENT:
            logger.debug("Skipping named SSE event %r", event.event)
            continue
        payloads.append(event.data)
    return payloads
