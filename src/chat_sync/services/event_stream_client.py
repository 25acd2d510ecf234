"""Persistent server-push connection with fixed-delay reconnect and polling fallback."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from chat_sync.application.exceptions import TransportError
from chat_sync.application.ports.transport import StreamConnection, StreamTransport
from chat_sync.config import settings
from chat_sync.domain.events.stream import StreamEvent
from chat_sync.domain.value_objects.enums import StreamState
from chat_sync.infrastructure.stream.protocol import decode_event

logger = logging.getLogger(__name__)

EventHandler = Callable[[StreamEvent], None]
RefreshCallback = Callable[[], Awaitable[None]]
ErrorHook = Callable[[BaseException], None]


class EventStreamClient:
    """Owns exactly one stream connection at a time.

    On any transport failure the connection is closed, a single reconnect is
    scheduled after ``reconnect_delay`` and, while the stream stays down,
    ``refresh`` is awaited every ``poll_interval``. Reconnecting cancels the
    polling task. Frames are decoded and handed to subscribers in arrival
    order; handlers run synchronously on the loop.
    """

    def __init__(
        self,
        transport: StreamTransport,
        *,
        refresh: RefreshCallback | None = None,
        reconnect_delay: float = settings.STREAM_RECONNECT_DELAY_SECONDS,
        poll_interval: float = settings.STREAM_POLL_INTERVAL_SECONDS,
        on_connected: Callable[[], None] | None = None,
        on_error: ErrorHook | None = None,
    ) -> None:
        self._transport = transport
        self._refresh = refresh
        self._reconnect_delay = reconnect_delay
        self._poll_interval = poll_interval
        self._on_connected = on_connected
        self._on_error = on_error

        self._handlers: list[EventHandler] = []
        self._state = StreamState.DISCONNECTED
        self._url: str | None = None
        self._running = False
        self._connection: StreamConnection | None = None
        self._connection_task: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None
        self._polling_task: asyncio.Task[None] | None = None

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def is_polling(self) -> bool:
        return self._polling_task is not None and not self._polling_task.done()

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    def subscribe(self, handler: EventHandler) -> Callable[[], None]:
        self._handlers.append(handler)

        def _unsubscribe() -> None:
            if handler in self._handlers:
                self._handlers.remove(handler)

        return _unsubscribe

    async def start(self, url: str) -> None:
        if self._running:
            await self._teardown()
        self._url = url
        self._running = True
        self._open()
        logger.info("Event stream started: %s", url)

    async def stop(self) -> None:
        if not self._running and self._connection_task is None and self._polling_task is None:
            return
        self._running = False
        await self._teardown()
        logger.info("Event stream stopped")

    # -- connection lifecycle ------------------------------------------------

    def _open(self) -> None:
        self._reconnect_handle = None
        if not self._running or self._url is None:
            return
        self._state = StreamState.CONNECTING
        self._connection_task = asyncio.create_task(
            self._run_connection(self._url), name="event-stream-connection",
        )

    async def _run_connection(self, url: str) -> None:
        try:
            connection = await self._transport.connect(url)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._handle_transport_error(exc)
            return

        self._connection = connection
        self._mark_connected()
        try:
            async for raw in connection.frames():
                self._dispatch(raw)
                if self._connection is not connection:
                    # torn down by a handler calling stop() or start()
                    return
            raise TransportError("stream closed by server")
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            await self._handle_transport_error(exc)
        finally:
            if self._connection is connection:
                await self._close_connection(connection)

    def _mark_connected(self) -> None:
        self._state = StreamState.CONNECTED
        self._cancel_polling()
        logger.info("Event stream connected")
        if self._on_connected is not None:
            _call_hook(self._on_connected)

    async def _handle_transport_error(self, exc: BaseException) -> None:
        logger.warning("Event stream error: %s", exc)
        self._state = StreamState.DISCONNECTED
        if self._connection is not None:
            await self._close_connection(self._connection)
        if self._on_error is not None:
            _call_hook(self._on_error, exc)
        if not self._running:
            return
        self._start_polling()
        self._schedule_reconnect()

    def _schedule_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            return
        loop = asyncio.get_running_loop()
        self._reconnect_handle = loop.call_later(self._reconnect_delay, self._open)
        logger.debug("Reconnect scheduled in %.1fs", self._reconnect_delay)

    async def _close_connection(self, connection: StreamConnection) -> None:
        if self._connection is connection:
            self._connection = None
        try:
            await connection.close()
        except Exception:
            logger.debug("Error closing stream connection", exc_info=True)

    async def _teardown(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None
        self._cancel_polling()

        task, self._connection_task = self._connection_task, None
        if task is not None and task is not asyncio.current_task():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._connection is not None:
            await self._close_connection(self._connection)
        self._state = StreamState.DISCONNECTED

    # -- polling fallback ----------------------------------------------------

    def _start_polling(self) -> None:
        if self._refresh is None or self.is_polling:
            return
        self._polling_task = asyncio.create_task(self._poll(), name="event-stream-polling")

    def _cancel_polling(self) -> None:
        if self._polling_task is not None:
            self._polling_task.cancel()
            self._polling_task = None

    async def _poll(self) -> None:
        assert self._refresh is not None
        while True:
            await asyncio.sleep(self._poll_interval)
            if self._state is StreamState.CONNECTED:
                continue
            try:
                await self._refresh()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Polling refresh failed")

    # -- dispatch ------------------------------------------------------------

    def _dispatch(self, raw: str) -> None:
        event = decode_event(raw)
        if event is None:
            return
        for handler in list(self._handlers):
            try:
                handler(event)
            except Exception:
                logger.exception("Stream event handler failed for %s", type(event).__name__)


def _call_hook(hook: Callable[..., None], *args: object) -> None:
    try:
        hook(*args)
    except Exception:
        logger.exception("Event stream hook %r failed", hook)
