"""Composition root wiring the stream client to its consumers."""
from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from chat_sync.application.dto.message import ChatTarget
from chat_sync.application.exceptions import AudioUnavailableError
from chat_sync.application.ports.audio import ToneSynthesizer
from chat_sync.application.ports.gateway import ChatGateway
from chat_sync.application.ports.transport import StreamTransport
from chat_sync.config import settings
from chat_sync.domain.events.stream import Connected, StreamEvent
from chat_sync.infrastructure.audio.pyaudio_adapters import PyAudioToneSynthesizer
from chat_sync.services.conversation_store import ConversationListStore, ThreadMatcher, match_slug_or_handle
from chat_sync.services.event_stream_client import EventStreamClient
from chat_sync.services.message_composer import MessageComposer
from chat_sync.services.notification_dispatcher import NotificationDispatcher, ToastCenter
from chat_sync.services.voice_recorder import VoiceRecorder

logger = logging.getLogger(__name__)

RefreshCallback = Callable[[], Awaitable[None]]


class RealtimeSession:
    """Owns one stream and everything fed by it, with explicit start/stop.

    Teardown closes the stream and both of its timers, cancels an in-flight
    recording and pending refreshes, and clears toasts. Sends already handed
    to the gateway are left to finish.
    """

    def __init__(
        self,
        transport: StreamTransport,
        url: str,
        *,
        store: ConversationListStore | None = None,
        dispatcher: NotificationDispatcher | None = None,
        toasts: ToastCenter | None = None,
        gateway: ChatGateway | None = None,
        recorder: VoiceRecorder | None = None,
        refresh: RefreshCallback | None = None,
        refresh_on_event: bool = False,
        sender_id: str | None = None,
        reconnect_delay: float = settings.STREAM_RECONNECT_DELAY_SECONDS,
        poll_interval: float = settings.STREAM_POLL_INTERVAL_SECONDS,
    ) -> None:
        self.url = url
        self.store = store
        self.dispatcher = dispatcher
        self.toasts = toasts
        self.gateway = gateway
        self.recorder = recorder
        self._sender_id = sender_id
        self._refresh = refresh or (store.refresh if store is not None else None)
        self._refresh_tasks: set[asyncio.Task[None]] = set()

        self.client = EventStreamClient(
            transport,
            refresh=self._refresh,
            reconnect_delay=reconnect_delay,
            poll_interval=poll_interval,
        )
        if store is not None:
            self.client.subscribe(store.apply)
        if dispatcher is not None:
            self.client.subscribe(dispatcher.on_event)
        if refresh_on_event and self._refresh is not None:
            self.client.subscribe(self._refresh_after_event)

    async def start(self) -> None:
        await self.client.start(self.url)

    async def stop(self) -> None:
        await self.client.stop()
        if self.recorder is not None:
            self.recorder.cancel()
        for task in list(self._refresh_tasks):
            task.cancel()
        if self._refresh_tasks:
            await asyncio.gather(*self._refresh_tasks, return_exceptions=True)
        if self.store is not None:
            await self.store.aclose()
        if self.toasts is not None:
            self.toasts.clear()

    async def __aenter__(self) -> RealtimeSession:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    def composer(self, target: ChatTarget) -> MessageComposer:
        if self.gateway is None or self._sender_id is None:
            raise RuntimeError("session has no gateway or sender to compose with")
        return MessageComposer(self.gateway, target, sender_id=self._sender_id, store=self.store)

    async def open_conversation(self, conversation_id: str) -> None:
        """Reset unread locally, then tell the server the thread was read."""
        if self.store is not None:
            self.store.mark_opened(conversation_id)
        if self.gateway is None:
            return
        try:
            await self.gateway.mark_read(conversation_id)
        except Exception:
            logger.exception("mark_read failed for %s", conversation_id)

    def _refresh_after_event(self, event: StreamEvent) -> None:
        if isinstance(event, Connected):
            return
        task = asyncio.get_running_loop().create_task(self._run_refresh())
        self._refresh_tasks.add(task)
        task.add_done_callback(self._refresh_tasks.discard)

    async def _run_refresh(self) -> None:
        assert self._refresh is not None
        try:
            await self._refresh()
        except Exception:
            logger.exception("Refresh after stream event failed")


def create_chat_session(
    transport: StreamTransport,
    gateway: ChatGateway,
    *,
    sender_id: str,
    recorder: VoiceRecorder | None = None,
    matcher: ThreadMatcher = match_slug_or_handle,
    url: str | None = None,
    **kwargs: float,
) -> RealtimeSession:
    store = ConversationListStore(gateway.fetch_conversations, self_id=sender_id, matcher=matcher)
    return RealtimeSession(
        transport,
        url or settings.chat_stream_url,
        store=store,
        gateway=gateway,
        recorder=recorder,
        sender_id=sender_id,
        **kwargs,
    )


def create_wallet_session(
    transport: StreamTransport,
    refresh: RefreshCallback,
    *,
    toasts: ToastCenter | None = None,
    dispatcher: NotificationDispatcher | None = None,
    synthesizer: ToneSynthesizer | None = None,
    url: str | None = None,
    **kwargs: float,
) -> RealtimeSession:
    """Wallet page: toast + chime per event, then reload the pending requests.

    Without an explicit synthesizer the chime plays through PyAudio when it is
    installed; otherwise events only toast.
    """
    toasts = toasts or ToastCenter()
    if dispatcher is None:
        if synthesizer is None:
            synthesizer = default_synthesizer()
        dispatcher = NotificationDispatcher(toasts, synthesizer)
    return RealtimeSession(
        transport,
        url or settings.wallet_stream_url,
        dispatcher=dispatcher,
        toasts=toasts,
        refresh=refresh,
        refresh_on_event=True,
        **kwargs,
    )


def default_synthesizer() -> ToneSynthesizer | None:
    try:
        return PyAudioToneSynthesizer()
    except AudioUnavailableError:
        logger.info("PyAudio not available, notification chime disabled")
        return None
