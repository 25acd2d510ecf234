"""Turns wallet stream events into toasts and an audio chime."""
from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Callable, Sequence

from chat_sync.application.dto.audio import NOTIFICATION_CHIME, Tone
from chat_sync.application.dto.notification import Toast
from chat_sync.application.ports.audio import ToneSynthesizer
from chat_sync.application.ports.clock import Clock, SystemClock
from chat_sync.config import settings
from chat_sync.domain.events.stream import (
    Connected,
    StreamEvent,
    WithdrawalProcessed,
    WithdrawalRequested,
)
from chat_sync.domain.value_objects.enums import ToastLevel, WithdrawalStatus

logger = logging.getLogger(__name__)

ToastListener = Callable[[tuple[Toast, ...]], None]

REQUEST_CREATED = "Withdrawal request submitted"
REQUEST_APPROVED = "Withdrawal approved"
REQUEST_REJECTED = "Withdrawal rejected"
STREAM_RESTORED = "Live updates reconnected"


class ToastCenter:
    """Holds visible toasts; each one auto-dismisses after ``duration`` seconds."""

    def __init__(
        self,
        *,
        duration: float = settings.TOAST_DURATION_SECONDS,
        clock: Clock | None = None,
    ) -> None:
        self._duration = duration
        self._clock = clock or SystemClock()
        self._ids = itertools.count(1)
        self._toasts: dict[int, Toast] = {}
        self._timers: dict[int, asyncio.TimerHandle] = {}
        self._listeners: list[ToastListener] = []

    @property
    def active(self) -> tuple[Toast, ...]:
        return tuple(self._toasts.values())

    def subscribe(self, listener: ToastListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def show(self, message: str, level: ToastLevel = ToastLevel.INFO) -> Toast:
        toast = Toast(id=next(self._ids), level=level, message=message, created_at=self._clock.now())
        self._toasts[toast.id] = toast
        loop = asyncio.get_running_loop()
        self._timers[toast.id] = loop.call_later(self._duration, self.dismiss, toast.id)
        self._notify()
        return toast

    def dismiss(self, toast_id: int) -> bool:
        timer = self._timers.pop(toast_id, None)
        if timer is not None:
            timer.cancel()
        if self._toasts.pop(toast_id, None) is None:
            return False
        self._notify()
        return True

    def clear(self) -> None:
        for timer in self._timers.values():
            timer.cancel()
        self._timers.clear()
        if self._toasts:
            self._toasts.clear()
            self._notify()

    def _notify(self) -> None:
        active = self.active
        for listener in list(self._listeners):
            try:
                listener(active)
            except Exception:
                logger.exception("Toast listener failed")


def format_amount(amount: float, currency: str) -> str:
    return f"{amount:.3f} {currency}"


class NotificationDispatcher:
    """Maps one stream event to at most one toast and one chime."""

    def __init__(
        self,
        toasts: ToastCenter,
        synthesizer: ToneSynthesizer | None = None,
        *,
        currency: str = settings.CURRENCY,
        notify_on_reconnect: bool = settings.NOTIFY_ON_RECONNECT,
        chime: Sequence[Tone] = NOTIFICATION_CHIME,
    ) -> None:
        self._toasts = toasts
        self._synthesizer = synthesizer
        self._currency = currency
        self._notify_on_reconnect = notify_on_reconnect
        self._chime = tuple(chime)
        self._handshakes = 0

    @property
    def synthesizer(self) -> ToneSynthesizer | None:
        return self._synthesizer

    def on_event(self, event: StreamEvent) -> Toast | None:
        message, level = self._describe(event)
        if message is None:
            return None
        toast = self._toasts.show(message, level)
        self._play_chime()
        return toast

    def _describe(self, event: StreamEvent) -> tuple[str | None, ToastLevel]:
        if isinstance(event, Connected):
            self._handshakes += 1
            if self._handshakes > 1 and self._notify_on_reconnect:
                return STREAM_RESTORED, ToastLevel.INFO
            return None, ToastLevel.INFO

        if isinstance(event, WithdrawalRequested):
            return REQUEST_CREATED, ToastLevel.INFO

        if isinstance(event, WithdrawalProcessed):
            if event.status is WithdrawalStatus.APPROVED:
                if event.approved_amount:
                    amount = format_amount(event.approved_amount, self._currency)
                    return f"{REQUEST_APPROVED}: {amount}", ToastLevel.SUCCESS
                return REQUEST_APPROVED, ToastLevel.SUCCESS
            if event.admin_note:
                return f"{REQUEST_REJECTED}: {event.admin_note}", ToastLevel.ERROR
            return REQUEST_REJECTED, ToastLevel.ERROR

        return None, ToastLevel.INFO

    def _play_chime(self) -> None:
        if self._synthesizer is None:
            return
        try:
            self._synthesizer.play(self._chime)
        except Exception:
            logger.debug("Audio cue skipped", exc_info=True)
