"""Microphone recording session for voice messages."""
from __future__ import annotations

import asyncio
import logging
from typing import Callable

from chat_sync.application.dto.audio import VoiceClip
from chat_sync.application.exceptions import ConflictError, DeviceError
from chat_sync.application.ports.audio import AudioCapture
from chat_sync.domain.value_objects.enums import RecordingState

logger = logging.getLogger(__name__)

TickListener = Callable[[int], None]


class VoiceRecorder:
    """
    Idle -> Recording -> Stopped | Cancelled.

    While recording, chunks from the capture device are accumulated and a
    one-second tick counter drives UI feedback. A finished recorder can start
    a new session.
    """

    def __init__(self, capture: AudioCapture, *, tick_seconds: float = 1.0) -> None:
        self._capture = capture
        self._tick_seconds = tick_seconds
        self._state = RecordingState.IDLE
        self._chunks: list[bytes] = []
        self._elapsed = 0
        self._ticker: asyncio.Task[None] | None = None
        self._tick_listeners: list[TickListener] = []

    @property
    def state(self) -> RecordingState:
        return self._state

    @property
    def elapsed_seconds(self) -> int:
        return self._elapsed

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    def on_tick(self, listener: TickListener) -> Callable[[], None]:
        self._tick_listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._tick_listeners:
                self._tick_listeners.remove(listener)

        return _unsubscribe

    async def start(self) -> None:
        if self._state is RecordingState.RECORDING:
            raise ConflictError("already recording")

        self._chunks = []
        self._elapsed = 0
        try:
            await self._capture.start(self._on_chunk)
        except DeviceError:
            self._reset()
            logger.warning("Microphone unavailable")
            raise
        except Exception as exc:
            self._reset()
            raise DeviceError(f"could not start recording: {exc}") from exc

        self._state = RecordingState.RECORDING
        self._ticker = asyncio.create_task(self._tick(), name="voice-recorder-ticker")
        logger.info("Recording started")

    async def stop(self) -> VoiceClip:
        """Finalize the session into a single blob; an empty session yields empty data."""
        if self._state is not RecordingState.RECORDING:
            raise ConflictError(f"cannot stop while {self._state}")

        self._cancel_ticker()
        try:
            await self._capture.stop()
        finally:
            chunks, self._chunks = self._chunks, []
            self._state = RecordingState.STOPPED

        if not chunks:
            logger.warning("No audio recorded")
            data = b""
        else:
            data = self._capture.encode(chunks)
        logger.info("Recording stopped: %ds, %d chunk(s)", self._elapsed, len(chunks))
        return VoiceClip(
            data=data,
            mime_type=self._capture.mime_type,
            duration_seconds=self._elapsed,
        )

    def cancel(self) -> None:
        """Discard everything and release the device; a no-op unless recording."""
        if self._state is not RecordingState.RECORDING:
            return
        self._cancel_ticker()
        try:
            self._capture.abort()
        finally:
            self._chunks = []
            self._state = RecordingState.CANCELLED
        logger.info("Recording cancelled")

    def _on_chunk(self, chunk: bytes) -> None:
        if self._state is RecordingState.RECORDING and chunk:
            self._chunks.append(chunk)

    async def _tick(self) -> None:
        while True:
            await asyncio.sleep(self._tick_seconds)
            self._elapsed += 1
            for listener in list(self._tick_listeners):
                try:
                    listener(self._elapsed)
                except Exception:
                    logger.exception("Recording tick listener failed")

    def _cancel_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _reset(self) -> None:
        self._chunks = []
        self._elapsed = 0
        self._state = RecordingState.IDLE
