"""
Microphone capture and tone playback using PyAudio.

PyAudio is an optional dependency (``pip install chat-sync[audio]``); both
adapters raise AudioUnavailableError on construction when it is missing.
"""
from __future__ import annotations

import asyncio
import io
import logging
import threading
import wave
from typing import Any, Optional, Sequence

from chat_sync.application.dto.audio import Tone
from chat_sync.application.exceptions import AudioUnavailableError, DeviceError
from chat_sync.application.ports.audio import ChunkCallback
from chat_sync.config import settings
from chat_sync.infrastructure.audio.tones import render_tones, to_pcm16

logger = logging.getLogger(__name__)

CHANNELS = 1
CHUNK_SIZE = 1024
SAMPLE_WIDTH = 2  # 16-bit audio


def _load_pyaudio() -> Any:
    try:
        import pyaudio
    except ImportError as exc:
        raise AudioUnavailableError("PyAudio is not installed") from exc
    return pyaudio


class PyAudioCapture:
    """
    Records 16-bit mono PCM from the default (or given) input device.

    Frames are read on a background thread and handed to the event loop with
    call_soon_threadsafe; encode() wraps the collected PCM in a WAV container.
    """

    mime_type = "audio/wav"

    def __init__(
        self,
        sample_rate: int = settings.AUDIO_SAMPLE_RATE,
        device_index: Optional[int] = None,
    ):
        self._pyaudio = _load_pyaudio()
        self.sample_rate = sample_rate
        self.device_index = device_index
        self._audio: Any = None
        self._stream: Any = None
        self._thread: Optional[threading.Thread] = None
        self._running = threading.Event()
        self._lock = threading.Lock()
        self._reader_active = False
        self._release_pending = False
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._on_chunk: Optional[ChunkCallback] = None

    async def start(self, on_chunk: ChunkCallback) -> None:
        if self._running.is_set() or self._reader_active:
            raise DeviceError("capture already running")
        self._loop = asyncio.get_running_loop()
        self._on_chunk = on_chunk
        await asyncio.to_thread(self._open)
        self._running.set()
        self._reader_active = True
        self._thread = threading.Thread(target=self._record_loop, daemon=True)
        self._thread.start()
        logger.info("Microphone capture started")

    def _open(self) -> None:
        self._audio = self._pyaudio.PyAudio()
        stream_kwargs: dict[str, Any] = {
            "format": self._pyaudio.paInt16,
            "channels": CHANNELS,
            "rate": self.sample_rate,
            "input": True,
            "frames_per_buffer": CHUNK_SIZE,
        }
        if self.device_index is not None:
            stream_kwargs["input_device_index"] = self.device_index
        try:
            self._stream = self._audio.open(**stream_kwargs)
        except OSError as exc:
            self._audio.terminate()
            self._audio = None
            raise DeviceError(f"Failed to open microphone: {exc}") from exc

    def _record_loop(self) -> None:
        try:
            while self._running.is_set() and self._stream is not None:
                try:
                    data = self._stream.read(CHUNK_SIZE, exception_on_overflow=False)
                except OSError as exc:
                    logger.error("Recording error: %s", exc)
                    break
                on_chunk = self._on_chunk
                if self._loop is not None and on_chunk is not None:
                    self._loop.call_soon_threadsafe(on_chunk, data)
        finally:
            with self._lock:
                self._reader_active = False
                release, self._release_pending = self._release_pending, False
            if release:
                self._release()

    async def stop(self) -> None:
        self._running.clear()
        if self._thread is not None:
            await asyncio.to_thread(self._thread.join, 1.0)
            self._thread = None
        self._release_when_idle()

    def abort(self) -> None:
        self._running.clear()
        self._on_chunk = None
        self._thread = None
        self._release_when_idle()

    def _release_when_idle(self) -> None:
        # The device must not be closed under a blocked read; a live reader
        # releases it on its way out.
        with self._lock:
            if self._reader_active:
                self._release_pending = True
                return
        self._release()

    def _release(self) -> None:
        if self._stream is not None:
            try:
                self._stream.stop_stream()
                self._stream.close()
            except OSError:
                logger.debug("Error closing input stream", exc_info=True)
            self._stream = None
        if self._audio is not None:
            self._audio.terminate()
            self._audio = None

    def encode(self, chunks: Sequence[bytes]) -> bytes:
        wav_buffer = io.BytesIO()
        with wave.open(wav_buffer, "wb") as wav_file:
            wav_file.setnchannels(CHANNELS)
            wav_file.setsampwidth(SAMPLE_WIDTH)
            wav_file.setframerate(self.sample_rate)
            wav_file.writeframes(b"".join(chunks))
        return wav_buffer.getvalue()


class PyAudioToneSynthesizer:
    """Plays rendered tones on the default output device from a worker thread."""

    def __init__(self, sample_rate: int = 44100):
        self._pyaudio = _load_pyaudio()
        self.sample_rate = sample_rate

    def play(self, tones: Sequence[Tone]) -> None:
        pcm = to_pcm16(render_tones(tones, self.sample_rate))
        loop = asyncio.get_running_loop()
        future = loop.run_in_executor(None, self._write, pcm)
        future.add_done_callback(_log_playback_failure)

    def _write(self, pcm: bytes) -> None:
        audio = self._pyaudio.PyAudio()
        try:
            stream = audio.open(
                format=self._pyaudio.paInt16,
                channels=CHANNELS,
                rate=self.sample_rate,
                output=True,
            )
            try:
                stream.write(pcm)
            finally:
                stream.stop_stream()
                stream.close()
        finally:
            audio.terminate()


def _log_playback_failure(future: asyncio.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.debug("Tone playback failed: %s", exc)
