from __future__ import annotations

from typing import Callable, Protocol, Sequence

from chat_sync.application.dto.audio import Tone

ChunkCallback = Callable[[bytes], None]


class AudioCapture(Protocol):
    mime_type: str

    async def start(self, on_chunk: ChunkCallback) -> None:
        """Request the device and begin delivering chunks.

        Raises DeviceError when access is denied or no device exists.
        """
        ...

    async def stop(self) -> None:
        """Flush pending audio through on_chunk and release the device."""
        ...

    def abort(self) -> None:
        """Release the device without flushing."""
        ...

    def encode(self, chunks: Sequence[bytes]) -> bytes: ...


class ToneSynthesizer(Protocol):
    def play(self, tones: Sequence[Tone]) -> None:
        """Schedule playback; must not block the event loop."""
        ...
