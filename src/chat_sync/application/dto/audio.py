from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class Tone:
    frequency_hz: float
    duration_seconds: float
    offset_seconds: float = 0.0
    gain: float = 0.25
    floor_gain: float = 0.01


# Two sine tones, the second starting 140ms after the first.
NOTIFICATION_CHIME: tuple[Tone, ...] = (
    Tone(frequency_hz=820.0, duration_seconds=0.2),
    Tone(frequency_hz=1020.0, duration_seconds=0.2, offset_seconds=0.14),
)


@dataclass(frozen=True, slots=True)
class VoiceClip:
    data: bytes
    mime_type: str
    duration_seconds: int

    @property
    def is_empty(self) -> bool:
        return not self.data
