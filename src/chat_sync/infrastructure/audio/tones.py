"""Programmatic rendering of notification tones."""
from __future__ import annotations

from typing import Sequence

import numpy as np

from chat_sync.application.dto.audio import Tone


def render_tone(tone: Tone, sample_rate: int) -> np.ndarray:
    """Sine wave whose gain decays exponentially from tone.gain to tone.floor_gain."""
    n = max(int(round(tone.duration_seconds * sample_rate)), 1)
    t = np.arange(n, dtype=np.float32) / sample_rate
    # gain(t) = g0 * (g1/g0) ** (t/T), matching an exponential ramp.
    ratio = tone.floor_gain / tone.gain
    envelope = tone.gain * np.power(ratio, t / tone.duration_seconds, dtype=np.float32)
    return (np.sin(2 * np.pi * tone.frequency_hz * t) * envelope).astype(np.float32)


def render_tones(tones: Sequence[Tone], sample_rate: int) -> np.ndarray:
    """Mix tones into one mono float32 buffer, honouring each start offset."""
    if not tones:
        return np.zeros(0, dtype=np.float32)
    total = max(
        int(round((tone.offset_seconds + tone.duration_seconds) * sample_rate))
        for tone in tones
    )
    buffer = np.zeros(total, dtype=np.float32)
    for tone in tones:
        samples = render_tone(tone, sample_rate)
        start = int(round(tone.offset_seconds * sample_rate))
        end = min(start + len(samples), total)
        buffer[start:end] += samples[: end - start]
    return np.clip(buffer, -1.0, 1.0)


def to_pcm16(samples: np.ndarray) -> bytes:
    return (samples * 32767.0).astype(np.int16).tobytes()
