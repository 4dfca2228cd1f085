"""Two-tone reminder chime, synthesized on the fly (no audio asset)."""

from __future__ import annotations

import numpy as np
from loguru import logger

SAMPLE_RATE = 44100


def synthesize_chime(
    first_hz: float = 880.0,
    second_hz: float = 660.0,
    tone_s: float = 0.25,
    volume: float = 0.3,
    sample_rate: int = SAMPLE_RATE,
) -> np.ndarray:
    """Two sine tones back to back, each with an exponential decay.

    Returns float32 mono samples in [-volume, volume].
    """
    n = max(1, int(sample_rate * tone_s))
    t = np.arange(n, dtype=np.float32) / sample_rate
    # Decay to ~1% by the end of each tone
    envelope = np.exp(-np.log(100.0) * t / tone_s).astype(np.float32)

    tones = [np.sin(2 * np.pi * hz * t).astype(np.float32) * envelope for hz in (first_hz, second_hz)]
    return (np.concatenate(tones) * volume).astype(np.float32)


class ChimePlayer:
    """Plays the chime through sounddevice, non-blocking."""

    def __init__(
        self,
        enabled: bool = True,
        first_hz: float = 880.0,
        second_hz: float = 660.0,
        tone_s: float = 0.25,
        volume: float = 0.3,
    ):
        self.enabled = enabled
        self.first_hz = first_hz
        self.second_hz = second_hz
        self.tone_s = tone_s
        self.volume = volume
        self._samples: np.ndarray | None = None

    @property
    def samples(self) -> np.ndarray:
        if self._samples is None:
            self._samples = synthesize_chime(
                self.first_hz, self.second_hz, self.tone_s, self.volume
            )
        return self._samples

    def play(self) -> None:
        if not self.enabled:
            return
        try:
            # PortAudio is loaded at import time; a host without it raises OSError here.
            import sounddevice as sd

            sd.play(self.samples, SAMPLE_RATE, blocking=False)
        except Exception as e:
            logger.debug(f"[Sound] Chime unavailable: {e}")
