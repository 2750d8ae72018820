"""Live frequency-domain level meter for the recording visualisation."""

import logging
import time
from typing import Callable, Optional

import numpy as np

from ..models.audio import LevelFrame

logger = logging.getLogger(__name__)


def compute_spectrum(audio_chunk: bytes, fft_size: int = 256,
                     min_db: float = -100.0, max_db: float = -30.0) -> np.ndarray:
    """Byte-scaled magnitude spectrum of the most recent ``fft_size`` samples.

    Mirrors the usual analyser-node behaviour: Blackman window, magnitude in dB,
    linearly mapped from [min_db, max_db] onto 0-255.

    Args:
        audio_chunk: 16-bit signed little-endian mono PCM
        fft_size: Window length in samples (power of two)

    Returns:
        uint8 array with ``fft_size // 2`` bins
    """
    samples = np.frombuffer(audio_chunk, dtype=np.int16).astype(np.float32) / 32768.0
    if len(samples) >= fft_size:
        window = samples[-fft_size:]
    else:
        window = np.zeros(fft_size, dtype=np.float32)
        window[fft_size - len(samples):] = samples

    magnitudes = np.abs(np.fft.rfft(window * np.blackman(fft_size)))[:fft_size // 2] / fft_size
    decibels = 20.0 * np.log10(np.maximum(magnitudes, 1e-12))
    scaled = (decibels - min_db) / (max_db - min_db) * 255.0
    return np.clip(scaled, 0, 255).astype(np.uint8)


def peak_level(audio_chunk: bytes) -> float:
    """Peak absolute amplitude as a fraction of full scale."""
    samples = np.frombuffer(audio_chunk, dtype=np.int16)
    if samples.size == 0:
        return 0.0
    return float(np.max(np.abs(samples.astype(np.int32)))) / 32768.0


class LevelMeter:
    """Samples live audio at the display refresh cadence.

    ``feed`` runs on the audio callback thread, so it never raises: a failing
    computation or subscriber only costs a frame.
    """

    def __init__(self, callback: Callable[[LevelFrame], None], fft_size: int = 256,
                 refresh_hz: float = 30.0, clock: Callable[[], float] = time.monotonic):
        self.callback = callback
        self.fft_size = fft_size
        self.min_interval = 1.0 / refresh_hz if refresh_hz > 0 else 0.0
        self.clock = clock
        self._last_emit: Optional[float] = None
        self.last_peak = 0.0
        self.frames_emitted = 0

    def reset(self) -> None:
        self._last_emit = None
        self.last_peak = 0.0

    def feed(self, audio_chunk: bytes) -> Optional[LevelFrame]:
        """Offer a fragment; returns the frame if one was emitted."""
        now = self.clock()
        if self._last_emit is not None and now - self._last_emit < self.min_interval:
            return None
        self._last_emit = now

        try:
            self.last_peak = peak_level(audio_chunk)
            frame = LevelFrame(
                bins=compute_spectrum(audio_chunk, self.fft_size).tolist(),
                peak_level=self.last_peak,
                timestamp=time.time(),
            )
            self.callback(frame)
        except Exception as e:
            logger.warning(f"Level meter frame dropped: {e}")
            return None

        self.frames_emitted += 1
        return frame
