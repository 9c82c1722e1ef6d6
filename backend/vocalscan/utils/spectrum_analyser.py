"""Byte frequency data in the style of the Web Audio ``AnalyserNode``.

Browsers expose ``getByteFrequencyData``: a Blackman-windowed FFT of the most
recent ``fft_size`` samples, smoothed over time, converted to dB and mapped
linearly from ``[min_decibels, max_decibels]`` onto ``0..255``. This module
reproduces that pipeline with NumPy so a native capture source can hand the
frame loop the same kind of spectrum a browser would.
"""

from typing import Optional

import librosa
import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, Field, model_validator

from vocalscan.core.config import Settings

# Linear magnitudes below this map to -200 dB, far under any useful floor
AMPLITUDE_GUARD = 1e-10


class SpectrumAnalyserConfig(BaseModel):
    """Parameters for byte spectrum computation."""

    fft_size: int = Field(2048, gt=0, description="Samples per analysis window (power of two).")
    smoothing_time_constant: float = Field(
        0.8, ge=0, le=1, description="Weight of the previous frame in the running average."
    )
    min_decibels: float = Field(-100.0, description="dB value mapped to byte 0.")
    max_decibels: float = Field(-30.0, description="dB value mapped to byte 255.")

    @model_validator(mode="after")
    def _check_range(self) -> "SpectrumAnalyserConfig":
        if self.min_decibels >= self.max_decibels:
            raise ValueError("min_decibels must be lower than max_decibels")
        if self.fft_size & (self.fft_size - 1):
            raise ValueError("fft_size must be a power of two")
        return self

    @classmethod
    def from_settings(cls, settings: Settings) -> "SpectrumAnalyserConfig":
        return cls(
            fft_size=settings.FFT_SIZE,
            smoothing_time_constant=settings.SMOOTHING_TIME_CONSTANT,
            min_decibels=settings.MIN_DECIBELS,
            max_decibels=settings.MAX_DECIBELS,
        )


class SpectrumAnalyser:
    """Computes smoothed byte magnitudes for successive analysis windows.

    Smoothing makes the analyser stateful: each call blends with the previous
    frame. The returned array is reused between calls.
    """

    def __init__(self, config: Optional[SpectrumAnalyserConfig] = None):
        self.config = config or SpectrumAnalyserConfig()
        self.fft_size = self.config.fft_size
        self.bin_count = self.fft_size // 2
        # Periodic Blackman, matching the Web Audio AnalyserNode
        self.window_coeffs = np.blackman(self.fft_size + 1)[:-1]
        self._smoothed = np.zeros(self.bin_count, dtype=np.float64)
        self._output = np.zeros(self.bin_count, dtype=np.uint8)

    def reset(self):
        self._smoothed.fill(0.0)

    def byte_frequency_data(self, samples: NDArray) -> NDArray[np.uint8]:
        if len(samples) != self.fft_size:
            raise ValueError(f"Expected {self.fft_size} samples, got {len(samples)}")

        windowed = np.asarray(samples, dtype=np.float64) * self.window_coeffs
        magnitudes = np.abs(np.fft.rfft(windowed))[: self.bin_count] / self.fft_size

        tau = self.config.smoothing_time_constant
        self._smoothed = tau * self._smoothed + (1.0 - tau) * magnitudes
        # Guard against NaN/inf creeping into the running average
        self._smoothed[~np.isfinite(self._smoothed)] = 0.0

        db = librosa.amplitude_to_db(self._smoothed, ref=1.0, amin=AMPLITUDE_GUARD, top_db=None)
        lo, hi = self.config.min_decibels, self.config.max_decibels
        scaled = np.floor((255.0 / (hi - lo)) * (db - lo))
        np.clip(scaled, 0, 255, out=scaled)
        self._output[:] = scaled.astype(np.uint8)
        return self._output
