"""Fundamental frequency estimation by time-domain autocorrelation.

The scan compares the buffer with lagged copies of itself, scoring each lag
as one minus the mean absolute difference. The first rising run of scores
above the confidence threshold marks the period; its best lag is refined
from the neighbouring scores before converting to Hz.

The scan is O(N^2) in the window size and is the most expensive step of a
tick, so the inner loop is compiled with Numba.
"""

import logging
import math
from typing import Optional, Tuple

import librosa
import numpy as np
from numba import jit  # type: ignore
from numpy.typing import NDArray

from vocalscan.schemas.audio_metrics import EstimatorConfig
from vocalscan.utils.buffers import normalize_samples

logger = logging.getLogger(__name__)

NO_PITCH = 0.0
# Fallback estimates need at least this much self-similarity
MIN_FALLBACK_CORRELATION = 0.01


@jit(nopython=True)  # type: ignore
def _autocorrelation_scan_numba(
    samples: NDArray[np.float64],
    correlation_threshold: float,
) -> Tuple[int, float, float, bool]:
    """Scan lags for the first self-similarity peak. (Numba JIT-compiled)

    Args:
        samples: Normalized, contiguous float64 samples.
        correlation_threshold: Minimum score for a lag to become a candidate.

    Returns:
        (best_offset, best_correlation, shift, peak_passed). ``shift`` is the
        raw neighbour-difference term and is only meaningful when the scan
        stopped after passing the peak.
    """
    size = len(samples)
    correlations = np.zeros(size, dtype=np.float64)
    best_offset = -1
    best_correlation = 0.0
    found_good = False
    last_correlation = 1.0

    for offset in range(size):
        total = 0.0
        for i in range(size - offset):
            total += abs(samples[i] - samples[i + offset])
        # Normalized by the full window, not the overlap
        correlation = 1.0 - total / size
        correlations[offset] = correlation

        if correlation > correlation_threshold and correlation > last_correlation:
            found_good = True
            if correlation > best_correlation:
                best_correlation = correlation
                best_offset = offset
        elif found_good:
            peak = correlations[best_offset]
            shift = 0.0
            if peak != 0.0:
                shift = (correlations[best_offset + 1] - correlations[best_offset - 1]) / peak
            return best_offset, best_correlation, shift, True
        last_correlation = correlation

    return best_offset, best_correlation, 0.0, False


class PitchEstimator:
    """Autocorrelation pitch detector. Stateless apart from its tunables."""

    def __init__(self, config: Optional[EstimatorConfig] = None):
        self.config = config or EstimatorConfig()

    def estimate(self, buffer: NDArray, sample_rate: float) -> float:
        """Return the fundamental frequency of ``buffer`` in Hz, or 0.0.

        ``sample_rate`` is read per call; the estimator never caches it.
        """
        samples = normalize_samples(buffer)
        if len(samples) < 3 or sample_rate <= 0:
            return NO_PITCH

        rms = math.sqrt(float(np.mean(samples * samples)))
        if rms < self.config.silence_rms_threshold:
            return NO_PITCH

        effective_rate = float(sample_rate)
        factor = self.config.downsample_factor
        if factor > 1:
            target_sr = int(sample_rate // factor)
            samples = np.ascontiguousarray(
                librosa.resample(samples, orig_sr=int(sample_rate), target_sr=target_sr),
                dtype=np.float64,
            )
            effective_rate = float(target_sr)

        best_offset, best_correlation, shift, peak_passed = _autocorrelation_scan_numba(
            samples, self.config.correlation_threshold
        )

        if peak_passed:
            period = best_offset + self.config.interpolation_sharpening * shift
            return self._to_hz(effective_rate, period)

        if best_correlation > MIN_FALLBACK_CORRELATION and best_offset > 0:
            return self._to_hz(effective_rate, float(best_offset))

        return NO_PITCH

    def _to_hz(self, sample_rate: float, period: float) -> float:
        if period <= 0:
            return NO_PITCH
        pitch = sample_rate / period
        if not math.isfinite(pitch) or pitch < 0:
            return NO_PITCH
        return float(pitch)
