"""Helpers for the per-tick sample buffers handed out by a capture source."""

import numpy as np
from numpy.typing import NDArray

from vocalscan.core.exceptions import MalformedBufferError

# Byte time-domain data puts silence at 128
BYTE_SILENCE = 128.0


def normalize_samples(buffer: NDArray) -> NDArray[np.float64]:
    """Return ``buffer`` as float64 amplitudes in [-1, 1].

    uint8 buffers are treated as Web Audio style byte data centred on 128.
    Float buffers are passed through (as a contiguous float64 view or copy).
    """
    samples = np.asarray(buffer)
    if samples.dtype == np.uint8:
        return (samples.astype(np.float64) - BYTE_SILENCE) / BYTE_SILENCE
    return np.ascontiguousarray(samples, dtype=np.float64)


def validate_length(buffer: NDArray, expected: int, kind: str) -> NDArray:
    if buffer is None or np.ndim(buffer) != 1 or len(buffer) != expected:
        actual = 0 if buffer is None else int(np.size(buffer))
        raise MalformedBufferError(kind, expected, actual)
    return buffer
