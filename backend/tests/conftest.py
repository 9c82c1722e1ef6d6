"""
Shared fixtures for the test suite.

Fakes stand in for the microphone and the remote voice analysis so the
frame loop can be driven tick by tick without audio hardware or network.
"""

import asyncio
import time
from typing import List, Optional, Tuple

import numpy as np
import pytest

from vocalscan.core.exceptions import AnalysisFailureError, CaptureUnavailableError
from vocalscan.schemas.audio_metrics import AnalysisResult, AnalysisStatus, MetricsSnapshot, RecordedAudio
from vocalscan.services.frame_loop import SnapshotPublisher

SAMPLE_RATE = 44100
WINDOW_SIZE = 2048


def sine(frequency: float, sample_rate: int = SAMPLE_RATE, length: int = WINDOW_SIZE,
         amplitude: float = 0.5, offset: int = 0) -> np.ndarray:
    n = np.arange(offset, offset + length)
    return (amplitude * np.sin(2 * np.pi * frequency * n / sample_rate)).astype(np.float32)


def to_bytes(samples: np.ndarray) -> np.ndarray:
    """Encode [-1, 1] floats as Web Audio byte time-domain data."""
    return np.clip(np.round(samples * 128.0 + 128.0), 0, 255).astype(np.uint8)


class FakeSource:
    """Synthetic tone source. Each pull advances the signal by one 60 Hz frame."""

    def __init__(self, frequency: float = 220.0, sample_rate: int = SAMPLE_RATE,
                 window_size: int = WINDOW_SIZE, amplitude: float = 0.5,
                 fail_open: bool = False, recording: Optional[RecordedAudio] = None,
                 close_delay: float = 0.0):
        self.frequency = frequency
        self.rate = sample_rate
        self.window_size = window_size
        self.amplitude = amplitude
        self.fail_open = fail_open
        self.close_delay = close_delay
        self.recording = recording or RecordedAudio(data=b"RIFF-fake-wav", mime_type="audio/wav", duration=1.5)
        self.open_count = 0
        self.close_count = 0
        self.is_open = False
        self.reads_after_close = 0
        self.bad_buffers = 0
        self._offset = 0
        self._frame = np.zeros(window_size // 2, dtype=np.uint8)

    def open_capture(self):
        if self.fail_open:
            raise CaptureUnavailableError("Permission denied")
        self.open_count += 1
        self.is_open = True
        return "handle"

    def close_capture(self, handle) -> RecordedAudio:
        if self.close_delay:
            # Blocking, like stopping a PortAudio stream
            time.sleep(self.close_delay)
        self.close_count += 1
        self.is_open = False
        return self.recording

    def _check_open(self):
        if not self.is_open:
            self.reads_after_close += 1
            raise RuntimeError("read from a closed capture")

    def get_time_domain_buffer(self, handle) -> np.ndarray:
        self._check_open()
        if self.bad_buffers > 0:
            self.bad_buffers -= 1
            return np.zeros(self.window_size // 3, dtype=np.float32)
        buffer = sine(self.frequency, self.rate, self.window_size, self.amplitude, self._offset)
        self._offset += self.rate // 60
        return buffer

    def get_frequency_magnitude_buffer(self, handle) -> np.ndarray:
        self._check_open()
        # Same storage every call, like a reused analyser output array
        self._frame[:] = 0
        self._frame[int(self.frequency * self.window_size / self.rate)] = 200
        return self._frame

    def sample_rate(self, handle) -> float:
        return self.rate


class FakeAnalyzer:
    def __init__(self, text: Optional[str] = "Warm, steady mid-range voice.",
                 error: Optional[Exception] = None, delay: float = 0.0):
        self.text = text
        self.error = error
        self.delay = delay
        self.calls: List[Tuple[bytes, str]] = []

    async def analyze(self, audio_bytes: bytes, mime_type: str) -> str:
        self.calls.append((audio_bytes, mime_type))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.text


class RecordingPublisher(SnapshotPublisher):
    def __init__(self):
        self.metrics: List[MetricsSnapshot] = []
        self.frames: List[np.ndarray] = []
        self.statuses: List[AnalysisStatus] = []
        self.results: List[Optional[AnalysisResult]] = []

    def on_metrics(self, snapshot):
        self.metrics.append(snapshot)

    def on_spectral_frame(self, frame):
        self.frames.append(frame.copy())

    def on_status(self, status, result):
        self.statuses.append(status)
        self.results.append(result)


@pytest.fixture
def source():
    return FakeSource()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def failing_analyzer():
    return FakeAnalyzer(error=AnalysisFailureError("network unreachable"))
