"""Capture-side contracts used by the frame loop.

``SampleSource`` is the seam to whatever owns the input device. The frame
loop only talks to it through a ``CaptureSession``, which exists from start
to stop and carries the sample rate read when the capture was opened.
"""

import io
import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, List, Optional, Protocol

import numpy as np
import soundfile as sf
from numpy.typing import NDArray

from vocalscan.schemas.audio_metrics import RecordedAudio
from vocalscan.utils.spectrum_analyser import SpectrumAnalyser, SpectrumAnalyserConfig

logger = logging.getLogger(__name__)


class SampleSource(Protocol):
    def open_capture(self) -> Any:
        """Open the input and return a handle. Raises CaptureUnavailableError."""
        ...

    def close_capture(self, handle: Any) -> RecordedAudio:
        ...

    def get_time_domain_buffer(self, handle: Any) -> NDArray:
        ...

    def get_frequency_magnitude_buffer(self, handle: Any) -> NDArray:
        ...

    def sample_rate(self, handle: Any) -> float:
        ...


@dataclass
class CaptureSession:
    source: SampleSource
    handle: Any
    sample_rate: float
    window_size: int
    started_at: float = field(default_factory=time.monotonic)

    @classmethod
    def open(cls, source: SampleSource, window_size: int) -> "CaptureSession":
        handle = source.open_capture()
        sample_rate = float(source.sample_rate(handle))
        logger.info(f"Capture opened: {sample_rate:.0f} Hz, window {window_size}")
        return cls(source=source, handle=handle, sample_rate=sample_rate, window_size=window_size)

    @property
    def bin_count(self) -> int:
        return self.window_size // 2

    def time_domain_buffer(self) -> NDArray:
        return self.source.get_time_domain_buffer(self.handle)

    def close(self) -> RecordedAudio:
        recording = self.source.close_capture(self.handle)
        logger.info(
            f"Capture closed after {time.monotonic() - self.started_at:.1f}s "
            f"({len(recording.data)} bytes recorded)"
        )
        return recording


class StreamRecorder:
    """Sliding analysis window plus full-session recording for one input stream.

    ``write`` is called from the audio thread; the getters are called from the
    frame loop. A lock keeps the window consistent between the two.
    """

    def __init__(
        self,
        sample_rate: float,
        fft_size: int,
        analyser_config: Optional[SpectrumAnalyserConfig] = None,
    ):
        self.sample_rate = sample_rate
        self.fft_size = fft_size
        config = analyser_config or SpectrumAnalyserConfig(fft_size=fft_size)
        if config.fft_size != fft_size:
            config = config.model_copy(update={"fft_size": fft_size})
        self.analyser = SpectrumAnalyser(config)
        self._window = np.zeros(fft_size, dtype=np.float32)
        self._chunks: List[NDArray[np.float32]] = []
        self._tick_window: Optional[NDArray[np.float32]] = None
        self._lock = threading.Lock()

    def write(self, block: NDArray):
        samples = np.asarray(block, dtype=np.float32)
        if samples.ndim > 1:
            samples = samples[:, 0]
        samples = samples.copy()
        n = len(samples)
        if n == 0:
            return

        with self._lock:
            self._chunks.append(samples)
            if n >= self.fft_size:
                self._window[:] = samples[-self.fft_size:]
            else:
                self._window[:-n] = self._window[n:]
                self._window[-n:] = samples

    def time_domain(self) -> NDArray[np.float32]:
        with self._lock:
            self._tick_window = self._window.copy()
            return self._tick_window.copy()

    def frequency_magnitudes(self) -> NDArray[np.uint8]:
        """Spectrum of the window last returned by time_domain(), so one tick
        reports pitch, loudness and spectrum for the same samples."""
        with self._lock:
            window, self._tick_window = self._tick_window, None
            if window is None:
                window = self._window.copy()
        return self.analyser.byte_frequency_data(window)

    @property
    def recorded_samples(self) -> int:
        with self._lock:
            return sum(len(c) for c in self._chunks)

    def export(self) -> RecordedAudio:
        """Encode everything written so far as 16-bit mono WAV."""
        with self._lock:
            chunks = list(self._chunks)

        if not chunks:
            return RecordedAudio(data=b"", mime_type="audio/wav", duration=0.0)

        audio = np.concatenate(chunks)
        with io.BytesIO() as b:
            sf.write(b, audio, int(self.sample_rate), format="WAV", subtype="PCM_16")
            data = b.getvalue()

        return RecordedAudio(data=data, mime_type="audio/wav", duration=len(audio) / self.sample_rate)
