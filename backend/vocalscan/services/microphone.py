import logging
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import sounddevice as sd

from vocalscan.core.config import settings
from vocalscan.core.exceptions import CaptureUnavailableError
from vocalscan.schemas.audio_metrics import RecordedAudio
from vocalscan.services.capture import StreamRecorder
from vocalscan.utils.spectrum_analyser import SpectrumAnalyserConfig

logger = logging.getLogger(__name__)


@dataclass
class MicrophoneCapture:
    stream: sd.InputStream
    recorder: StreamRecorder


class SounddeviceSource:
    """SampleSource backed by a PortAudio input stream."""

    def __init__(
        self,
        fft_size: Optional[int] = None,
        sample_rate: Optional[int] = None,
        device: Optional[Union[int, str]] = None,
        analyser_config: Optional[SpectrumAnalyserConfig] = None,
    ):
        self.fft_size = fft_size or settings.FFT_SIZE
        self.requested_rate = sample_rate or settings.SAMPLE_RATE
        self.device = device if device is not None else settings.INPUT_DEVICE
        if isinstance(self.device, str) and self.device.isdigit():
            self.device = int(self.device)
        self.analyser_config = analyser_config or SpectrumAnalyserConfig.from_settings(settings)

    def open_capture(self) -> MicrophoneCapture:
        try:
            device_info = sd.query_devices(self.device, "input")
            sample_rate = float(self.requested_rate or device_info["default_samplerate"])
            recorder = StreamRecorder(sample_rate, self.fft_size, self.analyser_config)

            def _callback(indata: np.ndarray, frames: int, time_info, status: sd.CallbackFlags) -> None:
                if status:
                    logger.debug(f"Input stream status: {status}")
                recorder.write(indata)

            stream = sd.InputStream(
                device=self.device,
                channels=1,
                samplerate=sample_rate,
                dtype="float32",
                callback=_callback,
            )
            try:
                stream.start()
            except Exception:
                stream.close()
                raise
        except (sd.PortAudioError, ValueError) as e:
            logger.error(f"Failed to open input device {self.device!r}: {e}")
            raise CaptureUnavailableError(str(e)) from e

        logger.info(f"Input stream started on {device_info['name']} at {sample_rate:.0f} Hz")
        return MicrophoneCapture(stream=stream, recorder=recorder)

    def close_capture(self, handle: MicrophoneCapture) -> RecordedAudio:
        try:
            handle.stream.stop()
            handle.stream.close()
        except sd.PortAudioError as e:
            logger.warning(f"Error closing input stream: {e}")
        return handle.recorder.export()

    def get_time_domain_buffer(self, handle: MicrophoneCapture) -> np.ndarray:
        return handle.recorder.time_domain()

    def get_frequency_magnitude_buffer(self, handle: MicrophoneCapture) -> np.ndarray:
        return handle.recorder.frequency_magnitudes()

    def sample_rate(self, handle: MicrophoneCapture) -> float:
        return handle.recorder.sample_rate
