"""Recording lifecycle and the per-tick metrics loop.

One ``FrameLoop`` drives one user's capture sessions:

    IDLE -> RECORDING -> PROCESSING -> COMPLETED | ERROR -> RECORDING ...

Ticks run on the asyncio event loop. ``tick()`` is synchronous, so two ticks
never overlap and snapshots reach the publisher in tick order. ``stop()``
leaves RECORDING and cancels the tick task before the capture is closed, so a
late tick finds the loop in PROCESSING and does nothing. Closing the capture
(device stop plus WAV encoding) runs in a worker thread.
"""

import asyncio
import logging
from typing import Optional

from numpy.typing import NDArray

from vocalscan.core.config import settings
from vocalscan.core.exceptions import AnalysisFailureError, CaptureUnavailableError, MalformedBufferError
from vocalscan.schemas.audio_metrics import (
    AnalysisResult,
    AnalysisStatus,
    EstimatorConfig,
    MetricsSnapshot,
    RecordedAudio,
    SessionSummary,
)
from vocalscan.services.analyzers.realtime_metrics import RealtimeAnalyzer
from vocalscan.services.analyzers.spectrum import SpectralFrameProvider
from vocalscan.services.capture import CaptureSession, SampleSource
from vocalscan.services.voice_report import VoiceAnalyzer
from vocalscan.utils.buffers import validate_length

logger = logging.getLogger(__name__)

ANALYSIS_FALLBACK_MESSAGE = "Voice analysis failed. Check your API key or try again."
CAPTURE_LOST_MESSAGE = "Audio capture stopped unexpectedly."


class SnapshotPublisher:
    """Receives loop output. Methods are called synchronously from the loop."""

    def on_metrics(self, snapshot: MetricsSnapshot):
        pass

    def on_spectral_frame(self, frame: NDArray):
        pass

    def on_status(self, status: AnalysisStatus, result: Optional[AnalysisResult]):
        pass


class FrameLoop:
    def __init__(
        self,
        source: SampleSource,
        analyzer: VoiceAnalyzer,
        publisher: Optional[SnapshotPublisher] = None,
        metrics: Optional[RealtimeAnalyzer] = None,
        window_size: Optional[int] = None,
        tick_rate: Optional[float] = None,
        analysis_timeout: Optional[float] = None,
    ):
        self.source = source
        self.analyzer = analyzer
        self.publisher = publisher or SnapshotPublisher()
        self.metrics = metrics or RealtimeAnalyzer(EstimatorConfig.from_settings(settings))
        self.spectrum = SpectralFrameProvider()
        self.window_size = window_size or settings.FFT_SIZE
        self.tick_rate = tick_rate or settings.TICK_RATE_HZ
        self.analysis_timeout = analysis_timeout or settings.ANALYSIS_TIMEOUT_SECONDS

        self.session: Optional[CaptureSession] = None
        self.summary = SessionSummary()
        self.result: Optional[AnalysisResult] = None
        self._status = AnalysisStatus.IDLE
        self._tick_task: Optional[asyncio.Task] = None

    @property
    def status(self) -> AnalysisStatus:
        return self._status

    def _set_status(self, status: AnalysisStatus):
        self._status = status
        logger.info(f"Status -> {status.value}")
        self.publisher.on_status(status, self.result)

    async def start(self) -> bool:
        """Open a capture session and begin ticking.

        Returns False when a session is already recording or being analyzed.
        Raises CaptureUnavailableError if the input cannot be opened; the loop
        is then IDLE.
        """
        if self._status in (AnalysisStatus.RECORDING, AnalysisStatus.PROCESSING):
            logger.warning(f"Start ignored while {self._status.value}")
            return False

        self.result = None
        try:
            session = await asyncio.to_thread(CaptureSession.open, self.source, self.window_size)
        except CaptureUnavailableError as e:
            logger.error(f"Capture unavailable: {e}")
            self._set_status(AnalysisStatus.IDLE)
            raise

        self.session = session
        self.summary = SessionSummary()
        self._set_status(AnalysisStatus.RECORDING)
        self._tick_task = asyncio.create_task(self._run())
        return True

    async def stop(self) -> Optional[AnalysisResult]:
        """Stop recording and run the remote analysis on what was captured."""
        if self._status != AnalysisStatus.RECORDING:
            logger.warning(f"Stop ignored while {self._status.value}")
            return None

        self._set_status(AnalysisStatus.PROCESSING)
        self._cancel_ticks()
        session, self.session = self.session, None
        recording = await asyncio.to_thread(self._close_session, session)
        await self._analyze(recording)
        return self.result

    async def shutdown(self):
        """Release the capture without analysis (client went away)."""
        self._cancel_ticks()
        session, self.session = self.session, None
        self.result = None
        self._status = AnalysisStatus.IDLE
        if session is not None:
            await asyncio.to_thread(self._close_session, session)

    def clear_result(self) -> bool:
        if self._status not in (AnalysisStatus.COMPLETED, AnalysisStatus.ERROR):
            return False
        self.result = None
        self._set_status(AnalysisStatus.IDLE)
        return True

    def tick(self) -> Optional[MetricsSnapshot]:
        """Pull one window, publish its metrics and spectrum."""
        session = self.session
        if self._status != AnalysisStatus.RECORDING or session is None:
            return None

        try:
            time_domain = validate_length(session.time_domain_buffer(), session.window_size, "time-domain")
            frame = validate_length(self.spectrum.current_frame(session), session.bin_count, "frequency")
        except MalformedBufferError as e:
            self.summary.record_skipped()
            logger.warning(f"Skipping tick: {e}")
            return None

        snapshot = self.metrics.analyze(time_domain, session.sample_rate)
        self.summary.record(snapshot)
        self.publisher.on_metrics(snapshot)
        self.publisher.on_spectral_frame(frame)
        return snapshot

    async def _run(self):
        interval = 1.0 / self.tick_rate
        try:
            while self._status == AnalysisStatus.RECORDING:
                self.tick()
                await asyncio.sleep(interval)
        except Exception as e:
            logger.exception(f"Frame loop crashed: {e}")
            self._tick_task = None
            session, self.session = self.session, None
            self._close_session(session)
            self.result = AnalysisResult.from_summary(CAPTURE_LOST_MESSAGE, self.summary)
            self._set_status(AnalysisStatus.ERROR)

    def _cancel_ticks(self):
        task, self._tick_task = self._tick_task, None
        if task is not None and not task.done():
            task.cancel()

    def _close_session(self, session: Optional[CaptureSession]) -> Optional[RecordedAudio]:
        """Close a detached session. Runs off the event loop from stop() and shutdown()."""
        if session is None:
            return None
        try:
            return session.close()
        except Exception as e:
            logger.error(f"Error closing capture: {e}")
            return None

    async def _analyze(self, recording: Optional[RecordedAudio]):
        logger.info(
            f"Analyzing session: {self.summary.tick_count} ticks, "
            f"{self.summary.skipped_tick_count} skipped"
        )
        try:
            if recording is None or recording.is_empty:
                raise AnalysisFailureError("Nothing was recorded")
            text = await asyncio.wait_for(
                self.analyzer.analyze(recording.data, recording.mime_type),
                timeout=self.analysis_timeout,
            )
            if not text or not text.strip():
                raise AnalysisFailureError("Empty analysis")
        except asyncio.TimeoutError:
            logger.error(f"Voice analysis timed out after {self.analysis_timeout}s")
            self._fail_analysis()
            return
        except AnalysisFailureError as e:
            logger.error(f"Voice analysis failed: {e}")
            self._fail_analysis()
            return
        except Exception as e:
            logger.exception(f"Unexpected voice analysis error: {e}")
            self._fail_analysis()
            return

        self.result = AnalysisResult.from_summary(text, self.summary)
        self._set_status(AnalysisStatus.COMPLETED)

    def _fail_analysis(self):
        self.result = AnalysisResult.from_summary(ANALYSIS_FALLBACK_MESSAGE, self.summary)
        self._set_status(AnalysisStatus.ERROR)
