"""
Tests for services/frame_loop.py: the recording state machine and tick loop.

Async methods are driven with asyncio.run() so no pytest plugin is needed.
Ticks are mostly invoked by hand: start() schedules the tick task but does
not yield, so nothing runs in the background until the test awaits.
"""

import asyncio

import pytest

from conftest import FakeAnalyzer, FakeSource, RecordingPublisher, WINDOW_SIZE
from vocalscan.core.exceptions import CaptureUnavailableError
from vocalscan.schemas.audio_metrics import AnalysisStatus, RecordedAudio
from vocalscan.services.frame_loop import ANALYSIS_FALLBACK_MESSAGE, FrameLoop


def make_loop(source=None, analyzer=None, publisher=None, **kwargs) -> FrameLoop:
    return FrameLoop(
        source or FakeSource(),
        analyzer or FakeAnalyzer(),
        publisher or RecordingPublisher(),
        window_size=WINDOW_SIZE,
        **kwargs,
    )


class TestEndToEnd:
    def test_tone_session_with_failed_analysis(self, source, publisher, failing_analyzer):
        loop = make_loop(source, failing_analyzer, publisher)

        async def scenario():
            await loop.start()
            snapshots = [loop.tick() for _ in range(5)]
            await loop.stop()
            return snapshots

        snapshots = asyncio.run(scenario())

        assert len(publisher.metrics) == 5
        for snapshot in snapshots:
            assert 215.0 <= snapshot.pitch_hz <= 225.0
        assert publisher.statuses.count(AnalysisStatus.PROCESSING) == 1
        assert publisher.statuses[-1] == AnalysisStatus.ERROR
        assert loop.status == AnalysisStatus.ERROR
        assert loop.result.text == ANALYSIS_FALLBACK_MESSAGE
        assert loop.result.text

    def test_successful_analysis_completes(self, source, publisher):
        analyzer = FakeAnalyzer(text="  Calm and clear.  ")
        loop = make_loop(source, analyzer, publisher)

        async def scenario():
            await loop.start()
            for _ in range(3):
                loop.tick()
            return await loop.stop()

        result = asyncio.run(scenario())

        assert loop.status == AnalysisStatus.COMPLETED
        assert result.text == "  Calm and clear.  "
        assert result.tick_count == 3
        assert result.average_pitch == pytest.approx(220.0, rel=0.02)
        assert result.average_volume == pytest.approx(-9.0, abs=0.5)
        assert analyzer.calls == [(b"RIFF-fake-wav", "audio/wav")]
        assert publisher.statuses == [
            AnalysisStatus.RECORDING,
            AnalysisStatus.PROCESSING,
            AnalysisStatus.COMPLETED,
        ]

    def test_each_tick_publishes_metrics_then_frame(self, source, publisher):
        loop = make_loop(source, publisher=publisher)

        async def scenario():
            await loop.start()
            loop.tick()
            loop.tick()
            await loop.stop()

        asyncio.run(scenario())
        assert len(publisher.metrics) == len(publisher.frames) == 2
        assert publisher.frames[0].shape == (WINDOW_SIZE // 2,)


class TestStopping:
    def test_no_metrics_after_stop(self, source, publisher):
        loop = make_loop(source, publisher=publisher)

        async def scenario():
            await loop.start()
            loop.tick()
            await loop.stop()
            return loop.tick()

        assert asyncio.run(scenario()) is None
        assert len(publisher.metrics) == 1
        assert source.reads_after_close == 0

    def test_scheduled_ticks_stop_with_recording(self, source, publisher):
        loop = make_loop(source, publisher=publisher, tick_rate=500.0)

        async def scenario():
            await loop.start()
            await asyncio.sleep(0.05)
            await loop.stop()
            published = len(publisher.metrics)
            await asyncio.sleep(0.05)
            return published

        published = asyncio.run(scenario())
        assert published > 0
        assert len(publisher.metrics) == published
        assert source.reads_after_close == 0
        assert source.close_count == 1
        assert loop.status == AnalysisStatus.COMPLETED

    def test_slow_close_does_not_stall_other_loops(self, publisher):
        slow_source = FakeSource(close_delay=0.3)
        slow = make_loop(slow_source, tick_rate=100.0)
        other = make_loop(FakeSource(), publisher=publisher, tick_rate=100.0)

        async def scenario():
            await slow.start()
            await other.start()
            await asyncio.sleep(0.05)
            before = len(publisher.metrics)
            await slow.stop()
            during = len(publisher.metrics) - before
            await other.shutdown()
            return during

        # ~30 ticks fit in the 0.3 s close at 100 Hz
        assert asyncio.run(scenario()) >= 10
        assert slow_source.close_count == 1
        assert slow.status == AnalysisStatus.COMPLETED

    def test_slow_shutdown_does_not_stall_other_loops(self, publisher):
        slow_source = FakeSource(close_delay=0.3)
        slow = make_loop(slow_source, tick_rate=100.0)
        other = make_loop(FakeSource(), publisher=publisher, tick_rate=100.0)

        async def scenario():
            await slow.start()
            await other.start()
            await asyncio.sleep(0.05)
            before = len(publisher.metrics)
            await slow.shutdown()
            during = len(publisher.metrics) - before
            await other.shutdown()
            return during

        assert asyncio.run(scenario()) >= 10
        assert slow_source.close_count == 1
        assert slow.session is None

    def test_stop_when_idle_is_ignored(self, publisher):
        loop = make_loop(publisher=publisher)
        assert asyncio.run(loop.stop()) is None
        assert loop.status == AnalysisStatus.IDLE
        assert publisher.statuses == []

    def test_tick_when_idle_is_noop(self, publisher):
        loop = make_loop(publisher=publisher)
        assert loop.tick() is None
        assert publisher.metrics == []


class TestStarting:
    def test_capture_unavailable_stays_idle(self, publisher):
        loop = make_loop(FakeSource(fail_open=True), publisher=publisher)
        with pytest.raises(CaptureUnavailableError):
            asyncio.run(loop.start())
        assert loop.status == AnalysisStatus.IDLE
        assert loop.session is None
        assert publisher.statuses == [AnalysisStatus.IDLE]

    def test_start_while_recording_is_rejected(self, source):
        loop = make_loop(source)

        async def scenario():
            first = await loop.start()
            second = await loop.start()
            await loop.shutdown()
            return first, second

        assert asyncio.run(scenario()) == (True, False)
        assert source.open_count == 1

    def test_restart_clears_previous_result(self, source, publisher):
        loop = make_loop(source, publisher=publisher)

        async def scenario():
            await loop.start()
            loop.tick()
            await loop.stop()
            assert loop.result is not None
            await loop.start()
            status, result, ticks = loop.status, loop.result, loop.summary.tick_count
            await loop.shutdown()
            return status, result, ticks

        status, result, ticks = asyncio.run(scenario())
        assert status == AnalysisStatus.RECORDING
        assert result is None
        assert ticks == 0
        assert source.open_count == 2

    def test_session_uses_source_sample_rate(self):
        source = FakeSource(sample_rate=48000)
        loop = make_loop(source)

        async def scenario():
            await loop.start()
            snapshot = loop.tick()
            rate = loop.session.sample_rate
            await loop.shutdown()
            return snapshot, rate

        snapshot, rate = asyncio.run(scenario())
        assert rate == 48000.0
        assert snapshot.pitch_hz == pytest.approx(220.0, rel=0.02)


class TestAnalysisFailures:
    def run_session(self, loop, ticks=2):
        async def scenario():
            await loop.start()
            for _ in range(ticks):
                loop.tick()
            await loop.stop()

        asyncio.run(scenario())

    def test_timeout_becomes_error(self, source):
        loop = make_loop(source, FakeAnalyzer(delay=1.0), analysis_timeout=0.05)
        self.run_session(loop)
        assert loop.status == AnalysisStatus.ERROR
        assert loop.result.text == ANALYSIS_FALLBACK_MESSAGE

    def test_empty_text_becomes_error(self, source):
        loop = make_loop(source, FakeAnalyzer(text="   "))
        self.run_session(loop)
        assert loop.status == AnalysisStatus.ERROR

    def test_unexpected_exception_becomes_error(self, source):
        loop = make_loop(source, FakeAnalyzer(error=RuntimeError("boom")))
        self.run_session(loop)
        assert loop.status == AnalysisStatus.ERROR

    def test_empty_recording_skips_the_analyzer(self):
        source = FakeSource(recording=RecordedAudio(data=b"", duration=0.0))
        analyzer = FakeAnalyzer()
        loop = make_loop(source, analyzer)
        self.run_session(loop)
        assert loop.status == AnalysisStatus.ERROR
        assert analyzer.calls == []

    def test_error_result_keeps_session_averages(self, source, failing_analyzer):
        loop = make_loop(source, failing_analyzer)
        self.run_session(loop, ticks=4)
        assert loop.result.tick_count == 4
        assert loop.result.average_pitch == pytest.approx(220.0, rel=0.02)


class TestMalformedBuffers:
    def test_bad_buffer_skips_one_tick(self, source, publisher):
        loop = make_loop(source, publisher=publisher)
        source.bad_buffers = 1

        async def scenario():
            await loop.start()
            first = loop.tick()
            second = loop.tick()
            await loop.shutdown()
            return first, second

        first, second = asyncio.run(scenario())
        assert first is None
        assert second is not None
        assert len(publisher.metrics) == 1
        assert loop.summary.skipped_tick_count == 1


class TestResultLifecycle:
    def test_clear_result_returns_to_idle(self, source, publisher):
        loop = make_loop(source, publisher=publisher)

        async def scenario():
            await loop.start()
            loop.tick()
            await loop.stop()

        asyncio.run(scenario())
        assert loop.clear_result() is True
        assert loop.status == AnalysisStatus.IDLE
        assert loop.result is None
        assert loop.clear_result() is False

    def test_shutdown_releases_capture_without_analysis(self, source):
        analyzer = FakeAnalyzer()
        loop = make_loop(source, analyzer)

        async def scenario():
            await loop.start()
            loop.tick()
            await loop.shutdown()

        asyncio.run(scenario())
        assert source.close_count == 1
        assert analyzer.calls == []
        assert loop.status == AnalysisStatus.IDLE

