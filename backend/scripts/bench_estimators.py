import sys
import os
import time
import numpy as np
import librosa

backend_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
sys.path.append(backend_root)

from vocalscan.schemas.audio_metrics import EstimatorConfig
from vocalscan.services.analyzers.realtime_metrics import RealtimeAnalyzer

FRAME_BUDGET_MS = 1000.0 / 60.0
ITERATIONS = 200


def bench(window_size: int, sample_rate: int, downsample_factor: int = 1):
    analyzer = RealtimeAnalyzer(EstimatorConfig(downsample_factor=downsample_factor))
    tone = librosa.tone(220.0, sr=sample_rate, length=window_size) * 0.5
    noise = np.random.randn(window_size) * 0.05

    # First call compiles the kernel
    analyzer.analyze(tone, sample_rate)

    timings = []
    for i in range(ITERATIONS):
        buffer = tone if i % 2 == 0 else tone + noise
        start = time.perf_counter()
        analyzer.analyze(buffer, sample_rate)
        timings.append((time.perf_counter() - start) * 1000.0)

    timings = np.array(timings)
    p95 = float(np.percentile(timings, 95))
    verdict = "OK" if p95 < FRAME_BUDGET_MS else "OVER BUDGET"
    print(
        f"  N={window_size:5d} sr={sample_rate} ds={downsample_factor}: "
        f"mean {timings.mean():6.2f} ms, p95 {p95:6.2f} ms  [{verdict}]"
    )


def main():
    print(f"Per-tick estimator cost (frame budget {FRAME_BUDGET_MS:.1f} ms)")
    for window_size in (1024, 2048, 4096):
        for sample_rate in (44100, 48000):
            bench(window_size, sample_rate)
    bench(4096, 48000, downsample_factor=2)
    print("\nBenchmark complete.")


if __name__ == "__main__":
    main()
