"""
Per-tick audio metrics.
Runs on every frame-loop tick against the current analysis window.
"""
from typing import Optional

from numpy.typing import NDArray

from vocalscan.schemas.audio_metrics import EstimatorConfig, MetricsSnapshot
from vocalscan.services.analyzers.loudness import LoudnessEstimator
from vocalscan.services.analyzers.pitch import PitchEstimator


class RealtimeAnalyzer:
    """Pitch + loudness for one time-domain buffer."""

    def __init__(self, config: Optional[EstimatorConfig] = None):
        self.config = config or EstimatorConfig()
        self.pitch = PitchEstimator(self.config)
        self.loudness = LoudnessEstimator(self.config)

    def analyze(self, buffer: NDArray, sample_rate: float) -> MetricsSnapshot:
        return MetricsSnapshot(
            pitch_hz=self.pitch.estimate(buffer, sample_rate),
            loudness_db=self.loudness.estimate(buffer),
            clarity=0.0,
        )
