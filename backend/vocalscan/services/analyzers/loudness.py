import math
from typing import Optional

import numpy as np
from numpy.typing import NDArray

from vocalscan.schemas.audio_metrics import EstimatorConfig
from vocalscan.utils.buffers import normalize_samples

CEILING_DB = 0.0


class LoudnessEstimator:
    """RMS loudness in dBFS, clamped to [floor, 0]. Each call is independent."""

    def __init__(self, config: Optional[EstimatorConfig] = None):
        self.config = config or EstimatorConfig()

    def estimate(self, buffer: NDArray) -> float:
        samples = normalize_samples(buffer)
        floor = self.config.loudness_floor_db
        if len(samples) == 0:
            return floor

        rms = math.sqrt(float(np.mean(samples * samples)))
        if rms <= 0 or not math.isfinite(rms):
            return floor

        db = 20.0 * math.log10(rms)
        return min(CEILING_DB, max(floor, db))
