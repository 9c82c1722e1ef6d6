from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from vocalscan.core.config import Settings


class AnalysisStatus(str, Enum):
    IDLE = "IDLE"
    RECORDING = "RECORDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


class VoiceRegister(str, Enum):
    SILENT = "silent"
    LOW = "low"
    MID = "mid"
    HIGH = "high"


# Display bands, Hz
LOW_REGISTER_CEILING = 165.0
MID_REGISTER_CEILING = 255.0
# Level bar covers -60..0 dB
LEVEL_RANGE_DB = 60.0


class MetricsSnapshot(BaseModel):
    pitch_hz: float = Field(0.0, ge=0, description="Fundamental frequency in Hz, 0 if undetected")
    loudness_db: float = Field(..., ge=-100, le=0, description="RMS loudness in dBFS")
    clarity: float = Field(0.0, description="Reserved")

    class Config:
        frozen = True

    @property
    def register(self) -> VoiceRegister:
        if self.pitch_hz <= 0:
            return VoiceRegister.SILENT
        if self.pitch_hz < LOW_REGISTER_CEILING:
            return VoiceRegister.LOW
        if self.pitch_hz < MID_REGISTER_CEILING:
            return VoiceRegister.MID
        return VoiceRegister.HIGH

    @property
    def level_percent(self) -> float:
        level = (self.loudness_db + LEVEL_RANGE_DB) * (100.0 / LEVEL_RANGE_DB)
        return min(100.0, max(0.0, level))


class EstimatorConfig(BaseModel):
    """Tunables shared by the pitch and loudness estimators."""

    silence_rms_threshold: float = Field(0.01, ge=0, description="RMS below which no pitch is reported")
    correlation_threshold: float = Field(0.9, description="Minimum lag score for a pitch candidate")
    interpolation_sharpening: float = Field(
        8.0, description="Multiplier applied to the neighbour-difference peak shift"
    )
    downsample_factor: int = Field(1, ge=1, description="Decimation applied before autocorrelation")
    loudness_floor_db: float = Field(-100.0, ge=-100, lt=0, description="Lowest reported loudness")

    @classmethod
    def from_settings(cls, settings: Settings) -> "EstimatorConfig":
        return cls(
            silence_rms_threshold=settings.SILENCE_RMS_THRESHOLD,
            correlation_threshold=settings.CORRELATION_THRESHOLD,
            interpolation_sharpening=settings.INTERPOLATION_SHARPENING,
            downsample_factor=settings.PITCH_DOWNSAMPLE_FACTOR,
            loudness_floor_db=settings.LOUDNESS_FLOOR_DB,
        )


class SessionSummary(BaseModel):
    """Running totals for one recording; no per-tick history is kept."""

    tick_count: int = 0
    voiced_tick_count: int = 0
    skipped_tick_count: int = 0
    pitch_sum: float = 0.0
    loudness_sum: float = 0.0

    def record(self, snapshot: MetricsSnapshot):
        self.tick_count += 1
        self.loudness_sum += snapshot.loudness_db
        if snapshot.pitch_hz > 0:
            self.voiced_tick_count += 1
            self.pitch_sum += snapshot.pitch_hz

    def record_skipped(self):
        self.skipped_tick_count += 1

    @property
    def average_pitch(self) -> Optional[float]:
        if self.voiced_tick_count == 0:
            return None
        return self.pitch_sum / self.voiced_tick_count

    @property
    def average_volume(self) -> Optional[float]:
        if self.tick_count == 0:
            return None
        return self.loudness_sum / self.tick_count


class AnalysisResult(BaseModel):
    text: str
    average_pitch: Optional[float] = Field(None, description="Mean pitch over voiced ticks, Hz")
    average_volume: Optional[float] = Field(None, description="Mean loudness over all ticks, dB")
    tick_count: int = 0

    @classmethod
    def from_summary(cls, text: str, summary: SessionSummary) -> "AnalysisResult":
        return cls(
            text=text,
            average_pitch=summary.average_pitch,
            average_volume=summary.average_volume,
            tick_count=summary.tick_count,
        )


class RecordedAudio(BaseModel):
    data: bytes = Field(..., description="Encoded audio payload")
    mime_type: str = Field("audio/wav", description="MIME type of the payload")
    duration: float = Field(0.0, ge=0, description="Length of the recording in seconds")

    @property
    def is_empty(self) -> bool:
        return len(self.data) == 0 or self.duration <= 0
