from pydantic import BaseModel, Field
from typing import Optional, Literal

from vocalscan.schemas.audio_metrics import AnalysisResult, AnalysisStatus, MetricsSnapshot, VoiceRegister


class ControlPayload(BaseModel):
    type: Literal["start", "stop", "clear", "spectrogram"]


class MetricsResponse(BaseModel):
    type: Literal["metrics"] = "metrics"
    pitch_hz: float
    loudness_db: float
    clarity: float
    register: VoiceRegister
    level_percent: float

    @classmethod
    def from_snapshot(cls, snapshot: MetricsSnapshot) -> "MetricsResponse":
        return cls(
            pitch_hz=snapshot.pitch_hz,
            loudness_db=snapshot.loudness_db,
            clarity=snapshot.clarity,
            register=snapshot.register,
            level_percent=snapshot.level_percent,
        )


class SpectrumResponse(BaseModel):
    type: Literal["spectrum"] = "spectrum"
    bins: str = Field(..., description="Base64 encoded uint8 magnitudes, lowest frequency first")
    bin_count: int


class StatusResponse(BaseModel):
    type: Literal["status"] = "status"
    status: AnalysisStatus
    result: Optional[AnalysisResult] = None


class SpectrogramResponse(BaseModel):
    type: Literal["spectrogram"] = "spectrogram"
    width: int
    height: int
    pixels: str = Field(..., description="Base64 encoded RGB rows, top row = highest frequency")


class ErrorResponse(BaseModel):
    type: Literal["error"] = "error"
    message: str
