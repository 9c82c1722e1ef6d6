from typing import Optional
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.5-flash"
    ANALYSIS_TEMPERATURE: float = 0.4  # Lower temperature for more analytical reports
    ANALYSIS_TIMEOUT_SECONDS: float = 30.0

    # Capture
    FFT_SIZE: int = 2048
    SAMPLE_RATE: Optional[int] = None  # None = device default
    INPUT_DEVICE: Optional[str] = None
    TICK_RATE_HZ: float = 60.0

    # Estimators
    SILENCE_RMS_THRESHOLD: float = 0.01
    CORRELATION_THRESHOLD: float = 0.9
    INTERPOLATION_SHARPENING: float = 8.0
    PITCH_DOWNSAMPLE_FACTOR: int = 1
    LOUDNESS_FLOOR_DB: float = -100.0

    # Byte spectrum (Web Audio AnalyserNode defaults)
    SMOOTHING_TIME_CONSTANT: float = 0.8
    MIN_DECIBELS: float = -100.0
    MAX_DECIBELS: float = -30.0
    SPECTROGRAM_COLUMNS: int = 400

    LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        extra = "ignore"

    @field_validator("FFT_SIZE")
    @classmethod
    def _fft_size_power_of_two(cls, v: int) -> int:
        if v < 32 or v > 32768 or v & (v - 1):
            raise ValueError("FFT_SIZE must be a power of two between 32 and 32768")
        return v

    @field_validator("LOUDNESS_FLOOR_DB")
    @classmethod
    def _floor_in_range(cls, v: float) -> float:
        if not -100.0 <= v < 0.0:
            raise ValueError("LOUDNESS_FLOOR_DB must be in [-100, 0)")
        return v

    @field_validator("PITCH_DOWNSAMPLE_FACTOR")
    @classmethod
    def _downsample_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("PITCH_DOWNSAMPLE_FACTOR must be >= 1")
        return v

    @model_validator(mode="after")
    def _decibel_range(self) -> "Settings":
        if self.MIN_DECIBELS >= self.MAX_DECIBELS:
            raise ValueError("MIN_DECIBELS must be lower than MAX_DECIBELS")
        return self

    @property
    def bin_count(self) -> int:
        return self.FFT_SIZE // 2


settings = Settings()
