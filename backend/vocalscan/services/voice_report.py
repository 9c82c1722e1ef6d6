import io
import logging
from typing import Optional, Protocol

from google import genai
from google.genai import types

from vocalscan.core.config import settings
from vocalscan.core.exceptions import AnalysisFailureError

logger = logging.getLogger(__name__)

# Larger payloads go through the Files API instead of inline data
MAX_INLINE_BYTES = 20 * 1024 * 1024

SYSTEM_PROMPT = (
    "You are an expert in speech-language pathology and audio engineering. "
    "Your task is to analyze the provided audio file containing human speech.\n"
    "Give a concise, structured and professional analysis covering:\n\n"
    "1. **Vocal characteristics**: Describe the timbre (e.g. hoarse, velvety, shrill, nasal, breathy).\n"
    "2. **Tone and pitch**: Classify the voice (low, mid, high) and estimate its stability.\n"
    "3. **Dynamics and intensity**: Does the voice vary its volume well or is it monotonous?\n"
    "4. **Emotion/intent**: Which emotion comes across (calm, anxious, authoritative, hesitant)?\n"
    "5. **Quick recommendation**: One short tip to improve communication, if applicable.\n\n"
    "Format the answer in Markdown. Use emojis to illustrate the main points. Be objective."
)

USER_PROMPT = "Analyze this audio, focusing on the characteristics of the voice."


class VoiceAnalyzer(Protocol):
    async def analyze(self, audio_bytes: bytes, mime_type: str) -> str:
        """Return a natural-language report. Raises AnalysisFailureError."""
        ...


class GeminiVoiceAnalyzer:
    """Qualitative voice report from a Gemini multimodal model."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
    ):
        self.api_key = api_key or settings.GEMINI_API_KEY
        self.model = model or settings.GEMINI_MODEL
        self.temperature = settings.ANALYSIS_TEMPERATURE if temperature is None else temperature

        if not self.api_key:
            logger.warning("Gemini API key not found, voice reports are disabled")
            self._enabled = False
            self.client = None
        else:
            self._enabled = True
            self.client = genai.Client(api_key=self.api_key)
            logger.info(f"Gemini analyzer initialized with model: {self.model}")

    def is_enabled(self) -> bool:
        return self._enabled

    async def analyze(self, audio_bytes: bytes, mime_type: str) -> str:
        if not self._enabled:
            raise AnalysisFailureError("Gemini API key not configured")
        if not audio_bytes:
            raise AnalysisFailureError("No audio to analyze")

        try:
            audio_part = await self._audio_part(audio_bytes, mime_type)
            response = await self.client.aio.models.generate_content(
                model=self.model,
                contents=[audio_part, USER_PROMPT],
                config=types.GenerateContentConfig(
                    system_instruction=SYSTEM_PROMPT,
                    temperature=self.temperature,
                ),
            )
            text = response.text
        except Exception as e:
            logger.error(f"Gemini analysis error: {e}")
            raise AnalysisFailureError(str(e)) from e

        if not text or not text.strip():
            raise AnalysisFailureError("Gemini returned an empty analysis")

        logger.info(f"Gemini analysis received ({len(text)} chars)")
        return text.strip()

    async def _audio_part(self, audio_bytes: bytes, mime_type: str):
        if len(audio_bytes) <= MAX_INLINE_BYTES:
            return types.Part.from_bytes(data=audio_bytes, mime_type=mime_type)

        logger.info(f"Uploading {len(audio_bytes)} bytes of audio through the Files API")
        return await self.client.aio.files.upload(
            file=io.BytesIO(audio_bytes),
            config=types.UploadFileConfig(mime_type=mime_type),
        )
