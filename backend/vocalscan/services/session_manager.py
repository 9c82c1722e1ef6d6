import asyncio
import base64
import logging
from typing import Callable, Dict, Optional

import numpy as np
from fastapi import WebSocket
from numpy.typing import NDArray
from pydantic import BaseModel

from vocalscan.core.config import settings
from vocalscan.schemas.audio_metrics import AnalysisResult, AnalysisStatus, MetricsSnapshot
from vocalscan.schemas.protocol import MetricsResponse, SpectrogramResponse, SpectrumResponse, StatusResponse
from vocalscan.services.capture import SampleSource
from vocalscan.services.frame_loop import FrameLoop, SnapshotPublisher
from vocalscan.services.voice_report import GeminiVoiceAnalyzer, VoiceAnalyzer
from vocalscan.utils.spectrogram import SpectrogramHistory

logger = logging.getLogger(__name__)


def default_source_factory() -> SampleSource:
    # PortAudio is loaded on import, so only pull it in when a client connects
    from vocalscan.services.microphone import SounddeviceSource
    return SounddeviceSource()


class QueuePublisher(SnapshotPublisher):
    """Turns loop output into outgoing messages, in order, on an asyncio queue."""

    def __init__(self, history: SpectrogramHistory):
        self.history = history
        self.queue: "asyncio.Queue[BaseModel]" = asyncio.Queue()

    def on_metrics(self, snapshot: MetricsSnapshot):
        self.queue.put_nowait(MetricsResponse.from_snapshot(snapshot))

    def on_spectral_frame(self, frame: NDArray):
        self.history.push(frame)
        bins = np.asarray(frame, dtype=np.uint8).tobytes()
        self.queue.put_nowait(
            SpectrumResponse(bins=base64.b64encode(bins).decode("utf-8"), bin_count=len(bins))
        )

    def on_status(self, status: AnalysisStatus, result: Optional[AnalysisResult]):
        self.queue.put_nowait(StatusResponse(status=status, result=result))


class Session:
    def __init__(self, websocket: WebSocket, source: SampleSource, analyzer: VoiceAnalyzer):
        self.websocket = websocket
        self.history = SpectrogramHistory(columns=settings.SPECTROGRAM_COLUMNS, bin_count=settings.bin_count)
        self.publisher = QueuePublisher(self.history)
        self.loop = FrameLoop(source, analyzer, self.publisher)

    def enqueue(self, message: BaseModel):
        self.publisher.queue.put_nowait(message)

    async def pump(self):
        """Forward queued messages to the client until cancelled."""
        while True:
            message = await self.publisher.queue.get()
            await self.websocket.send_text(message.model_dump_json(exclude_none=True))

    def spectrogram(self, height: int = 400) -> SpectrogramResponse:
        image = self.history.render(height)
        return SpectrogramResponse(
            width=image.shape[1],
            height=image.shape[0],
            pixels=base64.b64encode(image.tobytes()).decode("utf-8"),
        )

    async def close(self):
        await self.loop.shutdown()


class SessionManager:
    def __init__(
        self,
        source_factory: Callable[[], SampleSource] = default_source_factory,
        analyzer_factory: Callable[[], VoiceAnalyzer] = GeminiVoiceAnalyzer,
    ):
        self.source_factory = source_factory
        self.analyzer_factory = analyzer_factory
        self.active_sessions: Dict[str, Session] = {}

    async def connect(self, session_id: str, websocket: WebSocket):
        await websocket.accept()
        session = Session(websocket, self.source_factory(), self.analyzer_factory())
        self.active_sessions[session_id] = session
        logger.info(f"Session {session_id} connected")

    async def disconnect(self, session_id: str):
        session = self.active_sessions.pop(session_id, None)
        if session is not None:
            await session.close()
            logger.info(f"Session {session_id} disconnected")

    def get_session(self, session_id: str) -> Optional[Session]:
        return self.active_sessions.get(session_id)


manager = SessionManager()
