from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from vocalscan.api import websocket
from vocalscan.core.logging import setup_logging

# Setup logging before app startup
setup_logging()

from contextlib import asynccontextmanager
import asyncio
import logging
import librosa
from vocalscan.services.analyzers.pitch import PitchEstimator

logger = logging.getLogger(__name__)

WARMUP_SAMPLE_RATE = 44100


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: compile the autocorrelation kernel before the first tick needs it
    try:
        logger.info("Warming up pitch estimator (Numba JIT compilation)...")
        tone = librosa.tone(220.0, sr=WARMUP_SAMPLE_RATE, length=2048)
        pitch = await asyncio.to_thread(PitchEstimator().estimate, tone, WARMUP_SAMPLE_RATE)
        logger.info(f"Pitch estimator ready (warmup tone read as {pitch:.1f} Hz)")
    except Exception as e:
        logger.error(f"Pitch estimator warmup failed: {e}")

    yield


app = FastAPI(title="VocalScan Core", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(websocket.router)


@app.get("/")
def health_check():
    return {"status": "VocalScan backend is running"}
