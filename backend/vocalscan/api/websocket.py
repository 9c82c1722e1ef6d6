from fastapi import APIRouter, WebSocket, WebSocketDisconnect
from pydantic import ValidationError
import asyncio
import logging
import uuid

from vocalscan.core.exceptions import CaptureUnavailableError
from vocalscan.schemas.audio_metrics import AnalysisStatus
from vocalscan.schemas.protocol import ControlPayload, ErrorResponse
from vocalscan.services.session_manager import manager, Session

logger = logging.getLogger(__name__)
router = APIRouter()

MICROPHONE_ERROR_MESSAGE = "Could not access the microphone. Check the input device and its permissions."


async def handle_start(session: Session):
    try:
        started = await session.loop.start()
    except CaptureUnavailableError:
        session.enqueue(ErrorResponse(message=MICROPHONE_ERROR_MESSAGE))
        return

    if started:
        session.history.clear()
    else:
        session.enqueue(ErrorResponse(message=f"Cannot start while {session.loop.status.value}"))


async def handle_stop(session: Session):
    if session.loop.status != AnalysisStatus.RECORDING:
        session.enqueue(ErrorResponse(message="Not recording"))
        return
    logger.info("Stop requested, sending recording for analysis...")
    await session.loop.stop()


async def handle_control(session: Session, payload: ControlPayload):
    if payload.type == "start":
        await handle_start(session)
    elif payload.type == "stop":
        await handle_stop(session)
    elif payload.type == "clear":
        if not session.loop.clear_result():
            session.enqueue(ErrorResponse(message="No result to clear"))
    elif payload.type == "spectrogram":
        session.enqueue(session.spectrogram())


async def stop_sender(sender: asyncio.Task):
    """Cancel the send pump and collect whatever it ended with."""
    sender.cancel()
    try:
        await sender
    except asyncio.CancelledError:
        pass
    except Exception as e:
        logger.error(f"Sender task failed: {e}")


@router.websocket("/ws/vocal")
async def vocal_websocket_endpoint(websocket: WebSocket):
    session_id = str(uuid.uuid4())
    await manager.connect(session_id, websocket)
    session = manager.get_session(session_id)
    if not session:
        return

    sender = asyncio.create_task(session.pump())
    try:
        while True:
            data = await websocket.receive_text()
            try:
                payload = ControlPayload.model_validate_json(data)
            except ValidationError as e:
                logger.error(f"Validation error: {e}")
                session.enqueue(ErrorResponse(message="Invalid message"))
                continue

            await handle_control(session, payload)

    except WebSocketDisconnect:
        logger.info("Disconnected")
    except Exception as e:
        logger.error(f"Error: {e}")
    finally:
        await stop_sender(sender)
        await manager.disconnect(session_id)
