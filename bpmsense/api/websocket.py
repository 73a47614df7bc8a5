"""WebSocket endpoint for analysis with a preliminary estimate."""

import asyncio
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from bpmsense.analysis.models import ProgressUpdate
from bpmsense.api.schemas import ErrorMessage, ProgressMessage, ResultMessage, TempoResponse
from bpmsense.api.upload import service
from bpmsense.config import settings

logger = logging.getLogger(__name__)

router = APIRouter()


@router.websocket("/ws/analyze")
async def analyze_stream(websocket: WebSocket, beat_mode: str | None = None):
    """Analyze one uploaded file, reporting an early estimate.

    Protocol:
    - Client sends one binary message with the encoded audio file
    - Server sends JSON messages:
      - {"type": "progress", "bpm": B, "confidence": 65, "windows_processed": N,
         "beat_type_auto": "straight", "breakbeat_score": S, "preliminary": true}
      - {"type": "result", "data": {...}} (data is null when no tempo was found)
      - {"type": "error", "message": "..."}
    """
    await websocket.accept()
    pending: list[asyncio.Future] = []

    def on_progress(update: ProgressUpdate) -> None:
        message = ProgressMessage(
            bpm=update.bpm,
            confidence=update.confidence,
            windows_processed=update.windows_processed,
            beat_type_auto=update.beat_type_auto.value,
            breakbeat_score=update.breakbeat_score,
            preliminary=update.preliminary,
        )
        pending.append(asyncio.ensure_future(websocket.send_json(message.model_dump())))

    try:
        data = await websocket.receive_bytes()
        if len(data) > settings.max_upload_mb * 1024 * 1024:
            await websocket.send_json(ErrorMessage(
                message=f"File too large (max {settings.max_upload_mb} MB)").model_dump())
            await websocket.close()
            return

        try:
            result = await service.analyze(data, beat_mode, on_progress=on_progress)
        except Exception:
            logger.exception("WebSocket analysis failed")
            await websocket.send_json(ErrorMessage(message="Analysis failed").model_dump())
            await websocket.close()
            return

        # Progress messages go out before the result
        if pending:
            await asyncio.gather(*pending)
        response = TempoResponse(**result.to_dict()) if result is not None else None
        await websocket.send_json(ResultMessage(data=response).model_dump())
        await websocket.close()
    except WebSocketDisconnect:
        logger.info("Client disconnected before the analysis finished")
