import asyncio
import json
import logging

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError

from config import FRONTEND_URL
from processing.face_detection import create_landmarker
from processing.reflection_pipeline import (
    ColorFlashSession, DocumentSession,
    decode_frame, process_frame_reflection, process_frame_document,
)
from schemas.messages import FrameMessage, DocumentFrameMessage

logger = logging.getLogger("uvicorn.error")

app = FastAPI()
app.state.active_sessions = 0

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL, "*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    return {"status": "ok", "active_sessions": app.state.active_sessions}


class FrameSlot:
    """Holds only the newest frame. A reset bumps the generation so a frame
    taken before it is dropped instead of starting the fresh session."""

    def __init__(self):
        self.data: dict | None = None
        self.generation = 0

    def put(self, data: dict):
        self.data = data

    def take(self) -> tuple[dict | None, int]:
        data, self.data = self.data, None
        return data, self.generation

    def invalidate(self):
        self.data = None
        self.generation += 1

    def is_current(self, generation: int) -> bool:
        return generation == self.generation


async def _run_session(websocket: WebSocket, session, message_model, handle, label: str):
    """Reader keeps only the newest frame; processor evaluates it off the event loop."""
    frame_count = 0
    slot = FrameSlot()
    # Serializes reset() against an in-flight frame evaluation
    session_lock = asyncio.Lock()

    async def reader():
        try:
            while True:
                message = await websocket.receive()

                if message.get("type") == "websocket.disconnect":
                    break

                if "text" not in message or message["text"] is None:
                    continue
                try:
                    data = json.loads(message["text"])
                except json.JSONDecodeError:
                    await websocket.send_json({"type": "error", "message": "Invalid JSON"})
                    continue

                if data.get("type") == "reset":
                    logger.info(f"WS {label} reset command received")
                    async with session_lock:
                        session.reset()
                        slot.invalidate()
                    await websocket.send_json({"type": "reset_ack", "phase": session.sequencer.state.phase.value})
                    if isinstance(session, ColorFlashSession):
                        await websocket.send_json(session.schedule_message())
                elif data.get("type") == "frame":
                    # Always overwrite, only the latest frame matters
                    slot.put(data)

        except (WebSocketDisconnect, RuntimeError):
            pass

    async def processor():
        nonlocal frame_count
        try:
            while True:
                data, generation = slot.take()
                if data is None:
                    await asyncio.sleep(0.01)
                    continue

                try:
                    frame_message = message_model.model_validate(data)
                except ValidationError as e:
                    await websocket.send_json({"type": "error", "message": f"Invalid frame message: {e.error_count()} error(s)"})
                    continue

                frame_rgb = decode_frame(frame_message.jpeg_b64)
                if frame_rgb is None:
                    await websocket.send_json({"type": "error", "message": "Could not decode frame"})
                    continue

                async with session_lock:
                    if not slot.is_current(generation):
                        logger.info(f"WS {label} dropped a frame captured before reset")
                        continue
                    frame_count += 1
                    result = await asyncio.to_thread(handle, frame_rgb, frame_message)

                if frame_count <= 3 or frame_count % 30 == 0 or result.get("type") != "frame_result":
                    logger.info(f"WS {label} frame #{frame_count} -> phase={result.get('phase')}, step={result.get('step_index')}")

                try:
                    await websocket.send_json(result)
                except (WebSocketDisconnect, RuntimeError):
                    break

        except (WebSocketDisconnect, RuntimeError):
            pass
        except asyncio.CancelledError:
            pass

    try:
        reader_task = asyncio.create_task(reader())
        processor_task = asyncio.create_task(processor())

        # When reader finishes (disconnect), cancel processor
        await reader_task
        processor_task.cancel()
        try:
            await processor_task
        except asyncio.CancelledError:
            pass

    except (WebSocketDisconnect, RuntimeError) as e:
        logger.info(f"WS {label} session ended: {type(e).__name__}: {e}")
    finally:
        logger.info(f"WS {label} cleanup: processed {frame_count} frames")


@app.websocket("/ws/verify/reflection")
async def reflection_verification(websocket: WebSocket):
    await websocket.accept()
    session = ColorFlashSession()
    landmarker = create_landmarker()
    app.state.active_sessions += 1
    logger.info("WS reflection session started, creating landmarker")

    def handle(frame_rgb, message):
        return process_frame_reflection(frame_rgb, message, session, landmarker)

    try:
        await websocket.send_json(session.schedule_message())
        await _run_session(websocket, session, FrameMessage, handle, "reflection")
    finally:
        app.state.active_sessions -= 1
        landmarker.close()


@app.websocket("/ws/verify/document")
async def document_verification(websocket: WebSocket):
    await websocket.accept()
    session = DocumentSession()
    app.state.active_sessions += 1
    logger.info("WS document session started")

    def handle(frame_rgb, message):
        return process_frame_document(frame_rgb, message, session)

    try:
        await _run_session(websocket, session, DocumentFrameMessage, handle, "document")
    finally:
        app.state.active_sessions -= 1
