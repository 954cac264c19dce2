from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
from pydantic import ValidationError as SchemaValidationError
from pathlib import Path
from typing import Optional, Set
import asyncio
import base64
import binascii
import os
import uuid

from routers.rooms import rooms_router
from routers.verification import verification_router
from backend import room_backend, LeaveResult
from connections import connection_manager
from constants import OPENAI_API_KEY, TEMP_DIR
from errors import RelayError, ValidationError, ValidationKind
from housekeeping import cleanup_old_files, housekeeping_loop
from logging_config import get_logger, setup_logging
from pipeline import UtterancePipeline
from schemas.messages import (
    CreateRoomEvent,
    ErrorMessage,
    HeartbeatAckMessage,
    HeartbeatEvent,
    JoinResultMessage,
    JoinRoomEvent,
    LeaveRoomEvent,
    Member,
    MemberListMessage,
    ProcessingStatusMessage,
    RecordingStatusEvent,
    RecordingStatusMessage,
    RoomCreatedMessage,
    UtteranceEvent,
    inbound_event_adapter,
)
from services.ffmpeg_transcoder import FfmpegTranscoder, ffmpeg_available
from services.openai_speech import OpenAISynthesizer, OpenAITranscriber, OpenAITranslator, create_openai_client
from verification import origin_verifier

# Setup logging
log_level = os.getenv("LOG_LEVEL", "INFO")
log_file = os.getenv("LOG_FILE", None)
setup_logging(log_level=log_level, log_file=log_file)
logger = get_logger(__name__)

# Built at startup; tests install their own with fake services
pipeline: Optional[UtterancePipeline] = None

# Utterances still running. Disconnecting does not cancel them.
# Format: {task}
pipeline_tasks: Set[asyncio.Task] = set()


def create_default_pipeline() -> UtterancePipeline:
    """Wire the pipeline to ffmpeg and OpenAI. Raises RuntimeError if either is unavailable."""
    if not ffmpeg_available():
        raise RuntimeError("FFmpeg not found. Please install it using: sudo apt-get install ffmpeg")
    if not OPENAI_API_KEY:
        raise RuntimeError("OPENAI_API_KEY is not set")
    client = create_openai_client(OPENAI_API_KEY)
    return UtterancePipeline(
        backend=room_backend,
        notifier=connection_manager,
        transcoder=FfmpegTranscoder(),
        transcriber=OpenAITranscriber(client),
        translator=OpenAITranslator(client),
        synthesizer=OpenAISynthesizer(client),
        temp_dir=TEMP_DIR,
    )


@asynccontextmanager
async def lifespan(application: FastAPI):
    global pipeline

    # Missing collaborators are fatal at boot
    pipeline = create_default_pipeline()
    Path(TEMP_DIR).mkdir(parents=True, exist_ok=True)
    cleanup_old_files(TEMP_DIR)
    logger.info(f"Pipeline ready, temp directory: {TEMP_DIR}")

    housekeeping_task = asyncio.create_task(housekeeping_loop(room_backend, origin_verifier.nonce_store, TEMP_DIR))
    try:
        yield
    finally:
        housekeeping_task.cancel()
        try:
            await housekeeping_task
        except asyncio.CancelledError:
            pass
        if pipeline_tasks:
            logger.info(f"Waiting for {len(pipeline_tasks)} utterances to finish")
            await asyncio.gather(*pipeline_tasks, return_exceptions=True)


app = FastAPI(lifespan=lifespan)

# Configure CORS to allow all origins; WebSocket connections are gated separately
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Allow all origins
    allow_methods=["GET", "POST"],
    allow_headers=["*"],  # Allow all headers
)

app.include_router(rooms_router)
app.include_router(verification_router)

logger.info("FastAPI application initialized")


@app.get("/health")
async def health():
    return {"status": "ok", "rooms": room_backend.room_count(), "connections": len(connection_manager.connections)}


def _members(session_list) -> list:
    return [Member(username=s.display_name, language=s.language) for s in session_list]


async def broadcast_member_list(result: Optional[LeaveResult]) -> None:
    """Tell the rest of a room that someone left. Nothing to send if the room is gone."""
    if result is None or result.room_deleted:
        return
    await connection_manager.broadcast(
        [s.session_id for s in result.members],
        MemberListMessage(room_code=result.room_code, members=_members(result.members)),
    )


async def send_error(session_id: str, error: RelayError, username: Optional[str] = None) -> None:
    await connection_manager.send(session_id, ErrorMessage(code=error.code, message=error.message, username=username))


def start_utterance(room_code: str, session_id: str, audio: bytes) -> asyncio.Task:
    task = asyncio.create_task(pipeline.process(room_code, session_id, audio))
    pipeline_tasks.add(task)
    task.add_done_callback(pipeline_tasks.discard)
    return task


# ---------------------------------------------------------------------------
# Event handlers
# ---------------------------------------------------------------------------


async def handle_create_room(session_id: str, event: CreateRoomEvent) -> None:
    room_code = room_backend.create_room()
    await connection_manager.send(session_id, RoomCreatedMessage(room_code=room_code))


async def handle_join_room(session_id: str, event: JoinRoomEvent) -> None:
    try:
        result = room_backend.join_room(event.room_code, session_id, event.username, event.language)
    except RelayError as e:
        logger.info(f"Failed to join room {event.room_code} for {session_id}: {e.message}")
        await connection_manager.send(session_id, JoinResultMessage(ok=False, room_code=event.room_code))
        await send_error(session_id, e, event.username)
        return

    await broadcast_member_list(result.left)
    await connection_manager.send(session_id, JoinResultMessage(ok=True, room_code=result.room_code, session_id=session_id))
    await connection_manager.broadcast(
        [s.session_id for s in result.members],
        MemberListMessage(room_code=result.room_code, members=_members(result.members)),
    )


async def handle_leave_room(session_id: str, event: LeaveRoomEvent) -> None:
    await broadcast_member_list(room_backend.leave(session_id))


async def handle_utterance(session_id: str, event: UtteranceEvent) -> None:
    sender = room_backend.get_member(event.room_code, session_id)
    if sender is None:
        error = ValidationError(ValidationKind.EMPTY, "Not a member of this room")
        if not room_backend.room_exists(event.room_code):
            error = ValidationError(ValidationKind.EMPTY, "Room not found")
        logger.warning(f"Utterance from {session_id} rejected for room {event.room_code}: {error.message}")
        await send_error(session_id, error)
        return

    await connection_manager.broadcast(
        [s.session_id for s in room_backend.member_list(event.room_code)],
        ProcessingStatusMessage(username=sender.display_name),
    )
    if event.is_speaking:
        return

    try:
        audio = base64.b64decode(event.audio, validate=True)
    except (binascii.Error, ValueError):
        await send_error(session_id, ValidationError(ValidationKind.EMPTY, "Audio is not valid base64"), sender.display_name)
        return

    logger.debug(f"Received audio from {session_id} in room {event.room_code}: {len(audio)} bytes")
    start_utterance(event.room_code, session_id, audio)


async def handle_recording_status(session_id: str, event: RecordingStatusEvent) -> None:
    session = room_backend.get_session(session_id)
    if session is None or session.room_code is None:
        return
    await connection_manager.broadcast(
        [s.session_id for s in room_backend.member_list(session.room_code)],
        RecordingStatusMessage(username=session.display_name, is_recording=event.is_recording),
    )


async def handle_heartbeat(session_id: str, event: HeartbeatEvent) -> None:
    await connection_manager.send(session_id, HeartbeatAckMessage())


EVENT_HANDLERS = {
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "leave_room": handle_leave_room,
    "utterance": handle_utterance,
    "recording_status": handle_recording_status,
    "heartbeat": handle_heartbeat,
}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, app_key: Optional[str] = None):
    """Relay WebSocket.

    Query parameters:
    - app_key: Required for native clients, which connect without an Origin header
    """
    origin = websocket.headers.get("origin")
    if not origin_verifier.is_connection_allowed(origin, app_key):
        logger.warning(f"WebSocket connection rejected: origin {origin!r} is not verified")
        await websocket.close(code=1008, reason="Origin not verified")
        return

    await websocket.accept()
    session_id = str(uuid.uuid4())
    connection_manager.connect(session_id, websocket)
    room_backend.register_session(session_id)
    logger.info(f"A user connected: {session_id} (origin {origin or 'native'})")

    reason = "client closed"
    message_count = 0
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
            message_count += 1

            data = message.get("text")
            if data is None:
                logger.debug(f"Binary frame #{message_count} from {session_id} ignored")
                await connection_manager.send(session_id, ErrorMessage(code="invalid_event", message="Events must be sent as text frames"))
                continue

            try:
                event = inbound_event_adapter.validate_json(data)
            except SchemaValidationError as e:
                logger.debug(f"Invalid event #{message_count} from {session_id}: {e.error_count()} errors")
                await connection_manager.send(session_id, ErrorMessage(code="invalid_event", message="Malformed event"))
                continue

            logger.debug(f"Received {event.type} (#{message_count}) from {session_id}")
            try:
                await EVENT_HANDLERS[event.type](session_id, event)
            except RelayError as e:
                logger.info(f"{event.type} from {session_id} failed: {e.code}")
                await send_error(session_id, e)
    except WebSocketDisconnect as e:
        reason = f"code {e.code}"
        logger.info(f"WebSocket disconnected normally for {session_id} ({reason})")
    except Exception as e:
        reason = "error"
        logger.error(f"WebSocket error for {session_id}: {e}", exc_info=True)
    finally:
        connection_manager.disconnect(session_id)
        await broadcast_member_list(room_backend.unregister_session(session_id))
        logger.info(f"Client disconnected: {session_id}. Reason: {reason}")
