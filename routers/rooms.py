from fastapi import APIRouter, HTTPException, Request

from backend import ROOM_CODE_PATTERN, room_backend
from errors import RoomAllocationExhausted
from logging_config import get_logger
from schemas.rooms import CreateRoomResponse, RoomDetailsResponse

logger = get_logger(__name__)

rooms_router = APIRouter(tags=["rooms"])


@rooms_router.post("/create-room", response_model=CreateRoomResponse, response_model_by_alias=True)
async def create_room(request: Request):
    # Response 200: { "roomCode": "7hd92f" }
    # The room stays pending until the first join_room event over the WebSocket.
    client_host = request.client.host if request.client else "unknown"
    logger.info(f"Room creation request from {client_host}")
    try:
        room_code = room_backend.create_room()
    except RoomAllocationExhausted as e:
        logger.error(f"Room creation failed for {client_host}: {e.message}")
        raise HTTPException(status_code=503, detail=e.to_dict())
    return CreateRoomResponse(room_code=room_code)


@rooms_router.get("/rooms/{room_code}", response_model=RoomDetailsResponse, response_model_by_alias=True)
async def get_room_details(room_code: str):
    """
    Get an active room's member count and the languages spoken in it.

    Lets a client check a code before opening the WebSocket and joining.
    """
    if not ROOM_CODE_PATTERN.match(room_code) or not room_backend.room_exists(room_code):
        logger.info(f"Room details failed: Room {room_code} not found")
        raise HTTPException(status_code=404, detail={"code": "room_not_found", "message": "Room not found"})

    members = room_backend.member_list(room_code)
    languages = list(room_backend.language_groups(room_code))
    logger.debug(f"Room details retrieved for {room_code}: {len(members)} members, languages {languages}")
    return RoomDetailsResponse(room_code=room_code, member_count=len(members), languages=languages)
