import asyncio
from typing import Any, Dict, Iterable, Union

from fastapi import WebSocket
from pydantic import BaseModel

from logging_config import get_logger

logger = get_logger(__name__)

Message = Union[BaseModel, Dict[str, Any]]


class ConnectionManager:
    """Tracks live WebSocket connections by session id.

    Sending to a session that is gone is not an error: the message is
    dropped and ``send`` returns False.
    """

    def __init__(self):
        # Format: {session_id: websocket}
        self.connections: Dict[str, WebSocket] = {}

    def connect(self, session_id: str, websocket: WebSocket) -> None:
        self.connections[session_id] = websocket
        logger.debug(f"Added connection {session_id} (local connections: {len(self.connections)})")

    def disconnect(self, session_id: str) -> None:
        if self.connections.pop(session_id, None) is not None:
            logger.debug(f"Removed connection {session_id} (local connections: {len(self.connections)})")

    async def send(self, session_id: str, message: Message) -> bool:
        websocket = self.connections.get(session_id)
        if websocket is None:
            logger.debug(f"Dropping message for disconnected session {session_id}")
            return False
        payload = message.model_dump(mode="json") if isinstance(message, BaseModel) else message
        try:
            await websocket.send_json(payload)
            return True
        except Exception as e:
            logger.warning(f"Error sending to connection {session_id}: {e}")
            return False

    async def broadcast(self, session_ids: Iterable[str], message: Message) -> int:
        session_ids = list(session_ids)
        if not session_ids:
            return 0
        results = await asyncio.gather(*(self.send(sid, message) for sid in session_ids), return_exceptions=True)
        delivered = sum(1 for result in results if result is True)
        logger.debug(f"Broadcasted {getattr(message, 'type', 'message')} to {delivered}/{len(session_ids)} connections")
        return delivered


connection_manager = ConnectionManager()
