import random
import re
import string
import threading
import time
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, List, Optional

from constants import MAX_ROOM_MEMBERS, ROOM_CODE_MAX_ATTEMPTS
from errors import MembershipError, RoomAllocationExhausted, RoomNotFound
from logging_config import get_logger

logger = get_logger(__name__)

ROOM_CODE_PATTERN = re.compile(r"^[1-9][A-Za-z0-9]{5}$")


def generate_room_code() -> str:
    """A digit 1-9 followed by 5 mixed-case alphanumeric characters."""
    return random.choice("123456789") + "".join(random.choices(string.ascii_letters + string.digits, k=5))


@dataclass
class Session:
    session_id: str
    display_name: Optional[str] = None
    language: Optional[str] = None
    room_code: Optional[str] = None


@dataclass
class Room:
    code: str
    created_at: float = field(default_factory=time.time)
    # session ids in join order
    members: List[str] = field(default_factory=list)
    # language -> session ids, always a partition of members
    language_groups: Dict[str, List[str]] = field(default_factory=dict)


@dataclass
class JoinResult:
    room_code: str
    members: List[Session]
    # set when joining moved the session out of another room
    left: Optional["LeaveResult"] = None


@dataclass
class LeaveResult:
    room_code: str
    room_deleted: bool
    members: List[Session] = field(default_factory=list)


class RoomBackend:
    """In-memory session and room registry.

    All state lives behind one lock that is held for a single
    operation only. Methods hand out copies of sessions so nothing outside
    the registry can mutate membership.
    """

    def __init__(
        self,
        max_members: int = MAX_ROOM_MEMBERS,
        max_code_attempts: int = ROOM_CODE_MAX_ATTEMPTS,
        code_generator: Callable[[], str] = generate_room_code,
    ):
        self.max_members = max_members
        self.max_code_attempts = max_code_attempts
        self.code_generator = code_generator
        self._sessions: Dict[str, Session] = {}
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()
        logger.info(f"Initializing RoomBackend (max_members={max_members or 'unlimited'}, max_code_attempts={max_code_attempts})")

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def register_session(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.setdefault(session_id, Session(session_id=session_id))
            logger.debug(f"Registered session {session_id} ({len(self._sessions)} sessions)")
            return replace(session)

    def unregister_session(self, session_id: str) -> Optional[LeaveResult]:
        """Drop a session, leaving its room first. Returns the leave outcome, if any."""
        with self._lock:
            result = self._leave_locked(session_id)
            self._sessions.pop(session_id, None)
            logger.debug(f"Unregistered session {session_id} ({len(self._sessions)} sessions)")
            return result

    def get_session(self, session_id: str) -> Optional[Session]:
        with self._lock:
            session = self._sessions.get(session_id)
            return replace(session) if session else None

    # ------------------------------------------------------------------
    # Rooms
    # ------------------------------------------------------------------

    def create_room(self) -> str:
        with self._lock:
            for attempt in range(1, self.max_code_attempts + 1):
                code = self.code_generator()
                if not ROOM_CODE_PATTERN.match(code):
                    logger.warning(f"Discarding malformed room code candidate {code!r}")
                    continue
                if code in self._rooms:
                    logger.debug(f"Room code collision on {code} (attempt {attempt}/{self.max_code_attempts})")
                    continue
                self._rooms[code] = Room(code=code)
                logger.info(f"Room created: {code} ({len(self._rooms)} active rooms)")
                return code
        logger.error(f"Failed to allocate a room code after {self.max_code_attempts} attempts")
        raise RoomAllocationExhausted()

    def join_room(self, room_code: str, session_id: str, display_name: str, language: str) -> JoinResult:
        with self._lock:
            room = self._rooms.get(room_code)
            if room is None:
                logger.info(f"Failed to join room {room_code}: room does not exist")
                raise RoomNotFound()

            rejoin = session_id in room.members
            if not rejoin and self.max_members and len(room.members) >= self.max_members:
                logger.info(f"Failed to join room {room_code}: room is full ({len(room.members)}/{self.max_members})")
                raise MembershipError("Room is full")

            session = self._sessions.setdefault(session_id, Session(session_id=session_id))
            left = None
            if session.room_code and session.room_code != room_code:
                left = self._leave_locked(session_id)

            if rejoin:
                self._remove_from_group(room, session.language, session_id)
                logger.info(f"Session {session_id} re-joined room {room_code} ({session.language} -> {language})")
            else:
                room.members.append(session_id)
                logger.info(f"User {display_name} joined room {room_code} with language {language}")

            session.display_name = display_name
            session.language = language
            session.room_code = room_code
            room.language_groups.setdefault(language, []).append(session_id)

            return JoinResult(room_code=room_code, members=self._members_locked(room), left=left)

    def leave(self, session_id: str) -> Optional[LeaveResult]:
        with self._lock:
            return self._leave_locked(session_id)

    def room_exists(self, room_code: str) -> bool:
        with self._lock:
            return room_code in self._rooms

    def room_count(self) -> int:
        with self._lock:
            return len(self._rooms)

    def member_list(self, room_code: str) -> List[Session]:
        with self._lock:
            room = self._rooms.get(room_code)
            return self._members_locked(room) if room else []

    def members_except(self, room_code: str, session_id: str) -> List[Session]:
        with self._lock:
            room = self._rooms.get(room_code)
            if room is None:
                return []
            return [member for member in self._members_locked(room) if member.session_id != session_id]

    def members_speaking(self, room_code: str, language: str, exclude: Optional[str] = None) -> List[Session]:
        with self._lock:
            room = self._rooms.get(room_code)
            if room is None:
                return []
            return [
                replace(self._sessions[sid])
                for sid in room.language_groups.get(language, [])
                if sid != exclude
            ]

    def get_member(self, room_code: str, session_id: str) -> Optional[Session]:
        with self._lock:
            room = self._rooms.get(room_code)
            if room is None or session_id not in room.members:
                return None
            return replace(self._sessions[session_id])

    def is_member(self, room_code: str, session_id: str) -> bool:
        with self._lock:
            room = self._rooms.get(room_code)
            return room is not None and session_id in room.members

    def language_groups(self, room_code: str) -> Dict[str, List[str]]:
        with self._lock:
            room = self._rooms.get(room_code)
            if room is None:
                return {}
            return {language: list(ids) for language, ids in room.language_groups.items()}

    def expire_pending_rooms(self, max_age: float, now: Optional[float] = None) -> int:
        """Delete rooms that were created but never joined within ``max_age`` seconds."""
        now = time.time() if now is None else now
        with self._lock:
            stale = [code for code, room in self._rooms.items() if not room.members and now - room.created_at > max_age]
            for code in stale:
                del self._rooms[code]
                logger.info(f"Room {code} expired before anyone joined")
            return len(stale)

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _members_locked(self, room: Room) -> List[Session]:
        return [replace(self._sessions[sid]) for sid in room.members]

    @staticmethod
    def _remove_from_group(room: Room, language: Optional[str], session_id: str) -> None:
        group = room.language_groups.get(language)
        if group is None:
            return
        if session_id in group:
            group.remove(session_id)
        if not group:
            del room.language_groups[language]

    def _leave_locked(self, session_id: str) -> Optional[LeaveResult]:
        session = self._sessions.get(session_id)
        if session is None or session.room_code is None:
            return None

        room_code = session.room_code
        session.room_code = None
        room = self._rooms.get(room_code)
        if room is None or session_id not in room.members:
            return None

        self._remove_from_group(room, session.language, session_id)
        room.members.remove(session_id)
        logger.info(f"User {session.display_name} left room {room_code}")

        if not room.members:
            # room and its language index go together
            del self._rooms[room_code]
            logger.info(f"Room {room_code} deleted due to no active users.")
            return LeaveResult(room_code=room_code, room_deleted=True)

        return LeaveResult(room_code=room_code, room_deleted=False, members=self._members_locked(room))


room_backend = RoomBackend()
