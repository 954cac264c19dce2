from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


# ---------------------------------------------------------------------------
# Inbound (client -> server)
# ---------------------------------------------------------------------------


class CreateRoomEvent(BaseModel):
    type: Literal["create_room"]


class JoinRoomEvent(BaseModel):
    # length limits apply to the stripped values
    model_config = ConfigDict(str_strip_whitespace=True)

    type: Literal["join_room"]
    room_code: str
    username: str = Field(min_length=1, max_length=64)
    language: str = Field(min_length=2, max_length=16)


class LeaveRoomEvent(BaseModel):
    type: Literal["leave_room"]


class UtteranceEvent(BaseModel):
    type: Literal["utterance"]
    room_code: str
    audio: str = ""  # base64
    is_speaking: bool = False


class RecordingStatusEvent(BaseModel):
    type: Literal["recording_status"]
    is_recording: bool


class HeartbeatEvent(BaseModel):
    type: Literal["heartbeat"]


InboundEvent = Annotated[
    Union[CreateRoomEvent, JoinRoomEvent, LeaveRoomEvent, UtteranceEvent, RecordingStatusEvent, HeartbeatEvent],
    Field(discriminator="type"),
]

inbound_event_adapter = TypeAdapter(InboundEvent)


# ---------------------------------------------------------------------------
# Outbound (server -> client)
# ---------------------------------------------------------------------------


class Member(BaseModel):
    username: Optional[str]
    language: Optional[str]


class RoomCreatedMessage(BaseModel):
    type: Literal["room_created"] = "room_created"
    room_code: str


class JoinResultMessage(BaseModel):
    type: Literal["join_result"] = "join_result"
    ok: bool
    room_code: str
    session_id: Optional[str] = None


class MemberListMessage(BaseModel):
    type: Literal["member_list"] = "member_list"
    room_code: str
    members: List[Member]


class TranscriptMessage(BaseModel):
    """The speaker's own words, sent back without audio."""

    type: Literal["transcript"] = "transcript"
    username: Optional[str]
    text: str
    audio: None = None
    language: str
    is_translation: bool = False


class TranslatedAudioMessage(BaseModel):
    type: Literal["translated_audio"] = "translated_audio"
    username: Optional[str]
    text: str
    audio: str  # base64 mp3
    language: str
    is_translation: bool


class RecordingStatusMessage(BaseModel):
    type: Literal["recording_status"] = "recording_status"
    username: Optional[str]
    is_recording: bool


class ProcessingStatusMessage(BaseModel):
    type: Literal["processing_status"] = "processing_status"
    username: Optional[str]


class HeartbeatAckMessage(BaseModel):
    type: Literal["heartbeat_ack"] = "heartbeat_ack"


class ErrorMessage(BaseModel):
    type: Literal["error"] = "error"
    code: str
    message: str
    username: Optional[str] = None
    language: Optional[str] = None
