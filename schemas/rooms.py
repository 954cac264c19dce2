from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class CreateRoomResponse(CamelModel):
    room_code: str


class RoomDetailsResponse(CamelModel):
    room_code: str
    member_count: int
    languages: list[str]
