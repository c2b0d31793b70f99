from typing import Annotated, Any, Dict, List, Optional, Set

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, StringConstraints

RoomName = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class PlaybackDescriptor(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    song_info: Optional[Dict[str, Any]] = None
    duration: Optional[float] = None # Seconds
    start_at: float # Server epoch ms when playback started


class Room(BaseModel):
    name: str
    members: Set[str] = Field(default_factory=set) # Socket IDs
    admin_sid: Optional[str] = None
    playback: Optional[PlaybackDescriptor] = None
    queue: List[Dict[str, Any]] = Field(default_factory=list) # Opaque song objects, in order added

    @property
    def is_playing(self) -> bool:
        return self.playback is not None


# Inbound socket payloads

class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class JoinRoomPayload(_Payload):
    room: RoomName
    is_admin: bool = Field(default=False, alias="isAdmin")


class PlaySongPayload(_Payload):
    room: RoomName
    url: Annotated[str, StringConstraints(min_length=1)] = Field(
        validation_alias=AliasChoices("url", "locator")
    )
    start_at: float = Field(alias="startAt")
    song_info: Optional[Dict[str, Any]] = Field(default=None, alias="songInfo")
    duration: Optional[float] = Field(default=None, ge=0)


class SongEndedPayload(_Payload):
    room: RoomName


class AddToQueuePayload(_Payload):
    room: RoomName
    song: Dict[str, Any]


class LeaveRoomPayload(_Payload):
    room: Optional[RoomName] = None
