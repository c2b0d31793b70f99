import logging

from pydantic import ValidationError

from tunesync.models.room import (
    AddToQueuePayload,
    JoinRoomPayload,
    LeaveRoomPayload,
    PlaySongPayload,
    SongEndedPayload,
)
from tunesync.services.room import RoomSyncEngine

logger = logging.getLogger(__name__)


def _invalid(event: str, error: ValidationError) -> str:
    fields = ", ".join(".".join(str(p) for p in e["loc"]) or "payload" for e in error.errors())
    return f"Invalid {event} payload: {fields}"


def register_socket_events(sio, engine: RoomSyncEngine) -> None:
    """Wire the room engine to a socketio.AsyncServer."""

    async def reject(sid, event, error):
        message = _invalid(event, error)
        logger.warning(f"{message} (sid={sid})")
        await sio.emit("error", {"message": message}, to=sid)

    @sio.event
    async def connect(sid, environ, auth=None):
        logger.info(f"Client {sid} connected")

    @sio.event
    async def disconnect(sid, reason=None):
        try:
            logger.info(f"Client {sid} disconnected")
            await engine.disconnect(sid)
        except Exception as e:
            logger.error(f"Error in disconnect: {e}", exc_info=True)

    @sio.event
    async def join_room(sid, data):
        try:
            payload = JoinRoomPayload.model_validate(data or {})
        except ValidationError as e:
            await reject(sid, "join_room", e)
            return
        try:
            await engine.join(sid, payload.room, payload.is_admin)
        except Exception as e:
            logger.error(f"Error in join_room: {e}", exc_info=True)
            await sio.emit("error", {"message": "Internal server error during join"}, to=sid)

    @sio.event
    async def play_song(sid, data):
        try:
            payload = PlaySongPayload.model_validate(data or {})
        except ValidationError as e:
            await reject(sid, "play_song", e)
            return
        try:
            await engine.play(
                sid,
                payload.room,
                payload.url,
                payload.start_at,
                payload.song_info,
                payload.duration,
            )
        except Exception as e:
            logger.error(f"Error in play_song: {e}", exc_info=True)

    @sio.event
    async def song_ended(sid, data):
        try:
            payload = SongEndedPayload.model_validate(data or {})
        except ValidationError as e:
            await reject(sid, "song_ended", e)
            return
        try:
            await engine.song_ended(sid, payload.room)
        except Exception as e:
            logger.error(f"Error in song_ended: {e}", exc_info=True)

    @sio.event
    async def add_to_queue(sid, data):
        try:
            payload = AddToQueuePayload.model_validate(data or {})
        except ValidationError as e:
            await reject(sid, "add_to_queue", e)
            return
        try:
            await engine.add_to_queue(sid, payload.room, payload.song)
        except Exception as e:
            logger.error(f"Error in add_to_queue: {e}", exc_info=True)

    @sio.event
    async def leave_room(sid, data=None):
        try:
            payload = LeaveRoomPayload.model_validate(data or {})
        except ValidationError as e:
            await reject(sid, "leave_room", e)
            return
        current = engine.room_of(sid)
        if payload.room and payload.room != current:
            return
        try:
            await engine.leave(sid)
        except Exception as e:
            logger.error(f"Error in leave_room: {e}", exc_info=True)
