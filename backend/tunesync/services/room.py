import asyncio
import logging
import time
from contextlib import asynccontextmanager
from typing import Any, Callable, Dict, List, Optional, Set

from tunesync.models.room import PlaybackDescriptor, Room

logger = logging.getLogger(__name__)


def now_ms() -> float:
    return time.time() * 1000


class RoomStore:
    """In-memory room table. Rooms only live while they have members."""

    def __init__(self):
        self._rooms: Dict[str, Room] = {}

    def get(self, name: str) -> Optional[Room]:
        return self._rooms.get(name)

    def get_or_create(self, name: str) -> Room:
        room = self._rooms.get(name)
        if room is None:
            room = Room(name=name)
            self._rooms[name] = room
            logger.info(f"Room {name} created")
        return room

    def delete(self, name: str) -> None:
        if self._rooms.pop(name, None) is not None:
            logger.info(f"Room {name} deleted (no users)")

    def names(self) -> List[str]:
        return list(self._rooms)

    def __contains__(self, name: str) -> bool:
        return name in self._rooms

    def __len__(self) -> int:
        return len(self._rooms)


class RoomLocks:
    """One asyncio.Lock per room name, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = {}
        self._users: Dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, name: str):
        lock = self._locks.get(name)
        if lock is None:
            lock = self._locks[name] = asyncio.Lock()
        self._users[name] = self._users.get(name, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[name] -= 1
            if not self._users[name]:
                del self._users[name]
                del self._locks[name]

    def __len__(self) -> int:
        return len(self._locks)


class RoomSyncEngine:
    """
    Tracks room membership and playback, and tells late joiners where to seek.

    `sio` is anything with the socketio.AsyncServer `emit`, `enter_room` and
    `leave_room` coroutines. `clock` returns the server wall clock in epoch ms.
    """

    def __init__(self, sio, store: Optional[RoomStore] = None, clock: Callable[[], float] = now_ms):
        self.sio = sio
        self.store = store or RoomStore()
        self.clock = clock
        self._locks = RoomLocks()
        self._sessions: Dict[str, str] = {} # sid -> room name
        self._joining: Dict[str, int] = {} # sid -> joins in flight
        self._gone: Set[str] = set() # disconnected while a join was in flight

    def room_of(self, sid: str) -> Optional[str]:
        return self._sessions.get(sid)

    def get_room(self, name: str) -> Optional[Room]:
        return self.store.get(name)

    def snapshot(self, name: str) -> Optional[Dict[str, Any]]:
        room = self.store.get(name)
        if room is None:
            return None
        return {
            "name": room.name,
            "members": len(room.members),
            "has_admin": room.admin_sid is not None,
            "is_playing": room.is_playing,
        }

    async def join(self, sid: str, room_name: str, is_admin: bool = False) -> Optional[Room]:
        self._joining[sid] = self._joining.get(sid, 0) + 1
        try:
            return await self._join(sid, room_name, is_admin)
        finally:
            self._joining[sid] -= 1
            if not self._joining[sid]:
                del self._joining[sid]
                self._gone.discard(sid)

    async def _join(self, sid: str, room_name: str, is_admin: bool) -> Optional[Room]:
        previous = self._sessions.get(sid)
        if previous is not None and previous != room_name:
            await self.leave(sid)

        async with self._locks.hold(room_name):
            if sid in self._gone:
                logger.info(f"Dropping join of {sid} to room {room_name}: session already disconnected")
                return None
            # Nothing is recorded if the transport refuses the session
            await self.sio.enter_room(sid, room_name)

            room = self.store.get_or_create(room_name)
            room.members.add(sid)
            if is_admin:
                if room.admin_sid and room.admin_sid != sid:
                    logger.info(f"Admin of room {room_name} superseded: {room.admin_sid} -> {sid}")
                room.admin_sid = sid
            elif room.admin_sid == sid:
                # Rejoining as a listener gives up the admin role
                room.admin_sid = None
            self._sessions[sid] = room_name
            logger.info(f"User {sid} joined room {room_name} (admin={is_admin})")

            sync = self._current_position(room)
            await self.sio.emit(
                "room_state",
                {
                    "currentSong": room.playback.song_info if sync is not None else None,
                    "queue": list(room.queue),
                    "isPlaying": sync is not None,
                },
                to=sid,
            )
            if sync is not None:
                await self.sio.emit("sync_to_current", sync, to=sid)
                logger.info(f"Synced {sid} to {sync['seekTo']:.2f}s in room {room_name}")
        return room

    def _current_position(self, room: Room) -> Optional[Dict[str, Any]]:
        playback = room.playback
        if playback is None:
            return None
        elapsed = (self.clock() - playback.start_at) / 1000
        if playback.duration is not None and elapsed >= playback.duration:
            # Finished, nothing to resume
            return None
        return {
            "url": playback.url,
            "seekTo": max(0.0, elapsed),
            "songInfo": playback.song_info,
            "startTime": playback.start_at,
        }

    async def play(
        self,
        sid: str,
        room_name: str,
        url: str,
        start_at: float,
        song_info: Optional[Dict[str, Any]] = None,
        duration: Optional[float] = None,
    ) -> bool:
        async with self._locks.hold(room_name):
            room = self.store.get(room_name)
            if room is None or room.admin_sid is None or room.admin_sid != sid:
                logger.debug(f"Ignoring play from non-admin {sid} in room {room_name}")
                return False

            room.playback = PlaybackDescriptor(
                url=url, song_info=song_info, duration=duration, start_at=start_at
            )
            logger.info(f"Playing in room {room_name}: {url}")
            await self.sio.emit(
                "play_song",
                {"url": url, "startAt": start_at, "songInfo": song_info},
                room=room_name,
            )
        return True

    async def song_ended(self, sid: str, room_name: str) -> bool:
        async with self._locks.hold(room_name):
            room = self.store.get(room_name)
            if room is None or room.admin_sid is None or room.admin_sid != sid:
                logger.debug(f"Ignoring song_ended from non-admin {sid} in room {room_name}")
                return False
            room.playback = None
            logger.info(f"Song ended in room {room_name}")
        return True

    async def add_to_queue(self, sid: str, room_name: str, song: Dict[str, Any]) -> bool:
        async with self._locks.hold(room_name):
            room = self.store.get(room_name)
            if room is None or sid not in room.members:
                logger.debug(f"Ignoring add_to_queue from {sid}, not a member of room {room_name}")
                return False
            room.queue.append(song)
            logger.info(f"Added to queue in room {room_name}: {song.get('title')}")
            await self.sio.emit("queue_updated", {"queue": list(room.queue)}, room=room_name)
        return True

    async def leave(self, sid: str) -> Optional[str]:
        room_name = self._sessions.get(sid)
        if room_name is None:
            return None

        async with self._locks.hold(room_name):
            # A concurrent join may have moved the session already
            if self._sessions.get(sid) != room_name:
                return None
            del self._sessions[sid]

            room = self.store.get(room_name)
            if room is not None:
                room.members.discard(sid)
                if room.admin_sid == sid:
                    room.admin_sid = None
                    logger.info(f"Room {room_name} lost its admin")
                if not room.members:
                    self.store.delete(room_name)
            await self.sio.leave_room(sid, room_name)
            logger.info(f"Removed user {sid} from room {room_name}")
        return room_name

    async def disconnect(self, sid: str) -> Optional[str]:
        """Leave, and make any join of this session still waiting on a lock a no-op."""
        if sid in self._joining:
            self._gone.add(sid)
        return await self.leave(sid)
