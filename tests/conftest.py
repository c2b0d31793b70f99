import json
from collections import defaultdict
from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient

from tunesync.config import Settings
from tunesync.main import create_app
from tunesync.services.catalog import CatalogStore
from tunesync.services.room import RoomSyncEngine

GITHUB_BASE = "https://raw.example.com/songs"


class FakeSocketServer:
    """Records what a socketio.AsyncServer would have delivered, per sid."""

    def __init__(self):
        self.rooms = defaultdict(set)
        self.sent = []  # (event, data, sid)
        self.handlers = {}

    def event(self, handler):
        self.handlers[handler.__name__] = handler
        return handler

    async def enter_room(self, sid, room):
        self.rooms[room].add(sid)

    async def leave_room(self, sid, room):
        self.rooms[room].discard(sid)

    async def emit(self, event, data=None, to=None, room=None, skip_sid=None):
        recipients = {to} if to is not None else set(self.rooms.get(room, set()))
        for sid in sorted(recipients):
            if sid != skip_sid:
                self.sent.append((event, data, sid))

    def received(self, sid, event=None):
        return [data for ev, data, to in self.sent if to == sid and (event is None or ev == event)]

    def events(self, event):
        return [(data, to) for ev, data, to in self.sent if ev == event]


class FakeClock:
    def __init__(self, now_ms: float = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += seconds * 1000


@pytest.fixture
def sio() -> FakeSocketServer:
    return FakeSocketServer()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(sio, clock) -> RoomSyncEngine:
    return RoomSyncEngine(sio, clock=clock)


SONGS_DB = {
    "songs": {
        "s1": {
            "filename": "blinding_lights.mp3",
            "original_filename": "Blinding Lights.mp3",
            "metadata": {
                "track_name": "Blinding Lights",
                "artists_string": "The Weeknd",
                "album_name": "After Hours",
                "duration_formatted": "3:20",
                "playcount": 900,
                "cover_art_url": "https://img.example.com/s1.jpg",
            },
            "playlists": ["Pop Hits"],
        },
        "s2": {
            "filename": "save_your_tears.mp3",
            "metadata": {
                "track_name": "Save Your Tears",
                "artists_string": "The Weeknd",
                "album_name": "After Hours",
                "duration_formatted": "3:35",
                "playcount": 500,
            },
            "playlists": ["Pop Hits", "Chill"],
        },
        "s3": {
            "filename": "lights_down_low.mp3",
            "metadata": {
                "track_name": "Lights Down Low",
                "artists_string": "MAX",
                "album_name": "Hell's Kitchen Angel",
                "duration_formatted": "3:43",
                "playcount": 1200,
            },
            "playlists": ["Chill"],
        },
        "s4": {
            "filename": "untitled_demo.mp3",
            "metadata": {},
            "playlists": ["Chill"],
        },
    },
    "stats": {"generated_at": "2024-01-01T00:00:00"},
}

PLAYLISTS_DB = {
    "playlists": {
        "Pop Hits": {
            "total_tracks": 3,
            "successful_downloads": 2,
            "unique_song_count": 2,
            "source_url": "https://open.spotify.com/playlist/pop",
            "timestamp": "2024-01-01",
            "songs": ["s1", "s2", "missing"],
        },
        "Chill": {
            "total_tracks": 4,
            "successful_downloads": 3,
            "unique_song_count": 3,
            "source_url": "https://open.spotify.com/playlist/chill",
            "timestamp": "2024-01-02",
            "songs": ["s2", "s3", "s4"],
        },
        "Empty": {"total_tracks": 0, "songs": []},
    },
}


@pytest.fixture
def catalog_dir(tmp_path):
    metadata = tmp_path / "public" / "consolidated_music" / "metadata"
    metadata.mkdir(parents=True)
    (metadata / "songs_database.json").write_text(json.dumps(SONGS_DB))
    (metadata / "playlists_database.json").write_text(json.dumps(PLAYLISTS_DB))
    return metadata


@pytest.fixture
def catalog(catalog_dir) -> CatalogStore:
    return CatalogStore(str(catalog_dir), GITHUB_BASE)


@pytest.fixture
def settings(tmp_path, catalog_dir) -> Settings:
    return Settings(
        allowed_origins=["*"],
        public_dir=str(tmp_path / "public"),
        catalog_dir=str(catalog_dir),
        github_songs_base_url=GITHUB_BASE,
        cookies_path=str(tmp_path / "youtube_cookies.txt"),
        proxy_url="",
    )


@pytest.fixture
def client(settings) -> Generator[TestClient, None, None]:
    app = create_app(settings)
    # The TestClient should be used as a context manager in order for the lifespan to be called
    with TestClient(app) as client:
        yield client
