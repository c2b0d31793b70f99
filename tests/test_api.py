import inspect

from fastapi.testclient import TestClient

from tunesync.config import Settings
from tunesync.main import create_app
from tunesync.routes import catalog as catalog_routes
from tunesync.services.media import MediaError


def test_ping(client: TestClient):
    response = client.get("/ping")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["cache_status"] == "active"


def test_playlists(client: TestClient):
    response = client.get("/playlists")
    assert response.status_code == 200
    assert set(response.json()) == {"Pop Hits", "Chill", "Empty"}


def test_all_songs_paginated(client: TestClient):
    response = client.get("/all-songs", params={"page": 2, "limit": 3})
    assert response.status_code == 200
    body = response.json()
    assert body["total_songs"] == 4
    assert len(body["songs"]) == 1
    assert body["pagination"]["has_prev"] is True
    assert body["pagination"]["has_next"] is False


def test_invalid_page_is_rejected(client: TestClient):
    assert client.get("/all-songs", params={"page": 0}).status_code == 422


def test_playlist_songs(client: TestClient):
    response = client.get("/playlist/Pop Hits/songs")
    assert response.status_code == 200
    body = response.json()
    assert body["playlist"] == "Pop Hits"
    assert body["total_songs"] == 2
    assert body["unique_songs"] == 2


def test_unknown_playlist_is_404(client: TestClient):
    response = client.get("/playlist/Nope/songs")
    assert response.status_code == 404
    assert response.json() == {"error": "Playlist not found"}


def test_songs_by_ids(client: TestClient):
    body = client.get("/songs-by-ids", params={"ids": "s1,s3,zz"}).json()
    assert body["found_songs"] == 2
    assert client.get("/songs-by-ids").json() == {"songs": []}


def test_random_song_ids(client: TestClient):
    body = client.get("/random-song-ids", params={"count": 2, "exclude": "s1"}).json()
    assert body["count"] == 2
    assert body["total_available"] == 3
    assert "s1" not in body["song_ids"]


def test_search(client: TestClient):
    body = client.get("/search", params={"q": "Lights"}).json()
    assert body["query"] == "Lights"
    assert body["total_results"] == 2
    assert [r["song_id"] for r in body["results"]] == ["s3", "s1"]


def test_empty_search(client: TestClient):
    body = client.get("/search").json()
    assert body["results"] == []
    assert body["pagination"]["total_pages"] == 0


def test_advanced_search(client: TestClient):
    body = client.get("/search/advanced", params={"q": "weeknd", "filter": "artist", "sort": "playcount", "order": "desc"}).json()
    assert [r["song_id"] for r in body["results"]] == ["s1", "s2"]
    assert body["search_info"]["filter_applied"] == "artist"
    assert "search_time" in body["search_info"]


def test_quick_search(client: TestClient):
    body = client.get("/search/quick", params={"q": "save"}).json()
    assert body["suggestions"][0]["song_id"] == "s2"
    assert client.get("/search/quick", params={"q": "s"}).json()["suggestions"] == []


def test_search_by_field(client: TestClient):
    body = client.get("/search/by-field", params={"field": "album_name", "q": "after", "match": "starts_with"}).json()
    assert body["total_results"] == 2
    assert body["match_type"] == "starts_with"


def test_field_values(client: TestClient):
    body = client.get("/search/field-values/album_name").json()
    assert body["values"] == ["After Hours", "Hell's Kitchen Angel"]
    assert client.get("/search/field-values/bogus").status_code == 400


def test_multi_search(client: TestClient):
    body = client.get("/search/multi", params={"artist": "weeknd", "album": "after"}).json()
    assert body["total_results"] == 2
    assert body["queries"]["track"] == ""


def test_song(client: TestClient):
    assert client.get("/song/s1").json()["track_name"] == "Blinding Lights"
    assert client.get("/song/nope").status_code == 404


def test_legacy_metadata(client: TestClient):
    body = client.get("/metadata/Chill").json()
    assert body["download_info"]["total_tracks"] == 4
    assert len(body["download_results"]) == 3


def test_song_info_fallback(client: TestClient):
    body = client.get("/song-info/Chill/unknown.mp3").json()
    assert body["track_name"] == "unknown"


def test_song_redirects_to_github(client: TestClient):
    response = client.get("/songs/a.mp3", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "https://raw.example.com/songs/a.mp3"


def test_song_url(client: TestClient):
    body = client.get("/song-url/a.mp3").json()
    assert body["direct_url"] == "https://raw.example.com/songs/a.mp3"


def test_cover_art(client: TestClient, settings: Settings, tmp_path):
    cover_dir = tmp_path / "public" / "consolidated_music" / "cover_art"
    cover_dir.mkdir(parents=True)
    (cover_dir / "c.jpg").write_bytes(b"jpeg")

    response = client.get("/cover_art/Chill/c.jpg")
    assert response.status_code == 200
    assert response.content == b"jpeg"
    assert client.get("/cover_art/Chill/missing.jpg").status_code == 404


def test_stats(client: TestClient):
    body = client.get("/stats").json()
    assert body["total_unique_songs"] == 4
    assert body["github_base_url"] == "https://raw.example.com/songs"


def test_missing_catalog_is_500(tmp_path):
    settings = Settings(
        allowed_origins=["*"],
        public_dir=str(tmp_path / "nothing"),
        catalog_dir=str(tmp_path / "nothing"),
        github_songs_base_url="https://raw.example.com/songs",
        cookies_path=str(tmp_path / "cookies.txt"),
    )
    with TestClient(create_app(settings)) as client:
        response = client.get("/all-songs")
    assert response.status_code == 500
    assert response.json() == {"error": "Unable to load songs database"}


def test_room_endpoint(client: TestClient):
    assert client.get("/api/room/R1").status_code == 404

    room = client.app.state.engine.store.get_or_create("R1")
    room.members.add("a")
    room.admin_sid = "a"

    body = client.get("/api/room/R1").json()
    assert body == {"name": "R1", "members": 1, "has_admin": True, "is_playing": False}


def test_youtube_search(client: TestClient, monkeypatch):
    async def fake_search(query, limit=10):
        return {"query": query, "results": [], "total": 0, "limit": limit}

    monkeypatch.setattr(client.app.state.media, "search", fake_search)
    body = client.get("/api/search", params={"q": "daft punk", "limit": 3}).json()
    assert body == {"query": "daft punk", "results": [], "total": 0, "limit": 3}
    assert client.get("/api/search").status_code == 400


def test_stream_redirects_to_extracted_url(client: TestClient, monkeypatch):
    async def fake_stream_url(video_id):
        return f"https://googlevideo.example/{video_id}"

    monkeypatch.setattr(client.app.state.media, "stream_url", fake_stream_url)
    response = client.get("/api/stream/abc123", follow_redirects=False)
    assert response.status_code == 302
    assert response.headers["location"] == "https://googlevideo.example/abc123"


def test_stream_failure_is_500(client: TestClient, monkeypatch):
    async def failing(video_id):
        raise MediaError("Video unavailable")

    monkeypatch.setattr(client.app.state.media, "stream_url", failing)
    response = client.get("/api/stream/abc123", follow_redirects=False)
    assert response.status_code == 500
    assert response.json()["details"] == "Video unavailable"


def test_proxy_rejects_non_http(client: TestClient):
    assert client.get("/api/proxy_media", params={"url": "file:///etc/passwd"}).status_code == 400


COOKIES = ".youtube.com\tTRUE\t/\tTRUE\t1999999999\tSID\tabc\n"


def test_cookie_upload_and_status(client: TestClient, settings: Settings):
    assert client.get("/api/cookies/status").json()["exists"] is False

    response = client.post("/api/upload-cookies", files={"file": ("cookies.txt", COOKIES, "text/plain")})
    assert response.status_code == 200
    assert response.json()["cookies"] == 1

    status = client.get("/api/cookies/status").json()
    assert status["exists"] is True
    with open(settings.cookies_path, encoding="utf-8") as f:
        assert f.read().startswith("# Netscape HTTP Cookie File")


def test_cookie_upload_rejects_garbage(client: TestClient):
    response = client.post("/api/upload-cookies", files={"file": ("cookies.txt", "not cookies", "text/plain")})
    assert response.status_code == 400


def test_catalog_routes_run_off_the_event_loop():
    for route in catalog_routes.router.routes:
        assert not inspect.iscoroutinefunction(route.endpoint), route.path
