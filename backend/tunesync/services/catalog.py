import json
import logging
import os
import random
import time
from typing import Any, Callable, Dict, List, Optional, Tuple

from tunesync.models.catalog import Song

logger = logging.getLogger(__name__)

SONGS_FILE = "songs_database.json"
PLAYLISTS_FILE = "playlists_database.json"

SEARCH_FIELDS = ("track_name", "artists_string", "album_name")
FIELD_VALUE_FIELDS = ("artists_string", "album_name", "playlists")
SORT_KEYS = ("relevance", "track_name", "artist", "album", "duration", "playcount")


class CatalogUnavailable(Exception):
    """Raised when the songs or playlists database could not be loaded."""


def load_json_file(path: str) -> Optional[Dict[str, Any]]:
    try:
        with open(path, "r", encoding="utf-8") as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        logger.error(f"Error loading {path}: {e}")
        return None


def parse_duration(value: Optional[str]) -> int:
    """'3:25' or '1:02:03' to seconds; anything else is 0."""
    if not value:
        return 0
    parts = value.split(":")
    try:
        numbers = [int(p) for p in parts]
    except ValueError:
        return 0
    if len(numbers) == 2:
        return numbers[0] * 60 + numbers[1]
    if len(numbers) == 3:
        return numbers[0] * 3600 + numbers[1] * 60 + numbers[2]
    return 0


def strip_extension(filename: str) -> str:
    return os.path.splitext(filename)[0]


class CatalogStore:
    """
    Songs and playlists read from the two JSON databases.

    Both files are re-read at most once per `cache_seconds`; every public
    method works on the cached copy.
    """

    def __init__(
        self,
        metadata_dir: str,
        github_base_url: str,
        cache_seconds: int = 300,
        clock: Callable[[], float] = time.time,
    ):
        self.metadata_dir = metadata_dir
        self.github_base_url = github_base_url.rstrip("/")
        self.cache_seconds = cache_seconds
        self.clock = clock
        self._songs_db: Optional[Dict[str, Any]] = None
        self._playlists_db: Optional[Dict[str, Any]] = None
        self._loaded_at: Optional[float] = None

    # Cache

    def cache_valid(self) -> bool:
        return self._loaded_at is not None and self.clock() - self._loaded_at < self.cache_seconds

    def cache_age_minutes(self) -> Optional[int]:
        if self._loaded_at is None:
            return None
        return int((self.clock() - self._loaded_at) // 60)

    def load(self) -> Tuple[Optional[Dict[str, Any]], Optional[Dict[str, Any]]]:
        if not self.cache_valid():
            logger.info("Refreshing catalog cache...")
            self._songs_db = load_json_file(os.path.join(self.metadata_dir, SONGS_FILE))
            self._playlists_db = load_json_file(os.path.join(self.metadata_dir, PLAYLISTS_FILE))
            self._loaded_at = self.clock()
        return self._songs_db, self._playlists_db

    def invalidate(self) -> None:
        self._loaded_at = None

    def _songs(self) -> Dict[str, Dict[str, Any]]:
        songs_db, _ = self.load()
        if not songs_db:
            raise CatalogUnavailable("Unable to load songs database")
        return songs_db.get("songs", {})

    def _playlists(self) -> Dict[str, Dict[str, Any]]:
        _, playlists_db = self.load()
        if not playlists_db:
            raise CatalogUnavailable("Unable to load playlists database")
        return playlists_db.get("playlists", {})

    # Views

    def github_url(self, filename: str) -> str:
        return f"{self.github_base_url}/{filename}"

    def song_view(self, song_id: str, info: Dict[str, Any], *, defaults: bool = True, **extra) -> Dict[str, Any]:
        meta = info.get("metadata") or {}
        track_name = meta.get("track_name")
        artists = meta.get("artists_string")
        if defaults:
            track_name = track_name or "Unknown"
            artists = artists or "Unknown Artist"
        song = Song(
            song_id=song_id,
            filename=info.get("filename"),
            track_name=track_name,
            artists_string=artists,
            album_name=meta.get("album_name"),
            duration_formatted=meta.get("duration_formatted"),
            playcount=meta.get("playcount"),
            cover_art_url=meta.get("cover_art_url"),
            cover_art_filename=meta.get("cover_art_filename"),
            playlists=info.get("playlists"),
            github_url=self.github_url(info.get("filename", "")),
            **extra,
        )
        return song.model_dump(exclude_none=True)

    # Lookups

    def playlist_summaries(self) -> Dict[str, Dict[str, Any]]:
        summaries = {}
        for name, info in self._playlists().items():
            summaries[name] = {
                "name": name,
                "total_tracks": info.get("total_tracks"),
                "successful_downloads": info.get("successful_downloads"),
                "unique_song_count": info.get("unique_song_count"),
                "source_url": info.get("source_url"),
                "timestamp": info.get("timestamp"),
                "has_songs": bool(info.get("songs")),
            }
        return summaries

    def all_songs(self) -> List[Dict[str, Any]]:
        return [self.song_view(song_id, info) for song_id, info in self._songs().items()]

    def get_playlist(self, name: str) -> Optional[Dict[str, Any]]:
        return self._playlists().get(name)

    def playlist_songs(self, name: str) -> Optional[List[Dict[str, Any]]]:
        playlist = self.get_playlist(name)
        if playlist is None:
            return None
        songs = self._songs()
        results = []
        for song_id in playlist.get("songs") or []:
            info = songs.get(song_id)
            if not info:
                continue
            view = self.song_view(song_id, info)
            if not (info.get("metadata") or {}).get("track_name"):
                view["track_name"] = strip_extension(info.get("filename", ""))
            results.append(view)
        return results

    def songs_by_ids(self, song_ids: List[str]) -> List[Dict[str, Any]]:
        songs = self._songs()
        found = []
        for song_id in song_ids:
            song_id = song_id.strip()
            info = songs.get(song_id)
            if info:
                found.append(self.song_view(song_id, info))
        return found

    def random_song_ids(self, count: int = 50, exclude: Optional[List[str]] = None) -> Tuple[List[str], int]:
        excluded = set(exclude or [])
        available = [song_id for song_id in self._songs() if song_id not in excluded]
        picked = random.sample(available, min(count, len(available)))
        return picked, len(available)

    def get_song(self, song_id: str) -> Optional[Dict[str, Any]]:
        info = self._songs().get(song_id)
        if info is None:
            return None
        return self.song_view(song_id, info, defaults=False, metadata=info.get("metadata"))

    def legacy_metadata(self, name: str) -> Optional[Tuple[Dict[str, Any], List[Dict[str, Any]]]]:
        """Playlist in the older download_results layout."""
        playlist = self.get_playlist(name)
        if playlist is None:
            return None
        songs = self._songs()
        results = []
        for song_id in playlist.get("songs") or []:
            info = songs.get(song_id)
            if not info:
                continue
            meta = info.get("metadata") or {}
            results.append({
                "track_name": meta.get("track_name"),
                "artists": meta.get("artists_string"),
                "filename": info.get("filename"),
                "status": "success",
                "metadata": meta,
                "github_url": self.github_url(info.get("filename", "")),
            })
        download_info = {
            "total_tracks": playlist.get("total_tracks"),
            "successful_downloads": playlist.get("successful_downloads"),
            "source_url": playlist.get("source_url"),
            "timestamp": playlist.get("timestamp"),
        }
        return download_info, results

    def song_info_by_filename(self, filename: str) -> Dict[str, Any]:
        fallback = {
            "filename": filename,
            "track_name": strip_extension(filename),
            "artists_string": "Unknown Artist",
            "cover_art_url": None,
            "github_url": self.github_url(filename),
        }
        try:
            songs = self._songs()
        except CatalogUnavailable:
            return fallback

        found = None
        for info in songs.values():
            if info.get("filename") == filename or info.get("original_filename") == filename:
                found = info
        if found is None:
            return fallback

        meta = found.get("metadata") or {}
        return {
            "filename": found.get("filename"),
            "track_name": meta.get("track_name"),
            "artists_string": meta.get("artists_string"),
            "cover_art_url": meta.get("cover_art_url"),
            "cover_art_filename": meta.get("cover_art_filename"),
            "album_name": meta.get("album_name"),
            "duration_formatted": meta.get("duration_formatted"),
            "playcount": meta.get("playcount"),
            "github_url": self.github_url(found.get("filename", "")),
        }

    def stats(self) -> Dict[str, Any]:
        songs_db, playlists_db = self.load()
        if not songs_db or not playlists_db:
            raise CatalogUnavailable("Unable to load database files")
        songs = songs_db.get("songs", {})
        playlists = playlists_db.get("playlists", {})

        total_original = sum(p.get("total_tracks") or 0 for p in playlists.values())
        unique = len(songs)
        saved = round((total_original - unique) / total_original * 100) if total_original > 0 else 0
        return {
            "total_unique_songs": unique,
            "total_playlists": len(playlists),
            "total_original_songs": total_original,
            "duplicates_removed": total_original - unique,
            "space_saved_percentage": saved,
            "generated_at": (songs_db.get("stats") or {}).get("generated_at")
            or (playlists_db.get("stats") or {}).get("generated_at"),
            "github_base_url": self.github_base_url,
            "cache_status": {
                "cached": self.cache_valid(),
                "cache_age_minutes": self.cache_age_minutes(),
            },
        }

    # Search

    def _fields(self, info: Dict[str, Any]) -> Dict[str, str]:
        meta = info.get("metadata") or {}
        return {
            "track": (meta.get("track_name") or "").lower(),
            "artist": (meta.get("artists_string") or "").lower(),
            "album": (meta.get("album_name") or "").lower(),
            "filename": (info.get("filename") or "").lower(),
        }

    def search(self, query: str) -> Tuple[List[Dict[str, Any]], List[str]]:
        """Every term must appear somewhere; ranked by where it appears."""
        terms = [t for t in query.lower().split(" ") if t]
        results = []
        for song_id, info in self._songs().items():
            f = self._fields(info)
            haystack = f"{f['track']} {f['artist']} {f['album']} {f['filename']}"
            if not all(term in haystack for term in terms):
                continue
            score = 0
            for term in terms:
                if term in f["track"]:
                    score += 10 if f["track"].startswith(term) else 5
                if term in f["artist"]:
                    score += 8 if f["artist"].startswith(term) else 4
                if term in f["album"]:
                    score += 6 if f["album"].startswith(term) else 3
                if term in f["filename"]:
                    score += 2
            results.append(self.song_view(song_id, info, relevance_score=score))
        results.sort(key=lambda s: s["relevance_score"], reverse=True)
        return results, terms

    def advanced_search(
        self, query: str, filter_by: str = "all", sort_by: str = "relevance", order: str = "asc"
    ) -> List[Dict[str, Any]]:
        query = query.lower()
        field_for_filter = {"track": "track", "artist": "artist", "album": "album"}
        results = []
        for song_id, info in self._songs().items():
            f = self._fields(info)
            score = 0
            if filter_by in field_for_filter:
                value = f[field_for_filter[filter_by]]
                matches = query in value
                if filter_by == "track":
                    matches = matches or query in f["filename"]
                if value.startswith(query):
                    score += 10
                if query in value:
                    score += 5
            else:
                matches = any(query in f[k] for k in ("track", "artist", "album", "filename"))
                if f["track"].startswith(query):
                    score += 15
                elif query in f["track"]:
                    score += 10
                if f["artist"].startswith(query):
                    score += 12
                elif query in f["artist"]:
                    score += 8
                if f["album"].startswith(query):
                    score += 8
                elif query in f["album"]:
                    score += 5
                if query in f["filename"]:
                    score += 3
            if matches:
                results.append(self.song_view(song_id, info, relevance_score=score))

        sort_keys = {
            "track_name": lambda s: (s.get("track_name") or "").casefold(),
            "artist": lambda s: (s.get("artists_string") or "").casefold(),
            "album": lambda s: (s.get("album_name") or "").casefold(),
            "duration": lambda s: parse_duration(s.get("duration_formatted")),
            "playcount": lambda s: s.get("playcount") or 0,
        }
        if sort_by in sort_keys:
            results.sort(key=sort_keys[sort_by], reverse=order == "desc")
        else:
            # Relevance is highest first; "desc" flips it
            results.sort(key=lambda s: s["relevance_score"], reverse=order != "desc")
        return results

    def quick_search(self, query: str, limit: int = 10) -> List[Dict[str, Any]]:
        query = query.lower()
        if len(query) < 2:
            return []
        suggestions = []
        seen = set()
        for song_id, info in self._songs().items():
            if len(suggestions) >= limit:
                break
            meta = info.get("metadata") or {}
            track_name = meta.get("track_name") or ""
            artists = meta.get("artists_string") or ""

            if query in track_name.lower():
                text = f"{track_name} - {artists}"
                if text not in seen:
                    suggestions.append({
                        "type": "track",
                        "text": text,
                        "track_name": track_name,
                        "artist": artists,
                        "song_id": song_id,
                    })
                    seen.add(text)

            if query in artists.lower() and len(suggestions) < limit and artists not in seen:
                suggestions.append({"type": "artist", "text": artists, "artist": artists})
                seen.add(artists)
        return suggestions[:limit]

    def search_by_field(self, field: str, query: str, match: str = "partial") -> List[Dict[str, Any]]:
        if field not in SEARCH_FIELDS:
            field = "track_name"
        query = query.lower()
        results = []
        for song_id, info in self._songs().items():
            value = ((info.get("metadata") or {}).get(field) or "").lower()
            if match == "exact":
                matches = value == query
            elif match == "starts_with":
                matches = value.startswith(query)
            else:
                matches = query in value
            if matches:
                results.append(self.song_view(
                    song_id, info, matched_field=field, matched_value=value
                ))
        results.sort(key=lambda s: (s.get(field) or "").casefold())
        return results

    def field_values(self, field: str) -> List[str]:
        if field not in FIELD_VALUE_FIELDS:
            raise ValueError("Invalid field. Use: artists_string, album_name, or playlists")
        values = set()
        for info in self._songs().values():
            if field == "playlists":
                values.update(info.get("playlists") or [])
                continue
            value = (info.get("metadata") or {}).get(field)
            if value and value.strip():
                values.add(value.strip())
        return sorted(values)

    def multi_search(self, track: str = "", artist: str = "", album: str = "") -> List[Dict[str, Any]]:
        queries = {"track": track.lower(), "artist": artist.lower(), "album": album.lower()}
        results = []
        for song_id, info in self._songs().items():
            f = self._fields(info)
            score = 0
            for key, query in queries.items():
                if not query:
                    continue
                if query not in f[key]:
                    break
                score += 3 if f[key].startswith(query) else 1
            else:
                results.append(self.song_view(song_id, info, match_score=score))
        results.sort(key=lambda s: s["match_score"], reverse=True)
        return results
