import asyncio
import logging
import os
import time
from typing import Any, Callable, Dict, Generic, List, Optional, Tuple, TypeVar

from yt_dlp import YoutubeDL
from yt_dlp.version import __version__ as YTDLP_VERSION

logger = logging.getLogger(__name__)

T = TypeVar("T")

AUDIO_FORMAT = "bestaudio[ext=m4a]/bestaudio[ext=webm]/bestaudio"


class MediaError(Exception):
    """yt-dlp could not produce the requested data."""


class TTLCache(Generic[T]):
    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.time):
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[str, Tuple[float, T]] = {}

    def get(self, key: str) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self.clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: T) -> None:
        now = self.clock()
        expired = [k for k, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds]
        for k in expired:
            del self._entries[k]
        self._entries[key] = (now, value)

    def __len__(self) -> int:
        return len(self._entries)


def watch_url(video_id: str) -> str:
    return f"https://youtube.com/watch?v={video_id}"


def thumbnails_for(video_id: str) -> Dict[str, str]:
    base = f"https://img.youtube.com/vi/{video_id}"
    return {
        "default": f"{base}/default.jpg", # 120x90
        "medium": f"{base}/mqdefault.jpg", # 320x180
        "high": f"{base}/hqdefault.jpg", # 480x360
        "standard": f"{base}/sddefault.jpg", # 640x480
        "maxres": f"{base}/maxresdefault.jpg", # 1280x720
    }


def describe_video(data: Dict[str, Any], *, detailed: bool = False) -> Dict[str, Any]:
    video_id = data["id"]
    thumbnails = thumbnails_for(video_id)
    info = {
        "id": video_id,
        "title": data.get("title"),
        "duration": data.get("duration") or 0,
        "duration_string": data.get("duration_string") or "Unknown",
        "uploader": data.get("uploader") or "Unknown",
        "view_count": data.get("view_count") or 0,
        "thumbnail": thumbnails["high"],
        "thumbnails": thumbnails,
        "original_thumbnail": data.get("thumbnail"),
        "url": watch_url(video_id),
        "stream_url": f"/api/stream/{video_id}",
        "description": data.get("description") or "",
        "upload_date": data.get("upload_date") or "",
        "uploader_id": data.get("uploader_id") or "",
    }
    if detailed:
        info["like_count"] = data.get("like_count") or 0
    return info


class MediaLocator:
    """
    Resolves YouTube searches, video info and playable audio URLs with yt-dlp.

    Extraction is blocking, so every public coroutine runs yt-dlp in the
    default thread pool. Search results and stream URLs are cached for
    `cache_seconds`.
    """

    def __init__(self, cookies_path: Optional[str] = None, proxy_url: Optional[str] = None, cache_seconds: int = 600):
        self.cookies_path = cookies_path
        self.proxy_url = proxy_url
        self.search_cache: TTLCache[Dict[str, Any]] = TTLCache(cache_seconds)
        self.stream_cache: TTLCache[str] = TTLCache(cache_seconds)

    def _options(self, **extra) -> Dict[str, Any]:
        ydl_opts = {
            "quiet": True,
            "no_warnings": True,
            "noplaylist": True,
            "skip_download": True,
        }
        if self.proxy_url:
            ydl_opts["proxy"] = self.proxy_url
        if self.cookies_path and os.path.exists(self.cookies_path):
            ydl_opts["cookiefile"] = self.cookies_path
        ydl_opts.update(extra)
        return ydl_opts

    def _extract(self, target: str, **extra) -> Dict[str, Any]:
        with YoutubeDL(self._options(**extra)) as ydl:
            try:
                info = ydl.extract_info(target, download=False)
            except Exception as e:
                logger.error(f"yt-dlp extraction error for {target}: {e}")
                raise MediaError(str(e)) from e
        if not info:
            raise MediaError(f"No data returned for {target}")
        return YoutubeDL.sanitize_info(info)

    async def _run(self, func: Callable[..., T], *args) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    def _search(self, query: str, limit: int) -> Dict[str, Any]:
        info = self._extract(f"ytsearch{limit}:{query}", extract_flat="in_playlist", noplaylist=False)
        results: List[Dict[str, Any]] = []
        for entry in info.get("entries") or []:
            if entry and entry.get("id") and entry.get("title"):
                results.append(describe_video(entry))
        return {"query": query, "results": results, "total": len(results)}

    async def search(self, query: str, limit: int = 10) -> Dict[str, Any]:
        key = f"{query}_{limit}"
        cached = self.search_cache.get(key)
        if cached is not None:
            return cached
        logger.info(f"Searching for: {query}")
        response = await self._run(self._search, query, limit)
        self.search_cache.set(key, response)
        logger.info(f"Found {response['total']} results for: {query}")
        return response

    def _stream_url(self, video_id: str) -> str:
        info = self._extract(watch_url(video_id), format=AUDIO_FORMAT)
        url = info.get("url")
        if not url:
            # Format selection may leave the chosen url on requested_formats
            formats = info.get("requested_formats") or []
            url = formats[0].get("url") if formats else None
        if not url:
            raise MediaError(f"Stream URL not found for {video_id}")
        return url

    async def stream_url(self, video_id: str) -> str:
        cached = self.stream_cache.get(video_id)
        if cached is not None:
            return cached
        logger.info(f"Getting stream URL for: {video_id}")
        url = await self._run(self._stream_url, video_id)
        self.stream_cache.set(video_id, url)
        return url

    async def info(self, video_id: str) -> Dict[str, Any]:
        logger.info(f"Getting info for: {video_id}")
        data = await self._run(self._extract, watch_url(video_id))
        return describe_video(data, detailed=True)
