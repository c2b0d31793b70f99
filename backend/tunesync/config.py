import os
from dataclasses import dataclass, field
from typing import List

GITHUB_SONGS_BASE_URL = "https://raw.githubusercontent.com/faizalmsdev/audio-player/master/public/consolidated_music/songs"


def env_int(name: str, default: str) -> int:
    """Parse an integer env var using a string default value."""
    return int(os.getenv(name, default))


def _origins() -> List[str]:
    return [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "*").split(",") if o.strip()] or ["*"]


@dataclass
class Settings:
    allowed_origins: List[str] = field(default_factory=_origins)
    public_dir: str = field(default_factory=lambda: os.getenv("PUBLIC_DIR", "public"))
    catalog_dir: str = field(
        default_factory=lambda: os.getenv(
            "CATALOG_DIR", os.path.join("public", "consolidated_music", "metadata")
        )
    )
    github_songs_base_url: str = field(
        default_factory=lambda: os.getenv("GITHUB_SONGS_BASE_URL", GITHUB_SONGS_BASE_URL).rstrip("/")
    )
    catalog_cache_seconds: int = field(default_factory=lambda: env_int("CATALOG_CACHE_SECONDS", "300"))
    media_cache_seconds: int = field(default_factory=lambda: env_int("MEDIA_CACHE_SECONDS", "600"))
    cookies_path: str = field(default_factory=lambda: os.getenv("COOKIES_PATH", "youtube_cookies.txt"))
    proxy_url: str = field(default_factory=lambda: os.getenv("PROXY_URL", ""))

    @property
    def cors_any(self) -> bool:
        return self.allowed_origins == ["*"]
