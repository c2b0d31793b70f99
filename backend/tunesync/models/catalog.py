import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict


class Song(BaseModel):
    # Search views attach extra scoring fields (relevance_score, matched_field, ...)
    model_config = ConfigDict(extra="allow")

    song_id: str
    filename: Optional[str] = None
    track_name: Optional[str] = None
    artists_string: Optional[str] = None
    album_name: Optional[str] = None
    duration_formatted: Optional[str] = None
    playcount: Optional[Any] = None
    cover_art_url: Optional[str] = None
    cover_art_filename: Optional[str] = None
    playlists: Optional[List[str]] = None
    metadata: Optional[Dict[str, Any]] = None
    github_url: Optional[str] = None


class Pagination(BaseModel):
    current_page: int
    per_page: int
    total_items: int
    total_pages: int
    has_next: bool = False
    has_prev: bool = False

    @classmethod
    def empty(cls, per_page: int) -> "Pagination":
        return cls(current_page=1, per_page=per_page, total_items=0, total_pages=0)


class Page(BaseModel):
    data: List[Any]
    pagination: Pagination


def paginate(items: List[Any], page: int = 1, limit: int = 30) -> Page:
    offset = (page - 1) * limit
    return Page(
        data=items[offset:offset + limit],
        pagination=Pagination(
            current_page=page,
            per_page=limit,
            total_items=len(items),
            total_pages=math.ceil(len(items) / limit),
            has_next=offset + limit < len(items),
            has_prev=page > 1,
        ),
    )
