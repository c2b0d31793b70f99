import logging
import os
import time
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import FileResponse, JSONResponse, RedirectResponse

from tunesync.models.catalog import Pagination, paginate
from tunesync.services.catalog import CatalogStore

logger = logging.getLogger(__name__)

router = APIRouter()

PageParam = Annotated[int, Query(ge=1)]
LimitParam = Annotated[int, Query(ge=1)]


def get_catalog(request: Request) -> CatalogStore:
    return request.app.state.catalog


def _split_ids(value: Optional[str]):
    return value.split(",") if value else []


@router.get("/playlists")
def list_playlists(catalog: CatalogStore = Depends(get_catalog)):
    playlists = catalog.playlist_summaries()
    logger.info(f"Loaded {len(playlists)} playlists (lightweight)")
    return playlists


@router.get("/all-songs")
def all_songs(page: PageParam = 1, limit: LimitParam = 30, catalog: CatalogStore = Depends(get_catalog)):
    songs = catalog.all_songs()
    result = paginate(songs, page, limit)
    logger.info(f"Page {page}: Loaded {len(result.data)}/{len(songs)} songs")
    return {
        "total_songs": len(songs),
        "songs": result.data,
        "pagination": result.pagination.model_dump(),
    }


@router.get("/playlist/{playlist}/songs")
def playlist_songs(
    playlist: str, page: PageParam = 1, limit: LimitParam = 30, catalog: CatalogStore = Depends(get_catalog)
):
    songs = catalog.playlist_songs(playlist)
    if songs is None:
        return JSONResponse(status_code=404, content={"error": "Playlist not found"})
    result = paginate(songs, page, limit)
    return {
        "playlist": playlist,
        "songs": result.data,
        "total_songs": len(songs),
        "unique_songs": catalog.get_playlist(playlist).get("unique_song_count"),
        "pagination": result.pagination.model_dump(),
    }


@router.get("/songs-by-ids")
def songs_by_ids(ids: Optional[str] = None, catalog: CatalogStore = Depends(get_catalog)):
    song_ids = _split_ids(ids)
    if not song_ids:
        return {"songs": []}
    songs = catalog.songs_by_ids(song_ids)
    logger.info(f"Fetched {len(songs)}/{len(song_ids)} songs by IDs")
    return {"requested_ids": song_ids, "found_songs": len(songs), "songs": songs}


@router.get("/random-song-ids")
def random_song_ids(
    count: int = Query(50, ge=0), exclude: Optional[str] = None, catalog: CatalogStore = Depends(get_catalog)
):
    song_ids, available = catalog.random_song_ids(count, _split_ids(exclude))
    return {"count": len(song_ids), "song_ids": song_ids, "total_available": available}


@router.get("/search")
def search(q: str = "", page: PageParam = 1, limit: LimitParam = 30, catalog: CatalogStore = Depends(get_catalog)):
    if not q:
        return {
            "query": q,
            "total_results": 0,
            "results": [],
            "pagination": Pagination.empty(limit).model_dump(),
        }
    results, terms = catalog.search(q)
    result = paginate(results, page, limit)
    logger.info(f"Search \"{q}\" - Page {page}: {len(result.data)}/{len(results)} results")
    return {
        "query": q,
        "total_results": len(results),
        "results": result.data,
        "pagination": result.pagination.model_dump(),
        "search_terms": terms,
    }


@router.get("/search/advanced")
def advanced_search(
    q: str = "",
    page: PageParam = 1,
    limit: LimitParam = 30,
    sort: str = "relevance",
    order: str = "asc",
    filter: str = "all",
    catalog: CatalogStore = Depends(get_catalog),
):
    search_info = {"filter_applied": filter, "sort_by": sort, "sort_order": order}
    if not q:
        return {
            "query": q,
            "total_results": 0,
            "results": [],
            "pagination": Pagination.empty(limit).model_dump(),
            "search_info": search_info,
        }
    results = catalog.advanced_search(q, filter, sort, order)
    result = paginate(results, page, limit)
    return {
        "query": q,
        "total_results": len(results),
        "results": result.data,
        "pagination": result.pagination.model_dump(),
        "search_info": {**search_info, "search_time": int(time.time() * 1000)},
    }


@router.get("/search/quick")
def quick_search(q: str = "", limit: int = Query(10, ge=1), catalog: CatalogStore = Depends(get_catalog)):
    if len(q) < 2:
        return {"query": q, "suggestions": []}
    return {"query": q, "suggestions": catalog.quick_search(q, limit)}


@router.get("/search/by-field")
def search_by_field(
    q: str = "",
    field: str = "track_name",
    match: str = "partial",
    page: PageParam = 1,
    limit: LimitParam = 30,
    catalog: CatalogStore = Depends(get_catalog),
):
    response = {"field": field, "query": q, "match_type": match}
    if not q:
        return {
            **response,
            "total_results": 0,
            "results": [],
            "pagination": Pagination.empty(limit).model_dump(),
        }
    results = catalog.search_by_field(field, q, match)
    result = paginate(results, page, limit)
    return {
        **response,
        "total_results": len(results),
        "results": result.data,
        "pagination": result.pagination.model_dump(),
    }


@router.get("/search/field-values/{field}")
def field_values(field: str, catalog: CatalogStore = Depends(get_catalog)):
    try:
        values = catalog.field_values(field)
    except ValueError as e:
        return JSONResponse(status_code=400, content={"error": str(e)})
    return {"field": field, "total_unique": len(values), "values": values}


@router.get("/search/multi")
def multi_search(
    track: str = "",
    artist: str = "",
    album: str = "",
    page: PageParam = 1,
    limit: LimitParam = 30,
    catalog: CatalogStore = Depends(get_catalog),
):
    queries = {"track": track, "artist": artist, "album": album}
    if not (track or artist or album):
        return {
            "queries": queries,
            "total_results": 0,
            "results": [],
            "pagination": Pagination.empty(limit).model_dump(),
        }
    results = catalog.multi_search(track, artist, album)
    result = paginate(results, page, limit)
    return {
        "queries": queries,
        "total_results": len(results),
        "results": result.data,
        "pagination": result.pagination.model_dump(),
    }


@router.get("/song/{song_id}")
def get_song(song_id: str, catalog: CatalogStore = Depends(get_catalog)):
    song = catalog.get_song(song_id)
    if song is None:
        return JSONResponse(status_code=404, content={"error": "Song not found"})
    return song


@router.get("/metadata/{playlist}")
def playlist_metadata(
    playlist: str, page: PageParam = 1, limit: LimitParam = 30, catalog: CatalogStore = Depends(get_catalog)
):
    found = catalog.legacy_metadata(playlist)
    if found is None:
        return JSONResponse(status_code=404, content={"error": "Playlist not found"})
    download_info, results = found
    result = paginate(results, page, limit)
    return {
        "download_info": download_info,
        "download_results": result.data,
        "pagination": result.pagination.model_dump(),
    }


@router.get("/song-info/{playlist}/{filename}")
def song_info(playlist: str, filename: str, catalog: CatalogStore = Depends(get_catalog)):
    return catalog.song_info_by_filename(filename)


@router.get("/songs/{filename}")
def song_redirect(filename: str, catalog: CatalogStore = Depends(get_catalog)):
    url = catalog.github_url(filename)
    logger.info(f"Redirecting to GitHub URL: {url}")
    return RedirectResponse(url, status_code=302)


@router.get("/song-url/{filename}")
def song_url(filename: str, catalog: CatalogStore = Depends(get_catalog)):
    url = catalog.github_url(filename)
    return {"filename": filename, "github_url": url, "direct_url": url}


@router.get("/cover_art/{playlist}/{filename}")
def cover_art(playlist: str, filename: str, request: Request):
    public_dir = request.app.state.settings.public_dir
    if os.path.basename(filename) != filename or os.path.basename(playlist) != playlist:
        return JSONResponse(status_code=404, content={"error": "Cover art not found"})
    candidates = [
        os.path.join(public_dir, "cover_art", playlist, filename),
        os.path.join(public_dir, "songs", playlist, filename),
        os.path.join(public_dir, "consolidated_music", "cover_art", filename),
    ]
    for path in candidates:
        if os.path.isfile(path):
            return FileResponse(path)
    logger.info(f"Cover art not found for: {filename}")
    return JSONResponse(status_code=404, content={"error": "Cover art not found"})


@router.get("/stats")
def stats(catalog: CatalogStore = Depends(get_catalog)):
    return catalog.stats()
