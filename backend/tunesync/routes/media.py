import logging

import httpx
from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import JSONResponse, RedirectResponse, Response

from tunesync.services import cookies
from tunesync.services.media import MediaError, MediaLocator

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api")


def get_media(request: Request) -> MediaLocator:
    return request.app.state.media


@router.get("/search")
async def youtube_search(
    q: str = "", limit: int = Query(10, ge=1, le=50), media: MediaLocator = Depends(get_media)
):
    if not q:
        return JSONResponse(status_code=400, content={"error": "Query parameter is required"})
    try:
        return await media.search(q, limit)
    except MediaError as e:
        return JSONResponse(status_code=500, content={"error": "Search failed", "details": str(e)})


@router.get("/stream/{video_id}")
async def stream(video_id: str, media: MediaLocator = Depends(get_media)):
    try:
        url = await media.stream_url(video_id)
    except MediaError as e:
        return JSONResponse(status_code=500, content={"error": "Failed to get stream URL", "details": str(e)})
    return RedirectResponse(url, status_code=302)


@router.get("/info/{video_id}")
async def video_info(video_id: str, media: MediaLocator = Depends(get_media)):
    try:
        return await media.info(video_id)
    except MediaError as e:
        return JSONResponse(status_code=500, content={"error": "Failed to get video info", "details": str(e)})


@router.get("/proxy_media")
async def proxy_media(url: str):
    """
    Proxy media content to bypass CORS restrictions.
    """
    if not url.startswith(("http://", "https://")):
        return JSONResponse(status_code=400, content={"error": "Only http(s) URLs can be proxied"})
    try:
        async with httpx.AsyncClient() as client:
            response = await client.get(url, follow_redirects=True)
    except httpx.HTTPError as e:
        logger.error(f"Proxy error: {e}")
        return Response(status_code=502)
    return Response(
        content=response.content,
        status_code=response.status_code,
        media_type=response.headers.get("content-type"),
        headers={
            "Access-Control-Allow-Origin": "*",
            "Cache-Control": "public, max-age=31536000",
        },
    )


@router.post("/upload-cookies")
async def upload_cookies(request: Request, file: UploadFile = File(...)):
    path = request.app.state.settings.cookies_path
    content = await file.read()
    try:
        return cookies.save_cookies(path, content)
    except cookies.InvalidCookiesFile as e:
        return JSONResponse(status_code=400, content={"error": str(e)})


@router.get("/cookies/status")
async def cookies_status(request: Request):
    return cookies.cookies_status(request.app.state.settings.cookies_path)
