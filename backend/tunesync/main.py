import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

import socketio
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from tunesync.config import Settings
from tunesync.logging_utils import configure_logging
from tunesync.routes import catalog as catalog_routes
from tunesync.routes import media as media_routes
from tunesync.routes import rooms as room_routes
from tunesync.services.catalog import CatalogStore, CatalogUnavailable
from tunesync.services.media import YTDLP_VERSION, MediaLocator
from tunesync.services.room import RoomSyncEngine
from tunesync.sockets import register_socket_events

configure_logging()
logger = logging.getLogger(__name__)


class CORSStaticFiles(StaticFiles):
    def __init__(self, *args, allow_origin: str = "*", **kwargs):
        super().__init__(*args, **kwargs)
        self.allow_origin = allow_origin

    async def get_response(self, path: str, scope):
        response = await super().get_response(path, scope)
        response.headers["Access-Control-Allow-Origin"] = self.allow_origin
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"yt-dlp version: {YTDLP_VERSION}")
    try:
        stats = app.state.catalog.stats()
        logger.info(
            f"Catalog: {stats['total_unique_songs']} unique songs, "
            f"{stats['total_playlists']} playlists"
        )
    except CatalogUnavailable as e:
        logger.warning(f"Catalog not available at startup: {e}")
    yield
    logger.info(f"Shutting down with {len(app.state.engine.store)} active rooms")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    settings = settings or Settings()
    app = FastAPI(title="tunesync", lifespan=lifespan)

    sio = socketio.AsyncServer(
        async_mode="asgi",
        cors_allowed_origins="*" if settings.cors_any else settings.allowed_origins,
    )
    app.state.settings = settings
    app.state.sio = sio
    app.state.engine = RoomSyncEngine(sio)
    app.state.catalog = CatalogStore(
        settings.catalog_dir,
        settings.github_songs_base_url,
        cache_seconds=settings.catalog_cache_seconds,
    )
    app.state.media = MediaLocator(
        cookies_path=settings.cookies_path,
        proxy_url=settings.proxy_url or None,
        cache_seconds=settings.media_cache_seconds,
    )
    register_socket_events(sio, app.state.engine)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(CatalogUnavailable)
    async def catalog_unavailable(request: Request, exc: CatalogUnavailable):
        return JSONResponse(status_code=500, content={"error": str(exc)})

    @app.get("/ping")
    async def ping():
        return {
            "status": "ok",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "message": "Server is alive",
            "cache_status": "active" if app.state.catalog.cache_valid() else "expired",
        }

    app.include_router(room_routes.router)
    app.include_router(media_routes.router)
    app.include_router(catalog_routes.router)

    # Mounted last so it only serves what no route matched
    if os.path.isdir(settings.public_dir):
        app.mount(
            "/",
            CORSStaticFiles(
                directory=settings.public_dir,
                html=True,
                allow_origin=settings.allowed_origins[0],
            ),
            name="static",
        )
    return app


def create_socket_app(settings: Optional[Settings] = None) -> socketio.ASGIApp:
    app = create_app(settings)
    return socketio.ASGIApp(app.state.sio, app)


socket_app = create_socket_app()
