from __future__ import annotations

import logging
from typing import Optional

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import ClientDisconnect

from danphoto.core.config import Settings, get_settings
from danphoto.core.errors import PhotoServiceError, StorageUnavailable
from danphoto.core.library import PhotoLibrary
from danphoto.core.logging import configure_logging
from danphoto.core.storage import PhotoStorage
from danphoto.core.themes import Clock, ThemeResolver
from danphoto.core.uploads import UploadHandler

from .routes import router

log = logging.getLogger("danphoto.api")


def create_app(settings: Optional[Settings] = None, clock: Optional[Clock] = None) -> FastAPI:
    settings = settings or get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(title=settings.APP_NAME, version=settings.VERSION)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    resolver = ThemeResolver(
        clock,
        period=settings.THEME_PERIOD,
        timezone_name=settings.THEME_TIMEZONE,
        fallback_id=settings.FALLBACK_THEME_ID,
    )
    storage = PhotoStorage(settings.THEME_OF_THE_DAY_IMAGES_DIR, max_bytes=settings.MAX_UPLOAD_BYTES)
    app.state.settings = settings
    app.state.resolver = resolver
    app.state.storage = storage
    app.state.uploads = UploadHandler(
        resolver,
        storage,
        max_bytes=settings.MAX_UPLOAD_BYTES,
        allowed_types=settings.allowed_content_types,
    )
    app.state.library = PhotoLibrary(storage)

    @app.on_event("startup")
    async def check_storage() -> None:
        storage.check_writable()
        log.info("Storing photos under %s (max %d bytes)", storage.root, storage.max_bytes)

    @app.exception_handler(PhotoServiceError)
    async def photo_service_error_handler(request: Request, exc: PhotoServiceError) -> JSONResponse:
        if isinstance(exc, StorageUnavailable):
            log.error("%s %s failed: %s", request.method, request.url.path, exc.message, exc_info=exc)
        else:
            log.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.kind, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"detail": exc.message, "error": exc.kind},
        )

    @app.exception_handler(ClientDisconnect)
    async def client_disconnect_handler(request: Request, exc: ClientDisconnect) -> Response:
        log.info("%s %s: client disconnected before the upload finished", request.method, request.url.path)
        return Response(status_code=400)

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        log.error("Unhandled error: %s", exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    app.include_router(router)
    return app


app = create_app()
