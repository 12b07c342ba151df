from __future__ import annotations

import json
import os
from typing import AsyncIterator, BinaryIO, Iterator

from anyio import to_thread
from fastapi import APIRouter, Request, status
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from starlette.datastructures import UploadFile

from danphoto.core.errors import InvalidContent, PayloadTooLarge
from danphoto.core.uploads import decode_data_uri, normalize_content_type

from . import schemas
from .dependencies import AppSettings, Library, Resolver, Uploads

CHUNK_SIZE = 64 * 1024

router = APIRouter()


@router.get("/health", tags=["Health"])
async def health(settings: AppSettings) -> dict:
    return {"status": "ok", "service": settings.APP_NAME, "version": settings.VERSION}


async def _iter_upload_file(file: UploadFile) -> AsyncIterator[bytes]:
    # The form owns the spooled file and closes it.
    while chunk := await file.read(CHUNK_SIZE):
        yield chunk


def _iter_file(handle: BinaryIO) -> Iterator[bytes]:
    with handle:
        while chunk := handle.read(CHUNK_SIZE):
            yield chunk


def _content_length(request: Request) -> int | None:
    raw = request.headers.get("content-length")
    if raw is None:
        return None
    try:
        return int(raw)
    except ValueError as exc:
        raise InvalidContent(f"Invalid Content-Length header {raw!r}") from exc


async def _read_json(request: Request, limit: int) -> object:
    body = bytearray()
    async for chunk in request.stream():
        body += chunk
        if len(body) > limit:
            raise PayloadTooLarge(f"Request body exceeds the {limit} byte limit")
    try:
        return json.loads(body)
    except ValueError as exc:
        raise InvalidContent("Expected a JSON body with an 'image_base64' field") from exc


@router.post(
    "/upload",
    response_model=schemas.PhotoOut,
    status_code=status.HTTP_201_CREATED,
    tags=["Photos"],
)
async def upload_photo(request: Request, uploads: Uploads) -> schemas.PhotoOut:
    """Store a photo under today's theme.

    Accepts a raw image body, a multipart form with a ``file`` part, or JSON
    ``{"image_base64": ...}``.
    """
    media_type = normalize_content_type(request.headers.get("content-type"))
    content_length = _content_length(request)

    if media_type == "multipart/form-data":
        uploads.check_envelope(content_length, "multipart")
        async with request.form() as form:
            file = form.get("file")
            if not isinstance(file, UploadFile):
                raise InvalidContent("Multipart uploads need a 'file' part")
            ref = await uploads.upload(_iter_upload_file(file), file.content_type, declared_size=file.size)
    elif media_type == "application/json":
        uploads.check_envelope(content_length, "base64")
        raw = await _read_json(request, uploads.envelope_limit("base64"))
        try:
            payload = schemas.Base64Upload.model_validate(raw)
        except ValidationError as exc:
            raise InvalidContent("Expected a JSON body with an 'image_base64' field") from exc
        content, content_type = decode_data_uri(payload.image_base64)
        ref = await uploads.upload_bytes(content, content_type)
    else:
        ref = await uploads.upload(request.stream(), media_type, declared_size=content_length)

    return schemas.PhotoOut.from_ref(ref)


@router.get("/themes", response_model=schemas.ThemeListOut, tags=["Themes"])
async def list_themes(library: Library) -> schemas.ThemeListOut:
    themes = await to_thread.run_sync(library.themes)
    return schemas.ThemeListOut(themes=themes)


@router.get("/themes/today", response_model=schemas.ThemeOut, tags=["Themes"])
async def current_theme(resolver: Resolver) -> schemas.ThemeOut:
    return schemas.ThemeOut.from_theme(resolver.current_theme())


@router.get("/themes/{theme}", response_model=schemas.PhotoListOut, tags=["Themes"])
async def list_photos(theme: str, library: Library) -> schemas.PhotoListOut:
    refs = await to_thread.run_sync(library.list, theme)
    return schemas.PhotoListOut(theme=theme, photos=[schemas.PhotoOut.from_ref(ref) for ref in refs])


@router.get("/themes/{theme}/{name}", tags=["Photos"])
async def get_photo(theme: str, name: str, library: Library) -> StreamingResponse:
    handle, content_type = await to_thread.run_sync(library.get, theme, name)
    size = os.fstat(handle.fileno()).st_size
    return StreamingResponse(
        _iter_file(handle),
        media_type=content_type,
        headers={
            "Content-Length": str(size),
            "Cache-Control": "public, max-age=31536000, immutable",
        },
    )
