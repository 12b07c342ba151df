from __future__ import annotations

from typing import Annotated

from fastapi import Depends, Request

from danphoto.core.config import Settings
from danphoto.core.library import PhotoLibrary
from danphoto.core.themes import ThemeResolver
from danphoto.core.uploads import UploadHandler


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_resolver(request: Request) -> ThemeResolver:
    return request.app.state.resolver


def get_upload_handler(request: Request) -> UploadHandler:
    return request.app.state.uploads


def get_library(request: Request) -> PhotoLibrary:
    return request.app.state.library


AppSettings = Annotated[Settings, Depends(get_app_settings)]
Resolver = Annotated[ThemeResolver, Depends(get_resolver)]
Uploads = Annotated[UploadHandler, Depends(get_upload_handler)]
Library = Annotated[PhotoLibrary, Depends(get_library)]
