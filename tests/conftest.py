from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from danphoto.api.main import create_app
from danphoto.core.config import Settings
from danphoto.core.storage import PhotoStorage
from danphoto.core.themes import ThemeResolver
from danphoto.core.uploads import UploadHandler

from .helpers import MAX_BYTES, FrozenClock


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock(datetime(2024, 3, 1, 12, 30, tzinfo=timezone.utc))


@pytest.fixture()
def storage_root(tmp_path: Path) -> Path:
    return tmp_path / "uploads" / "theme-of-the-day"


@pytest.fixture()
def storage(storage_root: Path) -> PhotoStorage:
    return PhotoStorage(storage_root, max_bytes=MAX_BYTES)


@pytest.fixture()
def handler(storage: PhotoStorage, clock: FrozenClock) -> UploadHandler:
    return UploadHandler(
        ThemeResolver(clock),
        storage,
        max_bytes=MAX_BYTES,
        allowed_types=["image/jpeg", "image/png"],
    )


@pytest.fixture()
def settings(storage_root: Path) -> Settings:
    return Settings(
        THEME_OF_THE_DAY_IMAGES_DIR=storage_root,
        MAX_UPLOAD_BYTES=MAX_BYTES,
        ALLOWED_CONTENT_TYPES="image/jpeg,image/png",
        _env_file=None,
    )


@pytest.fixture()
def client(settings: Settings, clock: FrozenClock) -> TestClient:
    app = create_app(settings, clock=clock)
    with TestClient(app) as test_client:
        yield test_client
