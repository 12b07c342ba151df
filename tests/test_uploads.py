from __future__ import annotations

import base64
from pathlib import Path
from typing import AsyncIterator, Iterable

import anyio
import pytest
from starlette.requests import ClientDisconnect

from danphoto.core.errors import InvalidContent, PayloadTooLarge, UnsupportedMediaType
from danphoto.core.library import PhotoLibrary
from danphoto.core.themes import ThemeResolver
from danphoto.core.uploads import UploadHandler, decode_data_uri, normalize_content_type

from .helpers import MAX_BYTES, PNG_HEADER, fake_jpeg

THEME = "2024-03-01"


async def _chunks(parts: Iterable[bytes]) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


def _theme_entries(storage_root: Path) -> list[str]:
    theme_dir = storage_root / THEME
    return sorted(p.name for p in theme_dir.iterdir()) if theme_dir.exists() else []


def test_upload_stores_under_current_theme(handler: UploadHandler, storage) -> None:
    content = fake_jpeg(10 * 1024)
    parts = [content[i : i + 1000] for i in range(0, len(content), 1000)]

    ref = anyio.run(handler.upload, _chunks(parts), "image/jpeg", len(content))

    assert ref.theme == THEME
    assert ref.size == len(content)
    with storage.read(ref) as handle:
        assert handle.read() == content


def test_declared_size_over_limit_writes_nothing(handler: UploadHandler, storage_root: Path) -> None:
    with pytest.raises(PayloadTooLarge):
        anyio.run(handler.upload, _chunks([b"x"]), "image/jpeg", MAX_BYTES + 1)
    assert not (storage_root / THEME).exists()


def test_streamed_size_over_limit_leaves_no_file(handler: UploadHandler, storage_root: Path) -> None:
    parts = [fake_jpeg(MAX_BYTES // 2)] * 3
    with pytest.raises(PayloadTooLarge):
        anyio.run(handler.upload, _chunks(parts), "image/jpeg", None)
    assert _theme_entries(storage_root) == []


def test_unsupported_media_type(handler: UploadHandler, storage_root: Path) -> None:
    with pytest.raises(UnsupportedMediaType):
        anyio.run(handler.upload, _chunks([b"GIF89a"]), "image/gif", 6)
    with pytest.raises(UnsupportedMediaType):
        anyio.run(handler.upload_bytes, b"hello", None)
    assert not storage_root.exists()


def test_empty_upload_is_invalid(handler: UploadHandler, storage_root: Path) -> None:
    with pytest.raises(InvalidContent):
        anyio.run(handler.upload, _chunks([]), "image/png", None)
    assert _theme_entries(storage_root) == []


def test_client_disconnect_discards_partial_file(handler: UploadHandler, storage_root: Path) -> None:
    async def dropped() -> AsyncIterator[bytes]:
        yield fake_jpeg(4096)
        raise ClientDisconnect()

    with pytest.raises(ClientDisconnect):
        anyio.run(handler.upload, dropped(), "image/jpeg", 8192)
    assert _theme_entries(storage_root) == []


def test_simultaneous_uploads_get_distinct_names(handler: UploadHandler, storage) -> None:
    refs = []

    async def upload(content: bytes) -> None:
        refs.append(await handler.upload_bytes(content, "image/jpeg"))

    async def main() -> None:
        async with anyio.create_task_group() as tg:
            tg.start_soon(upload, fake_jpeg(2048, fill=b"\x01"))
            tg.start_soon(upload, fake_jpeg(2048, fill=b"\x02"))

    anyio.run(main)

    assert len({ref.name for ref in refs}) == 2
    listed = PhotoLibrary(storage).list(THEME)
    assert sorted(ref.name for ref in listed) == sorted(ref.name for ref in refs)


def test_upload_bytes_over_limit_writes_nothing(handler: UploadHandler, storage_root: Path) -> None:
    with pytest.raises(PayloadTooLarge):
        anyio.run(handler.upload_bytes, fake_jpeg(MAX_BYTES + 1), "image/jpeg")
    assert not (storage_root / THEME).exists()


def test_allowed_types_without_extension_are_dropped(storage, clock) -> None:
    handler = UploadHandler(
        ThemeResolver(clock),
        storage,
        max_bytes=MAX_BYTES,
        allowed_types=["image/jpeg", "image/bmp"],
    )
    assert handler.allowed_types == frozenset({"image/jpeg"})
    with pytest.raises(UnsupportedMediaType):
        handler.validate("image/bmp", 10)


def test_envelope_check_rejects_bodies_that_cannot_fit(handler: UploadHandler) -> None:
    handler.check_envelope(None, "multipart")
    handler.check_envelope(handler.envelope_limit("multipart"), "multipart")
    with pytest.raises(PayloadTooLarge):
        handler.check_envelope(handler.envelope_limit("multipart") + 1, "multipart")
    assert handler.envelope_limit("base64") > handler.envelope_limit("multipart")
    with pytest.raises(PayloadTooLarge):
        handler.check_envelope(handler.envelope_limit("base64") + 1, "base64")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("image/jpeg", "image/jpeg"),
        ("IMAGE/PNG; charset=binary", "image/png"),
        ("image/jpg", "image/jpeg"),
        (None, ""),
    ],
)
def test_normalize_content_type(raw, expected) -> None:
    assert normalize_content_type(raw) == expected


def test_decode_data_uri_with_media_type() -> None:
    payload = PNG_HEADER + b"\x00" * 16
    content, content_type = decode_data_uri("data:image/png;base64," + base64.b64encode(payload).decode())
    assert content == payload
    assert content_type == "image/png"


def test_decode_bare_base64_defaults_to_jpeg() -> None:
    payload = fake_jpeg(64)
    content, content_type = decode_data_uri(base64.b64encode(payload).decode())
    assert content == payload
    assert content_type == "image/jpeg"


@pytest.mark.parametrize("value", ["data:image/png,abcd", "not base64!!", "", "data:image/png;base64,"])
def test_decode_rejects_malformed_input(value: str) -> None:
    with pytest.raises(InvalidContent):
        decode_data_uri(value)
