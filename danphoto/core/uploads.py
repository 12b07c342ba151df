from __future__ import annotations

import base64
import binascii
import logging
from typing import AsyncIterable, Iterable, Optional, Tuple

import anyio
from anyio import to_thread

from .errors import InvalidContent, PayloadTooLarge, UnsupportedMediaType
from .storage import PhotoRef, PhotoStorage
from .themes import ThemeResolver

logger = logging.getLogger("danphoto.uploads")

CONTENT_TYPE_ALIASES = {
    "image/jpg": "image/jpeg",
    "image/pjpeg": "image/jpeg",
}
DEFAULT_BASE64_CONTENT_TYPE = "image/jpeg"
# Multipart boundaries and headers, or the JSON object and data URI prefix.
ENVELOPE_OVERHEAD_BYTES = 16 * 1024


def normalize_content_type(content_type: Optional[str]) -> str:
    if not content_type:
        return ""
    media_type = content_type.split(";", 1)[0].strip().lower()
    return CONTENT_TYPE_ALIASES.get(media_type, media_type)


def decode_data_uri(value: str) -> Tuple[bytes, str]:
    """Decode ``data:image/png;base64,...`` or a bare base64 string.

    Bare strings carry no media type and are taken to be JPEG.
    """
    value = (value or "").strip()
    content_type = DEFAULT_BASE64_CONTENT_TYPE
    payload = value
    if value.startswith("data:"):
        header, sep, payload = value[len("data:"):].partition(",")
        if not sep or not header.endswith(";base64"):
            raise InvalidContent("Invalid data URI: expected data:image/...;base64,...")
        content_type = normalize_content_type(header[: -len(";base64")])
    try:
        content = base64.b64decode(payload.strip(), validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidContent(f"Invalid base64 payload: {exc}") from exc
    if not content:
        raise InvalidContent("Empty uploads are not accepted")
    return content, content_type


class UploadHandler:
    """Validates an upload and stores it under the active theme."""

    def __init__(
        self,
        resolver: ThemeResolver,
        storage: PhotoStorage,
        *,
        max_bytes: int,
        allowed_types: Iterable[str],
    ) -> None:
        self.resolver = resolver
        self.storage = storage
        self.max_bytes = max_bytes
        requested = {normalize_content_type(t) for t in allowed_types}
        unstorable = sorted(requested - set(storage.extensions))
        if unstorable:
            logger.warning("Ignoring allowed content types with no known file extension: %s", ", ".join(unstorable))
        self.allowed_types = frozenset(requested & set(storage.extensions))

    def envelope_limit(self, encoding: str) -> int:
        """Largest request body that can still carry a photo within ``max_bytes``."""
        if encoding == "base64":
            return -(-self.max_bytes // 3) * 4 + ENVELOPE_OVERHEAD_BYTES
        return self.max_bytes + ENVELOPE_OVERHEAD_BYTES

    def check_envelope(self, content_length: Optional[int], encoding: str) -> None:
        if content_length is None:
            return
        limit = self.envelope_limit(encoding)
        if content_length > limit:
            raise PayloadTooLarge(f"Request body of {content_length} bytes exceeds the {limit} byte limit")

    def validate(self, content_type: Optional[str], declared_size: Optional[int] = None) -> str:
        if declared_size is not None and declared_size > self.max_bytes:
            raise PayloadTooLarge(f"Photo of {declared_size} bytes exceeds the {self.max_bytes} byte limit")
        media_type = normalize_content_type(content_type)
        if media_type not in self.allowed_types:
            raise UnsupportedMediaType(
                f"Unsupported content type {media_type or 'none'!r}; allowed: {', '.join(sorted(self.allowed_types))}"
            )
        return media_type

    async def upload(
        self,
        chunks: AsyncIterable[bytes],
        content_type: Optional[str],
        declared_size: Optional[int] = None,
    ) -> PhotoRef:
        media_type = self.validate(content_type, declared_size)
        theme = self.resolver.current_theme()
        pending = await to_thread.run_sync(self.storage.open_upload, theme.id, media_type)
        try:
            async for chunk in chunks:
                if chunk:
                    await to_thread.run_sync(pending.write, chunk)
            ref = await to_thread.run_sync(pending.commit)
        except BaseException:
            # Covers client disconnects and cancellation as well as validation errors.
            with anyio.CancelScope(shield=True):
                await to_thread.run_sync(pending.discard)
            raise
        logger.info("Stored photo %s/%s (%d bytes, %s)", ref.theme, ref.name, ref.size, media_type)
        return ref

    async def upload_bytes(self, content: bytes, content_type: Optional[str]) -> PhotoRef:
        media_type = self.validate(content_type, len(content))
        theme = self.resolver.current_theme()
        ref = await to_thread.run_sync(self.storage.save, theme.id, content, media_type)
        logger.info("Stored photo %s/%s (%d bytes, %s)", ref.theme, ref.name, ref.size, media_type)
        return ref
