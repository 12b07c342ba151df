from __future__ import annotations

import logging
import os
import re
import secrets
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Dict, Iterator, List, Optional

from .errors import InvalidContent, NotFound, PayloadTooLarge, StorageUnavailable

logger = logging.getLogger("danphoto.storage")

CONTENT_TYPE_EXTENSIONS: Dict[str, str] = {
    "image/jpeg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "image/heic": "heic",
}
EXTENSION_CONTENT_TYPES: Dict[str, str] = {ext: ctype for ctype, ext in CONTENT_TYPE_EXTENSIONS.items()}

TEMP_PREFIX = ".upload-"
TEMP_SUFFIX = ".part"

# Theme ids and photo names are single path segments drawn from this alphabet.
_SEGMENT_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]{0,63}$")
_PHOTO_NAME_RE = re.compile(r"^[0-9a-f]{32}\.([a-z0-9]{2,5})$")


@dataclass(frozen=True)
class PhotoRef:
    theme: str
    name: str
    size: Optional[int] = None

    @property
    def content_type(self) -> str:
        ext = self.name.rsplit(".", 1)[-1]
        return EXTENSION_CONTENT_TYPES.get(ext, "application/octet-stream")

    @property
    def url(self) -> str:
        return f"/themes/{self.theme}/{self.name}"

    def to_dict(self) -> Dict[str, object]:
        return {
            "theme": self.theme,
            "name": self.name,
            "content_type": self.content_type,
            "size": self.size,
            "url": self.url,
        }


def is_valid_theme_id(theme_id: str) -> bool:
    return bool(_SEGMENT_RE.match(theme_id or ""))


def is_valid_photo_name(name: str) -> bool:
    match = _PHOTO_NAME_RE.match(name or "")
    return bool(match) and match.group(1) in EXTENSION_CONTENT_TYPES


def generate_photo_name(content_type: str, extensions: Dict[str, str] = CONTENT_TYPE_EXTENSIONS) -> str:
    ext = extensions.get(content_type)
    if ext is None:
        raise InvalidContent(f"Cannot store content of type {content_type!r}")
    return f"{secrets.token_hex(16)}.{ext}"


class PendingUpload:
    """A photo being written to a hidden temporary file in its theme directory.

    Nothing is visible under the final name until ``commit`` renames the
    temporary file into place. Leaving the ``with`` block without committing
    removes the temporary file.
    """

    def __init__(self, storage: "PhotoStorage", theme_id: str, name: str, handle: BinaryIO, temp_path: Path) -> None:
        self.storage = storage
        self.theme_id = theme_id
        self.name = name
        self.size = 0
        self._handle = handle
        self._temp_path = temp_path
        self._done = False

    def write(self, chunk: bytes) -> None:
        if self._done:
            raise RuntimeError("Upload already finished")
        if self.size + len(chunk) > self.storage.max_bytes:
            self.discard()
            raise PayloadTooLarge(f"Photo exceeds the {self.storage.max_bytes} byte limit")
        try:
            self._handle.write(chunk)
        except OSError as exc:
            self.discard()
            raise StorageUnavailable(f"Could not write photo: {exc}") from exc
        self.size += len(chunk)

    def commit(self) -> PhotoRef:
        if self._done:
            raise RuntimeError("Upload already finished")
        if self.size == 0:
            self.discard()
            raise InvalidContent("Empty uploads are not accepted")
        final_path = self.storage.resolve(self.theme_id, self.name)
        try:
            self._handle.flush()
            os.fsync(self._handle.fileno())
            self._handle.close()
            os.replace(self._temp_path, final_path)
        except OSError as exc:
            self.discard()
            raise StorageUnavailable(f"Could not store photo: {exc}") from exc
        self._done = True
        return PhotoRef(theme=self.theme_id, name=self.name, size=self.size)

    def discard(self) -> None:
        if self._done:
            return
        self._done = True
        self._handle.close()
        try:
            self._temp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as exc:
            logger.error("Could not remove temporary file %s: %s", self._temp_path, exc)

    def __enter__(self) -> "PendingUpload":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.discard()


class PhotoStorage:
    """Filesystem layout: ``root/<theme id>/<generated name>``."""

    def __init__(
        self,
        root: Path,
        *,
        max_bytes: int,
        extensions: Optional[Dict[str, str]] = None,
    ) -> None:
        self.root = Path(root).resolve()
        self.max_bytes = max_bytes
        self.extensions = dict(extensions or CONTENT_TYPE_EXTENSIONS)

    def resolve(self, theme_id: str, name: Optional[str] = None) -> Path:
        """Map a theme (and optionally a photo name) to a path under the root.

        Every filesystem access goes through here. Unsafe segments raise
        ``InvalidContent`` before any filesystem call is made.
        """
        if not is_valid_theme_id(theme_id):
            raise InvalidContent(f"Invalid theme id {theme_id!r}")
        path = self.root / theme_id
        if name is not None:
            if not is_valid_photo_name(name):
                raise InvalidContent(f"Invalid photo name {name!r}")
            path = path / name
        if self.root not in path.parents:
            raise InvalidContent(f"Path escapes storage root: {path}")
        return path

    def check_writable(self) -> None:
        try:
            self.root.mkdir(parents=True, exist_ok=True)
            with tempfile.TemporaryFile(dir=self.root):
                pass
        except OSError as exc:
            raise StorageUnavailable(f"Storage root {self.root} is not writable: {exc}") from exc

    def ensure_theme_dir(self, theme_id: str) -> Path:
        path = self.resolve(theme_id)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageUnavailable(f"Could not create theme directory {theme_id}: {exc}") from exc
        return path

    def open_upload(self, theme_id: str, content_type: str) -> PendingUpload:
        name = generate_photo_name(content_type, self.extensions)
        theme_dir = self.ensure_theme_dir(theme_id)
        try:
            fd, temp_name = tempfile.mkstemp(prefix=TEMP_PREFIX, suffix=TEMP_SUFFIX, dir=theme_dir)
        except OSError as exc:
            raise StorageUnavailable(f"Could not open temporary file in {theme_id}: {exc}") from exc
        return PendingUpload(self, theme_id, name, os.fdopen(fd, "wb"), Path(temp_name))

    def save(self, theme_id: str, content: bytes, content_type: str) -> PhotoRef:
        if len(content) > self.max_bytes:
            raise PayloadTooLarge(f"Photo exceeds the {self.max_bytes} byte limit")
        with self.open_upload(theme_id, content_type) as pending:
            pending.write(content)
            return pending.commit()

    def list(self, theme_id: str) -> Iterator[PhotoRef]:
        path = self._existing_theme_dir(theme_id)
        return self._scan(theme_id, path)

    def _scan(self, theme_id: str, path: Path) -> Iterator[PhotoRef]:
        try:
            with os.scandir(path) as entries:
                for entry in entries:
                    if not is_valid_photo_name(entry.name):
                        continue
                    try:
                        if not entry.is_file():
                            continue
                        size = entry.stat().st_size
                    except FileNotFoundError:
                        continue
                    yield PhotoRef(theme=theme_id, name=entry.name, size=size)
        except FileNotFoundError:
            return
        except OSError as exc:
            raise StorageUnavailable(f"Could not list theme {theme_id}: {exc}") from exc

    def read(self, ref: PhotoRef) -> BinaryIO:
        try:
            path = self.resolve(ref.theme, ref.name)
        except InvalidContent as exc:
            raise NotFound(f"Photo {ref.theme}/{ref.name} not found") from exc
        try:
            return path.open("rb")
        except (FileNotFoundError, IsADirectoryError, NotADirectoryError) as exc:
            raise NotFound(f"Photo {ref.theme}/{ref.name} not found") from exc
        except OSError as exc:
            raise StorageUnavailable(f"Could not read photo {ref.theme}/{ref.name}: {exc}") from exc

    def themes(self) -> List[str]:
        try:
            with os.scandir(self.root) as entries:
                found = [entry.name for entry in entries if entry.is_dir() and is_valid_theme_id(entry.name)]
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise StorageUnavailable(f"Could not list themes: {exc}") from exc
        return sorted(found, reverse=True)

    def _existing_theme_dir(self, theme_id: str) -> Path:
        try:
            path = self.resolve(theme_id)
        except InvalidContent as exc:
            raise NotFound(f"Theme {theme_id} not found") from exc
        if not path.is_dir():
            raise NotFound(f"Theme {theme_id} not found")
        return path
