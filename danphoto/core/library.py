from __future__ import annotations

from typing import BinaryIO, List, Tuple

from .storage import PhotoRef, PhotoStorage


class PhotoLibrary:
    """Read side: browse any theme, current or past, and open its photos."""

    def __init__(self, storage: PhotoStorage) -> None:
        self.storage = storage

    def themes(self) -> List[str]:
        return self.storage.themes()

    def list(self, theme_id: str) -> List[PhotoRef]:
        return sorted(self.storage.list(theme_id), key=lambda ref: ref.name)

    def get(self, theme_id: str, name: str) -> Tuple[BinaryIO, str]:
        ref = PhotoRef(theme=theme_id, name=name)
        return self.storage.read(ref), ref.content_type
