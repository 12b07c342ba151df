from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from danphoto.core.storage import PhotoRef
from danphoto.core.themes import Theme


class PhotoOut(BaseModel):
    theme: str = Field(..., example="2024-03-01")
    name: str = Field(..., example="3f2a9c0d4b6e4f1a8c7d2e5b9a0f1c3d.jpg")
    content_type: str
    size: Optional[int] = None
    url: str

    @classmethod
    def from_ref(cls, ref: PhotoRef) -> "PhotoOut":
        return cls(**ref.to_dict())


class PhotoListOut(BaseModel):
    theme: str
    photos: List[PhotoOut] = Field(default_factory=list)


class ThemeListOut(BaseModel):
    themes: List[str] = Field(default_factory=list)


class ThemeOut(BaseModel):
    id: str
    starts_at: Optional[datetime] = None
    ends_at: Optional[datetime] = None
    fallback: bool = False

    @classmethod
    def from_theme(cls, theme: Theme) -> "ThemeOut":
        return cls(id=theme.id, starts_at=theme.starts_at, ends_at=theme.ends_at, fallback=theme.fallback)


class Base64Upload(BaseModel):
    image_base64: str = Field(..., description="data:image/...;base64,... or bare base64 (read as JPEG)")
