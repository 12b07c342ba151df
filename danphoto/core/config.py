from functools import lru_cache
from pathlib import Path
from typing import List

from pydantic_settings import BaseSettings

from danphoto import __version__


class Settings(BaseSettings):
    APP_NAME: str = "DanPhoto API"
    VERSION: str = __version__

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 3000
    LOG_LEVEL: str = "INFO"

    # Storage
    THEME_OF_THE_DAY_IMAGES_DIR: Path = Path("./uploads/theme-of-the-day")
    MAX_UPLOAD_BYTES: int = 10 * 1024 * 1024
    ALLOWED_CONTENT_TYPES: str = "image/jpeg,image/png,image/gif,image/webp"

    # Themes
    THEME_PERIOD: str = "day"
    THEME_TIMEZONE: str = "UTC"
    FALLBACK_THEME_ID: str = "undated"

    # Empty means any origin is allowed.
    CORS_ALLOWED_ORIGINS: str = ""

    @property
    def allowed_content_types(self) -> List[str]:
        return _split_csv(self.ALLOWED_CONTENT_TYPES, lower=True)

    @property
    def cors_origins(self) -> List[str]:
        return _split_csv(self.CORS_ALLOWED_ORIGINS) or ["*"]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


def _split_csv(value: str, lower: bool = False) -> List[str]:
    items = [item.strip() for item in value.split(",") if item.strip()]
    if lower:
        items = [item.lower() for item in items]
    return items


@lru_cache()
def get_settings() -> Settings:
    return Settings()
