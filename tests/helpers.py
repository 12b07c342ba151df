from __future__ import annotations

from datetime import datetime

MAX_BYTES = 64 * 1024
JPEG_HEADER = b"\xff\xd8\xff\xe0\x00\x10JFIF\x00"
PNG_HEADER = b"\x89PNG\r\n\x1a\n"


def fake_jpeg(size: int, fill: bytes = b"\x42") -> bytes:
    return JPEG_HEADER + fill * (size - len(JPEG_HEADER))


class FrozenClock:
    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def __call__(self) -> datetime:
        return self.moment
