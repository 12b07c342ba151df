import logging

import uvicorn

from danphoto.core.config import get_settings
from danphoto.core.errors import StorageUnavailable
from danphoto.core.logging import configure_logging
from danphoto.core.storage import PhotoStorage

log = logging.getLogger("danphoto")


def main():
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    storage = PhotoStorage(settings.THEME_OF_THE_DAY_IMAGES_DIR, max_bytes=settings.MAX_UPLOAD_BYTES)
    try:
        storage.check_writable()
    except StorageUnavailable as exc:
        log.error("Cannot start: %s", exc.message)
        raise SystemExit(1) from exc

    log.info("DanPhoto API listening on http://%s:%d", settings.HOST, settings.PORT)
    uvicorn.run(
        "danphoto.api.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=False,
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
