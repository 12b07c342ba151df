"""Error kinds raised by the core components.

They propagate unchanged to the HTTP boundary, which maps each kind to a
status code. Nothing in the core retries.
"""

from __future__ import annotations


class PhotoServiceError(Exception):
    """Base class for every error the service reports to callers."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    @property
    def kind(self) -> str:
        return type(self).__name__


class StorageUnavailable(PhotoServiceError):
    status_code = 503


class InvalidContent(PhotoServiceError):
    status_code = 400


class UnsupportedMediaType(InvalidContent):
    status_code = 415


class PayloadTooLarge(InvalidContent):
    status_code = 413


class NotFound(PhotoServiceError):
    status_code = 404
