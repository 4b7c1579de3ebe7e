"""Error taxonomy surfaced to API callers.

Every error is terminal for the request that raised it. Handlers render the
``code`` and ``message`` as ``{"error": ..., "detail": ...}``.
"""

from __future__ import annotations

from fastapi import status


class TubelyError(Exception):
    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: str = "internal_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class BadRequest(TubelyError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "bad_request"


class UploadTooLarge(BadRequest):
    status_code = status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
    code = "upload_too_large"


class Unauthorized(TubelyError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "unauthorized"


class Forbidden(TubelyError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "forbidden"


class NotFound(TubelyError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "not_found"


class UploadIOError(TubelyError):
    """Local buffering, probing, rewind or remux failure."""

    code = "io_error"


class PublishError(TubelyError):
    """The object store rejected the write or it missed its deadline."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "publish_error"


class PersistError(TubelyError):
    code = "persist_error"


class ServiceUnavailable(TubelyError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "unavailable"


__all__ = [
    "TubelyError",
    "BadRequest",
    "UploadTooLarge",
    "Unauthorized",
    "Forbidden",
    "NotFound",
    "UploadIOError",
    "PublishError",
    "PersistError",
    "ServiceUnavailable",
]
