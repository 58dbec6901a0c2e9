"""Error taxonomy shared by the scheduling engine and the HTTP layer.

Every error is an ``HTTPException`` so service code can raise it directly and
FastAPI renders it without a translation step. Structured payloads (conflict
lists, booked appointments) travel in ``detail``.
"""

from typing import Any

from fastapi import HTTPException, status
from fastapi.encoders import jsonable_encoder


class NotFoundError(HTTPException):
    def __init__(self, detail: str) -> None:
        super().__init__(status_code=status.HTTP_404_NOT_FOUND, detail=detail)


class BadRequestError(HTTPException):
    def __init__(self, detail: Any) -> None:
        super().__init__(status_code=status.HTTP_400_BAD_REQUEST, detail=jsonable_encoder(detail))


class FormatError(BadRequestError):
    """A date or time string is not in the expected shape."""


class ConfigurationError(HTTPException):
    """A clinic carries a timezone identifier that is not in the IANA database."""

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=422, detail=detail)


class ConflictError(HTTPException):
    def __init__(self, detail: Any) -> None:
        super().__init__(status_code=status.HTTP_409_CONFLICT, detail=jsonable_encoder(detail))


class RetryableStorageError(HTTPException):
    """A slot batch could not be written. Re-running the same range is safe."""

    def __init__(self, detail: str) -> None:
        super().__init__(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=detail)
