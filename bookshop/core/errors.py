"""Domain exceptions plus the JSON error envelope used by the HTTP layer."""

from __future__ import annotations

from typing import Any

from fastapi import Request
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette import status
from starlette.exceptions import HTTPException as StarletteHTTPException


class BookshopError(Exception):
    """Base class for failures the ledger reports to its callers."""


class InvalidBackupError(BookshopError):
    """A backup document could not be used at all (unreadable or missing structure).

    ``errors`` carries the human-readable reasons; nothing in the store has been
    touched when this is raised.
    """

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.errors = list(errors or [message])


class StoreWriteError(BookshopError):
    """The persistent medium rejected a write."""


class ErrorEnvelope(JSONResponse):
    def __init__(
        self,
        *,
        status_code: int,
        code: str,
        message: str,
        details: Any | None = None,
        headers: dict[str, str] | None = None,
    ) -> None:
        payload: dict[str, Any] = {"code": code, "message": message}
        if details is not None:
            payload["details"] = details
        super().__init__(payload, status_code=status_code, headers=headers)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    detail = exc.detail
    message = detail if isinstance(detail, str) else "Error"
    details = detail if isinstance(detail, dict) else None
    return ErrorEnvelope(
        status_code=exc.status_code,
        code="http_error",
        message=message,
        details=details,
        headers=getattr(exc, "headers", None),
    )


async def validation_exception_handler(request: Request, exc):  # type: ignore[override]
    from fastapi.exceptions import RequestValidationError

    if isinstance(exc, RequestValidationError):
        return ErrorEnvelope(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            code="validation_error",
            message="Validation failed",
            details={"errors": jsonable_encoder(exc.errors())},
        )
    raise exc


async def invalid_backup_handler(request: Request, exc: InvalidBackupError):
    return ErrorEnvelope(
        status_code=status.HTTP_400_BAD_REQUEST,
        code="invalid_backup",
        message=exc.message,
        details={"errors": exc.errors},
    )


__all__ = [
    "BookshopError",
    "ErrorEnvelope",
    "InvalidBackupError",
    "StoreWriteError",
    "http_exception_handler",
    "invalid_backup_handler",
    "validation_exception_handler",
]
