"""Response envelopes and error rendering for the progress API.

Success: {"code": ..., "message": ..., "data": ...}
Error:   {"code": ..., "message": ..., "details": ...}  (details optional)
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Generic, TypeVar

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.core.errors import InternalError, ProgressError, debug_details

logger = logging.getLogger(__name__)

T = TypeVar("T")

_HTTP_CODES = {
    status.HTTP_400_BAD_REQUEST: "BAD_REQUEST",
    status.HTTP_401_UNAUTHORIZED: "UNAUTHORIZED",
    status.HTTP_403_FORBIDDEN: "FORBIDDEN",
    status.HTTP_404_NOT_FOUND: "NOT_FOUND",
    status.HTTP_405_METHOD_NOT_ALLOWED: "METHOD_NOT_ALLOWED",
}


class Envelope(BaseModel, Generic[T]):
    code: str
    message: str
    data: T


class ErrorEnvelope(BaseModel):
    code: str
    message: str
    details: dict[str, Any] | list[Any] | None = None


def error_response(
    status_code: int,
    code: str,
    message: str,
    details: dict[str, Any] | list[Any] | None = None,
    headers: dict[str, str] | None = None,
) -> JSONResponse:
    body = ErrorEnvelope(code=code, message=message, details=details)
    return JSONResponse(
        status_code=status_code,
        content=body.model_dump(exclude_none=True),
        headers=headers,
    )


@contextmanager
def operation_boundary(operation: str) -> Iterator[None]:
    """Let ProgressError and HTTPException through; anything else becomes
    INTERNAL_ERROR."""
    try:
        yield
    except (ProgressError, StarletteHTTPException):
        raise
    except Exception as e:
        logger.exception("Unexpected error in operation=%s", operation)
        raise InternalError(details=debug_details(e)) from e


async def progress_error_handler(request: Request, exc: ProgressError) -> JSONResponse:
    logger.warning(
        "Progress error on %s: %s %s",
        request.url.path,
        exc.code,
        exc.message,
    )
    return error_response(exc.status_code, exc.code, exc.message, exc.details)


async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    errors = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in exc.errors()
    ]
    logger.warning("Validation error on %s: %s", request.url.path, errors)
    return error_response(
        status.HTTP_400_BAD_REQUEST,
        "VALIDATION_ERROR",
        "Request validation failed",
        errors,
    )


async def http_error_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    logger.warning("HTTP %d on %s: %s", exc.status_code, request.url.path, exc.detail)
    code = _HTTP_CODES.get(
        exc.status_code,
        "INTERNAL_ERROR" if exc.status_code >= 500 else "HTTP_ERROR",
    )
    return error_response(
        exc.status_code,
        code,
        str(exc.detail),
        headers=getattr(exc, "headers", None),
    )
