# glowglitch/core/errors.py
from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from glowglitch.core.responses import fail

logger = logging.getLogger(__name__)


class APIError(Exception):
    """
    Error carried back to the caller as a failure envelope.

    code is a stable UPPER_SNAKE identifier (CREATOR_NOT_FOUND, INVALID_INPUT, ...)
    that dashboards switch on; message is shown to the user as-is.
    """

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = status.HTTP_400_BAD_REQUEST,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details


class NotFoundError(APIError):
    def __init__(self, code: str, message: str) -> None:
        super().__init__(code, message, status.HTTP_404_NOT_FOUND)


class ConflictError(APIError):
    def __init__(self, code: str, message: str, details: Any = None) -> None:
        super().__init__(code, message, status.HTTP_409_CONFLICT, details)


_HTTP_CODES = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    409: "CONFLICT",
    422: "VALIDATION_ERROR",
    429: "RATE_LIMIT_EXCEEDED",
}


async def api_error_handler(request: Request, exc: APIError) -> JSONResponse:
    return fail(exc.code, exc.message, exc.status_code, exc.details)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    code = _HTTP_CODES.get(exc.status_code, "HTTP_ERROR")
    details = None
    if isinstance(exc.detail, dict):
        message = str(exc.detail.get("message") or code)
        details = exc.detail
    else:
        message = str(exc.detail)
    response = fail(code, message, exc.status_code, details)
    if exc.headers:
        response.headers.update(exc.headers)
    return response


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = jsonable_encoder(exc.errors())
    first = errors[0] if errors else {}
    loc = ".".join(str(p) for p in first.get("loc", ()) if p not in {"body", "query", "path"})
    message = f"{loc}: {first.get('msg')}" if loc else str(first.get("msg") or "Invalid request")
    return fail("VALIDATION_ERROR", message, status.HTTP_422_UNPROCESSABLE_ENTITY, errors)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return fail(
        "INTERNAL_SERVER_ERROR",
        "An unexpected error occurred",
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
