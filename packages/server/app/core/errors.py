"""
Application error hierarchy and the handlers that render it.

Errors are raised where a problem is detected and turned into the
``{success: false, error, message}`` envelope at the request boundary.
"""

from __future__ import annotations

from typing import Any, Optional

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

log = structlog.get_logger()


class AppError(Exception):
    """Base class for errors that map to an HTTP status."""

    status_code = 500
    code = "Internal Server Error"

    def __init__(self, message: str, *, details: Optional[Any] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.details = details
        if code is not None:
            self.code = code


class ValidationError(AppError):
    status_code = 400
    code = "Validation Error"


class AuthenticationError(AppError):
    status_code = 401
    code = "Unauthorized"


class AuthorizationError(AppError):
    status_code = 403
    code = "Forbidden"


class NotFoundError(AppError):
    status_code = 404
    code = "Not Found"


class ConflictError(AppError):
    status_code = 409
    code = "Conflict"


class DuplicateKeyError(ConflictError):
    """A storage-level unique constraint rejected a write."""

    def __init__(self, key: str, message: Optional[str] = None):
        super().__init__(message or f"Duplicate value for {key}")
        self.key = key


class NotConfiguredError(AppError):
    status_code = 501
    code = "Not Implemented"


class InternalError(AppError):
    status_code = 500
    code = "Internal Server Error"


# ---------------------------------------------------------------------------
# Envelope rendering
# ---------------------------------------------------------------------------

def error_response(
    status_code: int, error: str, message: Optional[str] = None, details: Any = None
) -> JSONResponse:
    content: dict[str, Any] = {"success": False, "error": error}
    if message:
        content["message"] = message
    if details is not None:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content)


def register_exception_handlers(app: FastAPI, *, expose_internal: bool = False) -> None:
    """Install the handlers that turn every failure into the response envelope."""

    @app.exception_handler(AppError)
    async def _app_error(request: Request, exc: AppError) -> JSONResponse:
        if exc.status_code >= 500:
            log.error("http.app_error", path=request.url.path, error=exc.message)
        return error_response(exc.status_code, exc.code, exc.message, exc.details)

    @app.exception_handler(RequestValidationError)
    async def _request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
        details = [
            {"field": ".".join(str(p) for p in err["loc"][1:]), "message": err["msg"]}
            for err in exc.errors()
        ]
        return error_response(400, ValidationError.code, "Invalid request", details)

    @app.exception_handler(StarletteHTTPException)
    async def _http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        log.exception("http.unhandled_error", path=request.url.path, method=request.method)
        message = str(exc) if expose_internal else "An unexpected error occurred"
        return error_response(500, InternalError.code, message)
