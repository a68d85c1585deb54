"""
Application errors and the handlers that turn them into the JSON envelope.

Route code raises one of the ``AppError`` subclasses; everything the store or
framework raises is mapped here so that clients always receive
``{"success": false, "message": ..., "errors": ...}``.
"""
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError
from starlette.exceptions import HTTPException as StarletteHTTPException

from schemas import Envelope

logger = logging.getLogger(__name__)


class AppError(Exception):
    status_code = 500
    default_message = "Server error"

    def __init__(self, message: Optional[str] = None, errors: Any = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class InvalidInput(AppError):
    status_code = 400
    default_message = "Invalid input"


class Conflict(InvalidInput):
    # Duplicate unique fields are reported as 400, not 409.
    default_message = "Duplicate value"


class InvalidState(AppError):
    status_code = 400
    default_message = "Invalid state"


class Unauthorized(AppError):
    status_code = 401
    default_message = "Not authenticated"


class Forbidden(AppError):
    status_code = 403
    default_message = "Access denied"


class NotFound(AppError):
    status_code = 404
    default_message = "Not found"


def error_response(status_code: int, message: str, errors: Any = None) -> JSONResponse:
    body = Envelope(success=False, message=message, errors=errors)
    return JSONResponse(
        status_code=status_code,
        content=jsonable_encoder(body, by_alias=True, exclude_none=True),
    )


def register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        return error_response(exc.status_code, exc.message, exc.errors)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        return error_response(400, "Validation error", jsonable_encoder(exc.errors()))

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(DuplicateKeyError)
    async def duplicate_key_handler(request: Request, exc: DuplicateKeyError):
        logger.warning("Duplicate key on %s %s", request.method, request.url.path)
        return error_response(400, "Duplicate value")

    @app.exception_handler(Exception)
    async def unhandled_error_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return error_response(500, "Server error")
