"""API error taxonomy, response envelopes and the central error translator."""

import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class ApiError(Exception):
    """Base class for errors that map onto an HTTP status and error envelope."""

    status_code: int = 500
    default_message = "Something went wrong"

    def __init__(
        self,
        message: str | None = None,
        errors: list[Any] | None = None,
        status_code: int | None = None,
    ):
        self.message = message or self.default_message
        self.errors = errors or []
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(ApiError):
    """Malformed or missing input, including malformed identifiers."""

    status_code = 400
    default_message = "Invalid request"


class NotFoundError(ApiError):
    """Referenced entity is absent."""

    status_code = 404
    default_message = "Resource not found"


class AuthorizationError(ApiError):
    """Missing/invalid credentials (401) or acting user is not the owner (400)."""

    status_code = 401
    default_message = "Unauthorized request"


class ConflictError(ApiError):
    """Duplicate unique-key create."""

    status_code = 409
    default_message = "Resource already exists"


class UpstreamFailure(ApiError):
    """Media host or store operation failed."""

    status_code = 500
    default_message = "Upstream service failed"


def not_owner(action: str) -> AuthorizationError:
    """Build the rejection raised when the acting user does not own an entity."""
    return AuthorizationError(
        f"You can't {action} as you are not the owner", status_code=400
    )


def api_response(data: Any = None, message: str = "Success", status_code: int = 200) -> dict:
    """Wrap handler output in the success envelope."""
    return {
        "statusCode": status_code,
        "data": data if data is not None else {},
        "message": message,
        "success": status_code < 400,
    }


def error_envelope(status_code: int, message: str, errors: list[Any] | None = None) -> dict:
    """Build the error envelope for a failed request."""
    return {
        "statusCode": status_code,
        "message": message,
        "success": False,
        "errors": errors or [],
    }


async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    """Translate an ApiError into the error envelope."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content=jsonable_encoder(error_envelope(exc.status_code, exc.message, exc.errors)),
    )


async def http_exception_handler(
    request: Request, exc: StarletteHTTPException
) -> JSONResponse:
    """Translate framework HTTP exceptions (404 routes, 405, auth) into the envelope."""
    message = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.status_code, message),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Translate request body/query validation failures into a 400 envelope."""
    errors = jsonable_encoder(exc.errors())
    fields = [".".join(str(p) for p in err.get("loc", ())[1:]) for err in errors]
    message = "Invalid or missing fields: " + ", ".join(f for f in fields if f)
    return JSONResponse(status_code=400, content=error_envelope(400, message, errors))


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort translator; logs the traceback and hides details from clients."""
    logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(status_code=500, content=error_envelope(500, "Internal server error"))


def register_error_handlers(app: FastAPI) -> None:
    """Install the central error translator on an application."""
    app.add_exception_handler(ApiError, api_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, request_validation_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, unhandled_exception_handler)
