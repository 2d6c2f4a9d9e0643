"""Domain errors and the handlers that render them in the response envelope."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "Something went wrong."


class DomainError(Exception):
    """Base class for errors raised by services."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    default_message: str = "Request could not be processed."
    log_level: int = logging.INFO

    def __init__(self, message: str | None = None, errors: dict[str, list[str]] | None = None):
        self.message = message or self.default_message
        self.errors = errors
        super().__init__(self.message)


class NotFound(DomainError):
    """Entity absent, or not visible to the caller."""

    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found."
    log_level = logging.WARNING


class Unauthorized(DomainError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthenticated."
    log_level = logging.WARNING


class Forbidden(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "This action is unauthorized."


class ValidationFailed(DomainError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "The given data was invalid."

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationFailed":
        return cls(message, errors={field: [message]})


class DomainConflict(DomainError):
    """Request is well-formed but conflicts with the entity's current state."""

    status_code = status.HTTP_409_CONFLICT
    default_message = "The request conflicts with the current state of the resource."


def error_envelope(message: str, error: Any = None) -> dict[str, Any]:
    return {"status": False, "message": message, "data": None, "error": error}


def _request_context(request: Request) -> dict[str, Any]:
    return {
        "method": request.method,
        "path": request.url.path,
        "user_id": getattr(request.state, "user_id", None),
    }


def _validation_errors(exc: RequestValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for item in exc.errors():
        loc = [str(part) for part in item.get("loc", ())]
        if loc and loc[0] in ("body", "query", "path", "header", "cookie", "form"):
            loc = loc[1:]
        field = ".".join(loc) or "non_field_errors"
        errors.setdefault(field, []).append(item.get("msg", "Invalid value."))
    return errors


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.log(
        exc.log_level,
        f"{type(exc).__name__}: {exc.message}",
        extra={"request": _request_context(request)},
    )
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(exc.message, exc.errors),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = _validation_errors(exc)
    first = next(iter(errors.values()))[0] if errors else ValidationFailed.default_message
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content=error_envelope(first, errors),
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {exc.detail}", extra={"request": _request_context(request)})
    message = exc.detail if isinstance(exc.detail, str) else GENERIC_ERROR_MESSAGE
    return JSONResponse(
        status_code=exc.status_code,
        content=error_envelope(message),
        headers=getattr(exc, "headers", None),
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        f"Unhandled exception: {exc}",
        exc_info=exc,
        extra={"request": _request_context(request)},
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_envelope(GENERIC_ERROR_MESSAGE),
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
