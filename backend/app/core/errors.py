"""Error taxonomy and the HTTP envelopes each error maps to."""

from __future__ import annotations

from typing import TYPE_CHECKING

from fastapi import status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from app.core.logging import get_logger

if TYPE_CHECKING:
    from fastapi import FastAPI, Request

logger = get_logger(__name__)
UNEXPECTED_ERROR_MESSAGE = "An unexpected error occurred"


class AppError(Exception):
    """Base class for errors that carry their own HTTP status."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = UNEXPECTED_ERROR_MESSAGE

    def __init__(
        self,
        message: str | None = None,
        *,
        status_code: int | None = None,
        details: object | None = None,
    ) -> None:
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        self.details = details
        super().__init__(self.message)


class ValidationError(AppError):
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Validation failed"


class NotFoundError(AppError):
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Resource not found"


class UnauthorizedError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Unauthorized"


class TrackerError(AppError):
    """Raised when a Linear API call fails or returns an error payload."""

    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Linear request failed"


class WebhookAuthError(AppError):
    status_code = status.HTTP_401_UNAUTHORIZED
    default_message = "Webhook authentication failed"


class TextGenerationError(AppError):
    """Raised inside the text generation client; callers never see it."""

    default_message = "Text generation failed"


def format_error_response(exc: BaseException) -> dict[str, object]:
    """Build the `{message, details?}` body used by every error response."""
    if isinstance(exc, AppError):
        body: dict[str, object] = {"message": exc.message}
        if exc.details is not None:
            body["details"] = jsonable_encoder(exc.details)
        return body
    return {"message": UNEXPECTED_ERROR_MESSAGE}


async def _app_error_handler(request: Request, exc: Exception) -> JSONResponse:
    if not isinstance(exc, AppError):
        return await _unexpected_error_handler(request, exc)
    if exc.status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.warning(
            "api.error status=%s type=%s message=%s",
            exc.status_code,
            exc.__class__.__name__,
            exc.message,
        )
    return JSONResponse(format_error_response(exc), status_code=exc.status_code)


async def _request_validation_handler(_request: Request, exc: Exception) -> JSONResponse:
    details = exc.errors() if isinstance(exc, RequestValidationError) else None
    error = ValidationError(details=details)
    return JSONResponse(format_error_response(error), status_code=error.status_code)


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(
        "api.error.unexpected method=%s path=%s",
        request.method,
        request.url.path,
        exc_info=exc,
    )
    return JSONResponse(
        format_error_response(exc),
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(AppError, _app_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
