"""
Custom exceptions for Recipebox API.
Provides consistent error handling across the application.
"""
import logging
from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

logger = logging.getLogger(__name__)


class RecipeBoxError(Exception):
    """Base exception for Recipebox"""
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "An error occurred"):
        self.message = message
        super().__init__(self.message)


class ValidationError(RecipeBoxError):
    """Malformed input; safe to describe precisely"""
    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, message: str = "invalid request"):
        super().__init__(message)


class InvalidCodeError(ValidationError):
    """One-time code rejected; deliberately uniform for every reason"""
    def __init__(self, message: str = "invalid or expired OTP"):
        super().__init__(message)


class UnauthorizedError(RecipeBoxError):
    """Authentication failed"""
    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, message: str = "unauthorized"):
        super().__init__(message)


class InvalidTokenError(UnauthorizedError):
    """Token is missing, malformed, expired, revoked or unknown"""
    def __init__(self, message: str = "invalid token"):
        super().__init__(message)


class NotFoundError(RecipeBoxError):
    """Resource not found"""
    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, message: str = "not found"):
        super().__init__(message)


class UserNotFoundError(NotFoundError):
    def __init__(self, message: str = "user not found"):
        super().__init__(message)


class ConflictError(RecipeBoxError):
    """Resource already exists"""
    status_code = status.HTTP_409_CONFLICT

    def __init__(self, message: str = "already exists", field: Optional[str] = None):
        self.field = field
        super().__init__(message)


class GoneError(RecipeBoxError):
    """A once-valid resource has expired"""
    status_code = status.HTTP_410_GONE


class RateLimitedError(RecipeBoxError):
    status_code = status.HTTP_429_TOO_MANY_REQUESTS

    def __init__(self, message: str = "too many requests, please try again later"):
        super().__init__(message)


class EmailDeliveryError(RecipeBoxError):
    """Notifier could not hand the message to the provider"""
    def __init__(self, recipient: str, reason: str = ""):
        message = f"failed to send email to {recipient}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


# Exception handlers
def _error_body(status_code: int, message: str) -> dict:
    if status_code == status.HTTP_429_TOO_MANY_REQUESTS:
        return {"message": message}
    return {"error": message}


async def recipebox_error_handler(request: Request, exc: RecipeBoxError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    headers = None
    if exc.status_code == status.HTTP_401_UNAUTHORIZED:
        headers = {"WWW-Authenticate": "Bearer"}
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, exc.message),
        headers=headers,
    )


async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = exc.detail if isinstance(exc.detail, str) else "request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(exc.status_code, message),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    message = "invalid request"
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        message = f"{location}: {first.get('msg')}" if location else first.get("msg", message)
    return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": message})


async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception(f"Database error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "database error"},
    )


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "internal server error"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RecipeBoxError, recipebox_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(SQLAlchemyError, database_error_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)
