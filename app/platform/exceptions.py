import logging

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.features.embed_sessions.exceptions import (
    VALIDATION_ERRORS,
    EmbedSessionError,
)
from app.platform.response import api_response

logger = logging.getLogger(__name__)

INVALID_SESSION_MESSAGE = "Invalid or expired session"


def add_exception_handlers(app):
    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(
            message=str(exc.detail) or "Error",
            status_code=exc.status_code,
            headers=exc.headers,
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(EmbedSessionError)
    async def embed_session_exception_handler(request: Request, exc: EmbedSessionError):
        # The specific code stays in the logs; clients see one message for every
        # rejected token so signature, expiry and revocation cannot be probed.
        logger.warning(f"{request.method} {request.url.path} -> {exc.code.value}")

        if isinstance(exc, VALIDATION_ERRORS):
            return api_response(
                message=INVALID_SESSION_MESSAGE,
                status_code=status.HTTP_401_UNAUTHORIZED,
                headers={"WWW-Authenticate": "Bearer"},
            )

        if exc.retryable:
            return api_response(
                message="Session service temporarily unavailable",
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                headers={"Retry-After": "1"},
            )

        return api_response(
            message="Could not start a session",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logging.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
