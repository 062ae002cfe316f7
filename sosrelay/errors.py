"""
Exception hierarchy and FastAPI error handlers shared by both services.

Every error response has the same body shape: {"error": "<message>"}.
"""

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class SosRelayError(Exception):
    """Base exception for all application errors."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str = "internal"):
        super().__init__(message)
        self.message = message


class ValidationError(SosRelayError):
    """A required field is missing on ingress. No state has been created."""

    status_code = status.HTTP_400_BAD_REQUEST


class UpstreamUnavailable(SosRelayError):
    """
    The relay could not forward an alert to the command service.

    Covers timeouts, connection errors and non-2xx responses alike. Never
    rendered to a client: the relay turns it into a queued acceptance.
    """

    status_code = status.HTTP_502_BAD_GATEWAY


class InternalError(SosRelayError):
    """Unexpected failure in persistence or resolution."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


async def _handle_app_error(request: Request, exc: SosRelayError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{type(exc).__name__} on {request.url.path}: {exc.message}")
    return error_response(exc.status_code, exc.message)


async def _handle_request_validation(request: Request, exc: RequestValidationError) -> JSONResponse:
    # Malformed JSON bodies are reported the same way as missing fields
    logger.warning(f"Request validation failed on {request.url.path}: {exc.errors()}")
    return error_response(status.HTTP_400_BAD_REQUEST, "invalid request body")


def register_error_handlers(app: FastAPI) -> None:
    """Attach the application's exception handlers to a FastAPI app."""
    app.add_exception_handler(SosRelayError, _handle_app_error)
    app.add_exception_handler(RequestValidationError, _handle_request_validation)
