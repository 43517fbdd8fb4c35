"""
Error taxonomy and FastAPI exception handlers for the assistant hub.
"""
import logging

from fastapi import FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


class AssistantHubError(Exception):
    """Base exception for the service."""

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        code: str = "E5000",
    ):
        self.message = message
        self.status_code = status_code
        self.code = code
        super().__init__(message)


class ValidationError(AssistantHubError):
    """Malformed or oversized input, rejected before any remote call."""

    def __init__(self, message: str = "Invalid input"):
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, code="E4000")


class AuthenticationError(AssistantHubError):
    """The caller could not be identified."""

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message, status_code=status.HTTP_401_UNAUTHORIZED, code="E4010")


class ForbiddenError(AssistantHubError):
    """The caller is known but may not touch this resource."""

    def __init__(self, message: str = "Not allowed"):
        super().__init__(message, status_code=status.HTTP_403_FORBIDDEN, code="E4030")


class NotFoundError(AssistantHubError):
    """Assistant, thread, message or record absent locally."""

    def __init__(self, message: str = "Resource not found"):
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, code="E4040")


class ConflictError(AssistantHubError):
    """Duplicate name or identifier."""

    def __init__(self, message: str = "Resource already exists"):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, code="E4090")


class RemoteApiError(AssistantHubError):
    """Any failure reported by the assistant API."""

    def __init__(self, message: str = "Assistant failed to respond."):
        super().__init__(message, status_code=status.HTTP_502_BAD_GATEWAY, code="E5020")


class RunFailed(AssistantHubError):
    """A run ended as failed, cancelled, expired or incomplete."""

    def __init__(self, message: str = "Assistant failed to complete the response."):
        super().__init__(message, status_code=status.HTTP_502_BAD_GATEWAY, code="E5021")


class NoAssistantReply(AssistantHubError):
    """A run completed but produced no assistant message."""

    def __init__(self, message: str = "Assistant did not return a valid message."):
        super().__init__(message, status_code=status.HTTP_502_BAD_GATEWAY, code="E5022")


class RunTimeout(AssistantHubError):
    """A run did not reach a terminal status before the deadline."""

    def __init__(self, message: str = "Assistant did not respond in time."):
        super().__init__(message, status_code=status.HTTP_504_GATEWAY_TIMEOUT, code="E5040")


class ToolExecutionError(Exception):
    """Raised while executing one tool call; never leaves the dispatcher."""


def _error_body(code: str, message: str) -> dict:
    return {"detail": message, "error": {"code": code, "message": message}}


def setup_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers with the FastAPI app."""

    @app.exception_handler(AssistantHubError)
    async def assistant_hub_exception_handler(request: Request, exc: AssistantHubError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
        return JSONResponse(status_code=exc.status_code, content=_error_body(exc.code, exc.message))

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body(f"E{exc.status_code}0", exc.detail),
            headers=exc.headers,
        )

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled exception: {type(exc).__name__}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=_error_body("E5000", "Internal server error"),
        )
