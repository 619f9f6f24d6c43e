# backend/core/errors.py

from __future__ import annotations

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from core.logging import get_logger

logger = get_logger(__name__)


class ChatError(Exception):
    """Base class for errors raised by the chat core."""

    status_code: int = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFound(ChatError):
    status_code = 404


class Unauthorized(ChatError):
    status_code = 401


class NotMember(Unauthorized):
    """Authenticated, but not a member of the room being accessed."""

    status_code = 403


class ValidationError(ChatError):
    status_code = 400


class PersistenceError(ChatError):
    status_code = 503


class UploadError(ChatError):
    status_code = 400


def register_error_handlers(app: FastAPI) -> None:
    """Render every error as a JSON ``{"error": ...}`` body."""

    @app.exception_handler(ChatError)
    async def chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
        if isinstance(exc, PersistenceError):
            logger.error("Persistence error on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail},
            headers=getattr(exc, "headers", None),
        )
