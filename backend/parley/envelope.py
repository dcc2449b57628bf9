"""JSON response envelope and exception handlers for the HTTP API.

Every HTTP response has the shape::

    {"status": "success" | "error", "message": str, "data": ..., "meta": ...}

``data`` and ``meta`` are omitted when empty.
"""
import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from .errors import ChatError, InfrastructureError, ValidationError

logger = logging.getLogger(__name__)


def envelope(
    status_code: int,
    message: Optional[str] = None,
    data: Any = None,
    meta: Optional[dict] = None,
) -> JSONResponse:
    body: dict = {"status": "success" if status_code < 400 else "error"}
    if message:
        body["message"] = message
    if data is not None:
        body["data"] = jsonable_encoder(data)
    if meta:
        body["meta"] = jsonable_encoder(meta)
    return JSONResponse(body, status_code=status_code)


def success_response(message: str, data: Any = None, meta: Optional[dict] = None) -> JSONResponse:
    return envelope(200, message, data, meta)


def created_response(message: str, data: Any = None) -> JSONResponse:
    return envelope(201, message, data)


def error_response(error: ChatError) -> JSONResponse:
    meta = None
    if isinstance(error, ValidationError) and error.errors:
        meta = {"errors": error.errors}
    return envelope(error.status_code, error.message, meta=meta)


async def _chat_error_handler(request: Request, exc: ChatError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("[HTTP] %s %s failed: %s", request.method, request.url.path, exc.message)
    return error_response(exc)


async def _request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = [
        f"{'.'.join(str(p) for p in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in exc.errors()
    ]
    return error_response(ValidationError("Validation failed", errors))


async def _unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("[HTTP] Unhandled error on %s %s", request.method, request.url.path)
    return error_response(InfrastructureError())


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChatError, _chat_error_handler)
    app.add_exception_handler(RequestValidationError, _request_validation_handler)
    app.add_exception_handler(Exception, _unexpected_error_handler)
