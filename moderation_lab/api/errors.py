"""HTTP-level exceptions and their mapping onto the response envelope.

Queue admission errors come back from ``QueueManager.enqueue`` as values; the
routes raise them so they land here with the same status and code as the
lookup errors defined below.
"""
from __future__ import annotations

import logging
import re
from typing import Dict, Tuple, Type

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .jobs.errors import (
    DuplicateSubmissionError,
    QueueFullError,
    UnknownProviderError,
)
from .schemas.envelope import ApiResponse

logger = logging.getLogger(__name__)


class JobNotFoundError(Exception):
    """No job with that id (or no active job for that email)."""


class StudentNotFoundError(Exception):
    pass


class ProviderNotFoundError(Exception):
    pass


class ConfigValidationError(Exception):
    """A provider patch was empty or carried a rejected key or value."""


_EXCEPTION_STATUS: Dict[Type[Exception], int] = {
    JobNotFoundError: 404,
    StudentNotFoundError: 404,
    ProviderNotFoundError: 404,
    DuplicateSubmissionError: 409,
    UnknownProviderError: 422,
    ConfigValidationError: 422,
    QueueFullError: 429,
}


def error_code(exc_cls: Type[Exception]) -> str:
    """``QueueFullError`` -> ``queue_full``."""
    name = exc_cls.__name__
    if name.endswith("Error"):
        name = name[: -len("Error")]
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def _status_and_code(exc: Exception) -> Tuple[int, str]:
    for exc_cls, status in _EXCEPTION_STATUS.items():
        if isinstance(exc, exc_cls):
            return status, error_code(exc_cls)
    return 500, "internal"


async def _handle_known(request: Request, exc: Exception) -> JSONResponse:
    status, code = _status_and_code(exc)
    if status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    else:
        logger.info("%s %s -> %d %s", request.method, request.url.path, status, code)
    body = ApiResponse.fail(str(exc), code=code)
    return JSONResponse(status_code=status, content=body.model_dump())


def register_error_handlers(app: FastAPI) -> None:
    """Register the envelope handlers plus a catch-all 500."""
    for exc_cls in _EXCEPTION_STATUS:
        app.add_exception_handler(exc_cls, _handle_known)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception) -> JSONResponse:
        logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
        body = ApiResponse.fail("Internal server error", code="internal")
        return JSONResponse(status_code=500, content=body.model_dump())
