"""Mapping of engine errors to HTTP responses."""

import logging
from typing import Any, Dict, Optional

from fastapi import Request
from fastapi.responses import JSONResponse

from closeflow.core.errors import (
    CloseflowError,
    PrerequisiteNotMet,
    TasksIncomplete,
    TransientIO,
    ValidationError,
)

logger = logging.getLogger(__name__)

RETRY_MESSAGE = "The service is temporarily unavailable. Please try again."


def error_body(exc: CloseflowError) -> Dict[str, Any]:
    body: Dict[str, Any] = {"error": exc.code, "detail": exc.message}
    if isinstance(exc, TransientIO):
        body["detail"] = RETRY_MESSAGE
    elif isinstance(exc, ValidationError) and exc.field:
        body["field"] = exc.field
    elif isinstance(exc, PrerequisiteNotMet) and exc.missing:
        body["missing"] = exc.missing
    elif isinstance(exc, TasksIncomplete):
        body["pending"] = exc.pending
    return body


def error_response(exc: CloseflowError, status_code: Optional[int] = None) -> JSONResponse:
    return JSONResponse(status_code=status_code or exc.http_status, content=error_body(exc))


async def closeflow_error_handler(request: Request, exc: CloseflowError) -> JSONResponse:
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected (%s): %s", request.method, request.url.path, exc.code, exc.message)
    return error_response(exc)
