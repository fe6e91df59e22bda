"""Request logging middleware for FastAPI.

Logs every API request with:
- Caller identity (X-User header)
- Action performed (HTTP method mapped to an action name)
- Batch accessed
- Response status and duration
- Client IP address
"""

import logging
import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)


# Map HTTP methods to action names
METHOD_TO_ACTION = {
    "GET": "read",
    "POST": "create",
    "PUT": "update",
    "PATCH": "update",
    "DELETE": "delete",
}

# Paths that should not be logged
EXCLUDED_PATHS = {
    "/health",
    "/health/live",
    "/health/ready",
    "/docs",
    "/redoc",
    "/openapi.json",
    "/favicon.ico",
}

# Route prefixes whose next path segment is a batch id
BATCH_SCOPED_RESOURCES = {"report-batches", "monthly-workflow"}


def get_client_ip(request: Request) -> str:
    """Extract client IP from request, handling proxies."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        # The first entry is the original client
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "unknown"


def extract_resource_info(path: str) -> tuple[str, Optional[str]]:
    """
    Extract resource type and batch id from a request path.

    Returns:
        Tuple of (resource_type, batch_id)
    """
    parts = [p for p in path.strip("/").split("/") if p]

    if parts and parts[0] == "v1":
        parts = parts[1:]

    if not parts:
        return "root", None

    resource_type = parts[0]
    batch_id = None
    if resource_type in BATCH_SCOPED_RESOURCES and len(parts) > 1:
        batch_id = parts[1]
    elif resource_type == "approvals" and len(parts) > 1:
        if parts[1].startswith("level") or parts[1] == "reject-final":
            batch_id = parts[2] if len(parts) > 2 else None
        elif parts[1] != "current-batch":
            batch_id = parts[1]

    return resource_type, batch_id


def log_level_for(status_code: int) -> int:
    """Log level based on response status."""
    if status_code >= 500:
        return logging.ERROR
    if status_code in (401, 403):
        return logging.WARNING
    if status_code >= 400:
        return logging.INFO
    return logging.DEBUG if status_code == 304 else logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Middleware that logs all API requests.

    Each request gets a short id returned in the X-Request-ID header so log
    lines can be matched to client reports.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in EXCLUDED_PATHS:
            return await call_next(request)

        request_id = str(uuid.uuid4())[:8]
        start_time = time.time()

        resource_type, batch_id = extract_resource_info(request.url.path)
        action = METHOD_TO_ACTION.get(request.method, request.method.lower())
        user = request.headers.get("x-user") or "anonymous"

        request.state.request_context = {
            "request_id": request_id,
            "action": action,
            "resource_type": resource_type,
            "batch_id": batch_id,
            "user": user,
            "ip_address": get_client_ip(request),
        }

        response = await call_next(request)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.log(
            log_level_for(response.status_code),
            "[%s] %s %s %s%s by %s -> %d (%dms)",
            request_id,
            action,
            resource_type,
            request.url.path,
            f" batch={batch_id}" if batch_id else "",
            user,
            response.status_code,
            duration_ms,
        )
        response.headers["X-Request-ID"] = request_id
        return response
