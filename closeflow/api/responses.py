"""Versioned JSON responses and spreadsheet downloads."""

import asyncio
import functools
import logging
import threading
from typing import Any, Callable

from fastapi import Request, Response, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from closeflow.core.errors import ExportCancelled

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def etag_for(batch_id: str, revision: int) -> str:
    return f'W/"{batch_id}-{revision}"'


def versioned_response(request: Request, content: Any, batch_id: str, revision: int) -> Response:
    """
    JSON response tagged with the batch revision.

    Returns 304 when the caller's If-None-Match already names this revision.
    """
    etag = etag_for(batch_id, revision)
    if_none_match = request.headers.get("if-none-match")
    if if_none_match:
        tags = [tag.strip() for tag in if_none_match.split(",")]
        if etag in tags or "*" in tags:
            return Response(status_code=status.HTTP_304_NOT_MODIFIED, headers={"ETag": etag})
    return JSONResponse(content=jsonable_encoder(content), headers={"ETag": etag})


def xlsx_response(content: bytes, filename: str) -> Response:
    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


async def run_export(export: Callable[..., bytes], *args: Any, timeout: float, **kwargs: Any) -> bytes:
    """
    Run a blocking export on the default executor, bounded by ``timeout`` seconds.

    The executor future is abandoned on timeout rather than awaited; the
    export's cancel event is then set so the worker thread stops at its next
    row, and ExportCancelled is raised.
    """
    cancel_event = threading.Event()
    loop = asyncio.get_running_loop()
    future = loop.run_in_executor(
        None, functools.partial(export, *args, cancel_event=cancel_event, **kwargs)
    )
    try:
        return await asyncio.wait_for(future, timeout=timeout)
    except asyncio.TimeoutError:
        cancel_event.set()
        logger.warning("Export %s timed out after %ss", getattr(export, "__name__", export), timeout)
        raise ExportCancelled("Export timed out") from None
