"""
NewsBot - HTTP Error Mapping
==============================
Converts ``NewsBotError`` subclasses into JSON error responses using
each class's ``http_status``:

    InvalidInput / InvalidQuery  → 400
    SessionNotFound              → 404
    DownstreamRateLimited        → 429
    DownstreamError              → 502
    DownstreamUnavailable        → 503
    DownstreamTimeout            → 504

Body shape: ``{"success": false, "error": {"error", "message", "details"}}``.
"""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from newsbot.src.core.exceptions import DownstreamError, NewsBotError
from newsbot.src.utils.logger import get_logger

logger = get_logger(__name__)


async def newsbot_error_handler(request: Request, exc: NewsBotError) -> JSONResponse:
    if isinstance(exc, DownstreamError):
        logger.error("[API] %s %s failed at stage=%s: %s", request.method, request.url.path, exc.stage, exc.message)
    else:
        logger.info("[API] %s %s rejected (%s): %s", request.method, request.url.path, exc.error_code, exc.message)
    return JSONResponse(status_code=exc.http_status, content={"success": False, "error": exc.to_dict()})


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(NewsBotError, newsbot_error_handler)  # type: ignore[arg-type]
