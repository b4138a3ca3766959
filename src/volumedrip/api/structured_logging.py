# src/volumedrip/api/structured_logging.py
from __future__ import annotations

import logging
import os
import time
import uuid
from typing import Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

from volumedrip.log_events import log_event

_CONFIGURED_FLAG = "_volumedrip_configured"


def configure_structured_logging(level_name: Optional[str] = None) -> None:
    """Send JSONL log events to stderr at `level_name`
    (else VOLUMEDRIP_LOG_LEVEL, default INFO). Calling again only
    changes the level.
    """
    name = (level_name or os.environ.get("VOLUMEDRIP_LOG_LEVEL") or "INFO").strip().upper()
    level = logging.getLevelName(name)
    if not isinstance(level, int):
        level = logging.INFO

    root = logging.getLogger()
    root.setLevel(level)
    if getattr(root, _CONFIGURED_FLAG, False):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    root.handlers = [handler]
    setattr(root, _CONFIGURED_FLAG, True)


class RequestLogMiddleware(BaseHTTPMiddleware):
    """One `http_request` event per request, tagged with a request id.

    The id comes from the caller's x-request-id header when present and is
    echoed back on the response.
    """

    _logger = logging.getLogger("volumedrip.http")

    async def dispatch(self, request: Request, call_next):
        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.request_id = request_id

        status = 500
        try:
            response = await call_next(request)
            status = response.status_code
            response.headers.setdefault("x-request-id", request_id)
            return response
        finally:
            log_event(
                self._logger,
                "http_request",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                status=status,
                duration_ms=int((time.monotonic() - started) * 1000),
            )
