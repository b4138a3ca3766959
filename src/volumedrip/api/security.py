from __future__ import annotations

import os

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from volumedrip.api.errors import ApiError

# Reads never carry a body worth limiting; only these are checked.
_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
_DEFAULT_MAX_BYTES = 64 * 1024


def max_request_bytes() -> int:
    raw = (os.environ.get("VOLUMEDRIP_MAX_REQUEST_BYTES") or "").strip()
    try:
        return int(raw) if raw else _DEFAULT_MAX_BYTES
    except ValueError:
        return _DEFAULT_MAX_BYTES


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject request bodies above VOLUMEDRIP_MAX_REQUEST_BYTES with 413.

    Content-Length is trusted when present; chunked bodies are buffered
    and measured.
    """

    async def dispatch(self, request: Request, call_next):
        if request.method.upper() not in _BODY_METHODS:
            return await call_next(request)

        limit = max_request_bytes()
        declared = request.headers.get("content-length", "")
        if declared.isdigit() and int(declared) > limit:
            return self._too_large(limit)
        if len(await request.body()) > limit:
            return self._too_large(limit)
        return await call_next(request)

    @staticmethod
    def _too_large(limit: int) -> JSONResponse:
        err = ApiError(413, "tx_too_large", "request body too large", {"max_bytes": limit})
        return JSONResponse(status_code=err.status_code, content=err.to_json())
