from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from volumedrip.api.routes_public_parts.common import _executor, _mode

router = APIRouter()


@router.get("/health")
def health(request: Request) -> Dict[str, Any]:
    ex = _executor(request)
    loop = getattr(request.app.state, "block_loop", None)
    loop_status = loop.status() if loop is not None else None
    ok = not (loop_status or {}).get("unhealthy", False)
    return {
        "ok": ok,
        "chain_id": ex.chain_id,
        "mode": _mode(request),
        "height": ex.height,
        "block_loop": loop_status,
    }
