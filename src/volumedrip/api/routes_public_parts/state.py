from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from volumedrip.api.routes_public_parts.common import _executor

router = APIRouter()


@router.get("/state/snapshot")
def snapshot(request: Request) -> Dict[str, Any]:
    ex = _executor(request)
    st = ex.read_state()
    return {"ok": True, "height": int(st.get("height", 0) or 0), "state": st}
