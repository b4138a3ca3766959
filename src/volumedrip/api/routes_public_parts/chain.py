from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Request

from volumedrip.api.errors import ApiError
from volumedrip.api.routes_public_parts.common import _executor, _mode
from volumedrip.api.schemas import MineRequest

router = APIRouter()


@router.post("/chain/mine")
def mine(request: Request, body: Optional[MineRequest] = None) -> Dict[str, Any]:
    """Advance the dev chain by `n` empty blocks. Refused in prod."""
    if _mode(request) == "prod":
        raise ApiError.forbidden("mine_disabled", "manual mining is disabled in prod mode", {})
    n = body.n if body is not None else 1
    return _executor(request).mine(n)
