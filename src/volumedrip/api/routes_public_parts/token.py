from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from volumedrip.api.routes_public_parts.common import _view

router = APIRouter()


@router.get("/token")
def token_info(request: Request) -> Dict[str, Any]:
    v = _view(request)
    return {
        "ok": True,
        "name": v.name(),
        "symbol": v.symbol(),
        "decimals": v.decimals(),
        "total_supply": v.total_supply(),
        "owner": v.owner(),
        "whitelisted": v.whitelisted(),
    }
