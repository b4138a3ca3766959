from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from volumedrip.api.routes_public_parts.common import _require_epoch, _view
from volumedrip.ledger.epoch_clock import Ended, epoch_state_json

router = APIRouter()


@router.get("/window")
def window(request: Request) -> Dict[str, Any]:
    v = _view(request)
    return {"ok": True, "height": v.height, "window": v.window.to_json()}


@router.get("/epochs")
def epochs(request: Request) -> Dict[str, Any]:
    v = _view(request)
    return {"ok": True, "epochs": v.get_epochs(), "epoch_length": v.epoch_length, "epoch_emission": v.epoch_emission}


@router.get("/epochs/current")
def current(request: Request) -> Dict[str, Any]:
    v = _view(request)
    return {"ok": True, "height": v.height, **epoch_state_json(v.get_current_epoch())}


@router.get("/epochs/{epoch}")
def epoch_detail(epoch: int, request: Request) -> Dict[str, Any]:
    """Per-epoch detail: block range, total reported volume and status
    (elapsed / current / future) relative to the current height."""
    v = _view(request)
    e = _require_epoch(v, epoch)

    st = v.get_current_epoch()
    if isinstance(st, Ended) or e < st.index:
        status = "elapsed"
    elif e == st.index:
        status = "current"
    else:
        status = "future"

    start = v.start_block + e * v.epoch_length
    return {
        "ok": True,
        "epoch": e,
        "start_block": start,
        "end_block": start + v.epoch_length,
        "total_volume": v.total_volume(e),
        "emission": v.epoch_emission,
        "status": status,
    }
