from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from volumedrip.api.errors import ApiError
from volumedrip.ledger.state import DripView

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _view(request: Request) -> DripView:
    return _executor(request).view()


def _mode(request: Request) -> str:
    cfg = getattr(_executor(request), "cfg", None)
    return str(getattr(cfg, "mode", "prod") or "prod").strip().lower()


def _require_epoch(view: DripView, epoch: int) -> int:
    if epoch < 0 or epoch >= view.get_epochs():
        raise ApiError.not_found("epoch_out_of_range", "epoch is outside the distribution window", {
            "epoch": epoch,
            "epochs_total": view.get_epochs(),
        })
    return epoch
