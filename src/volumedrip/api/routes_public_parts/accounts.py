from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from volumedrip.api.errors import api_error_from_apply
from volumedrip.api.routes_public_parts.common import _require_epoch, _view
from volumedrip.runtime.errors import ApplyError

router = APIRouter()


@router.get("/accounts/{account}")
def account(account: str, request: Request, breakdown: bool = False) -> Dict[str, Any]:
    """Balance view of one account at the current height.

    `balance` includes pending rewards; nothing is settled by reading.
    """
    v = _view(request)
    try:
        pending = v.pending_reward(account)
        out: Dict[str, Any] = {
            "ok": True,
            "account": account,
            "height": v.height,
            "balance": v.balance_of(account),
            "settled_balance": v.settled_balance(account),
            "pending_reward": pending,
            "last_settled_epoch": v.last_settled_epoch(account),
            "nonce": v.get_nonce(account),
            "is_whitelisted": v.is_whitelisted(account),
            "is_owner": v.owner() == account,
        }
        if breakdown:
            out["pending_breakdown"] = [{"epoch": e, "amount": a} for e, a in v.pending_breakdown(account)]
    except ApplyError as e:
        raise api_error_from_apply(e) from e
    return out


@router.get("/accounts/{account}/volume/{epoch}")
def account_volume(account: str, epoch: int, request: Request) -> Dict[str, Any]:
    v = _view(request)
    e = _require_epoch(v, epoch)
    return {
        "ok": True,
        "account": account,
        "epoch": e,
        "volume": v.account_volume(account, e),
        "total_volume": v.total_volume(e),
    }


@router.get("/accounts/{owner}/allowance/{spender}")
def allowance(owner: str, spender: str, request: Request) -> Dict[str, Any]:
    v = _view(request)
    return {"ok": True, "owner": owner, "spender": spender, "allowance": v.allowance(owner, spender)}
