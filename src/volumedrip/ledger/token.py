# src/volumedrip/ledger/token.py
from __future__ import annotations

"""Fungible token ledger (ERC-20-like).

Stored balances here are *settled* balances only. Rewards earned from volume
are folded in lazily by volumedrip.ledger.emission.commit_pending, which every
debit path below calls before touching the debited account.

state["token"] = {
  "name": str, "symbol": str, "decimals": int,
  "total_supply": int,
  "balances":   {"<account>": int},
  "allowances": {"<owner>": {"<spender>": int}},
}
"""

from typing import Any, Dict, Optional

from volumedrip.ledger.constants import TOKEN_DECIMALS, ZERO_ADDRESS
from volumedrip.ledger.epoch_clock import DistributionWindow
from volumedrip.ledger.safe_math import require_u256, u256_add, u256_sub
from volumedrip.runtime.errors import ApplyError, InsufficientBalanceError

Json = Dict[str, Any]


def _as_str(x: Any) -> str:
    return x.strip() if isinstance(x, str) else ""


def _require_account(v: Any, field: str) -> str:
    s = _as_str(v)
    if not s:
        raise ApplyError("invalid_payload", f"missing_{field}", {"missing": field})
    return s


def ensure_token(state: Json, *, name: str = "", symbol: str = "") -> Json:
    tok = state.get("token")
    if not isinstance(tok, dict):
        tok = {}
        state["token"] = tok
    tok.setdefault("name", str(name))
    tok.setdefault("symbol", str(symbol))
    tok.setdefault("decimals", TOKEN_DECIMALS)
    tok.setdefault("total_supply", 0)
    if not isinstance(tok.get("balances"), dict):
        tok["balances"] = {}
    if not isinstance(tok.get("allowances"), dict):
        tok["allowances"] = {}
    return tok


def _token(state: Json) -> Json:
    tok = state.get("token")
    return tok if isinstance(tok, dict) else {}


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


def name(state: Json) -> str:
    return str(_token(state).get("name") or "")


def symbol(state: Json) -> str:
    return str(_token(state).get("symbol") or "")


def decimals(state: Json) -> int:
    return int(_token(state).get("decimals", TOKEN_DECIMALS))


def total_supply(state: Json) -> int:
    return int(_token(state).get("total_supply", 0) or 0)


def settled_balance(state: Json, account: str) -> int:
    bals = _token(state).get("balances")
    if not isinstance(bals, dict):
        return 0
    return int(bals.get(str(account), 0) or 0)


def allowance(state: Json, owner: str, spender: str) -> int:
    allows = _token(state).get("allowances")
    if not isinstance(allows, dict):
        return 0
    per = allows.get(str(owner))
    if not isinstance(per, dict):
        return 0
    return int(per.get(str(spender), 0) or 0)


# ---------------------------------------------------------------------------
# Mutations
# ---------------------------------------------------------------------------


def mint(state: Json, account: str, amount: int) -> Optional[Json]:
    """Credit `amount` to `account` and to total supply.

    Returns a Transfer event from the zero address, or None for amount == 0.
    """
    acct = _require_account(account, "account")
    amt = require_u256(amount)
    if amt == 0:
        return None

    new_total = u256_add(total_supply(state), amt)
    new_bal = u256_add(settled_balance(state, acct), amt)

    tok = ensure_token(state)
    tok["total_supply"] = new_total
    tok["balances"][acct] = new_bal
    return {"event": "Transfer", "from": ZERO_ADDRESS, "to": acct, "value": amt}


def _move(state: Json, src: str, dst: str, amount: int) -> None:
    have = settled_balance(state, src)
    if have < amount:
        raise InsufficientBalanceError(details={"account": src, "balance": have, "amount": amount})
    tok = ensure_token(state)
    if src == dst:
        return
    new_src = u256_sub(have, amount)
    new_dst = u256_add(settled_balance(state, dst), amount)
    tok["balances"][src] = new_src
    tok["balances"][dst] = new_dst


def transfer(
    state: Json,
    *,
    window: DistributionWindow,
    caller: str,
    to: str,
    amount: int,
    height: int,
) -> Json:
    """Settle `caller`, then move `amount` of settled balance to `to`.

    The recipient's own pending rewards stay pending.
    """
    from volumedrip.ledger.emission import commit_pending  # local import (cycle)

    src = _require_account(caller, "caller")
    dst = _require_account(to, "to")
    amt = require_u256(amount)

    settle = commit_pending(state, window=window, account=src, height=height)
    _move(state, src, dst, amt)

    events = list(settle.get("events") or [])
    events.append({"event": "Transfer", "from": src, "to": dst, "value": amt})
    return {"applied": "TRANSFER", "from": src, "to": dst, "amount": amt, "settled": settle["minted"], "events": events}


def approve(state: Json, *, caller: str, spender: str, amount: int) -> Json:
    owner = _require_account(caller, "caller")
    sp = _require_account(spender, "spender")
    amt = require_u256(amount)

    tok = ensure_token(state)
    per = tok["allowances"].get(owner)
    if not isinstance(per, dict):
        per = {}
        tok["allowances"][owner] = per
    per[sp] = amt
    return {
        "applied": "APPROVE",
        "owner": owner,
        "spender": sp,
        "amount": amt,
        "events": [{"event": "Approval", "owner": owner, "spender": sp, "value": amt}],
    }


def transfer_from(
    state: Json,
    *,
    window: DistributionWindow,
    caller: str,
    owner: str,
    to: str,
    amount: int,
    height: int,
) -> Json:
    """Spender (`caller`) moves `amount` from `owner` to `to` using allowance."""
    from volumedrip.ledger.emission import commit_pending  # local import (cycle)

    sp = _require_account(caller, "caller")
    src = _require_account(owner, "owner")
    dst = _require_account(to, "to")
    amt = require_u256(amount)

    current = allowance(state, src, sp)
    if current < amt:
        raise InsufficientBalanceError(
            code="allowance_low",
            reason="allowance_too_low",
            details={"owner": src, "spender": sp, "allowance": current, "amount": amt},
        )

    settle = commit_pending(state, window=window, account=src, height=height)
    _move(state, src, dst, amt)

    tok = ensure_token(state)
    tok["allowances"].setdefault(src, {})[sp] = u256_sub(current, amt)

    events = list(settle.get("events") or [])
    events.append({"event": "Transfer", "from": src, "to": dst, "value": amt})
    return {
        "applied": "TRANSFER_FROM",
        "spender": sp,
        "from": src,
        "to": dst,
        "amount": amt,
        "settled": settle["minted"],
        "events": events,
    }
