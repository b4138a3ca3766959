# src/volumedrip/ledger/emission.py
from __future__ import annotations

"""Lazy, per-epoch emission accounting.

Each fully elapsed epoch e distributes `epoch_emission` among the accounts
that reported volume in it:

    share(a, e) = floor(epoch_emission * volume[a][e] / total_volume[e])

An account's pending reward is the sum of its shares over
[last_settled_epoch, effective_epoch). Nothing is stored for it: queries
recompute it from frozen epoch data, and settlement mints it into the token
ledger and moves the checkpoint to effective_epoch.

Rules:
  - the current (still mutable) epoch never pays
  - an epoch with zero total volume pays nobody; its emission is gone
  - the rounding remainder of each epoch is left unclaimed
  - emission * volume is overflow-checked before dividing

state["settlement"] = {"<account>": <last settled epoch>}
"""

from typing import Any, Dict, List, Tuple

from volumedrip.ledger.epoch_clock import DistributionWindow, effective_epoch
from volumedrip.ledger.safe_math import u256_add, u256_mul_div_down
from volumedrip.ledger.token import mint, settled_balance
from volumedrip.ledger.volume import account_volume, reported_epochs, total_volume

Json = Dict[str, Any]


def last_settled_epoch(state: Json, account: str) -> int:
    s = state.get("settlement")
    if not isinstance(s, dict):
        return 0
    try:
        return int(s.get(str(account), 0) or 0)
    except (TypeError, ValueError):
        return 0


def _ensure_settlement(state: Json) -> Json:
    s = state.get("settlement")
    if not isinstance(s, dict):
        s = {}
        state["settlement"] = s
    return s


def epoch_share(state: Json, *, window: DistributionWindow, account: str, epoch: int) -> int:
    """Reward of `account` for a single epoch (0 if the epoch had no volume)."""
    total = total_volume(state, epoch)
    if total <= 0:
        return 0
    mine = account_volume(state, account, epoch)
    if mine <= 0:
        return 0
    return u256_mul_div_down(int(window.epoch_emission), mine, total)


def pending_breakdown(state: Json, *, window: DistributionWindow, account: str, height: int) -> List[Tuple[int, int]]:
    """Per-epoch (epoch, amount) contributions to the pending reward.

    Epochs that contribute nothing are omitted.
    """
    start = last_settled_epoch(state, account)
    stop = effective_epoch(window, height)
    out: List[Tuple[int, int]] = []
    # Only epochs the account reported in can contribute.
    for e in reported_epochs(state, account):
        if e < start or e >= stop:
            continue
        amt = epoch_share(state, window=window, account=account, epoch=e)
        if amt > 0:
            out.append((e, amt))
    return out


def compute_pending(state: Json, *, window: DistributionWindow, account: str, height: int) -> int:
    """Reward earned but not yet settled. Pure; never mutates state."""
    reward = 0
    for _e, amt in pending_breakdown(state, window=window, account=account, height=height):
        reward = u256_add(reward, amt)
    return reward


def balance_of(state: Json, *, window: DistributionWindow, account: str, height: int) -> int:
    return u256_add(
        settled_balance(state, account),
        compute_pending(state, window=window, account=account, height=height),
    )


def commit_pending(state: Json, *, window: DistributionWindow, account: str, height: int) -> Json:
    """Settle `account`: mint its pending reward and advance its checkpoint.

    A second call at the same height mints nothing.
    """
    acct = str(account)
    start = last_settled_epoch(state, acct)
    stop = effective_epoch(window, height)
    if stop <= start:
        return {"account": acct, "minted": 0, "from_epoch": start, "to_epoch": start, "events": []}

    reward = compute_pending(state, window=window, account=acct, height=height)
    ev = mint(state, acct, reward)
    _ensure_settlement(state)[acct] = stop

    return {
        "account": acct,
        "minted": reward,
        "from_epoch": start,
        "to_epoch": stop,
        "events": [ev] if ev is not None else [],
    }


def settle(state: Json, *, window: DistributionWindow, caller: str, height: int) -> Json:
    """Explicit settlement requested by the account itself."""
    out = commit_pending(state, window=window, account=caller, height=height)
    return {"applied": "SETTLE", **out}
