# src/volumedrip/ledger/volume.py
from __future__ import annotations

"""Per-epoch volume ledger.

state["volume"] = {
  "totals":   {"<epoch>": <sum of reports in that epoch>},
  "accounts": {"<account>": {"<epoch>": <amount>}},
}

Epoch keys are decimal strings so the state stays canonical JSON.
Entries are created on first report and never deleted.
"""

from typing import Any, Dict, List

from volumedrip.ledger.access import require_whitelisted
from volumedrip.ledger.epoch_clock import DistributionWindow, Ended, current_epoch
from volumedrip.ledger.safe_math import require_u256, u256_add
from volumedrip.runtime.errors import ApplyError

Json = Dict[str, Any]


def _ekey(epoch: int) -> str:
    return str(int(epoch))


def ensure_volume(state: Json) -> Json:
    vol = state.get("volume")
    if not isinstance(vol, dict):
        vol = {}
        state["volume"] = vol
    if not isinstance(vol.get("totals"), dict):
        vol["totals"] = {}
    if not isinstance(vol.get("accounts"), dict):
        vol["accounts"] = {}
    return vol


def _volume(state: Json) -> Json:
    vol = state.get("volume")
    return vol if isinstance(vol, dict) else {}


def total_volume(state: Json, epoch: int) -> int:
    totals = _volume(state).get("totals")
    if not isinstance(totals, dict):
        return 0
    return int(totals.get(_ekey(epoch), 0) or 0)


def account_volume(state: Json, account: str, epoch: int) -> int:
    accounts = _volume(state).get("accounts")
    if not isinstance(accounts, dict):
        return 0
    per = accounts.get(str(account))
    if not isinstance(per, dict):
        return 0
    return int(per.get(_ekey(epoch), 0) or 0)


def reported_epochs(state: Json, account: str) -> List[int]:
    """Epochs in which `account` has a volume entry, ascending."""
    accounts = _volume(state).get("accounts")
    if not isinstance(accounts, dict):
        return []
    per = accounts.get(str(account))
    if not isinstance(per, dict):
        return []
    out: List[int] = []
    for k in per.keys():
        try:
            out.append(int(k))
        except (TypeError, ValueError):
            continue
    out.sort()
    return out


def report_volume(
    state: Json,
    *,
    window: DistributionWindow,
    caller: str,
    account: str,
    amount: int,
    height: int,
) -> Json:
    """Credit `amount` of volume to `account` in the current epoch.

    - caller must be whitelisted
    - after the window has ended the call is accepted and changes nothing
    - amount == 0 changes nothing
    """
    require_whitelisted(state, caller)

    acct = str(account or "").strip()
    if not acct:
        raise ApplyError("invalid_payload", "missing_account", {"missing": "account"})
    amt = require_u256(amount, field="amount")

    st = current_epoch(window, height)
    if isinstance(st, Ended):
        return {"applied": "REPORT_VOLUME", "account": acct, "amount": amt, "epoch": None, "noop": "window_ended"}
    if amt == 0:
        return {"applied": "REPORT_VOLUME", "account": acct, "amount": 0, "epoch": st.index, "noop": "zero_amount"}

    # Both sums are computed before either is written.
    new_account = u256_add(account_volume(state, acct, st.index), amt)
    new_total = u256_add(total_volume(state, st.index), amt)

    vol = ensure_volume(state)
    per = vol["accounts"].get(acct)
    if not isinstance(per, dict):
        per = {}
        vol["accounts"][acct] = per
    per[_ekey(st.index)] = new_account
    vol["totals"][_ekey(st.index)] = new_total

    return {
        "applied": "REPORT_VOLUME",
        "account": acct,
        "amount": amt,
        "epoch": st.index,
        "account_volume": new_account,
        "total_volume": new_total,
    }
