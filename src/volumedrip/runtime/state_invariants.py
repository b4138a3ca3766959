# src/volumedrip/runtime/state_invariants.py
from __future__ import annotations

"""State normalization and ledger invariants.

Ledger state is a nested JSON dict mutated only by the ledger functions. This
module is the one place that:

  - validates the state is dict-like and creates the top-level containers
  - checks the bookkeeping invariants that must hold after every commit
"""

from collections.abc import MutableMapping
from typing import Any, Dict, List

Json = Dict[str, Any]

_CONTAINERS = ("token", "access", "volume", "settlement", "nonces")


def ensure_state(st: Any) -> Json:
    """Ensure `st` is a dict with every top-level container present.

    Raises:
        TypeError: if st (or one of its containers) has the wrong type
    """
    if not isinstance(st, MutableMapping):
        raise TypeError(f"state must be MutableMapping, got {type(st)}")

    if not isinstance(st.get("window"), dict):
        raise TypeError("state['window'] must be dict")

    for key in _CONTAINERS:
        cur = st.get(key)
        if cur is None:
            st[key] = {}
        elif not isinstance(cur, dict):
            raise TypeError(f"state[{key!r}] must be dict, got {type(cur)}")

    st.setdefault("height", 0)
    return st  # type: ignore[return-value]


def check_invariants(st: Json) -> List[str]:
    """Return a list of violated invariants (empty when the state is consistent).

    - sum of settled balances == total_supply
    - for every epoch, sum of account volumes == totalVolume[e]
    - whitelisted count == number of whitelist entries
    - no negative amounts
    """
    problems: List[str] = []

    tok = st.get("token") if isinstance(st.get("token"), dict) else {}
    balances = tok.get("balances") if isinstance(tok.get("balances"), dict) else {}
    bal_sum = 0
    for acct, v in balances.items():
        if int(v) < 0:
            problems.append(f"negative_balance:{acct}")
        bal_sum += int(v)
    if bal_sum != int(tok.get("total_supply", 0) or 0):
        problems.append("supply_mismatch")

    vol = st.get("volume") if isinstance(st.get("volume"), dict) else {}
    totals = vol.get("totals") if isinstance(vol.get("totals"), dict) else {}
    accounts = vol.get("accounts") if isinstance(vol.get("accounts"), dict) else {}
    sums: Dict[str, int] = {}
    for per in accounts.values():
        if not isinstance(per, dict):
            continue
        for e, v in per.items():
            sums[str(e)] = sums.get(str(e), 0) + int(v)
    for e in set(sums) | set(str(k) for k in totals):
        if sums.get(e, 0) != int(totals.get(e, 0) or 0):
            problems.append(f"volume_mismatch:{e}")

    acc = st.get("access") if isinstance(st.get("access"), dict) else {}
    wl = acc.get("whitelist") if isinstance(acc.get("whitelist"), dict) else {}
    if int(acc.get("whitelisted", 0) or 0) != sum(1 for v in wl.values() if v):
        problems.append("whitelist_count_mismatch")

    return problems


__all__ = ["ensure_state", "check_invariants"]
