# src/volumedrip/ledger/access.py
from __future__ import annotations

"""Owner and whitelist gate.

state["access"] = {
  "owner": "<account>",
  "whitelist": {"<account>": true, ...},
  "whitelisted": <count of distinct whitelisted accounts>,
}
"""

from typing import Any, Dict

from volumedrip.runtime.errors import ApplyError, UnauthorizedError

Json = Dict[str, Any]


def _as_str(x: Any) -> str:
    return x.strip() if isinstance(x, str) else ""


def ensure_access(state: Json) -> Json:
    acc = state.get("access")
    if not isinstance(acc, dict):
        acc = {}
        state["access"] = acc
    acc.setdefault("owner", "")
    wl = acc.get("whitelist")
    if not isinstance(wl, dict):
        acc["whitelist"] = {}
    acc.setdefault("whitelisted", len(acc["whitelist"]))
    return acc


def _access(state: Json) -> Json:
    acc = state.get("access")
    return acc if isinstance(acc, dict) else {}


def owner(state: Json) -> str:
    return _as_str(_access(state).get("owner"))


def is_owner(state: Json, account: str) -> bool:
    o = owner(state)
    return bool(o) and o == _as_str(account)


def is_whitelisted(state: Json, account: str) -> bool:
    wl = _access(state).get("whitelist")
    if not isinstance(wl, dict):
        return False
    return bool(wl.get(_as_str(account), False))


def whitelisted_count(state: Json) -> int:
    try:
        return int(_access(state).get("whitelisted", 0) or 0)
    except (TypeError, ValueError):
        return 0


def require_owner(state: Json, caller: str) -> None:
    if not is_owner(state, caller):
        raise UnauthorizedError(reason="not_owner", details={"caller": caller})


def require_whitelisted(state: Json, caller: str) -> None:
    if not is_whitelisted(state, caller):
        raise UnauthorizedError(reason="not_whitelisted", details={"caller": caller})


def whitelist(state: Json, caller: str, account: str) -> Json:
    """Owner-only; adding an account twice is a no-op."""
    require_owner(state, caller)
    acct = _as_str(account)
    if not acct:
        raise ApplyError("invalid_payload", "missing_account", {"missing": "account"})

    acc = ensure_access(state)
    wl = acc["whitelist"]
    added = not bool(wl.get(acct, False))
    if added:
        wl[acct] = True
        acc["whitelisted"] = int(acc.get("whitelisted", 0) or 0) + 1
    return {"applied": "WHITELIST", "account": acct, "added": added}


def transfer_ownership(state: Json, caller: str, new_owner: str) -> Json:
    require_owner(state, caller)
    nxt = _as_str(new_owner)
    if not nxt:
        raise ApplyError("invalid_payload", "missing_new_owner", {"missing": "new_owner"})
    acc = ensure_access(state)
    prev = _as_str(acc.get("owner"))
    acc["owner"] = nxt
    return {"applied": "TRANSFER_OWNERSHIP", "previous": prev, "new": nxt}
