# src/volumedrip/runtime/domain_apply.py
# ---------------------------------------------------------------------------
# Public, stable import path for applying tx envelopes.
# ---------------------------------------------------------------------------

from __future__ import annotations

import copy
from typing import Any, Callable, Dict

from volumedrip.ledger import access, emission, token, volume
from volumedrip.ledger.constants import U256_MAX
from volumedrip.ledger.epoch_clock import DistributionWindow
from volumedrip.runtime.errors import ApplyError
from volumedrip.runtime.state_invariants import ensure_state
from volumedrip.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]
ApplyFn = Callable[[Json, TxEnvelope, DistributionWindow, int], Json]

_MAX_AMOUNT_DIGITS = len(str(U256_MAX))


def _payload_account(env: TxEnvelope, key: str) -> str:
    v = env.payload.get(key)
    if not isinstance(v, str) or not v.strip():
        raise ApplyError("invalid_payload", f"missing_{key}", {"tx_type": env.tx_type, "missing": key})
    return v.strip()


def _payload_amount(env: TxEnvelope, key: str = "amount") -> int:
    """Amounts may be JSON ints or decimal strings (u256 exceeds JS number range)."""
    if key not in env.payload:
        raise ApplyError("invalid_payload", f"missing_{key}", {"tx_type": env.tx_type, "missing": key})
    v = env.payload.get(key)
    if isinstance(v, str):
        s = v.strip()
        # ASCII digits only; u256 has at most 78 decimal digits.
        if s.isascii() and s.isdigit() and len(s) <= _MAX_AMOUNT_DIGITS:
            return int(s)
        raise ApplyError("invalid_payload", f"{key}_not_int", {"tx_type": env.tx_type, "field": key})
    if isinstance(v, bool) or not isinstance(v, int):
        raise ApplyError("invalid_payload", f"{key}_not_int", {"tx_type": env.tx_type, "field": key})
    return v


def _apply_report_volume(state: Json, env: TxEnvelope, window: DistributionWindow, height: int) -> Json:
    return volume.report_volume(
        state,
        window=window,
        caller=env.signer,
        account=_payload_account(env, "account"),
        amount=_payload_amount(env),
        height=height,
    )


def _apply_transfer(state: Json, env: TxEnvelope, window: DistributionWindow, height: int) -> Json:
    return token.transfer(
        state,
        window=window,
        caller=env.signer,
        to=_payload_account(env, "to"),
        amount=_payload_amount(env),
        height=height,
    )


def _apply_approve(state: Json, env: TxEnvelope, window: DistributionWindow, height: int) -> Json:
    return token.approve(
        state,
        caller=env.signer,
        spender=_payload_account(env, "spender"),
        amount=_payload_amount(env),
    )


def _apply_transfer_from(state: Json, env: TxEnvelope, window: DistributionWindow, height: int) -> Json:
    return token.transfer_from(
        state,
        window=window,
        caller=env.signer,
        owner=_payload_account(env, "owner"),
        to=_payload_account(env, "to"),
        amount=_payload_amount(env),
        height=height,
    )


def _apply_settle(state: Json, env: TxEnvelope, window: DistributionWindow, height: int) -> Json:
    return emission.settle(state, window=window, caller=env.signer, height=height)


def _apply_whitelist(state: Json, env: TxEnvelope, window: DistributionWindow, height: int) -> Json:
    return access.whitelist(state, env.signer, _payload_account(env, "account"))


def _apply_transfer_ownership(state: Json, env: TxEnvelope, window: DistributionWindow, height: int) -> Json:
    return access.transfer_ownership(state, env.signer, _payload_account(env, "new_owner"))


_ROUTES: Dict[str, ApplyFn] = {
    "REPORT_VOLUME": _apply_report_volume,
    "TRANSFER": _apply_transfer,
    "APPROVE": _apply_approve,
    "TRANSFER_FROM": _apply_transfer_from,
    "SETTLE": _apply_settle,
    "WHITELIST": _apply_whitelist,
    "TRANSFER_OWNERSHIP": _apply_transfer_ownership,
}

SUPPORTED_TX_TYPES = frozenset(_ROUTES)


def _consume_nonce(state: Json, env: TxEnvelope) -> None:
    state.setdefault("nonces", {})[env.signer] = int(env.nonce)


def apply_tx(state: Json, env: Any, *, height: int) -> Json:
    """Route a tx envelope to its ledger function at `height`.

    Unknown tx types fail closed. On success the signer's nonce is consumed.
    Mutates `state` in place; use apply_tx_atomic for rollback on failure.
    """
    if not isinstance(env, TxEnvelope):
        env = TxEnvelope.from_json(env)

    fn = _ROUTES.get(env.tx_type)
    if fn is None:
        raise ApplyError("tx_unimplemented", "tx_type_not_supported", {"tx_type": env.tx_type})

    ensure_state(state)
    window = DistributionWindow.from_json(state["window"])
    meta = fn(state, env, window, int(height))
    _consume_nonce(state, env)
    return meta


def apply_tx_atomic(state: Json, env: Any, *, height: int) -> Json:
    """Apply a tx with fail-atomic semantics.

    On ApplyError `state` is left untouched, nonce included.
    """
    snapshot = copy.deepcopy(state)
    meta = apply_tx(snapshot, env, height=height)

    # Commit in place so callers holding references to `state` see the update.
    state.clear()
    state.update(snapshot)
    return meta


__all__ = ["ApplyError", "SUPPORTED_TX_TYPES", "apply_tx", "apply_tx_atomic"]
