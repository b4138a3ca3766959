# src/volumedrip/runtime/genesis.py
from __future__ import annotations

from typing import Any, Dict, Iterable, Optional

from volumedrip.ledger import token
from volumedrip.ledger.access import ensure_access
from volumedrip.ledger.epoch_clock import DistributionWindow
from volumedrip.ledger.volume import ensure_volume
from volumedrip.runtime.chain_config import DripConfig
from volumedrip.runtime.state_invariants import ensure_state

Json = Dict[str, Any]


def build_genesis_state(cfg: DripConfig, *, whitelist: Optional[Iterable[str]] = None) -> Json:
    """Deploy: fix the distribution window at `genesis_height` and mint the
    initial supply to the owner.

    `whitelist` pre-registers reporters at genesis (tests and dev chains);
    on a live chain the owner adds them with WHITELIST txs.
    """
    window = DistributionWindow(
        start_block=int(cfg.genesis_height),
        epoch_length=int(cfg.epoch_length),
        epoch_emission=int(cfg.epoch_emission),
        distribution_duration=int(cfg.distribution_duration),
    )

    state: Json = {
        "chain_id": str(cfg.chain_id),
        "height": int(cfg.genesis_height),
        "window": window.to_json(),
    }
    ensure_state(state)
    token.ensure_token(state, name=cfg.name, symbol=cfg.symbol)
    ensure_volume(state)

    acc = ensure_access(state)
    acc["owner"] = str(cfg.owner).strip()

    token.mint(state, acc["owner"], int(cfg.initial_supply))

    for acct in whitelist or ():
        a = str(acct).strip()
        if a and not acc["whitelist"].get(a):
            acc["whitelist"][a] = True
            acc["whitelisted"] = int(acc["whitelisted"]) + 1

    return state


__all__ = ["build_genesis_state"]
