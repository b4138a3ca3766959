from __future__ import annotations

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple

from volumedrip.ledger import access, emission, token, volume
from volumedrip.ledger.epoch_clock import DistributionWindow, EpochState, current_epoch


Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class DripView:
    """
    Immutable read-only view of the ledger at a fixed height.

    All balance queries include pending (unsettled) rewards computed at
    `height`; nothing here writes to state.
    """

    window: DistributionWindow
    height: int
    state: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_state(cls, state: Dict[str, Any], *, height: int | None = None) -> "DripView":
        st = copy.deepcopy(state)
        h = int(st.get("height", 0) or 0) if height is None else int(height)
        return cls(window=DistributionWindow.from_json(st.get("window") or {}), height=h, state=st)

    # -- window / clock --------------------------------------------------

    @property
    def start_block(self) -> int:
        return int(self.window.start_block)

    @property
    def end_block(self) -> int:
        return int(self.window.end_block)

    @property
    def epoch_length(self) -> int:
        return int(self.window.epoch_length)

    @property
    def epoch_emission(self) -> int:
        return int(self.window.epoch_emission)

    def get_current_epoch(self) -> EpochState:
        return current_epoch(self.window, self.height)

    def get_epochs(self) -> int:
        return int(self.window.epochs_total)

    # -- token -----------------------------------------------------------

    def name(self) -> str:
        return token.name(self.state)

    def symbol(self) -> str:
        return token.symbol(self.state)

    def decimals(self) -> int:
        return token.decimals(self.state)

    def total_supply(self) -> int:
        return token.total_supply(self.state)

    def settled_balance(self, account: str) -> int:
        return token.settled_balance(self.state, account)

    def pending_reward(self, account: str) -> int:
        return emission.compute_pending(self.state, window=self.window, account=account, height=self.height)

    def pending_breakdown(self, account: str) -> List[Tuple[int, int]]:
        return emission.pending_breakdown(self.state, window=self.window, account=account, height=self.height)

    def balance_of(self, account: str) -> int:
        return emission.balance_of(self.state, window=self.window, account=account, height=self.height)

    def last_settled_epoch(self, account: str) -> int:
        return emission.last_settled_epoch(self.state, account)

    def allowance(self, owner: str, spender: str) -> int:
        return token.allowance(self.state, owner, spender)

    # -- volume ----------------------------------------------------------

    def total_volume(self, epoch: int) -> int:
        return volume.total_volume(self.state, epoch)

    def account_volume(self, account: str, epoch: int) -> int:
        return volume.account_volume(self.state, account, epoch)

    # -- access ----------------------------------------------------------

    def owner(self) -> str:
        return access.owner(self.state)

    def is_whitelisted(self, account: str) -> bool:
        return access.is_whitelisted(self.state, account)

    def whitelisted(self) -> int:
        return access.whitelisted_count(self.state)

    def get_nonce(self, account: str) -> int:
        nonces = self.state.get("nonces")
        if not isinstance(nonces, dict):
            return 0
        try:
            return int(nonces.get(str(account), 0) or 0)
        except (TypeError, ValueError):
            return 0
