# src/volumedrip/ledger/epoch_clock.py
from __future__ import annotations

"""Epoch clock over a fixed block-height distribution window.

The clock is a pure function of (window, height). It has two states:

  - Active(index): start_block <= height < end_block
  - ENDED:         height >= end_block (terminal)

There is no transition call; every query re-evaluates the height.

ENDED is a distinct value, not a magic epoch number. The u64 maximum is only
produced at the wire boundary via EpochState.raw.
"""

from dataclasses import dataclass
from typing import Any, Dict, Union

from volumedrip.ledger.constants import ENDED_SENTINEL, U64_MAX

Json = Dict[str, Any]


@dataclass(frozen=True, slots=True)
class DistributionWindow:
    start_block: int
    epoch_length: int
    epoch_emission: int
    distribution_duration: int

    def __post_init__(self) -> None:
        if int(self.epoch_length) <= 0:
            raise ValueError(f"epoch_length must be > 0; got: {self.epoch_length}")
        if int(self.distribution_duration) < 0:
            raise ValueError(f"distribution_duration must be >= 0; got: {self.distribution_duration}")
        if int(self.start_block) < 0:
            raise ValueError(f"start_block must be >= 0; got: {self.start_block}")
        if int(self.epoch_emission) < 0:
            raise ValueError(f"epoch_emission must be >= 0; got: {self.epoch_emission}")
        if self.epochs_total > U64_MAX - 1:
            raise ValueError("epoch count does not fit the u64 index range")

    @property
    def end_block(self) -> int:
        return int(self.start_block) + int(self.distribution_duration)

    @property
    def epochs_total(self) -> int:
        # The trailing partial epoch (if any) is never paid.
        return int(self.distribution_duration) // int(self.epoch_length)

    @classmethod
    def from_json(cls, j: Json) -> "DistributionWindow":
        if not isinstance(j, dict):
            raise TypeError(f"window must be dict, got {type(j)}")
        return cls(
            start_block=int(j["start_block"]),
            epoch_length=int(j["epoch_length"]),
            epoch_emission=int(j["epoch_emission"]),
            distribution_duration=int(j["distribution_duration"]),
        )

    def to_json(self) -> Json:
        return {
            "start_block": int(self.start_block),
            "end_block": int(self.end_block),
            "epoch_length": int(self.epoch_length),
            "epoch_emission": int(self.epoch_emission),
            "distribution_duration": int(self.distribution_duration),
            "epochs_total": int(self.epochs_total),
        }


@dataclass(frozen=True, slots=True)
class Active:
    index: int

    @property
    def ended(self) -> bool:
        return False

    @property
    def raw(self) -> int:
        return int(self.index)


@dataclass(frozen=True, slots=True)
class Ended:
    @property
    def ended(self) -> bool:
        return True

    @property
    def raw(self) -> int:
        return ENDED_SENTINEL


ENDED = Ended()

EpochState = Union[Active, Ended]


def epochs_total(window: DistributionWindow) -> int:
    return window.epochs_total


def current_epoch(window: DistributionWindow, height: int) -> EpochState:
    h = int(height)
    if h >= window.end_block:
        return ENDED
    # A height below start_block cannot be observed after deployment; clamp it
    # into the first epoch rather than producing a negative index.
    offset = max(0, h - int(window.start_block))
    return Active(offset // int(window.epoch_length))


def effective_epoch(window: DistributionWindow, height: int) -> int:
    """Upper bound (exclusive) of the epochs that have fully elapsed."""
    st = current_epoch(window, height)
    if isinstance(st, Ended):
        return window.epochs_total
    return st.index


def epoch_state_json(st: EpochState) -> Json:
    if isinstance(st, Ended):
        return {"ended": True, "epoch": None, "raw": st.raw}
    return {"ended": False, "epoch": int(st.index), "raw": st.raw}
