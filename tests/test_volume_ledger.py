from __future__ import annotations

import copy
from dataclasses import replace

import pytest

from volumedrip.ledger import volume
from volumedrip.ledger.constants import U256_MAX
from volumedrip.ledger.epoch_clock import DistributionWindow
from volumedrip.runtime.chain_config import default_drip_config
from volumedrip.runtime.errors import ApplyError, ArithmeticOverflowError, UnauthorizedError
from volumedrip.runtime.genesis import build_genesis_state


def _genesis():
    cfg = replace(default_drip_config(), owner="owner", epoch_length=10, epoch_emission=100, distribution_duration=500)
    st = build_genesis_state(cfg, whitelist=["reporter"])
    return st, DistributionWindow.from_json(st["window"])


def test_report_requires_whitelisted_caller() -> None:
    st, w = _genesis()
    with pytest.raises(UnauthorizedError) as ei:
        volume.report_volume(st, window=w, caller="mallory", account="alice", amount=5, height=1)
    assert ei.value.code == "unauthorized"
    assert ei.value.reason == "not_whitelisted"


def test_reports_accumulate_per_account_and_epoch() -> None:
    st, w = _genesis()
    volume.report_volume(st, window=w, caller="reporter", account="alice", amount=5, height=1)
    volume.report_volume(st, window=w, caller="reporter", account="alice", amount=7, height=9)
    out = volume.report_volume(st, window=w, caller="reporter", account="bob", amount=3, height=9)
    volume.report_volume(st, window=w, caller="reporter", account="alice", amount=1, height=10)

    assert out["epoch"] == 0
    assert out["total_volume"] == 15
    assert volume.account_volume(st, "alice", 0) == 12
    assert volume.account_volume(st, "bob", 0) == 3
    assert volume.total_volume(st, 0) == 15
    assert volume.account_volume(st, "alice", 1) == 1
    assert volume.total_volume(st, 1) == 1
    assert volume.reported_epochs(st, "alice") == [0, 1]


def test_zero_amount_is_a_noop() -> None:
    st, w = _genesis()
    before = copy.deepcopy(st)
    out = volume.report_volume(st, window=w, caller="reporter", account="alice", amount=0, height=1)
    assert out["noop"] == "zero_amount"
    assert st == before


def test_report_after_window_end_is_accepted_and_ignored() -> None:
    st, w = _genesis()
    before = copy.deepcopy(st)
    out = volume.report_volume(st, window=w, caller="reporter", account="alice", amount=50, height=500)
    assert out["noop"] == "window_ended"
    assert out["epoch"] is None
    assert st == before


def test_overflow_leaves_both_counters_untouched() -> None:
    st, w = _genesis()
    volume.report_volume(st, window=w, caller="reporter", account="bob", amount=U256_MAX, height=1)
    before = copy.deepcopy(st)
    with pytest.raises(ArithmeticOverflowError):
        volume.report_volume(st, window=w, caller="reporter", account="alice", amount=1, height=2)
    assert st == before


def test_invalid_amount_and_missing_account() -> None:
    st, w = _genesis()
    with pytest.raises(ApplyError) as ei:
        volume.report_volume(st, window=w, caller="reporter", account="alice", amount=-1, height=1)
    assert ei.value.code == "invalid_payload"
    with pytest.raises(ApplyError) as ei:
        volume.report_volume(st, window=w, caller="reporter", account="  ", amount=1, height=1)
    assert ei.value.reason == "missing_account"
