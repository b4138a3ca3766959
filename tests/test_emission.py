from __future__ import annotations

import copy
import random
from dataclasses import replace

import pytest

from volumedrip.ledger import emission, token, volume
from volumedrip.ledger.constants import U256_MAX
from volumedrip.ledger.epoch_clock import DistributionWindow
from volumedrip.runtime.chain_config import default_drip_config
from volumedrip.runtime.errors import ArithmeticOverflowError
from volumedrip.runtime.genesis import build_genesis_state
from volumedrip.runtime.state_invariants import check_invariants

EMISSION = 100


def _genesis(**over):
    fields = {"owner": "owner", "epoch_length": 10, "epoch_emission": EMISSION, "distribution_duration": 500}
    fields.update(over)
    cfg = replace(default_drip_config(), **fields)
    st = build_genesis_state(cfg, whitelist=["reporter"])
    return st, DistributionWindow.from_json(st["window"])


def _report(st, w, account: str, amount: int, height: int) -> None:
    volume.report_volume(st, window=w, caller="reporter", account=account, amount=amount, height=height)


def test_sole_reporter_earns_full_emission_once_epoch_elapses() -> None:
    st, w = _genesis()
    _report(st, w, "alice", 50, height=1)

    # Current epoch is never paid.
    assert emission.compute_pending(st, window=w, account="alice", height=9) == 0
    assert emission.compute_pending(st, window=w, account="alice", height=10) == EMISSION
    assert emission.balance_of(st, window=w, account="alice", height=10) == EMISSION


def test_proportional_split_floors_per_epoch() -> None:
    st, w = _genesis()
    _report(st, w, "alice", 1, height=1)
    _report(st, w, "bob", 2, height=2)

    a = emission.compute_pending(st, window=w, account="alice", height=10)
    b = emission.compute_pending(st, window=w, account="bob", height=10)
    assert (a, b) == (33, 66)
    assert a + b <= EMISSION


def test_zero_volume_epochs_pay_nothing_forever() -> None:
    st, w = _genesis()
    _report(st, w, "alice", 4, height=1)  # epoch 0
    _report(st, w, "alice", 4, height=25)  # epoch 2

    assert emission.pending_breakdown(st, window=w, account="alice", height=40) == [(0, EMISSION), (2, EMISSION)]
    assert emission.compute_pending(st, window=w, account="alice", height=40) == 2 * EMISSION
    assert emission.compute_pending(st, window=w, account="alice", height=10**6) == 2 * EMISSION


def test_commit_is_idempotent_at_fixed_height() -> None:
    st, w = _genesis()
    _report(st, w, "alice", 5, height=1)

    first = emission.commit_pending(st, window=w, account="alice", height=10)
    assert first["minted"] == EMISSION
    assert (first["from_epoch"], first["to_epoch"]) == (0, 1)
    assert first["events"][0]["event"] == "Transfer"

    second = emission.commit_pending(st, window=w, account="alice", height=10)
    assert second["minted"] == 0
    assert token.settled_balance(st, "alice") == EMISSION
    assert token.total_supply(st) == EMISSION
    assert emission.last_settled_epoch(st, "alice") == 1
    assert emission.compute_pending(st, window=w, account="alice", height=10) == 0


def test_reads_never_change_supply() -> None:
    st, w = _genesis()
    _report(st, w, "alice", 5, height=1)
    before = copy.deepcopy(st)

    for h in (0, 10, 55, 600):
        emission.balance_of(st, window=w, account="alice", height=h)
        emission.pending_breakdown(st, window=w, account="alice", height=h)
    assert st == before


def test_settlement_advances_checkpoint_without_volume() -> None:
    st, w = _genesis()
    out = emission.commit_pending(st, window=w, account="carol", height=30)
    assert out["minted"] == 0
    assert emission.last_settled_epoch(st, "carol") == 3
    assert token.total_supply(st) == 0


def test_final_epoch_is_paid_after_window_ends() -> None:
    st, w = _genesis()
    _report(st, w, "alice", 9, height=495)  # epoch 49, the last one

    assert emission.compute_pending(st, window=w, account="alice", height=499) == 0
    assert emission.compute_pending(st, window=w, account="alice", height=500) == EMISSION
    assert emission.compute_pending(st, window=w, account="alice", height=10**9) == EMISSION

    # No further reports land once ended.
    _report(st, w, "alice", 9, height=500)
    assert volume.total_volume(st, 49) == 9


def test_single_account_only_in_first_epoch() -> None:
    st, w = _genesis()
    _report(st, w, "alice", 1, height=1)
    assert emission.balance_of(st, window=w, account="alice", height=10) == EMISSION
    assert emission.balance_of(st, window=w, account="alice", height=1_000) == EMISSION


def test_settling_in_steps_equals_settling_once() -> None:
    rng = random.Random(7)
    st, w = _genesis()
    accounts = ["alice", "bob", "carol"]
    for h in range(1, 200, 3):
        _report(st, w, rng.choice(accounts), rng.randint(1, 1_000), height=h)

    once = copy.deepcopy(st)
    for h in (20, 75, 140, 600):
        emission.commit_pending(st, window=w, account="alice", height=h)
    emission.commit_pending(once, window=w, account="alice", height=600)

    assert token.settled_balance(st, "alice") == token.settled_balance(once, "alice")


def test_epoch_payouts_never_exceed_emission() -> None:
    rng = random.Random(11)
    st, w = _genesis()
    accounts = [f"acct{i}" for i in range(7)]
    for h in range(1, 500):
        if rng.random() < 0.4:
            _report(st, w, rng.choice(accounts), rng.randint(1, 10**20), height=h)

    for acct in accounts:
        emission.commit_pending(st, window=w, account=acct, height=500)

    minted = token.total_supply(st)
    paying_epochs = sum(1 for e in range(w.epochs_total) if volume.total_volume(st, e) > 0)
    assert minted <= paying_epochs * EMISSION
    # Floor loss is at most one unit per account per epoch.
    assert minted >= paying_epochs * EMISSION - paying_epochs * len(accounts)
    assert check_invariants(st) == []


def test_share_multiplication_overflow_is_reported() -> None:
    st, w = _genesis(epoch_emission=U256_MAX)
    _report(st, w, "alice", 2, height=1)
    with pytest.raises(ArithmeticOverflowError):
        emission.compute_pending(st, window=w, account="alice", height=10)
