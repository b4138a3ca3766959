from __future__ import annotations

import copy
from dataclasses import replace

import pytest

from volumedrip.runtime.chain_config import default_drip_config
from volumedrip.runtime.domain_apply import SUPPORTED_TX_TYPES, ApplyError, apply_tx, apply_tx_atomic
from volumedrip.runtime.genesis import build_genesis_state
from volumedrip.runtime.tx_types import TxEnvelope


def _state():
    cfg = replace(default_drip_config(), owner="owner", epoch_length=10, epoch_emission=100, initial_supply=1_000)
    return build_genesis_state(cfg, whitelist=["reporter"])


def test_router_covers_every_tx_type() -> None:
    assert SUPPORTED_TX_TYPES == {
        "REPORT_VOLUME",
        "TRANSFER",
        "APPROVE",
        "TRANSFER_FROM",
        "SETTLE",
        "WHITELIST",
        "TRANSFER_OWNERSHIP",
    }


def test_unknown_tx_type_fails_closed() -> None:
    st = _state()
    with pytest.raises(ApplyError) as ei:
        apply_tx(st, {"tx_type": "MINT", "signer": "owner", "nonce": 1, "payload": {"amount": 1}}, height=1)
    assert ei.value.code == "tx_unimplemented"


def test_success_consumes_nonce() -> None:
    st = _state()
    env = TxEnvelope(tx_type="WHITELIST", signer="owner", nonce=1, payload={"account": "alice"})
    meta = apply_tx(st, env, height=1)
    assert meta["added"] is True
    assert st["nonces"]["owner"] == 1


def test_amount_accepts_decimal_string() -> None:
    st = _state()
    big = str(10**40)
    apply_tx(st, {"tx_type": "REPORT_VOLUME", "signer": "reporter", "nonce": 1, "payload": {"account": "a", "amount": big}}, height=1)
    assert st["volume"]["accounts"]["a"]["0"] == 10**40


@pytest.mark.parametrize(
    "payload,reason",
    [
        ({}, "missing_to"),
        ({"to": "bob"}, "missing_amount"),
        ({"to": "bob", "amount": "1.5"}, "amount_not_int"),
        ({"to": "bob", "amount": True}, "amount_not_int"),
        ({"to": "bob", "amount": "\u00b2"}, "amount_not_int"),
        ({"to": "bob", "amount": "1" * 5000}, "amount_not_int"),
        ({"to": "bob", "amount": "1" * 79}, "amount_not_int"),
    ],
)
def test_invalid_payloads(payload, reason) -> None:
    st = _state()
    with pytest.raises(ApplyError) as ei:
        apply_tx(st, {"tx_type": "TRANSFER", "signer": "owner", "nonce": 1, "payload": payload}, height=1)
    assert (ei.value.code, ei.value.reason) == ("invalid_payload", reason)


def test_atomic_apply_rolls_back_everything_on_failure() -> None:
    st = _state()
    apply_tx(st, {"tx_type": "REPORT_VOLUME", "signer": "reporter", "nonce": 1, "payload": {"account": "alice", "amount": 1}}, height=1)
    before = copy.deepcopy(st)

    # Settles alice (mint 100) and then fails on the move: nothing may stick.
    env = {"tx_type": "TRANSFER", "signer": "alice", "nonce": 1, "payload": {"to": "bob", "amount": 101}}
    with pytest.raises(ApplyError) as ei:
        apply_tx_atomic(st, env, height=10)
    assert ei.value.code == "insufficient_balance"
    assert st == before
    assert "alice" not in st["nonces"]


def test_atomic_apply_commits_in_place() -> None:
    st = _state()
    ref = st
    apply_tx_atomic(st, {"tx_type": "APPROVE", "signer": "owner", "nonce": 1, "payload": {"spender": "bob", "amount": 5}}, height=1)
    assert ref["token"]["allowances"]["owner"]["bob"] == 5
