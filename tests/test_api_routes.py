from __future__ import annotations

from dataclasses import replace
from pathlib import Path
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from volumedrip.api.app import create_app
from volumedrip.ledger.constants import U64_MAX
from volumedrip.runtime.chain_config import default_drip_config
from volumedrip.runtime.executor import DripExecutor
from volumedrip.testing.sigtools import address_for_label, make_signed_tx

CHAIN_ID = "drip-api-test"
OWNER = address_for_label("owner")
REPORTER = address_for_label("reporter")
ALICE = address_for_label("alice")


def _client(tmp_path: Path, **over) -> TestClient:
    cfg = replace(
        default_drip_config(),
        chain_id=CHAIN_ID,
        db_path=str(tmp_path / "api.db"),
        owner=OWNER,
        name="VolumeDripImplementer",
        symbol="VD20",
        epoch_length=10,
        epoch_emission=100,
        distribution_duration=500,
        initial_supply=1_000,
    )
    app = create_app(boot_runtime=False)
    app.state.executor = DripExecutor(cfg=replace(cfg, **over), whitelist=[REPORTER])
    return TestClient(app)


def _report(nonce: int, amount: int, account: str = ALICE, label: str = "reporter") -> dict:
    return make_signed_tx(
        label=label,
        tx_type="REPORT_VOLUME",
        nonce=nonce,
        payload={"account": account, "amount": amount},
        chain_id=CHAIN_ID,
    )


def test_health_token_and_window(tmp_path: Path) -> None:
    c = _client(tmp_path)

    h = c.get("/v1/health").json()
    assert h["ok"] is True
    assert (h["chain_id"], h["height"], h["block_loop"]) == (CHAIN_ID, 0, None)

    t = c.get("/v1/token").json()
    assert t["name"] == "VolumeDripImplementer"
    assert t["decimals"] == 18
    assert t["total_supply"] == 1_000
    assert t["owner"] == OWNER
    assert t["whitelisted"] == 1

    w = c.get("/v1/window").json()["window"]
    assert (w["start_block"], w["end_block"], w["epochs_total"]) == (0, 500, 50)
    assert c.get("/v1/epochs").json()["epochs"] == 50


def test_report_mine_and_read_balance(tmp_path: Path) -> None:
    c = _client(tmp_path)

    r = c.post("/v1/tx/submit", json=_report(1, 7))
    assert r.status_code == 200
    assert r.json()["height"] == 1

    cur = c.get("/v1/epochs/current").json()
    assert (cur["ended"], cur["epoch"], cur["raw"]) == (False, 0, 0)

    assert c.post("/v1/chain/mine", json={"n": 9}).json()["height"] == 10

    a = c.get(f"/v1/accounts/{ALICE}", params={"breakdown": True}).json()
    assert a["balance"] == 100
    assert a["pending_reward"] == 100
    assert a["settled_balance"] == 0
    assert a["pending_breakdown"] == [{"epoch": 0, "amount": 100}]

    vol = c.get(f"/v1/accounts/{ALICE}/volume/0").json()
    assert (vol["volume"], vol["total_volume"]) == (7, 7)

    e0 = c.get("/v1/epochs/0").json()
    assert (e0["status"], e0["start_block"], e0["end_block"], e0["total_volume"]) == ("elapsed", 0, 10, 7)
    assert c.get("/v1/epochs/1").json()["status"] == "current"
    assert c.get("/v1/epochs/2").json()["status"] == "future"

    recent = c.get("/v1/tx/recent").json()["receipts"]
    assert recent[0]["tx_type"] == "REPORT_VOLUME"


def test_ended_window_reports_sentinel_on_the_wire(tmp_path: Path) -> None:
    c = _client(tmp_path)
    c.post("/v1/chain/mine", json={"n": 500})
    cur = c.get("/v1/epochs/current").json()
    assert cur["ended"] is True
    assert cur["epoch"] is None
    assert cur["raw"] == U64_MAX


def test_rejections_use_error_envelope(tmp_path: Path) -> None:
    c = _client(tmp_path)

    r = c.post("/v1/tx/submit", json=_report(2, 1))
    assert r.status_code == 409
    assert r.json()["ok"] is False
    assert r.json()["error"]["code"] == "bad_nonce"

    r = c.post("/v1/tx/submit", json=_report(1, 1, label="alice"))
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "unauthorized"
    assert c.get("/v1/health").json()["height"] == 0

    r = c.post("/v1/tx/submit", json={"tx_type": "SETTLE"})
    assert r.status_code == 400
    assert r.json()["error"]["code"] == "bad_request"

    r = c.get("/v1/epochs/50")
    assert r.status_code == 404
    assert r.json()["error"]["code"] == "epoch_out_of_range"


def test_allowance_and_snapshot(tmp_path: Path) -> None:
    c = _client(tmp_path)
    tx = make_signed_tx(label="owner", tx_type="APPROVE", nonce=1, payload={"spender": ALICE, "amount": 25}, chain_id=CHAIN_ID)
    assert c.post("/v1/tx/submit", json=tx).status_code == 200

    assert c.get(f"/v1/accounts/{OWNER}/allowance/{ALICE}").json()["allowance"] == 25
    snap = c.get("/v1/state/snapshot").json()
    assert snap["height"] == 1
    assert snap["state"]["nonces"][OWNER] == 1


def test_mine_is_refused_in_prod() -> None:
    app = create_app(boot_runtime=False)
    app.state.executor = SimpleNamespace(chain_id="x", height=0, cfg=SimpleNamespace(mode="prod"))
    r = TestClient(app).post("/v1/chain/mine", json={"n": 1})
    assert r.status_code == 403
    assert r.json()["error"]["code"] == "mine_disabled"


def test_request_size_limit_returns_413(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VOLUMEDRIP_MAX_REQUEST_BYTES", "128")
    c = _client(tmp_path)
    r = c.post("/v1/tx/submit", json={**_report(1, 1), "pad": "x" * 500})
    assert r.status_code == 413
    assert r.json()["error"]["code"] == "tx_too_large"


def test_metrics_endpoint(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    c = _client(tmp_path)
    monkeypatch.delenv("VOLUMEDRIP_METRICS_ENABLED", raising=False)
    assert c.get("/v1/metrics").status_code == 404

    monkeypatch.setenv("VOLUMEDRIP_METRICS_ENABLED", "1")
    c.post("/v1/tx/submit", json=_report(1, 1))
    r = c.get("/v1/metrics")
    assert r.status_code == 200
    assert "volumedrip_tx_applied_total" in r.text
    assert "volumedrip_height" in r.text


def test_create_app_boot_runtime_attaches_executor(monkeypatch: pytest.MonkeyPatch) -> None:
    from volumedrip.api import app as api_app

    monkeypatch.delenv("VOLUMEDRIP_CONFIG_PATH", raising=False)
    monkeypatch.setenv("VOLUMEDRIP_OWNER", OWNER)
    monkeypatch.setattr(api_app, "configure_structured_logging", lambda *a, **k: None)
    monkeypatch.setattr(api_app, "build_executor", lambda cfg: SimpleNamespace(chain_id=cfg.chain_id, height=0, cfg=cfg))

    app = api_app.create_app(boot_runtime=True)
    assert app.state.executor.chain_id == "volumedrip-dev"
    with TestClient(app) as c:
        assert c.get("/v1/health").json()["mode"] == "dev"


def test_request_id_is_echoed(tmp_path: Path) -> None:
    c = _client(tmp_path)
    assert c.get("/v1/health", headers={"x-request-id": "req-123"}).headers["x-request-id"] == "req-123"
    assert len(c.get("/v1/health").headers["x-request-id"]) == 32


def test_tx_submit_rejects_case_variant_signer(tmp_path: Path) -> None:
    c = _client(tmp_path)
    tx = make_signed_tx(label="reporter", tx_type="REPORT_VOLUME", nonce=1, payload={"account": ALICE, "amount": 1}, chain_id=CHAIN_ID)
    tx["signer"] = "0x" + tx["signer"][2:].upper()
    r = c.post("/v1/tx/submit", json=tx)
    assert r.status_code == 401
    assert r.json()["error"]["code"] == "bad_sig"
