# src/volumedrip/runtime/chain_config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from volumedrip.ledger.constants import ONE_TOKEN, U256_MAX

Json = Dict[str, Any]

ENV_PREFIX = "VOLUMEDRIP_"


def _as_int(v: Any, default: int) -> int:
    if v is None or (isinstance(v, str) and not v.strip()):
        return int(default)
    if isinstance(v, bool):
        raise ValueError(f"expected integer, got bool: {v!r}")
    try:
        return int(str(v).strip().replace("_", "")) if isinstance(v, str) else int(v)
    except (TypeError, ValueError) as e:
        raise ValueError(f"expected integer, got: {v!r}") from e


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v)
    return s.strip() if s.strip() else str(default)


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in {"1", "true", "yes", "y", "on"}:
        return True
    if s in {"0", "false", "no", "n", "off"}:
        return False
    return bool(default)


@dataclass(frozen=True)
class DripConfig:
    chain_id: str
    mode: str  # "dev" | "testnet" | "prod"

    # Single SQLite DB file path for the ledger snapshot.
    db_path: str

    # Genesis / deploy parameters.
    name: str
    symbol: str
    epoch_length: int
    epoch_emission: int
    initial_supply: int
    distribution_duration: int
    owner: str
    genesis_height: int

    # Dev chain: every accepted tx mines its own block.
    automine: bool
    allow_unsigned_txs: bool

    api_host: str
    api_port: int

    log_level: str

    def to_json(self) -> Json:
        return {f.name: getattr(self, f.name) for f in fields(self)}


_ALLOWED_MODES = {"dev", "testnet", "prod"}
_INT_FIELDS = {
    "epoch_length",
    "epoch_emission",
    "initial_supply",
    "distribution_duration",
    "genesis_height",
    "api_port",
}
_BOOL_FIELDS = {"automine", "allow_unsigned_txs"}


def validate_drip_config(cfg: DripConfig) -> None:
    """Fail-fast validation for operator config."""

    if not isinstance(cfg.chain_id, str) or not cfg.chain_id.strip():
        raise ValueError("chain_id must be a non-empty string")

    mode = str(cfg.mode or "").strip().lower()
    if mode not in _ALLOWED_MODES:
        raise ValueError(f"mode must be one of {sorted(_ALLOWED_MODES)}; got: {cfg.mode!r}")

    if mode == "prod" and cfg.allow_unsigned_txs:
        raise ValueError("allow_unsigned_txs is not permitted in prod mode")

    if not isinstance(cfg.db_path, str) or not cfg.db_path.strip():
        raise ValueError("db_path must be a non-empty string")

    if not isinstance(cfg.owner, str) or not cfg.owner.strip():
        raise ValueError("owner must be a non-empty account id")

    if int(cfg.epoch_length) <= 0:
        raise ValueError(f"epoch_length must be > 0; got: {cfg.epoch_length}")
    if int(cfg.distribution_duration) < 0:
        raise ValueError(f"distribution_duration must be >= 0; got: {cfg.distribution_duration}")
    if int(cfg.genesis_height) < 0:
        raise ValueError(f"genesis_height must be >= 0; got: {cfg.genesis_height}")

    for name in ("epoch_emission", "initial_supply"):
        v = int(getattr(cfg, name))
        if v < 0 or v > U256_MAX:
            raise ValueError(f"{name} must fit in u256; got: {v}")

    if int(cfg.api_port) <= 0 or int(cfg.api_port) > 65535:
        raise ValueError(f"api_port must be 1..65535; got: {cfg.api_port}")


def default_drip_config() -> DripConfig:
    return DripConfig(
        chain_id="volumedrip-dev",
        mode="dev",
        db_path="./data/volumedrip.db",
        name="VolumeDrip",
        symbol="DRIP",
        epoch_length=10,
        epoch_emission=100 * ONE_TOKEN,
        initial_supply=0,
        distribution_duration=500,
        owner="",
        genesis_height=0,
        automine=True,
        allow_unsigned_txs=False,
        api_host="127.0.0.1",
        api_port=8000,
        log_level="INFO",
    )


def _coerce(name: str, v: Any, default: Any) -> Any:
    if name in _INT_FIELDS:
        return _as_int(v, default)
    if name in _BOOL_FIELDS:
        return _as_bool(v, default)
    return _as_str(v, default)


def _merge(base: DripConfig, raw: Json) -> DripConfig:
    known = {f.name for f in fields(base)}
    unknown = sorted(set(raw) - known)
    if unknown:
        raise ValueError(f"unknown config keys: {unknown}")
    updates = {k: _coerce(k, v, getattr(base, k)) for k, v in raw.items()}
    return replace(base, **updates)


def read_config_file(path: str) -> Json:
    """Read a JSON or YAML (by extension) config file into a dict."""
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ValueError("config file must contain a mapping at the top level")
    return raw


def env_overrides(environ: Optional[Dict[str, str]] = None) -> Json:
    env = os.environ if environ is None else environ
    out: Json = {}
    for f in fields(DripConfig):
        v = env.get(ENV_PREFIX + f.name.upper())
        if v is not None and str(v).strip():
            out[f.name] = v
    return out


def load_drip_config(*, config_path: Optional[str] = None, environ: Optional[Dict[str, str]] = None) -> DripConfig:
    """defaults -> config file (JSON/YAML) -> VOLUMEDRIP_* env overrides."""
    env = os.environ if environ is None else environ

    cfg = default_drip_config()
    p = config_path or env.get("VOLUMEDRIP_CONFIG_PATH")
    if p:
        cfg = _merge(cfg, read_config_file(p))
    cfg = _merge(cfg, env_overrides(env))
    cfg = replace(cfg, mode=cfg.mode.lower(), log_level=cfg.log_level.upper())

    validate_drip_config(cfg)
    return cfg
