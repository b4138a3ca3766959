# src/volumedrip/runtime/executor_boot.py

from __future__ import annotations

from typing import Iterable, Optional

from volumedrip.runtime.chain_config import DripConfig, load_drip_config
from volumedrip.runtime.executor import DripExecutor


def build_executor(cfg: Optional[DripConfig] = None, *, whitelist: Optional[Iterable[str]] = None) -> DripExecutor:
    """
    Build a DripExecutor from an explicit config or, if omitted, from
    load_drip_config() (defaults -> VOLUMEDRIP_CONFIG_PATH -> env).
    """
    return DripExecutor(cfg=cfg or load_drip_config(), whitelist=whitelist)
