from __future__ import annotations

import os
import threading
import time
from dataclasses import dataclass, field
from typing import Dict

# Help text for the series the node itself emits; others are exported bare.
_HELP: Dict[str, str] = {
    "tx_applied_total": "Transactions committed to the ledger",
    "tx_rejected_total": "Transactions rejected at admission or apply",
    "settlements_total": "Transactions that minted pending rewards",
    "blocks_mined_total": "Blocks produced (automine, mine() or block clock)",
    "height": "Current chain height",
}


@dataclass
class _Registry:
    started_ms: int = field(default_factory=lambda: int(time.time() * 1000))
    counters: Dict[str, int] = field(default_factory=dict)
    gauges: Dict[str, int] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)


_REGISTRY = _Registry()


def metrics_enabled() -> bool:
    return (os.environ.get("VOLUMEDRIP_METRICS_ENABLED") or "").strip().lower() in {"1", "true", "yes", "on"}


def inc_counter(name: str, value: int = 1) -> None:
    with _REGISTRY.lock:
        _REGISTRY.counters[name] = _REGISTRY.counters.get(name, 0) + int(value)


def set_gauge(name: str, value: int) -> None:
    with _REGISTRY.lock:
        _REGISTRY.gauges[name] = int(value)


def snapshot() -> dict:
    with _REGISTRY.lock:
        return {
            "uptime_ms": int(time.time() * 1000) - _REGISTRY.started_ms,
            "counters": dict(_REGISTRY.counters),
            "gauges": dict(_REGISTRY.gauges),
        }


def format_prometheus(prefix: str = "volumedrip_") -> str:
    """Prometheus text exposition of every counter and gauge."""
    snap = snapshot()
    lines = [f"{prefix}uptime_ms {snap['uptime_ms']}"]
    for kind, series in (("counter", snap["counters"]), ("gauge", snap["gauges"])):
        for name, value in sorted(series.items()):
            metric = prefix + name
            if name in _HELP:
                lines.append(f"# HELP {metric} {_HELP[name]}")
            lines.append(f"# TYPE {metric} {kind}")
            lines.append(f"{metric} {value}")
    return "\n".join(lines) + "\n"
