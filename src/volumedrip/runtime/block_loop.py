from __future__ import annotations

import fcntl
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional

from volumedrip.runtime.metrics import inc_counter, set_gauge


log = logging.getLogger("volumedrip.block_loop")


@dataclass(frozen=True, slots=True)
class BlockLoopConfig:
    enabled: bool
    interval_ms: int
    lock_path: str

    # Reliability knobs
    fail_fast_after: int
    error_backoff_min_ms: int
    error_backoff_max_ms: int


def _env_bool(name: str, default: bool) -> bool:
    v = os.environ.get(name)
    if v is None:
        return bool(default)
    return (v or "").strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.environ.get(name, str(default)))
    except ValueError:
        return int(default)


def block_loop_config_from_env() -> BlockLoopConfig:
    interval_ms = max(50, _env_int("VOLUMEDRIP_BLOCK_INTERVAL_MS", 1_000))
    error_backoff_min_ms = max(50, _env_int("VOLUMEDRIP_BLOCK_LOOP_ERROR_BACKOFF_MIN_MS", 250))
    return BlockLoopConfig(
        enabled=_env_bool("VOLUMEDRIP_BLOCK_LOOP_ENABLED", False),
        interval_ms=int(interval_ms),
        lock_path=os.environ.get("VOLUMEDRIP_BLOCK_LOOP_LOCK_PATH", "./data/block_loop.lock"),
        fail_fast_after=max(3, _env_int("VOLUMEDRIP_BLOCK_LOOP_FAIL_FAST_AFTER", 10)),
        error_backoff_min_ms=int(error_backoff_min_ms),
        error_backoff_max_ms=max(error_backoff_min_ms, _env_int("VOLUMEDRIP_BLOCK_LOOP_ERROR_BACKOFF_MAX_MS", 10_000)),
    )


class _FileLock:
    """Single-process lock so several web workers never run two clocks."""

    def __init__(self, path: str) -> None:
        self._path = path
        self._fh = None

    def acquire(self) -> bool:
        os.makedirs(os.path.dirname(self._path) or ".", exist_ok=True)
        fh = open(self._path, "a+", encoding="utf-8")
        try:
            fcntl.flock(fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            fh.close()
            return False

        self._fh = fh
        fh.seek(0)
        fh.truncate()
        fh.write(f"pid={os.getpid()}\n")
        fh.flush()
        return True

    def release(self) -> None:
        fh = self._fh
        self._fh = None
        if fh is None:
            return
        fcntl.flock(fh.fileno(), fcntl.LOCK_UN)
        fh.close()


class BlockClockLoop:
    """Background block clock for dev/test chains.

    Mines one empty block per interval through the executor, so epochs
    advance even when no transactions arrive. Errors back off exponentially;
    after `fail_fast_after` consecutive failures the loop marks itself
    unhealthy and stops.
    """

    def __init__(self, *, executor: Any, cfg: Optional[BlockLoopConfig] = None) -> None:
        self._executor = executor
        self._cfg = cfg or block_loop_config_from_env()

        self._lock = _FileLock(self._cfg.lock_path)
        self._t: Optional[threading.Thread] = None
        self._stop = threading.Event()
        self._started = False

        self._consecutive_failures = 0
        self._last_error = ""
        self._unhealthy = False

    @property
    def started(self) -> bool:
        return self._started

    def status(self) -> Dict[str, Any]:
        return {
            "running": bool(self._started and not self._stop.is_set()),
            "unhealthy": self._unhealthy,
            "consecutive_failures": self._consecutive_failures,
            "last_error": self._last_error,
        }

    def start(self) -> bool:
        if self._started:
            return True
        if not self._cfg.enabled:
            return False
        if not self._lock.acquire():
            log.warning("block loop lock held elsewhere: %s", self._cfg.lock_path)
            return False
        self._t = threading.Thread(target=self._run, name="volumedrip-block-loop", daemon=True)
        self._t.start()
        self._started = True
        inc_counter("block_loop_start_total")
        return True

    def stop(self) -> None:
        self._stop.set()
        t = self._t
        if t is not None:
            t.join(timeout=2.0)
        self._lock.release()
        self._started = False

    def tick(self) -> bool:
        """Mine one block; returns False on error (already recorded)."""
        try:
            self._executor.mine(1)
        except Exception as err:  # noqa: BLE001 - any failure counts toward fail-fast
            self._mark_error(err)
            return False
        self._clear_error()
        return True

    def _mark_error(self, err: Exception) -> None:
        self._consecutive_failures += 1
        self._last_error = f"{type(err).__name__}:{err}"
        inc_counter("block_loop_errors_total")
        set_gauge("block_loop_consecutive_failures", self._consecutive_failures)
        log.exception("block loop error failures=%s", self._consecutive_failures)

    def _clear_error(self) -> None:
        if self._consecutive_failures == 0 and not self._last_error:
            return
        self._consecutive_failures = 0
        self._last_error = ""
        set_gauge("block_loop_consecutive_failures", 0)

    def _sleep_backoff(self) -> None:
        n = max(1, int(self._consecutive_failures))
        ms = min(int(self._cfg.error_backoff_max_ms), int(self._cfg.error_backoff_min_ms) * (2 ** min(10, n - 1)))
        self._stop.wait(float(ms) / 1000.0)

    def _run(self) -> None:
        interval_s = float(self._cfg.interval_ms) / 1000.0
        while not self._stop.wait(interval_s):
            if self.tick():
                continue
            if self._consecutive_failures >= int(self._cfg.fail_fast_after):
                self._unhealthy = True
                set_gauge("block_loop_unhealthy", 1)
                log.error(
                    "block loop fail-fast tripped: failures=%s last_error=%s",
                    self._consecutive_failures,
                    self._last_error,
                )
                self._stop.set()
                break
            self._sleep_backoff()
