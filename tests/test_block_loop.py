from __future__ import annotations

import time
from pathlib import Path
from types import SimpleNamespace

from volumedrip.runtime.block_loop import BlockClockLoop, BlockLoopConfig


def _cfg(tmp_path: Path, **over) -> BlockLoopConfig:
    base = dict(
        enabled=True,
        interval_ms=50,
        lock_path=str(tmp_path / "block_loop.lock"),
        fail_fast_after=3,
        error_backoff_min_ms=50,
        error_backoff_max_ms=100,
    )
    base.update(over)
    return BlockLoopConfig(**base)


class _CountingExecutor(SimpleNamespace):
    def mine(self, n: int = 1) -> dict:
        self.height += n
        return {"ok": True, "height": self.height}


class _BrokenExecutor(SimpleNamespace):
    def mine(self, n: int = 1) -> dict:
        raise RuntimeError("disk full")


def test_disabled_loop_does_not_start(tmp_path: Path) -> None:
    loop = BlockClockLoop(executor=_CountingExecutor(height=0), cfg=_cfg(tmp_path, enabled=False))
    assert loop.start() is False
    assert loop.started is False


def test_tick_mines_one_block(tmp_path: Path) -> None:
    ex = _CountingExecutor(height=0)
    loop = BlockClockLoop(executor=ex, cfg=_cfg(tmp_path))
    assert loop.tick() is True
    assert ex.height == 1


def test_tick_records_errors(tmp_path: Path) -> None:
    loop = BlockClockLoop(executor=_BrokenExecutor(), cfg=_cfg(tmp_path))
    assert loop.tick() is False
    st = loop.status()
    assert st["consecutive_failures"] == 1
    assert "RuntimeError" in st["last_error"]


def test_running_loop_advances_height(tmp_path: Path) -> None:
    ex = _CountingExecutor(height=0)
    loop = BlockClockLoop(executor=ex, cfg=_cfg(tmp_path))
    assert loop.start() is True
    try:
        deadline = time.monotonic() + 5.0
        while ex.height < 2 and time.monotonic() < deadline:
            time.sleep(0.02)
    finally:
        loop.stop()
    assert ex.height >= 2


def test_second_loop_cannot_take_the_lock(tmp_path: Path) -> None:
    cfg = _cfg(tmp_path, interval_ms=10_000)
    a = BlockClockLoop(executor=_CountingExecutor(height=0), cfg=cfg)
    b = BlockClockLoop(executor=_CountingExecutor(height=0), cfg=cfg)
    assert a.start() is True
    try:
        assert b.start() is False
    finally:
        a.stop()


def test_fail_fast_marks_loop_unhealthy(tmp_path: Path) -> None:
    loop = BlockClockLoop(executor=_BrokenExecutor(), cfg=_cfg(tmp_path))
    assert loop.start() is True
    try:
        deadline = time.monotonic() + 5.0
        while not loop.status()["unhealthy"] and time.monotonic() < deadline:
            time.sleep(0.02)
    finally:
        loop.stop()
    assert loop.status()["unhealthy"] is True
    assert loop.status()["running"] is False
