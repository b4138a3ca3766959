from __future__ import annotations

import copy
import logging
import threading
from typing import Any, Dict, Iterable, List, Optional

from volumedrip.ledger.state import DripView
from volumedrip.log_events import log_event
from volumedrip.runtime.chain_config import DripConfig
from volumedrip.runtime.domain_apply import apply_tx
from volumedrip.runtime.errors import ApplyError
from volumedrip.runtime.genesis import build_genesis_state
from volumedrip.runtime.metrics import inc_counter, set_gauge
from volumedrip.runtime.sqlite_db import SqliteDB, SqliteLedgerStore
from volumedrip.runtime.tx_admission import admit_tx
from volumedrip.runtime.tx_types import TxEnvelope

Json = Dict[str, Any]

logger = logging.getLogger("volumedrip.executor")


class ExecutorError(RuntimeError):
    pass


def _minted(meta: Json) -> int:
    if meta.get("applied") == "SETTLE":
        return int(meta.get("minted") or 0)
    return int(meta.get("settled") or 0)


class DripExecutor:
    """Single-writer executor: admits txs, applies them atomically, owns the
    chain height and persists every committed state to SQLite.

    The API and the block loop share one instance; all access goes through
    an RLock.
    """

    def __init__(self, *, cfg: DripConfig, whitelist: Optional[Iterable[str]] = None) -> None:
        self.cfg = cfg
        self.chain_id = str(cfg.chain_id)
        self._lock = threading.RLock()

        self._db = SqliteDB(path=cfg.db_path)
        self._store = SqliteLedgerStore(db=self._db)

        if self._store.exists():
            self.state = self._store.read()
            st_chain_id = str(self.state.get("chain_id") or "").strip()
            if st_chain_id != self.chain_id:
                raise ExecutorError(
                    f"chain_id mismatch: db={st_chain_id!r} executor={self.chain_id!r}. Refuse to start."
                )
        else:
            self.state = build_genesis_state(cfg, whitelist=whitelist)
            self._store.write(self.state)
            log_event(logger, "genesis", chain_id=self.chain_id, height=self.height, window=self.state["window"])

        set_gauge("height", self.height)

    # ----------------------------
    # Reads
    # ----------------------------

    @property
    def height(self) -> int:
        return int(self.state.get("height", 0) or 0)

    @property
    def store(self) -> SqliteLedgerStore:
        return self._store

    def read_state(self) -> Json:
        with self._lock:
            return copy.deepcopy(self.state)

    def view(self) -> DripView:
        """Read-only snapshot at the current height."""
        with self._lock:
            return DripView.from_state(self.state)

    def recent_receipts(self, *, limit: int = 50, signer: Optional[str] = None) -> List[Json]:
        return self._store.recent_receipts(limit=limit, signer=signer)

    # ----------------------------
    # Writes
    # ----------------------------

    def _reject(self, env: Any, code: str, reason: str, details: Any) -> Json:
        inc_counter("tx_rejected_total")
        tx_type = env.get("tx_type") if isinstance(env, dict) else getattr(env, "tx_type", None)
        signer = env.get("signer") if isinstance(env, dict) else getattr(env, "signer", None)
        log_event(logger, "tx_rejected", tx_type=tx_type, signer=signer, code=code, reason=reason, height=self.height)
        return {"ok": False, "error": code, "reason": reason, "details": details}

    def submit_tx(self, env: Any) -> Json:
        """Admit and execute one tx.

        With automine the tx runs in a new block at height + 1; otherwise at
        the current height. A rejected tx changes nothing: state, nonce and
        height stay as they were.
        """
        with self._lock:
            verdict = admit_tx(
                env,
                self.state,
                chain_id=self.chain_id,
                allow_unsigned=bool(self.cfg.allow_unsigned_txs),
            )
            if not verdict.ok:
                return self._reject(env, verdict.code, verdict.reason, verdict.details)

            tx = TxEnvelope.from_json(env)
            h = self.height + 1 if self.cfg.automine else self.height

            working = copy.deepcopy(self.state)
            try:
                meta = apply_tx(working, tx, height=h)
            except ApplyError as e:
                return self._reject(tx, e.code, e.reason, e.details)

            working["height"] = h
            receipt: Json = {
                "tx_type": tx.tx_type,
                "signer": tx.signer,
                "nonce": tx.nonce,
                "height": h,
                "result": meta,
            }
            self._store.write(working, receipt=receipt)
            self.state = working

            inc_counter("tx_applied_total")
            log_event(logger, "tx_applied", tx_type=tx.tx_type, signer=tx.signer, nonce=tx.nonce, height=h)

            minted = _minted(meta)
            if minted > 0:
                settled_acct = meta.get("from") if tx.tx_type == "TRANSFER_FROM" else tx.signer
                inc_counter("settlements_total")
                log_event(logger, "settled", account=settled_acct, minted=str(minted), height=h)

            if self.cfg.automine:
                inc_counter("blocks_mined_total")
                set_gauge("height", h)

            return {"ok": True, **receipt}

    def mine(self, n: int = 1) -> Json:
        """Advance the chain height by `n` empty blocks."""
        count = int(n)
        if count < 1:
            raise ValueError(f"mine expects n >= 1; got: {n}")
        with self._lock:
            working = copy.deepcopy(self.state)
            working["height"] = self.height + count
            self._store.write(working)
            self.state = working

            inc_counter("blocks_mined_total", count)
            set_gauge("height", self.height)
            log_event(logger, "blocks_mined", count=count, height=self.height)
            return {"ok": True, "mined": count, "height": self.height}
