# src/volumedrip/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    # No default=str: non-JSON types leaking into state must fail loudly.
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    raw = str(os.environ.get(name, "")).strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


class SqliteDB:
    """SQLite manager for the node runtime.

    One durable DB file; connections are never shared across threads.
    SQLite allows a single writer, so BEGIN IMMEDIATE is retried with
    bounded backoff in write_tx().
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """prod -> FULL, dev/testnet -> NORMAL; VOLUMEDRIP_SQLITE_SYNCHRONOUS overrides."""
        mode = (os.environ.get("VOLUMEDRIP_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("VOLUMEDRIP_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("VOLUMEDRIP_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0
        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal":
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("VOLUMEDRIP_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
        con.execute(f"PRAGMA busy_timeout={busy_ms};")
        return con

    def init_schema(self) -> None:
        with self.write_tx() as con:
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS meta (
                  key TEXT PRIMARY KEY,
                  value TEXT NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS ledger_state (
                  id INTEGER PRIMARY KEY CHECK (id = 1),
                  chain_id TEXT NOT NULL,
                  height INTEGER NOT NULL,
                  state_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS tx_receipts (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  height INTEGER NOT NULL,
                  tx_type TEXT NOT NULL,
                  signer TEXT NOT NULL,
                  nonce INTEGER NOT NULL,
                  receipt_json TEXT NOT NULL,
                  created_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_receipts_signer ON tx_receipts(signer);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except ValueError:
                    v = 0
                if v != self.SCHEMA_VERSION:
                    raise RuntimeError(
                        f"sqlite schema_version mismatch: have={v} want={self.SCHEMA_VERSION}. "
                        "Refuse to start to avoid corrupting data."
                    )

    @contextmanager
    def connection(self) -> Iterator[sqlite3.Connection]:
        con = self._connect()
        try:
            yield con
        finally:
            con.close()

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg)

    def _backoff(self, attempt: int) -> None:
        base_sleep = max(0.001, float(_env_int("VOLUMEDRIP_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("VOLUMEDRIP_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)
        sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
        time.sleep(sleep_s * (0.5 + random.random()))

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Write transaction with bounded retry on writer-lock contention.

        BEGIN IMMEDIATE and COMMIT are retried with exponential backoff and
        jitter until VOLUMEDRIP_SQLITE_WRITE_DEADLINE_MS; then the error is raised.
        """
        deadline_ts = _now_ms() + max(250, _env_int("VOLUMEDRIP_SQLITE_WRITE_DEADLINE_MS", 30_000))

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    self._backoff(attempt)
                    attempt += 1

            try:
                yield con

                attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                            raise
                        self._backoff(attempt)
                        attempt += 1
            except BaseException:
                con.execute("ROLLBACK;")
                raise


class SqliteLedgerStore:
    """Ledger snapshot store persisted in SQLite.

      - read(): load the latest snapshot
      - write(st, receipt=None): overwrite the snapshot, appending the tx
        receipt in the same write transaction
      - recent_receipts(): newest-first receipts
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    def exists(self) -> bool:
        with self._db.connection() as con:
            return con.execute("SELECT 1 FROM ledger_state WHERE id=1;").fetchone() is not None

    def read(self) -> Json:
        with self._db.connection() as con:
            row = con.execute("SELECT state_json FROM ledger_state WHERE id=1;").fetchone()
        if row is None:
            raise FileNotFoundError("sqlite ledger_state is missing")
        st = json.loads(str(row["state_json"]))
        if not isinstance(st, dict):
            raise ValueError("ledger_state is not a JSON object")
        return st

    def write(self, st: Json, *, receipt: Optional[Json] = None) -> None:
        if not isinstance(st, dict):
            raise ValueError("ledger write expects dict")
        height = int(st.get("height", 0))
        chain_id = str(st.get("chain_id") or "")
        now = _now_ms()
        payload = _canon_json(st)
        with self._db.write_tx() as con:
            con.execute(
                """
                INSERT INTO ledger_state(id, chain_id, height, state_json, updated_ts_ms)
                VALUES(1, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  chain_id=excluded.chain_id,
                  height=excluded.height,
                  state_json=excluded.state_json,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (chain_id, height, payload, now),
            )
            if receipt is not None:
                con.execute(
                    """
                    INSERT INTO tx_receipts(height, tx_type, signer, nonce, receipt_json, created_ts_ms)
                    VALUES(?, ?, ?, ?, ?, ?);
                    """,
                    (
                        height,
                        str(receipt.get("tx_type") or ""),
                        str(receipt.get("signer") or ""),
                        int(receipt.get("nonce") or 0),
                        _canon_json(receipt),
                        now,
                    ),
                )

    def recent_receipts(self, *, limit: int = 50, signer: Optional[str] = None) -> List[Json]:
        lim = max(1, min(int(limit), 500))
        with self._db.connection() as con:
            if signer:
                rows = con.execute(
                    "SELECT receipt_json FROM tx_receipts WHERE signer=? ORDER BY seq DESC LIMIT ?;",
                    (str(signer), lim),
                ).fetchall()
            else:
                rows = con.execute("SELECT receipt_json FROM tx_receipts ORDER BY seq DESC LIMIT ?;", (lim,)).fetchall()
        return [json.loads(str(r["receipt_json"])) for r in rows]
