# src/savegrow/runtime/sqlite_db.py
from __future__ import annotations

import json
import os
import random
import sqlite3
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Tuple

from savegrow.ledger.constants import U64_MAX
from savegrow.ledger.locks import Lock, locked_total
from savegrow.ledger.types import RewardPool, Vault
from savegrow.runtime.errors import AlreadyInitialized, ArithmeticOverflow, InvalidAmount, LockNotFound, NotInitialized
from savegrow.runtime.store import (
    DEFAULT_HISTORY_LIMIT,
    Mutations,
    clamp_history_limit,
    stage_locks,
    stage_transfers,
    touched_accounts,
)

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def _canon_json(obj: Any) -> str:
    """Canonical JSON encoding for persisted receipts."""
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except Exception:
        return int(default)


class SqliteDB:
    """SQLite manager for the vault host.

    Design goals:
      - single durable DB file for vaults, reward pools, custody and receipts
      - cross-process safe (SQLite locks)
      - cross-thread safe by never sharing connections across threads

    SQLite allows only one writer at a time. Under multi-process workloads,
    BEGIN IMMEDIATE can transiently fail with "database is locked", so
    write_tx() runs a bounded retry loop.
    """

    SCHEMA_VERSION = 2

    def __init__(self, *, path: str) -> None:
        self.path = str(path)

    @staticmethod
    def _sqlite_synchronous_pragma() -> str:
        """Return a safe PRAGMA synchronous value.

        Defaults:
          - prod        -> FULL
          - dev/testnet -> NORMAL

        Override with SAVEGROW_SQLITE_SYNCHRONOUS in {OFF,NORMAL,FULL,EXTRA}.
        """
        mode = (os.environ.get("SAVEGROW_MODE") or "prod").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("SAVEGROW_SQLITE_SYNCHRONOUS") or default).strip().upper()

        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("SAVEGROW_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0

        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        allow_non_wal = (os.environ.get("SAVEGROW_SQLITE_ALLOW_NON_WAL") or "").strip().lower() in {"1", "true"}
        row = con.execute("PRAGMA journal_mode=WAL;").fetchone()
        mode = str(row[0]).strip().lower() if row is not None else ""
        if mode and mode != "wal" and not allow_non_wal:
            con.close()
            raise RuntimeError(f"sqlite journal_mode is '{mode}', expected 'wal'")

        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("SAVEGROW_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
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

            # u64 balances do not fit SQLite's signed INTEGER; store decimal text.
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS vaults (
                  owner TEXT PRIMARY KEY,
                  balance TEXT NOT NULL,
                  last_update_time INTEGER NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS reward_pools (
                  owner TEXT PRIMARY KEY REFERENCES vaults(owner),
                  balance TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS custody_balances (
                  account TEXT PRIMARY KEY,
                  balance TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS vault_receipts (
                  seq INTEGER PRIMARY KEY AUTOINCREMENT,
                  owner TEXT NOT NULL,
                  receipt_json TEXT NOT NULL,
                  created_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_vault_receipts_owner ON vault_receipts(owner, seq);")

            con.execute(
                """
                CREATE TABLE IF NOT EXISTS vault_locks (
                  lock_id TEXT PRIMARY KEY,
                  owner TEXT NOT NULL REFERENCES vaults(owner),
                  amount TEXT NOT NULL,
                  status TEXT NOT NULL,
                  lock_json TEXT NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_vault_locks_owner ON vault_locks(owner);")

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            else:
                try:
                    v = int(str(row["value"]))
                except Exception:
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

    @contextmanager
    def read_tx(self) -> Iterator[sqlite3.Connection]:
        """Deferred transaction: every read inside sees one WAL snapshot."""
        with self.connection() as con:
            con.execute("BEGIN;")
            try:
                yield con
            finally:
                try:
                    con.execute("ROLLBACK;")
                except sqlite3.Error:
                    pass

    @staticmethod
    def _is_locked_error(e: Exception) -> bool:
        msg = str(e).lower()
        return ("database is locked" in msg) or ("database is busy" in msg)

    def _backoff(self, attempt: int, base_sleep: float, max_sleep: float) -> None:
        sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
        time.sleep(sleep_s * (0.5 + random.random()))  # jitter in [0.5x, 1.5x]

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE (and COMMIT) until a deadline
          - exponential backoff with jitter
          - then raise (fail closed)
          - any exception inside the block rolls the whole transaction back
        """
        deadline_ts = _now_ms() + max(250, _env_int("SAVEGROW_SQLITE_WRITE_DEADLINE_MS", 30_000))

        base_sleep = max(0.001, float(_env_int("SAVEGROW_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("SAVEGROW_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)

        with self.connection() as con:
            attempt = 0
            while True:
                try:
                    con.execute("BEGIN IMMEDIATE;")
                    break
                except sqlite3.OperationalError as e:
                    if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                        raise
                    self._backoff(attempt, base_sleep, max_sleep)
                    attempt += 1

            try:
                yield con

                c_attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                            raise
                        self._backoff(c_attempt, base_sleep, max_sleep)
                        c_attempt += 1
            except Exception:
                try:
                    con.execute("ROLLBACK;")
                except sqlite3.Error:
                    pass
                raise


class SqliteAccountStore:
    """AccountStore persisted in SQLite.

    atomic() holds one write transaction for the calling thread; lookup() and
    commit() issued inside it share that transaction, which gives the
    operation a serialized read-modify-write across threads and processes.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()
        self._local = threading.local()

    @contextmanager
    def atomic(self) -> Iterator[None]:
        if getattr(self._local, "con", None) is not None:
            yield
            return
        with self._db.write_tx() as con:
            self._local.con = con
            try:
                yield
            finally:
                self._local.con = None

    @contextmanager
    def snapshot(self) -> Iterator[None]:
        """Hold one read transaction so a multi-read view sees a single commit point."""
        if getattr(self._local, "con", None) is not None:
            yield
            return
        with self._db.read_tx() as con:
            self._local.con = con
            try:
                yield
            finally:
                self._local.con = None

    @contextmanager
    def _reading(self) -> Iterator[sqlite3.Connection]:
        con = getattr(self._local, "con", None)
        if con is not None:
            yield con
            return
        with self._db.connection() as fresh:
            yield fresh

    @contextmanager
    def _writing(self) -> Iterator[sqlite3.Connection]:
        con = getattr(self._local, "con", None)
        if con is not None:
            yield con
            return
        with self._db.write_tx() as fresh:
            yield fresh

    @staticmethod
    def _exists(con: sqlite3.Connection, owner: str) -> bool:
        if con.execute("SELECT 1 FROM vaults WHERE owner=?;", (owner,)).fetchone() is not None:
            return True
        return con.execute("SELECT 1 FROM reward_pools WHERE owner=?;", (owner,)).fetchone() is not None

    @staticmethod
    def _balance(con: sqlite3.Connection, account: str) -> int:
        row = con.execute("SELECT balance FROM custody_balances WHERE account=?;", (account,)).fetchone()
        return int(str(row["balance"])) if row is not None else 0

    @staticmethod
    def _set_balance(con: sqlite3.Connection, account: str, balance: int, now: int) -> None:
        con.execute(
            """
            INSERT INTO custody_balances(account, balance, updated_ts_ms) VALUES(?, ?, ?)
            ON CONFLICT(account) DO UPDATE SET balance=excluded.balance, updated_ts_ms=excluded.updated_ts_ms;
            """,
            (account, str(int(balance)), now),
        )

    def exists(self, owner: str) -> bool:
        with self._reading() as con:
            return self._exists(con, owner)

    def lookup(self, owner: str) -> Tuple[Vault, RewardPool]:
        with self._reading() as con:
            v = con.execute("SELECT owner, balance, last_update_time FROM vaults WHERE owner=?;", (owner,)).fetchone()
            p = con.execute("SELECT balance FROM reward_pools WHERE owner=?;", (owner,)).fetchone()
        if v is None or p is None:
            raise NotInitialized(details={"owner": owner})
        vault = Vault.from_dict(
            {"owner": str(v["owner"]), "balance": int(str(v["balance"])), "last_update_time": int(v["last_update_time"])}
        )
        return vault, RewardPool.from_dict({"balance": int(str(p["balance"]))})

    def balance_of(self, account: str) -> int:
        with self._reading() as con:
            return self._balance(con, account)

    def fund(self, account: str, amount: int) -> int:
        amt = int(amount)
        if amt < 0:
            raise InvalidAmount("negative_fund", {"account": account, "amount": amt})
        with self._writing() as con:
            new_bal = self._balance(con, account) + amt
            if new_bal > U64_MAX:
                raise ArithmeticOverflow("custody_overflow", {"account": account, "amount": amt})
            self._set_balance(con, account, new_bal, _now_ms())
            return new_bal

    def history(self, owner: str, limit: int = DEFAULT_HISTORY_LIMIT) -> List[Json]:
        n = clamp_history_limit(limit)
        with self._reading() as con:
            rows = con.execute(
                "SELECT receipt_json FROM vault_receipts WHERE owner=? ORDER BY seq DESC LIMIT ?;",
                (owner, n),
            ).fetchall()
        return [json.loads(str(r["receipt_json"])) for r in rows]

    @staticmethod
    def _locks(con: sqlite3.Connection, owner: str, active_only: bool) -> List[Lock]:
        sql = "SELECT lock_json FROM vault_locks WHERE owner=?"
        if active_only:
            sql += " AND status='active'"
        rows = con.execute(sql + " ORDER BY rowid;", (owner,)).fetchall()
        return [Lock.from_dict(json.loads(str(r["lock_json"]))) for r in rows]

    def locks_of(self, owner: str, *, active_only: bool = False) -> List[Lock]:
        with self._reading() as con:
            return self._locks(con, owner, active_only)

    def get_lock(self, lock_id: str) -> Lock:
        with self._reading() as con:
            row = con.execute("SELECT lock_json FROM vault_locks WHERE lock_id=?;", (lock_id,)).fetchone()
        if row is None:
            raise LockNotFound(details={"lock_id": lock_id})
        return Lock.from_dict(json.loads(str(row["lock_json"])))

    def locked_total(self, owner: str) -> int:
        return locked_total(self.locks_of(owner, active_only=True))

    def commit(self, mutations: Mutations) -> None:
        m = mutations
        if m.vault.owner != m.owner:
            raise ValueError("mutations.vault.owner must match mutations.owner")

        vault_rec = Vault.from_dict(m.vault.to_dict())
        pool_rec = RewardPool.from_dict(m.pool.to_dict())

        with self._writing() as con:
            present = self._exists(con, m.owner)
            if m.create and present:
                raise AlreadyInitialized(details={"owner": m.owner})
            if not m.create and not present:
                raise NotInitialized(details={"owner": m.owner})

            current = {a: self._balance(con, a) for a in touched_accounts(m.transfers)}
            staged = stage_transfers(current, m.transfers)
            stage_locks(m.owner, vault_rec, self._locks(con, m.owner, False), m.locks)

            now = _now_ms()
            con.execute(
                """
                INSERT INTO vaults(owner, balance, last_update_time, updated_ts_ms) VALUES(?, ?, ?, ?)
                ON CONFLICT(owner) DO UPDATE SET
                  balance=excluded.balance,
                  last_update_time=excluded.last_update_time,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (m.owner, str(vault_rec.balance), int(vault_rec.last_update_time), now),
            )
            con.execute(
                """
                INSERT INTO reward_pools(owner, balance, updated_ts_ms) VALUES(?, ?, ?)
                ON CONFLICT(owner) DO UPDATE SET balance=excluded.balance, updated_ts_ms=excluded.updated_ts_ms;
                """,
                (m.owner, str(pool_rec.balance), now),
            )
            for account, bal in staged.items():
                self._set_balance(con, account, bal, now)
            for lk in m.locks:
                con.execute(
                    """
                    INSERT INTO vault_locks(lock_id, owner, amount, status, lock_json, updated_ts_ms) VALUES(?, ?, ?, ?, ?, ?)
                    ON CONFLICT(lock_id) DO UPDATE SET
                      amount=excluded.amount,
                      status=excluded.status,
                      lock_json=excluded.lock_json,
                      updated_ts_ms=excluded.updated_ts_ms;
                    """,
                    (lk.lock_id, lk.owner, str(int(lk.amount)), lk.status, _canon_json(lk.to_dict()), now),
                )
            if m.receipt is not None:
                con.execute(
                    "INSERT INTO vault_receipts(owner, receipt_json, created_ts_ms) VALUES(?, ?, ?);",
                    (m.owner, _canon_json(m.receipt), now),
                )
