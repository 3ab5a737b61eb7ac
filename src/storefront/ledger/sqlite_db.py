# src/storefront/ledger/sqlite_db.py
from __future__ import annotations

import os
import random
import sqlite3
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Sequence, Tuple

from storefront.ledger.accounts import Account, ScanFilter, matches_all
from storefront.ledger.pubkey import Pubkey


def _now_ms() -> int:
    return int(time.time() * 1000)


def _env_int(name: str, default: int) -> int:
    try:
        raw = str(os.environ.get(name, "")).strip()
        return int(raw) if raw else int(default)
    except ValueError:
        return int(default)


class SqliteDB:
    """SQLite manager for the local ledger.

    Design goals:
      - single durable DB file for accounts + processed tx ids
      - cross-process safe: every read-modify-write happens inside one
        BEGIN IMMEDIATE transaction (see SqliteAccountsDB.session)
      - cross-thread safe by never sharing connections

    SQLite allows only one writer at a time; BEGIN IMMEDIATE can transiently
    fail with "database is locked", so write_tx() retries until a deadline.
    """

    SCHEMA_VERSION = 1

    def __init__(self, *, path: str, mode: Optional[str] = None) -> None:
        self.path = str(path)
        self.mode = mode

    def _sqlite_synchronous_pragma(self) -> str:
        """FULL in prod, NORMAL elsewhere; override with STOREFRONT_SQLITE_SYNCHRONOUS.

        The mode comes from the market config when given, else STOREFRONT_MODE,
        else the config default (dev).
        """
        mode = (self.mode or os.environ.get("STOREFRONT_MODE") or "dev").strip().lower()
        default = "FULL" if mode == "prod" else "NORMAL"
        raw = (os.environ.get("STOREFRONT_SQLITE_SYNCHRONOUS") or default).strip().upper()
        if raw not in {"OFF", "NORMAL", "FULL", "EXTRA"}:
            raw = default
        return raw

    def ensure_parent_dir(self) -> None:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)

    def _connect(self) -> sqlite3.Connection:
        self.ensure_parent_dir()

        connect_timeout_s = float(_env_int("STOREFRONT_SQLITE_CONNECT_TIMEOUT_MS", 30_000)) / 1000.0
        con = sqlite3.connect(
            self.path,
            timeout=connect_timeout_s,
            isolation_level=None,  # we manage BEGIN/COMMIT ourselves
            check_same_thread=False,
        )
        con.row_factory = sqlite3.Row

        con.execute("PRAGMA journal_mode=WAL;")
        con.execute(f"PRAGMA synchronous={self._sqlite_synchronous_pragma()};")
        con.execute("PRAGMA foreign_keys=ON;")
        con.execute("PRAGMA temp_store=MEMORY;")

        busy_ms = max(0, _env_int("STOREFRONT_SQLITE_BUSY_TIMEOUT_MS", int(connect_timeout_s * 1000)))
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
                CREATE TABLE IF NOT EXISTS accounts (
                  pubkey BLOB PRIMARY KEY,
                  lamports INTEGER NOT NULL,
                  owner BLOB NOT NULL,
                  data BLOB NOT NULL,
                  updated_ts_ms INTEGER NOT NULL
                );
                """
            )
            con.execute("CREATE INDEX IF NOT EXISTS idx_accounts_owner ON accounts(owner);")
            con.execute(
                """
                CREATE TABLE IF NOT EXISTS processed_txs (
                  tx_id TEXT PRIMARY KEY,
                  applied_ts_ms INTEGER NOT NULL
                );
                """
            )

            row = con.execute("SELECT value FROM meta WHERE key='schema_version' LIMIT 1;").fetchone()
            if row is None:
                con.execute("INSERT INTO meta(key, value) VALUES('schema_version', ?);", (str(self.SCHEMA_VERSION),))
            elif str(row["value"]) != str(self.SCHEMA_VERSION):
                raise RuntimeError(
                    f"sqlite schema_version mismatch: have={row['value']} want={self.SCHEMA_VERSION}. "
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
        base_sleep = max(0.001, float(_env_int("STOREFRONT_SQLITE_WRITE_BACKOFF_BASE_MS", 5)) / 1000.0)
        max_sleep = max(base_sleep, float(_env_int("STOREFRONT_SQLITE_WRITE_BACKOFF_MAX_MS", 250)) / 1000.0)
        sleep_s = min(max_sleep, base_sleep * (2.0 ** min(attempt, 8)))
        time.sleep(sleep_s * (0.5 + random.random()))

    @contextmanager
    def write_tx(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction with bounded retry on writer-lock contention.

        Policy:
          - retry BEGIN IMMEDIATE / COMMIT until a deadline
          - exponential backoff with jitter
          - then raise (fail closed)
        """
        deadline_ts = _now_ms() + max(250, _env_int("STOREFRONT_SQLITE_WRITE_DEADLINE_MS", 30_000))

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

                c_attempt = 0
                while True:
                    try:
                        con.execute("COMMIT;")
                        break
                    except sqlite3.OperationalError as e:
                        if not self._is_locked_error(e) or _now_ms() >= deadline_ts:
                            raise
                        self._backoff(c_attempt)
                        c_attempt += 1
            except BaseException:
                con.execute("ROLLBACK;")
                raise


def _row_to_account(row: sqlite3.Row) -> Account:
    return Account(lamports=int(row["lamports"]), data=bytes(row["data"]), owner=Pubkey(bytes(row["owner"])))


class _SqliteSession:
    """Reads and writes on a connection that already holds the write lock."""

    def __init__(self, con: sqlite3.Connection) -> None:
        self._con = con

    def get(self, key: Pubkey) -> Optional[Account]:
        row = self._con.execute("SELECT lamports, owner, data FROM accounts WHERE pubkey=?;", (bytes(key),)).fetchone()
        return None if row is None else _row_to_account(row)

    def is_processed(self, tx_id: str) -> bool:
        return self._con.execute("SELECT 1 FROM processed_txs WHERE tx_id=?;", (tx_id,)).fetchone() is not None

    def commit(self, updates: Dict[Pubkey, Account], *, tx_id: Optional[str] = None) -> None:
        now = _now_ms()
        con = self._con
        if tx_id:
            con.execute("INSERT INTO processed_txs(tx_id, applied_ts_ms) VALUES(?, ?);", (tx_id, now))
        for key, acct in updates.items():
            if acct.lamports == 0:
                con.execute("DELETE FROM accounts WHERE pubkey=?;", (bytes(key),))
                continue
            con.execute(
                """
                INSERT INTO accounts(pubkey, lamports, owner, data, updated_ts_ms)
                VALUES(?, ?, ?, ?, ?)
                ON CONFLICT(pubkey) DO UPDATE SET
                  lamports=excluded.lamports,
                  owner=excluded.owner,
                  data=excluded.data,
                  updated_ts_ms=excluded.updated_ts_ms;
                """,
                (bytes(key), int(acct.lamports), bytes(acct.owner), bytes(acct.data), now),
            )


class SqliteAccountsDB:
    """AccountsDB persisted in SQLite.

    session() holds BEGIN IMMEDIATE from the first read to COMMIT, so two
    hosts (CLI and API server, say) on one file never interleave a
    load-execute-commit cycle, and a crash never leaves half a transaction
    on disk.
    """

    def __init__(self, *, db: SqliteDB) -> None:
        self._db = db
        self._db.init_schema()

    @property
    def db(self) -> SqliteDB:
        return self._db

    def get(self, key: Pubkey) -> Optional[Account]:
        with self._db.connection() as con:
            return _SqliteSession(con).get(key)

    @contextmanager
    def session(self) -> Iterator[_SqliteSession]:
        with self._db.write_tx() as con:
            yield _SqliteSession(con)

    def commit(self, updates: Dict[Pubkey, Account], *, tx_id: Optional[str] = None) -> None:
        with self.session() as s:
            s.commit(updates, tx_id=tx_id)

    def is_processed(self, tx_id: str) -> bool:
        with self._db.connection() as con:
            return _SqliteSession(con).is_processed(tx_id)

    def scan(self, owner: Pubkey, filters: Sequence[ScanFilter] = ()) -> List[Tuple[Pubkey, Account]]:
        with self._db.connection() as con:
            rows = con.execute(
                "SELECT pubkey, lamports, owner, data FROM accounts WHERE owner=? ORDER BY pubkey;",
                (bytes(owner),),
            ).fetchall()
        out: List[Tuple[Pubkey, Account]] = []
        for row in rows:
            acct = _row_to_account(row)
            if matches_all(acct.data, filters):
                out.append((Pubkey(bytes(row["pubkey"])), acct))
        return out
