# src/storefront/runtime/executor_boot.py

from __future__ import annotations

from typing import Optional

from storefront.ledger.sqlite_db import SqliteAccountsDB, SqliteDB
from storefront.runtime.config import MarketConfig, load_market_config
from storefront.runtime.executor import Executor


def build_executor(cfg: Optional[MarketConfig] = None) -> Executor:
    """
    Build a SQLite-backed Executor from an explicit config or, if omitted,
    from STOREFRONT_CONFIG_PATH / STOREFRONT_* environment variables.
    """
    c = cfg or load_market_config()
    return Executor(
        accounts_db=SqliteAccountsDB(db=SqliteDB(path=c.db_path, mode=c.mode)),
        program_id=c.program_pubkey,
        wipe_authorities=c.wipe_authority_pubkeys,
        airdrop_enabled=c.airdrop_enabled,
    )
