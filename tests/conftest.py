from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest

# Ensure local "src/" takes precedence over any globally-installed "storefront" package.
ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

src_str = str(SRC)
if src_str not in sys.path:
    sys.path.insert(0, src_str)


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Drop every STOREFRONT_* variable so config falls back to defaults."""
    for k in list(os.environ.keys()):
        if k.startswith("STOREFRONT_"):
            monkeypatch.delenv(k, raising=False)


@pytest.fixture
def program_id():
    from storefront.crypto.sig import Keypair

    return Keypair.from_label("test-program").pubkey


@pytest.fixture
def executor(program_id):
    from storefront.ledger.accounts import MemoryAccountsDB
    from storefront.runtime.executor import Executor

    return Executor(accounts_db=MemoryAccountsDB(), program_id=program_id)
