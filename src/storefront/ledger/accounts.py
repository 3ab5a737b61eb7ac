"""
storefront: accounts model

  - Account: what the host persists per address (balance, data, owner program)
  - AccountInfo: the mutable working view a program sees during one instruction
  - AccountsDB: storage abstraction keyed by Pubkey; no secondary indexes,
    lookups other than by key are linear scans with byte filters
  - LedgerSession: exclusive read-then-write view; everything a host reads
    and writes for one transaction goes through a single session

Accounts whose balance reaches zero are purged on commit.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import ContextManager, Dict, Iterable, Iterator, List, Optional, Protocol, Sequence, Tuple, Union, runtime_checkable

from storefront.ledger.pubkey import Pubkey

SYSTEM_PROGRAM_ID = Pubkey.default()


@dataclass(frozen=True, slots=True)
class Account:
    lamports: int
    data: bytes = b""
    owner: Pubkey = SYSTEM_PROGRAM_ID


@dataclass
class AccountInfo:
    key: Pubkey
    is_signer: bool
    is_writable: bool
    lamports: int
    data: bytearray
    owner: Pubkey

    @classmethod
    def from_account(cls, key: Pubkey, acct: Optional[Account], *, is_signer: bool = False, is_writable: bool = True) -> "AccountInfo":
        if acct is None:
            acct = Account(lamports=0)
        return cls(
            key=key,
            is_signer=bool(is_signer),
            is_writable=bool(is_writable),
            lamports=int(acct.lamports),
            data=bytearray(acct.data),
            owner=acct.owner,
        )

    def to_account(self) -> Account:
        return Account(lamports=int(self.lamports), data=bytes(self.data), owner=self.owner)

    def is_allocated(self) -> bool:
        return self.lamports > 0 or len(self.data) > 0 or self.owner != SYSTEM_PROGRAM_ID


@dataclass(frozen=True, slots=True)
class Memcmp:
    offset: int
    data: bytes

    def matches(self, buf: bytes) -> bool:
        end = self.offset + len(self.data)
        return end <= len(buf) and buf[self.offset : end] == self.data


@dataclass(frozen=True, slots=True)
class DataSize:
    size: int

    def matches(self, buf: bytes) -> bool:
        return len(buf) == self.size


ScanFilter = Union[Memcmp, DataSize]


def matches_all(buf: bytes, filters: Iterable[ScanFilter]) -> bool:
    return all(f.matches(buf) for f in filters)


class LedgerSession(Protocol):
    def get(self, key: Pubkey) -> Optional[Account]:
        ...

    def is_processed(self, tx_id: str) -> bool:
        ...

    def commit(self, updates: Dict[Pubkey, Account], *, tx_id: Optional[str] = None) -> None:
        ...


@runtime_checkable
class AccountsDB(Protocol):
    def get(self, key: Pubkey) -> Optional[Account]:
        ...

    def commit(self, updates: Dict[Pubkey, Account], *, tx_id: Optional[str] = None) -> None:
        """Apply all updates (and record tx_id) atomically; zero-balance accounts are removed."""
        ...

    def is_processed(self, tx_id: str) -> bool:
        ...

    def scan(self, owner: Pubkey, filters: Sequence[ScanFilter] = ()) -> List[Tuple[Pubkey, Account]]:
        ...

    def session(self) -> ContextManager[LedgerSession]:
        """Exclusive access from first read to last write; no other writer interleaves."""
        ...


@dataclass
class MemoryAccountsDB:
    """Dict-backed AccountsDB for tests and ephemeral runs."""

    accounts: Dict[Pubkey, Account] = field(default_factory=dict)
    processed: set = field(default_factory=set)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def get(self, key: Pubkey) -> Optional[Account]:
        return self.accounts.get(key)

    def commit(self, updates: Dict[Pubkey, Account], *, tx_id: Optional[str] = None) -> None:
        for key, acct in updates.items():
            if acct.lamports == 0:
                self.accounts.pop(key, None)
            else:
                self.accounts[key] = acct
        if tx_id:
            self.processed.add(tx_id)

    def is_processed(self, tx_id: str) -> bool:
        return tx_id in self.processed

    @contextmanager
    def session(self) -> Iterator["MemoryAccountsDB"]:
        with self._lock:
            yield self

    def scan(self, owner: Pubkey, filters: Sequence[ScanFilter] = ()) -> List[Tuple[Pubkey, Account]]:
        out = [(k, a) for (k, a) in self.accounts.items() if a.owner == owner and matches_all(a.data, filters)]
        out.sort(key=lambda kv: kv[0])
        return out
