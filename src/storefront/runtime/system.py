# src/storefront/runtime/system.py
from __future__ import annotations

"""Host primitives a program may call while processing an instruction.

Authority for a debit or a new allocation comes from one of:
  - a transaction signature on the account (AccountInfo.is_signer), or
  - a Capability proving the account is an address derived by the
    currently executing program.

Every primitive keeps the context's baseline in step with the balances it
moves, so the executor's post-checks only see changes the program made by
writing AccountInfo fields directly.
"""

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from storefront.ledger.accounts import SYSTEM_PROGRAM_ID, AccountInfo
from storefront.ledger.pubkey import Capability, Pubkey
from storefront.runtime.errors import (
    AddressCollision,
    ArithmeticOverflow,
    AuthorizationMismatch,
    InsufficientValue,
    RuntimeViolation,
)

# SQLite INTEGER is signed 64-bit; balances never exceed it.
LAMPORTS_MAX = 2**63 - 1

# Rent-exemption sizing used by clients when choosing a deposit.
ACCOUNT_STORAGE_OVERHEAD = 128
LAMPORTS_PER_BYTE_YEAR = 3480
EXEMPTION_THRESHOLD_YEARS = 2


def minimum_balance(space: int) -> int:
    return (ACCOUNT_STORAGE_OVERHEAD + int(space)) * LAMPORTS_PER_BYTE_YEAR * EXEMPTION_THRESHOLD_YEARS


def checked_add(a: int, b: int) -> int:
    total = int(a) + int(b)
    if total > LAMPORTS_MAX:
        raise ArithmeticOverflow("lamports_overflow", {"a": int(a), "b": int(b)})
    return total


Baseline = Tuple[int, bytes, Pubkey]


@dataclass
class InvokeContext:
    """Per-instruction host context handed to the program."""

    program_id: Pubkey
    baseline: Dict[Pubkey, Baseline] = field(default_factory=dict)

    def snapshot(self, infos: Dict[Pubkey, AccountInfo]) -> None:
        self.baseline = {k: (i.lamports, bytes(i.data), i.owner) for (k, i) in infos.items()}

    def _sync(self, info: AccountInfo) -> None:
        self.baseline[info.key] = (info.lamports, bytes(info.data), info.owner)

    def _authorized(self, info: AccountInfo, capability: Optional[Capability]) -> bool:
        if info.is_signer:
            return True
        if capability is None:
            return False
        return capability.address == info.key and capability.program_id == self.program_id and capability.verify()

    def _require_authority(self, info: AccountInfo, capability: Optional[Capability], role: str) -> None:
        if not self._authorized(info, capability):
            raise AuthorizationMismatch(f"{role}_not_authorized", {"account": str(info.key)})

    @staticmethod
    def _require_system_account(info: AccountInfo, role: str) -> None:
        if info.owner != SYSTEM_PROGRAM_ID or len(info.data) > 0:
            raise RuntimeViolation(f"{role}_must_be_system_account", {"account": str(info.key)})

    def create_account(
        self,
        payer: AccountInfo,
        new: AccountInfo,
        lamports: int,
        space: int,
        owner: Pubkey,
        capability: Optional[Capability] = None,
    ) -> None:
        """Allocate `space` zeroed bytes at `new`, funded by `payer`, owned by `owner`."""
        self._require_authority(payer, None, "payer")
        self._require_authority(new, capability, "new_account")
        self._require_system_account(payer, "payer")

        if new.is_allocated():
            raise AddressCollision("account_already_in_use", {"account": str(new.key)})
        if int(lamports) <= 0:
            raise InsufficientValue("zero_deposit", {"account": str(new.key)})
        if payer.lamports < int(lamports):
            raise InsufficientValue(
                "payer_balance_too_low",
                {"payer": str(payer.key), "balance": payer.lamports, "needed": int(lamports)},
            )

        payer.lamports -= int(lamports)
        new.lamports = int(lamports)
        new.data = bytearray(int(space))
        new.owner = owner
        self._sync(payer)
        self._sync(new)

    def transfer(
        self,
        src: AccountInfo,
        dst: AccountInfo,
        lamports: int,
        capability: Optional[Capability] = None,
    ) -> None:
        """Move native value out of a system-owned account."""
        self._require_authority(src, capability, "source")
        self._require_system_account(src, "source")

        if src.lamports < int(lamports):
            raise InsufficientValue(
                "source_balance_too_low",
                {"source": str(src.key), "balance": src.lamports, "needed": int(lamports)},
            )
        if src.key == dst.key:
            return

        dst_after = checked_add(dst.lamports, lamports)
        src.lamports -= int(lamports)
        dst.lamports = dst_after
        self._sync(src)
        self._sync(dst)
