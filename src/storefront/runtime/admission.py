from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Optional

from storefront.ledger.pubkey import Pubkey
from storefront.program.codec import CommandTag
from storefront.runtime.event_log import log_event
from storefront.runtime.tx import Transaction

log = logging.getLogger("storefront.admission")


@dataclass(frozen=True)
class TxVerdict:
    ok: bool
    code: str
    reason: str
    details: Optional[Dict[str, Any]] = None

    @staticmethod
    def admit() -> "TxVerdict":
        return TxVerdict(True, "ok", "admitted", None)

    @staticmethod
    def reject(code: str, reason: str, details: Optional[Dict[str, Any]] = None) -> "TxVerdict":
        return TxVerdict(False, code, reason, details)


@dataclass(frozen=True)
class AdmissionPolicy:
    """Deployment policy checked before a transaction reaches the program.

    wipe_authorities: when non-empty, only these identities (and only when
    signing) may submit Wipe. Empty means Wipe is unrestricted.
    """

    program_id: Pubkey
    wipe_authorities: FrozenSet[Pubkey] = field(default_factory=frozenset)


def admit_tx(tx: Transaction, policy: AdmissionPolicy) -> TxVerdict:
    if not tx.instructions:
        return TxVerdict.reject("invalid_tx", "no_instructions")

    signed = tx.verified_signers()
    for pk in tx.required_signers():
        if pk not in signed:
            return TxVerdict.reject("unauthorized", "missing_signature", {"signer": str(pk)})

    for idx, ix in enumerate(tx.instructions):
        if ix.program_id != policy.program_id:
            return TxVerdict.reject("unsupported_program", "unknown_program_id", {"index": idx, "program_id": str(ix.program_id)})

        # The handler itself never checks who wipes; this is the only gate.
        if ix.data[:1] == bytes([CommandTag.WIPE]):
            if not policy.wipe_authorities:
                log_event(log, "wipe_unrestricted", level=logging.WARNING, tx_id=tx.tx_id, index=idx)
                continue
            authority = ix.accounts[1] if len(ix.accounts) > 1 else None
            if authority is None or authority.pubkey not in policy.wipe_authorities or authority.pubkey not in signed:
                return TxVerdict.reject(
                    "forbidden",
                    "wipe_not_authorized",
                    {"index": idx, "authority": str(authority.pubkey) if authority else None},
                )

    return TxVerdict.admit()
