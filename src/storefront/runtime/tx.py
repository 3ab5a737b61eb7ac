# src/storefront/runtime/tx.py
from __future__ import annotations

import hashlib
import json
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from storefront.crypto.sig import Keypair, verify_ed25519
from storefront.ledger.pubkey import Pubkey

Json = Dict[str, Any]


def _json_canonical(obj: Any) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


@dataclass(frozen=True)
class AccountMeta:
    pubkey: Pubkey
    is_signer: bool = False
    is_writable: bool = True

    def to_json(self) -> Json:
        return {"pubkey": str(self.pubkey), "is_signer": bool(self.is_signer), "is_writable": bool(self.is_writable)}

    @staticmethod
    def from_json(j: Json) -> "AccountMeta":
        return AccountMeta(
            pubkey=Pubkey.from_string(str(j.get("pubkey", ""))),
            is_signer=bool(j.get("is_signer", False)),
            is_writable=bool(j.get("is_writable", True)),
        )


@dataclass(frozen=True)
class Instruction:
    program_id: Pubkey
    accounts: Tuple[AccountMeta, ...]
    data: bytes

    def to_json(self) -> Json:
        return {
            "program_id": str(self.program_id),
            "accounts": [m.to_json() for m in self.accounts],
            "data": self.data.hex(),
        }

    @staticmethod
    def from_json(j: Json) -> "Instruction":
        metas = j.get("accounts") or []
        if not isinstance(metas, list):
            raise ValueError("instruction accounts must be a list")
        return Instruction(
            program_id=Pubkey.from_string(str(j.get("program_id", ""))),
            accounts=tuple(AccountMeta.from_json(m) for m in metas),
            data=bytes.fromhex(str(j.get("data", ""))),
        )


@dataclass(frozen=True)
class Transaction:
    """One or more instructions executed as a single all-or-nothing unit.

    `nonce` makes otherwise identical transactions distinct; the host refuses
    to apply the same tx_id twice.
    """

    instructions: Tuple[Instruction, ...]
    nonce: str
    signatures: Dict[str, str] = field(default_factory=dict)

    def message(self) -> bytes:
        return _json_canonical({"instructions": [ix.to_json() for ix in self.instructions], "nonce": self.nonce})

    @property
    def tx_id(self) -> str:
        return hashlib.sha256(self.message()).hexdigest()

    def required_signers(self) -> List[Pubkey]:
        out: List[Pubkey] = []
        for ix in self.instructions:
            for m in ix.accounts:
                if m.is_signer and m.pubkey not in out:
                    out.append(m.pubkey)
        return out

    def verified_signers(self) -> set:
        """Pubkeys whose signature over the message checks out."""
        msg = self.message()
        ok = set()
        for pk_s, sig_hex in self.signatures.items():
            try:
                pk = Pubkey.from_string(pk_s)
                sig = bytes.fromhex(sig_hex)
            except ValueError:
                continue
            if verify_ed25519(pk, msg, sig):
                ok.add(pk)
        return ok

    def to_json(self) -> Json:
        return {
            "instructions": [ix.to_json() for ix in self.instructions],
            "nonce": self.nonce,
            "signatures": dict(self.signatures),
        }

    @staticmethod
    def from_json(j: Any) -> "Transaction":
        if isinstance(j, Transaction):
            return j
        if not isinstance(j, dict):
            raise ValueError("transaction must be an object")
        ixs = j.get("instructions") or []
        if not isinstance(ixs, list) or not ixs:
            raise ValueError("transaction needs at least one instruction")
        sigs = j.get("signatures") or {}
        if not isinstance(sigs, dict):
            raise ValueError("signatures must be an object")
        return Transaction(
            instructions=tuple(Instruction.from_json(ix) for ix in ixs),
            nonce=str(j.get("nonce", "")),
            signatures={str(k): str(v) for (k, v) in sigs.items()},
        )


def new_transaction(
    instructions: Sequence[Instruction],
    signers: Sequence[Keypair],
    *,
    nonce: Optional[str] = None,
) -> Transaction:
    """Build and sign a transaction with every given keypair."""
    tx = Transaction(instructions=tuple(instructions), nonce=nonce or secrets.token_hex(16))
    msg = tx.message()
    sigs = {str(kp.pubkey): kp.sign(msg).hex() for kp in signers}
    return Transaction(instructions=tx.instructions, nonce=tx.nonce, signatures=sigs)
