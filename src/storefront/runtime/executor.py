from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from storefront.ledger.accounts import Account, AccountInfo, AccountsDB, LedgerSession, ScanFilter
from storefront.ledger.pubkey import Pubkey
from storefront.program.processor import process_instruction
from storefront.runtime.admission import AdmissionPolicy, admit_tx
from storefront.runtime.errors import ProgramError, RuntimeViolation
from storefront.runtime.event_log import log_event
from storefront.runtime.system import InvokeContext, checked_add
from storefront.runtime.tx import Transaction

Json = Dict[str, Any]

log = logging.getLogger("storefront.executor")


@dataclass
class TxReceipt:
    ok: bool
    tx_id: str
    code: str = "ok"
    reason: str = "applied"
    details: Optional[Json] = None
    commands: List[str] = field(default_factory=list)

    def to_json(self) -> Json:
        return {
            "ok": self.ok,
            "tx_id": self.tx_id,
            "code": self.code,
            "reason": self.reason,
            "details": self.details,
            "commands": list(self.commands),
        }


class ExecutorError(RuntimeError):
    pass


def _post_checks(ctx: InvokeContext, infos: Dict[Pubkey, AccountInfo], total_before: int) -> None:
    """Host rules every instruction must leave intact.

    Changes made through InvokeContext primitives are already folded into
    ctx.baseline, so anything left over was written by the program directly.
    """
    total_after = 0
    for key, info in infos.items():
        lamports, data, owner = ctx.baseline[key]
        if info.lamports < 0:
            raise RuntimeViolation("negative_balance", {"account": str(key)})
        if info.owner != owner:
            raise RuntimeViolation("owner_changed", {"account": str(key)})
        if len(info.data) != len(data):
            raise RuntimeViolation("data_length_changed", {"account": str(key), "before": len(data), "after": len(info.data)})
        if owner != ctx.program_id:
            if info.lamports < lamports:
                raise RuntimeViolation("external_account_debited", {"account": str(key)})
            if bytes(info.data) != data:
                raise RuntimeViolation("external_account_data_modified", {"account": str(key)})
        total_after += info.lamports
    if total_after != total_before:
        raise RuntimeViolation("lamports_not_conserved", {"before": total_before, "after": total_after})


class Executor:
    """Runs signed transactions against an AccountsDB, all-or-nothing.

    Each submit() opens one ledger session, loads working copies of every
    referenced account, runs the instructions in order, and commits only if
    all of them succeed. The session excludes other writers (including other
    processes on the same SQLite file) from the replay check to the commit.

    Once a transaction passes admission its tx id is spent whether or not
    the program accepts it, so a rejected signed transaction cannot be
    resubmitted later under different ledger state.
    """

    def __init__(
        self,
        *,
        accounts_db: AccountsDB,
        program_id: Pubkey,
        wipe_authorities: Iterable[Pubkey] = (),
        airdrop_enabled: bool = True,
    ) -> None:
        self._db = accounts_db
        self.program_id = program_id
        self.policy = AdmissionPolicy(program_id=program_id, wipe_authorities=frozenset(wipe_authorities))
        self.airdrop_enabled = bool(airdrop_enabled)
        self._lock = threading.Lock()

    @property
    def accounts_db(self) -> AccountsDB:
        return self._db

    # ----------------------------
    # Reads
    # ----------------------------

    def get_account(self, key: Pubkey) -> Optional[Account]:
        return self._db.get(key)

    def get_balance(self, key: Pubkey) -> int:
        acct = self._db.get(key)
        return 0 if acct is None else int(acct.lamports)

    def scan(self, filters: Sequence[ScanFilter] = ()) -> List[Tuple[Pubkey, Account]]:
        """Linear scan over accounts owned by the program."""
        return self._db.scan(self.program_id, filters)

    # ----------------------------
    # Writes
    # ----------------------------

    def airdrop(self, key: Pubkey, lamports: int) -> int:
        """Credit a wallet from nowhere. Local/dev ledgers only."""
        if not self.airdrop_enabled:
            raise ExecutorError("airdrop disabled in this mode")
        if int(lamports) <= 0:
            raise ValueError("airdrop amount must be positive")
        with self._lock, self._db.session() as s:
            acct = s.get(key) or Account(lamports=0)
            updated = Account(lamports=checked_add(acct.lamports, lamports), data=acct.data, owner=acct.owner)
            s.commit({key: updated})
        log_event(log, "airdrop", account=str(key), lamports=int(lamports), balance=updated.lamports)
        return updated.lamports

    def submit(self, tx: Transaction) -> TxReceipt:
        with self._lock, self._db.session() as s:
            return self._submit_in(s, tx)

    def _load(self, s: LedgerSession, tx: Transaction) -> Dict[Pubkey, AccountInfo]:
        signed = tx.verified_signers()
        infos: Dict[Pubkey, AccountInfo] = {}
        for ix in tx.instructions:
            for m in ix.accounts:
                info = infos.get(m.pubkey)
                if info is None:
                    info = AccountInfo.from_account(m.pubkey, s.get(m.pubkey), is_signer=False, is_writable=False)
                    infos[m.pubkey] = info
                info.is_signer = info.is_signer or (m.is_signer and m.pubkey in signed)
                info.is_writable = info.is_writable or m.is_writable
        return infos

    def _submit_in(self, s: LedgerSession, tx: Transaction) -> TxReceipt:
        tx_id = tx.tx_id

        if s.is_processed(tx_id):
            log_event(log, "tx_rejected", tx_id=tx_id, code="replay", reason="tx_already_processed")
            return TxReceipt(ok=False, tx_id=tx_id, code="replay", reason="tx_already_processed")

        verdict = admit_tx(tx, self.policy)
        if not verdict.ok:
            log_event(log, "tx_rejected", tx_id=tx_id, code=verdict.code, reason=verdict.reason, details=verdict.details)
            return TxReceipt(ok=False, tx_id=tx_id, code=verdict.code, reason=verdict.reason, details=verdict.details)

        infos = self._load(s, tx)
        loaded = {k: i.to_account() for (k, i) in infos.items()}
        commands: List[str] = []

        try:
            for ix in tx.instructions:
                ctx = InvokeContext(program_id=self.program_id)
                ctx.snapshot(infos)
                total_before = sum(i.lamports for i in infos.values())
                cmd = process_instruction(ctx, [infos[m.pubkey] for m in ix.accounts], ix.data)
                _post_checks(ctx, infos, total_before)
                commands.append(type(cmd).__name__)

            updates: Dict[Pubkey, Account] = {}
            for key, info in infos.items():
                acct = info.to_account()
                if acct == loaded[key]:
                    continue
                if not info.is_writable:
                    raise RuntimeViolation("readonly_account_modified", {"account": str(key)})
                updates[key] = acct
        except ProgramError as e:
            s.commit({}, tx_id=tx_id)
            log_event(log, "tx_rejected", tx_id=tx_id, code=e.code, reason=e.reason, details=e.details, commands=commands)
            return TxReceipt(ok=False, tx_id=tx_id, code=e.code, reason=e.reason, details=e.details, commands=commands)

        s.commit(updates, tx_id=tx_id)
        log_event(log, "tx_applied", tx_id=tx_id, commands=commands, touched=len(updates))
        return TxReceipt(ok=True, tx_id=tx_id, commands=commands)
