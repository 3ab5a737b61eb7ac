from __future__ import annotations

import logging

import pytest

from storefront.crypto.sig import Keypair
from storefront.ledger.accounts import MemoryAccountsDB
from storefront.program.instructions import make_store_ix, store_address, wipe_ix
from storefront.runtime.admission import AdmissionPolicy, admit_tx
from storefront.runtime.executor import Executor
from storefront.runtime.tx import Transaction, new_transaction
from storefront.testing.sigtools import funded_keypair, submit_signed

FUNDS = 10_000_000_000


@pytest.fixture
def gated(program_id):
    admin = Keypair.from_label("admin")
    ex = Executor(accounts_db=MemoryAccountsDB(), program_id=program_id, wipe_authorities=[admin.pubkey])
    alice = funded_keypair(ex, label="alice", lamports=FUNDS)
    assert submit_signed(ex, [make_store_ix(program_id, alice.pubkey, "books")], [alice]).ok
    return ex, admin, alice, store_address("books", program_id)


def test_empty_transaction_is_invalid(program_id) -> None:
    verdict = admit_tx(Transaction(instructions=(), nonce="n"), AdmissionPolicy(program_id=program_id))
    assert verdict.ok is False
    assert (verdict.code, verdict.reason) == ("invalid_tx", "no_instructions")


def test_signed_transaction_is_admitted(program_id) -> None:
    alice = Keypair.from_label("alice")
    tx = new_transaction([make_store_ix(program_id, alice.pubkey, "books")], [alice])
    verdict = admit_tx(tx, AdmissionPolicy(program_id=program_id))
    assert verdict.ok
    assert (verdict.code, verdict.details) == ("ok", None)


def test_wipe_by_unlisted_authority_is_forbidden(gated) -> None:
    ex, _admin, alice, store = gated
    mallory = funded_keypair(ex, label="mallory", lamports=FUNDS)
    r = submit_signed(ex, [wipe_ix(ex.program_id, mallory.pubkey, store)], [mallory])
    assert (r.code, r.reason) == ("forbidden", "wipe_not_authorized")
    assert ex.get_account(store) is not None


def test_store_owner_is_not_a_wipe_authority(gated) -> None:
    ex, _admin, alice, store = gated
    r = submit_signed(ex, [wipe_ix(ex.program_id, alice.pubkey, store)], [alice])
    assert r.code == "forbidden"


def test_listed_authority_can_wipe(gated) -> None:
    ex, admin, _alice, store = gated
    held = ex.get_balance(store)
    r = submit_signed(ex, [wipe_ix(ex.program_id, admin.pubkey, store)], [admin])
    assert r.ok, r
    assert ex.get_account(store) is None
    assert ex.get_balance(admin.pubkey) == held


def test_gate_does_not_affect_other_commands(gated) -> None:
    ex, _admin, alice, _store = gated
    assert submit_signed(ex, [make_store_ix(ex.program_id, alice.pubkey, "tea")], [alice]).ok


def test_unrestricted_wipe_logs_a_warning(executor, caplog: pytest.LogCaptureFixture) -> None:
    bob = funded_keypair(executor, label="bob", lamports=FUNDS)
    target = Keypair.from_label("nobody").pubkey
    caplog.set_level(logging.WARNING, logger="storefront.admission")

    r = submit_signed(executor, [wipe_ix(executor.program_id, bob.pubkey, target)], [bob])
    # Reclaiming an empty account is a no-op, not an error.
    assert r.ok, r
    assert "wipe_unrestricted" in caplog.text
