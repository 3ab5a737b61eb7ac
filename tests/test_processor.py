from __future__ import annotations

from dataclasses import replace

import pytest

from storefront.ledger.accounts import SYSTEM_PROGRAM_ID, Account
from storefront.program.codec import (
    PRODUCT_SPACE,
    STORE_SPACE,
    AddToStore,
    MakeStore,
    Product,
    Store,
    decode_product,
    decode_store,
    encode_command,
    encode_product,
)
from storefront.program.instructions import (
    add_to_store_ix,
    buy_ix,
    close_ix,
    delete_from_store_ix,
    list_products,
    make_store_ix,
    product_address,
    read_product,
    store_address,
    wipe_ix,
)
from storefront.runtime.system import minimum_balance
from storefront.testing.sigtools import deterministic_keypair, funded_keypair, submit_signed

FUNDS = 10_000_000_000
PRICE = 500_000


@pytest.fixture
def alice(executor):
    return funded_keypair(executor, label="alice", lamports=FUNDS)


@pytest.fixture
def bob(executor):
    return funded_keypair(executor, label="bob", lamports=FUNDS)


@pytest.fixture
def books(executor, alice):
    """A store named "books" owned by alice, holding one product "dune"."""
    pid = executor.program_id
    store = store_address("books", pid)
    r = submit_signed(
        executor,
        [make_store_ix(pid, alice.pubkey, "books"), add_to_store_ix(pid, alice.pubkey, store, "dune", PRICE)],
        [alice],
    )
    assert r.ok, r
    return store


# ----------------------------
# MakeStore
# ----------------------------


def test_make_store_allocates_record_at_derived_address(executor, alice) -> None:
    pid = executor.program_id
    r = submit_signed(executor, [make_store_ix(pid, alice.pubkey, "books")], [alice])
    assert r.ok, r
    assert r.commands == ["MakeStore"]

    acct = executor.get_account(store_address("books", pid))
    assert acct is not None
    assert acct.owner == pid
    assert len(acct.data) == STORE_SPACE
    assert acct.lamports == minimum_balance(STORE_SPACE)
    assert decode_store(acct.data) == Store(name_of_store="books", owner=alice.pubkey)
    assert executor.get_balance(alice.pubkey) == FUNDS - minimum_balance(STORE_SPACE)


def test_second_store_with_same_name_collides(executor, alice, bob) -> None:
    pid = executor.program_id
    assert submit_signed(executor, [make_store_ix(pid, alice.pubkey, "books")], [alice]).ok

    r = submit_signed(executor, [make_store_ix(pid, bob.pubkey, "books")], [bob])
    assert not r.ok
    assert r.code == "address_collision"
    assert executor.get_balance(bob.pubkey) == FUNDS
    assert decode_store(executor.get_account(store_address("books", pid)).data).owner == alice.pubkey


def test_store_owner_must_be_the_payer(executor, alice, bob) -> None:
    pid = executor.program_id
    ix = make_store_ix(pid, alice.pubkey, "books")
    cmd = MakeStore(store=Store(name_of_store="books", owner=bob.pubkey), deposit=minimum_balance(STORE_SPACE))
    r = submit_signed(executor, [replace(ix, data=encode_command(cmd))], [alice])
    assert (r.code, r.reason) == ("authorization_mismatch", "store_owner_must_be_payer")
    assert executor.get_account(store_address("books", pid)) is None


def test_store_must_live_at_its_derived_address(executor, alice) -> None:
    pid = executor.program_id
    ix = make_store_ix(pid, alice.pubkey, "books")
    wrong = replace(ix.accounts[0], pubkey=store_address("tea", pid))
    r = submit_signed(executor, [replace(ix, accounts=(wrong, *ix.accounts[1:]))], [alice])
    assert (r.code, r.reason) == ("consistency_mismatch", "store_address_mismatch")


def test_store_name_over_limit(executor, alice) -> None:
    r = submit_signed(executor, [make_store_ix(executor.program_id, alice.pubkey, "s" * 51)], [alice])
    assert (r.code, r.reason) == ("name_too_long", "name_of_store_too_long")


def test_store_name_that_overflows_account_space(executor, alice) -> None:
    # 4 + 47 + 32 = 83 bytes does not fit an 82-byte store account.
    r = submit_signed(executor, [make_store_ix(executor.program_id, alice.pubkey, "s" * 47)], [alice])
    assert (r.code, r.reason) == ("name_too_long", "record_exceeds_account_space")
    assert executor.get_balance(alice.pubkey) == FUNDS

    r = submit_signed(executor, [make_store_ix(executor.program_id, alice.pubkey, "s" * 46)], [alice])
    assert r.ok, r


def test_make_store_without_funds(executor) -> None:
    broke = deterministic_keypair(label="broke")
    r = submit_signed(executor, [make_store_ix(executor.program_id, broke.pubkey, "books")], [broke])
    assert (r.code, r.reason) == ("insufficient_value", "payer_balance_too_low")


def test_make_store_with_zero_deposit(executor, alice) -> None:
    r = submit_signed(executor, [make_store_ix(executor.program_id, alice.pubkey, "books", deposit=0)], [alice])
    assert (r.code, r.reason) == ("insufficient_value", "zero_deposit")


# ----------------------------
# AddToStore
# ----------------------------


def test_add_to_store_records_product_held_by_store(executor, alice, books) -> None:
    pid = executor.program_id
    key = product_address(books, "dune", pid)
    acct = executor.get_account(key)
    assert acct is not None
    assert acct.owner == pid
    assert len(acct.data) == PRODUCT_SPACE
    assert acct.lamports == minimum_balance(PRODUCT_SPACE)
    assert decode_product(acct.data) == Product(owner=books, store=books, name="dune", price=PRICE)
    assert executor.get_balance(alice.pubkey) == FUNDS - minimum_balance(STORE_SPACE) - minimum_balance(PRODUCT_SPACE)


def test_add_to_store_long_name_fails_before_allocation(executor, alice, books) -> None:
    pid = executor.program_id
    before = executor.get_balance(alice.pubkey)
    name = "p" * 51
    r = submit_signed(executor, [add_to_store_ix(pid, alice.pubkey, books, name, 1)], [alice])
    assert (r.code, r.reason) == ("name_too_long", "name_too_long")
    assert executor.get_account(product_address(books, name, pid)) is None
    assert executor.get_balance(alice.pubkey) == before


def test_add_to_store_by_non_owner(executor, bob, books) -> None:
    pid = executor.program_id
    store_data = executor.get_account(books).data
    r = submit_signed(executor, [add_to_store_ix(pid, bob.pubkey, books, "emma", 1)], [bob])
    assert (r.code, r.reason) == ("authorization_mismatch", "not_store_owner")
    assert executor.get_balance(bob.pubkey) == FUNDS
    assert executor.get_account(product_address(books, "emma", executor.program_id)) is None
    assert executor.get_account(books).data == store_data


def test_add_to_store_requires_owner_signature(executor, alice, books) -> None:
    pid = executor.program_id
    ix = add_to_store_ix(pid, alice.pubkey, books, "emma", 1)
    unsigned_owner = replace(ix.accounts[2], is_signer=False)
    r = submit_signed(executor, [replace(ix, accounts=(*ix.accounts[:2], unsigned_owner, *ix.accounts[3:]))], [alice])
    assert (r.code, r.reason) == ("authorization_mismatch", "owner_must_sign")
    assert executor.get_account(product_address(books, "emma", pid)) is None


def test_add_same_product_twice_collides(executor, alice, books) -> None:
    r = submit_signed(executor, [add_to_store_ix(executor.program_id, alice.pubkey, books, "dune", 1)], [alice])
    assert r.code == "address_collision"


def test_product_must_name_the_verified_store(executor, alice, books) -> None:
    pid = executor.program_id
    other = store_address("tea", pid)
    ix = add_to_store_ix(pid, alice.pubkey, books, "emma", 1)
    cmd = AddToStore(product=Product(owner=other, store=other, name="emma", price=1), deposit=minimum_balance(PRODUCT_SPACE))
    r = submit_signed(executor, [replace(ix, data=encode_command(cmd))], [alice])
    assert (r.code, r.reason) == ("consistency_mismatch", "product_store_mismatch")


# ----------------------------
# Buy
# ----------------------------


def test_buy_pays_owner_and_transfers_holding(executor, alice, bob, books) -> None:
    pid = executor.program_id
    product = product_address(books, "dune", pid)
    alice_before = executor.get_balance(alice.pubkey)

    r = submit_signed(executor, [buy_ix(pid, bob.pubkey, books, product, alice.pubkey)], [bob])
    assert r.ok, r

    assert executor.get_balance(bob.pubkey) == FUNDS - PRICE
    assert executor.get_balance(alice.pubkey) == alice_before + PRICE
    assert executor.get_balance(product) == minimum_balance(PRODUCT_SPACE)
    assert read_product(executor, product).owner == bob.pubkey


def test_buy_without_funds_leaves_product_unsold(executor, alice, books) -> None:
    pid = executor.program_id
    product = product_address(books, "dune", pid)
    poor = funded_keypair(executor, label="poor", lamports=PRICE - 1)
    alice_before = executor.get_balance(alice.pubkey)

    r = submit_signed(executor, [buy_ix(pid, poor.pubkey, books, product, alice.pubkey)], [poor])
    assert (r.code, r.reason) == ("insufficient_value", "source_balance_too_low")
    assert read_product(executor, product).owner == books
    assert executor.get_balance(poor.pubkey) == PRICE - 1
    assert executor.get_balance(alice.pubkey) == alice_before


def test_buy_must_pay_the_recorded_store_owner(executor, alice, bob, books) -> None:
    pid = executor.program_id
    product = product_address(books, "dune", pid)
    r = submit_signed(executor, [buy_ix(pid, bob.pubkey, books, product, bob.pubkey)], [bob])
    assert (r.code, r.reason) == ("consistency_mismatch", "store_owner_mismatch")


def test_buy_rejects_product_of_another_store(executor, alice, bob, books) -> None:
    pid = executor.program_id
    tea = store_address("tea", pid)
    r = submit_signed(executor, [make_store_ix(pid, bob.pubkey, "tea"), add_to_store_ix(pid, bob.pubkey, tea, "chai", 1)], [bob])
    assert r.ok, r
    chai = product_address(tea, "chai", pid)
    alice_before = executor.get_balance(alice.pubkey)

    # chai names tea as its store, so it cannot be bought through books.
    r = submit_signed(executor, [buy_ix(pid, bob.pubkey, books, chai, alice.pubkey)], [bob])
    assert (r.code, r.reason) == ("consistency_mismatch", "product_not_in_store")
    assert read_product(executor, chai).owner == tea
    assert executor.get_balance(alice.pubkey) == alice_before


def test_buy_rejects_product_away_from_its_derived_address(executor, alice, bob, books) -> None:
    pid = executor.program_id
    stray = deterministic_keypair(label="stray").pubkey
    record = encode_product(Product(owner=books, store=books, name="dune", price=1)).ljust(PRODUCT_SPACE, b"\x00")
    executor.accounts_db.commit({stray: Account(lamports=minimum_balance(PRODUCT_SPACE), data=record, owner=pid)})

    r = submit_signed(executor, [buy_ix(pid, bob.pubkey, books, stray, alice.pubkey)], [bob])
    assert (r.code, r.reason) == ("consistency_mismatch", "product_address_mismatch")
    assert executor.get_account(stray).data == record
    assert executor.get_balance(bob.pubkey) == FUNDS


def test_sold_product_can_be_bought_again(executor, alice, bob, books) -> None:
    pid = executor.program_id
    product = product_address(books, "dune", pid)
    carol = funded_keypair(executor, label="carol", lamports=FUNDS)

    assert submit_signed(executor, [buy_ix(pid, bob.pubkey, books, product, alice.pubkey)], [bob]).ok
    assert submit_signed(executor, [buy_ix(pid, carol.pubkey, books, product, alice.pubkey)], [carol]).ok
    assert read_product(executor, product).owner == carol.pubkey
    assert executor.get_balance(bob.pubkey) == FUNDS - PRICE


# ----------------------------
# DeleteFromStore / Close
# ----------------------------


def test_delete_reclaims_product_deposit(executor, alice, books) -> None:
    pid = executor.program_id
    product = product_address(books, "dune", pid)
    before = executor.get_balance(alice.pubkey)

    r = submit_signed(executor, [delete_from_store_ix(pid, alice.pubkey, books, product)], [alice])
    assert r.ok, r
    assert executor.get_account(product) is None
    assert executor.get_balance(alice.pubkey) == before + minimum_balance(PRODUCT_SPACE)


def test_delete_after_sale_is_rejected(executor, alice, bob, books) -> None:
    pid = executor.program_id
    product = product_address(books, "dune", pid)
    assert submit_signed(executor, [buy_ix(pid, bob.pubkey, books, product, alice.pubkey)], [bob]).ok

    r = submit_signed(executor, [delete_from_store_ix(pid, alice.pubkey, books, product)], [alice])
    assert (r.code, r.reason) == ("consistency_mismatch", "product_already_sold")
    assert read_product(executor, product).owner == bob.pubkey


def test_delete_by_non_owner_changes_nothing(executor, alice, bob, books) -> None:
    pid = executor.program_id
    product = product_address(books, "dune", pid)
    product_data = executor.get_account(product).data
    r = submit_signed(executor, [delete_from_store_ix(pid, bob.pubkey, books, product)], [bob])
    assert (r.code, r.reason) == ("authorization_mismatch", "not_store_owner")
    assert executor.get_balance(product) == minimum_balance(PRODUCT_SPACE)
    assert executor.get_balance(bob.pubkey) == FUNDS
    assert executor.get_account(product).data == product_data


def test_close_returns_store_deposit(executor, alice) -> None:
    pid = executor.program_id
    assert submit_signed(executor, [make_store_ix(pid, alice.pubkey, "books")], [alice]).ok
    store = store_address("books", pid)

    r = submit_signed(executor, [close_ix(pid, alice.pubkey, store)], [alice])
    assert r.ok, r
    assert executor.get_account(store) is None
    assert executor.get_balance(alice.pubkey) == FUNDS

    # The name is free again.
    assert submit_signed(executor, [make_store_ix(pid, alice.pubkey, "books")], [alice]).ok


def test_close_by_non_owner(executor, alice, bob, books) -> None:
    store_data = executor.get_account(books).data
    r = submit_signed(executor, [close_ix(executor.program_id, bob.pubkey, books)], [bob])
    assert (r.code, r.reason) == ("authorization_mismatch", "not_store_owner")
    assert executor.get_balance(books) == minimum_balance(STORE_SPACE)
    assert executor.get_account(books).data == store_data
    assert executor.get_balance(bob.pubkey) == FUNDS


def test_list_products_by_store_and_holding(executor, alice, bob, books) -> None:
    pid = executor.program_id
    assert submit_signed(executor, [add_to_store_ix(pid, alice.pubkey, books, "emma", 7)], [alice]).ok
    dune = product_address(books, "dune", pid)
    assert submit_signed(executor, [buy_ix(pid, bob.pubkey, books, dune, alice.pubkey)], [bob]).ok

    names = sorted(p.name for (_k, p) in list_products(executor, books))
    assert names == ["dune", "emma"]
    unsold = [p.name for (_k, p) in list_products(executor, books, unsold_only=True)]
    assert unsold == ["emma"]


# ----------------------------
# Wipe
# ----------------------------


def test_wipe_has_no_handler_level_check(executor, alice, bob, books) -> None:
    r = submit_signed(executor, [wipe_ix(executor.program_id, bob.pubkey, books)], [bob])
    assert r.ok, r
    assert executor.get_account(books) is None
    assert executor.get_balance(bob.pubkey) == FUNDS + minimum_balance(STORE_SPACE)


def test_wipe_cannot_drain_a_wallet(executor, alice, bob) -> None:
    r = submit_signed(executor, [wipe_ix(executor.program_id, bob.pubkey, alice.pubkey)], [bob])
    assert (r.code, r.reason) == ("runtime_violation", "external_account_debited")
    assert executor.get_balance(alice.pubkey) == FUNDS


def test_system_program_account_is_untouched(executor, alice) -> None:
    assert submit_signed(executor, [make_store_ix(executor.program_id, alice.pubkey, "books")], [alice]).ok
    assert executor.get_account(SYSTEM_PROGRAM_ID) is None
