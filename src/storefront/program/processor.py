# src/storefront/program/processor.py
from __future__ import annotations

import logging
from dataclasses import replace
from typing import Callable, Dict, Sequence

from storefront.ledger.accounts import AccountInfo
from storefront.ledger.pubkey import Pubkey, derive_capability
from storefront.program.codec import (
    PRODUCT_SPACE,
    STORE_SPACE,
    AddToStore,
    Buy,
    Close,
    Command,
    DeleteFromStore,
    MakeStore,
    Product,
    Store,
    Wipe,
    check_name,
    decode_command,
    decode_product,
    decode_store,
    encode_product,
    encode_store,
    write_record,
)
from storefront.runtime.errors import AuthorizationMismatch, ConsistencyMismatch, MissingAccount, NameTooLong
from storefront.runtime.event_log import log_event
from storefront.runtime.system import InvokeContext, checked_add

log = logging.getLogger("storefront.program")

Accounts = Sequence[AccountInfo]
Handler = Callable[[InvokeContext, Accounts, Command], None]


def store_seeds(name_of_store: str) -> list[bytes]:
    return [name_of_store.encode("utf-8")]


def product_seeds(store: Pubkey, name: str) -> list[bytes]:
    return [bytes(store), name.encode("utf-8")]


def _account(accounts: Accounts, idx: int, role: str) -> AccountInfo:
    if idx >= len(accounts):
        raise MissingAccount("account_list_too_short", {"role": role, "index": idx, "given": len(accounts)})
    return accounts[idx]


def _require_program_owned(ctx: InvokeContext, info: AccountInfo, role: str) -> None:
    if info.owner != ctx.program_id:
        raise ConsistencyMismatch(f"{role}_not_owned_by_program", {"account": str(info.key)})


def _verified_store(ctx: InvokeContext, info: AccountInfo) -> Store:
    """Decode a store and check it lives at the address its name derives to."""
    _require_program_owned(ctx, info, "store")
    store = decode_store(info.data)
    cap = derive_capability(store_seeds(store.name_of_store), ctx.program_id)
    if cap.address != info.key:
        raise ConsistencyMismatch("store_address_mismatch", {"given": str(info.key), "derived": str(cap.address)})
    return store


def _verified_product(ctx: InvokeContext, info: AccountInfo, store_key: Pubkey) -> Product:
    _require_program_owned(ctx, info, "product")
    product = decode_product(info.data)
    if product.store != store_key:
        raise ConsistencyMismatch("product_not_in_store", {"product_store": str(product.store), "store": str(store_key)})
    cap = derive_capability(product_seeds(store_key, product.name), ctx.program_id)
    if cap.address != info.key:
        raise ConsistencyMismatch("product_address_mismatch", {"given": str(info.key), "derived": str(cap.address)})
    return product


def _reclaim(target: AccountInfo, authority: AccountInfo) -> int:
    """Move the target's entire balance to the authority."""
    amount = target.lamports
    if target.key == authority.key:
        return 0
    authority.lamports = checked_add(authority.lamports, amount)
    target.lamports = 0
    return amount


# ----------------------------
# Store lifecycle
# ----------------------------


def make_store(ctx: InvokeContext, accounts: Accounts, cmd: MakeStore) -> None:
    store_info = _account(accounts, 0, "store")
    payer = _account(accounts, 1, "payer")
    store = cmd.store

    check_name(store.name_of_store, "name_of_store")
    if store.owner != payer.key:
        raise AuthorizationMismatch("store_owner_must_be_payer", {"owner": str(store.owner), "payer": str(payer.key)})

    cap = derive_capability(store_seeds(store.name_of_store), ctx.program_id)
    if cap.address != store_info.key:
        raise ConsistencyMismatch("store_address_mismatch", {"given": str(store_info.key), "derived": str(cap.address)})

    encoded = encode_store(store)
    if len(encoded) > STORE_SPACE:
        raise NameTooLong("record_exceeds_account_space", {"need": len(encoded), "space": STORE_SPACE})

    ctx.create_account(payer, store_info, cmd.deposit, STORE_SPACE, ctx.program_id, capability=cap)
    write_record(store_info.data, encoded)
    log_event(log, "store_created", store=str(store_info.key), name=store.name_of_store, owner=str(store.owner))


def close(ctx: InvokeContext, accounts: Accounts, cmd: Close) -> None:
    store_info = _account(accounts, 0, "store")
    owner_info = _account(accounts, 1, "owner")

    store = _verified_store(ctx, store_info)
    if store.owner != owner_info.key:
        raise AuthorizationMismatch("not_store_owner", {"owner": str(store.owner), "given": str(owner_info.key)})

    amount = _reclaim(store_info, owner_info)
    log_event(log, "store_closed", store=str(store_info.key), owner=str(owner_info.key), reclaimed=amount)


# ----------------------------
# Product lifecycle
# ----------------------------


def add_to_store(ctx: InvokeContext, accounts: Accounts, cmd: AddToStore) -> None:
    product = cmd.product
    check_name(product.name, "name")

    product_info = _account(accounts, 0, "product")
    store_info = _account(accounts, 1, "store")
    owner_info = _account(accounts, 2, "owner")

    store = _verified_store(ctx, store_info)
    if store.owner != owner_info.key:
        raise AuthorizationMismatch("not_store_owner", {"owner": str(store.owner), "given": str(owner_info.key)})
    if not owner_info.is_signer:
        raise AuthorizationMismatch("owner_must_sign", {"owner": str(owner_info.key)})

    # Holder and store always start as the verified store account; disagreeing input is rejected.
    if product.store != store_info.key or product.owner != store_info.key:
        raise ConsistencyMismatch(
            "product_store_mismatch",
            {"store": str(store_info.key), "product_store": str(product.store), "product_owner": str(product.owner)},
        )
    record = replace(product, owner=store_info.key, store=store_info.key)

    cap = derive_capability(product_seeds(store_info.key, product.name), ctx.program_id)
    if cap.address != product_info.key:
        raise ConsistencyMismatch("product_address_mismatch", {"given": str(product_info.key), "derived": str(cap.address)})

    ctx.create_account(owner_info, product_info, cmd.deposit, PRODUCT_SPACE, ctx.program_id, capability=cap)
    write_record(product_info.data, encode_product(record))
    log_event(log, "product_added", product=str(product_info.key), store=str(store_info.key), name=record.name, price=record.price)


def buy(ctx: InvokeContext, accounts: Accounts, cmd: Buy) -> None:
    buyer = _account(accounts, 0, "buyer")
    product_info = _account(accounts, 1, "product")
    store_info = _account(accounts, 2, "store")
    store_owner = _account(accounts, 3, "store_owner")

    store = _verified_store(ctx, store_info)
    product = _verified_product(ctx, product_info, store_info.key)
    if store_owner.key != store.owner:
        raise ConsistencyMismatch("store_owner_mismatch", {"owner": str(store.owner), "given": str(store_owner.key)})

    # Pay first; the holder is only rewritten once the transfer went through.
    ctx.transfer(buyer, store_owner, product.price)
    write_record(product_info.data, encode_product(replace(product, owner=buyer.key)))
    log_event(log, "product_sold", product=str(product_info.key), buyer=str(buyer.key), price=product.price)


def delete_from_store(ctx: InvokeContext, accounts: Accounts, cmd: DeleteFromStore) -> None:
    product_info = _account(accounts, 0, "product")
    store_info = _account(accounts, 1, "store")
    owner_info = _account(accounts, 2, "owner")

    store = _verified_store(ctx, store_info)
    product = _verified_product(ctx, product_info, store_info.key)
    if product.owner != store_info.key:
        raise ConsistencyMismatch("product_already_sold", {"holder": str(product.owner)})
    if store.owner != owner_info.key:
        raise AuthorizationMismatch("not_store_owner", {"owner": str(store.owner), "given": str(owner_info.key)})

    amount = _reclaim(product_info, owner_info)
    log_event(log, "product_deleted", product=str(product_info.key), store=str(store_info.key), reclaimed=amount)


# ----------------------------
# Bulk reclamation
# ----------------------------


def wipe(ctx: InvokeContext, accounts: Accounts, cmd: Wipe) -> None:
    """Reclaim any account's balance to the authority. No checks here: gate it at admission."""
    target = _account(accounts, 0, "target")
    authority = _account(accounts, 1, "authority")

    amount = _reclaim(target, authority)
    log_event(log, "account_wiped", level=logging.WARNING, target=str(target.key), authority=str(authority.key), reclaimed=amount)


_HANDLERS: Dict[type, Handler] = {
    Buy: buy,
    MakeStore: make_store,
    AddToStore: add_to_store,
    DeleteFromStore: delete_from_store,
    Close: close,
    Wipe: wipe,
}


def process_instruction(ctx: InvokeContext, accounts: Accounts, data: bytes) -> Command:
    """Single entry point: decode one Command and run its handler.

    Returns the decoded command (the executor logs it).
    """
    cmd = decode_command(data)
    _HANDLERS[type(cmd)](ctx, accounts, cmd)
    return cmd
