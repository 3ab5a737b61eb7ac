# src/storefront/program/instructions.py
from __future__ import annotations

"""Client-side helpers: build instructions in the positional account order the
program expects, and read records back out of the ledger."""

from typing import List, Optional, Tuple

from storefront.ledger.accounts import SYSTEM_PROGRAM_ID, DataSize, Memcmp
from storefront.ledger.pubkey import PUBKEY_BYTES, Pubkey, find_program_address
from storefront.program.codec import (
    PRODUCT_SPACE,
    STORE_SPACE,
    AddToStore,
    Buy,
    Close,
    DeleteFromStore,
    MakeStore,
    Product,
    Store,
    Wipe,
    decode_product,
    decode_store,
    encode_command,
)
from storefront.program.processor import product_seeds, store_seeds
from storefront.runtime.errors import DecodeError
from storefront.runtime.system import minimum_balance
from storefront.runtime.tx import AccountMeta, Instruction


def store_address(name_of_store: str, program_id: Pubkey) -> Pubkey:
    return find_program_address(store_seeds(name_of_store), program_id)[0]


def product_address(store: Pubkey, name: str, program_id: Pubkey) -> Pubkey:
    return find_program_address(product_seeds(store, name), program_id)[0]


def make_store_ix(program_id: Pubkey, owner: Pubkey, name_of_store: str, deposit: Optional[int] = None) -> Instruction:
    cmd = MakeStore(
        store=Store(name_of_store=name_of_store, owner=owner),
        deposit=minimum_balance(STORE_SPACE) if deposit is None else int(deposit),
    )
    return Instruction(
        program_id=program_id,
        accounts=(
            AccountMeta(store_address(name_of_store, program_id), is_signer=False, is_writable=True),
            AccountMeta(owner, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ),
        data=encode_command(cmd),
    )


def add_to_store_ix(
    program_id: Pubkey,
    owner: Pubkey,
    store: Pubkey,
    name: str,
    price: int,
    deposit: Optional[int] = None,
) -> Instruction:
    cmd = AddToStore(
        product=Product(owner=store, store=store, name=name, price=int(price)),
        deposit=minimum_balance(PRODUCT_SPACE) if deposit is None else int(deposit),
    )
    return Instruction(
        program_id=program_id,
        accounts=(
            AccountMeta(product_address(store, name, program_id), is_signer=False, is_writable=True),
            AccountMeta(store, is_signer=False, is_writable=False),
            AccountMeta(owner, is_signer=True, is_writable=True),
            AccountMeta(SYSTEM_PROGRAM_ID, is_signer=False, is_writable=False),
        ),
        data=encode_command(cmd),
    )


def buy_ix(program_id: Pubkey, buyer: Pubkey, store: Pubkey, product: Pubkey, store_owner: Pubkey) -> Instruction:
    return Instruction(
        program_id=program_id,
        accounts=(
            AccountMeta(buyer, is_signer=True, is_writable=True),
            AccountMeta(product, is_signer=False, is_writable=True),
            AccountMeta(store, is_signer=False, is_writable=False),
            AccountMeta(store_owner, is_signer=False, is_writable=True),
        ),
        data=encode_command(Buy()),
    )


def delete_from_store_ix(program_id: Pubkey, owner: Pubkey, store: Pubkey, product: Pubkey) -> Instruction:
    return Instruction(
        program_id=program_id,
        accounts=(
            AccountMeta(product, is_signer=False, is_writable=True),
            AccountMeta(store, is_signer=False, is_writable=True),
            AccountMeta(owner, is_signer=True, is_writable=True),
        ),
        data=encode_command(DeleteFromStore()),
    )


def close_ix(program_id: Pubkey, owner: Pubkey, store: Pubkey) -> Instruction:
    return Instruction(
        program_id=program_id,
        accounts=(
            AccountMeta(store, is_signer=False, is_writable=True),
            AccountMeta(owner, is_signer=True, is_writable=True),
        ),
        data=encode_command(Close()),
    )


def wipe_ix(program_id: Pubkey, authority: Pubkey, target: Pubkey) -> Instruction:
    return Instruction(
        program_id=program_id,
        accounts=(
            AccountMeta(target, is_signer=False, is_writable=True),
            AccountMeta(authority, is_signer=True, is_writable=True),
        ),
        data=encode_command(Wipe()),
    )


# ----------------------------
# Reads (anything with get_account / scan, e.g. Executor)
# ----------------------------


def read_store(reader, key: Pubkey) -> Optional[Store]:
    acct = reader.get_account(key)
    if acct is None or acct.owner != reader.program_id:
        return None
    if len(acct.data) != STORE_SPACE:
        raise DecodeError("not_a_store_account", {"account": str(key), "size": len(acct.data)})
    return decode_store(acct.data)


def read_product(reader, key: Pubkey) -> Optional[Product]:
    acct = reader.get_account(key)
    if acct is None or acct.owner != reader.program_id:
        return None
    if len(acct.data) != PRODUCT_SPACE:
        raise DecodeError("not_a_product_account", {"account": str(key), "size": len(acct.data)})
    return decode_product(acct.data)


def list_products(reader, store: Pubkey, *, unsold_only: bool = False) -> List[Tuple[Pubkey, Product]]:
    """Products recorded under `store`; with unsold_only, those it still holds."""
    # Product layout: owner at offset 0, store at offset 32.
    offset = 0 if unsold_only else PUBKEY_BYTES
    filters = [DataSize(PRODUCT_SPACE), Memcmp(offset, bytes(store))]
    return [(k, decode_product(a.data)) for (k, a) in reader.scan(filters)]
