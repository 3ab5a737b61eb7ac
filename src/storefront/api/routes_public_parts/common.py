from __future__ import annotations

from typing import Any, Dict

from fastapi import Request

from storefront.api.errors import ApiError
from storefront.api.schemas import ProductOut, StoreOut
from storefront.ledger.pubkey import Pubkey
from storefront.program.codec import Product, Store
from storefront.runtime.errors import DecodeError

Json = Dict[str, Any]


def _executor(request: Request):
    ex = getattr(request.app.state, "executor", None)
    if ex is None:
        raise ApiError.internal("not_ready", "executor not attached to app.state", {})
    return ex


def _pubkey_param(raw: str) -> Pubkey:
    try:
        return Pubkey.from_string(raw)
    except ValueError:
        raise ApiError.bad_request("invalid_pubkey", "not a base58 32-byte address", {"pubkey": raw}) from None


def _store_out(key: Pubkey, store: Store, lamports: int) -> StoreOut:
    return StoreOut(pubkey=str(key), name_of_store=store.name_of_store, owner=str(store.owner), lamports=int(lamports))


def _product_out(key: Pubkey, product: Product, lamports: int) -> ProductOut:
    return ProductOut(
        pubkey=str(key),
        owner=str(product.owner),
        store=str(product.store),
        name=product.name,
        price=int(product.price),
        lamports=int(lamports),
        sold=product.owner != product.store,
    )


def _undecodable(kind: str, key: Pubkey, e: DecodeError) -> ApiError:
    return ApiError.bad_request("not_a_" + kind, f"account does not hold a {kind} record", {"pubkey": str(key), "reason": e.reason})
