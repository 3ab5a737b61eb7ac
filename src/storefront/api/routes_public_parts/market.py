from __future__ import annotations

from fastapi import APIRouter, Request

from storefront.api.errors import ApiError
from storefront.api.routes_public_parts.common import _executor, _product_out, _pubkey_param, _store_out, _undecodable
from storefront.api.schemas import ProductOut, StoreWithProducts
from storefront.ledger.pubkey import Pubkey
from storefront.program.instructions import list_products, read_product, read_store, store_address
from storefront.runtime.errors import DecodeError

router = APIRouter()


def _store_with_products(ex, key: Pubkey) -> StoreWithProducts:
    try:
        store = read_store(ex, key)
    except DecodeError as e:
        raise _undecodable("store", key, e) from None
    if store is None:
        raise ApiError.not_found("store_not_found", "no store at this address", {"pubkey": str(key)})

    products = [_product_out(k, p, ex.get_balance(k)) for (k, p) in list_products(ex, key)]
    return StoreWithProducts(store=_store_out(key, store, ex.get_balance(key)), products=products)


@router.get("/stores/by-name/{name}", response_model=StoreWithProducts)
def store_by_name(name: str, request: Request):
    ex = _executor(request)
    return _store_with_products(ex, store_address(name, ex.program_id))


@router.get("/stores/{pubkey}", response_model=StoreWithProducts)
def store_get(pubkey: str, request: Request):
    ex = _executor(request)
    return _store_with_products(ex, _pubkey_param(pubkey))


@router.get("/products/{pubkey}", response_model=ProductOut)
def product_get(pubkey: str, request: Request):
    ex = _executor(request)
    key = _pubkey_param(pubkey)
    try:
        product = read_product(ex, key)
    except DecodeError as e:
        raise _undecodable("product", key, e) from None
    if product is None:
        raise ApiError.not_found("product_not_found", "no product at this address", {"pubkey": str(key)})
    return _product_out(key, product, ex.get_balance(key))
