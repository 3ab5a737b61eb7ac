from __future__ import annotations

from fastapi import APIRouter, Request

from storefront.api.routes_public_parts.common import _executor, _pubkey_param

router = APIRouter()


@router.get("/accounts/{pubkey}")
def account_get(pubkey: str, request: Request):
    ex = _executor(request)
    key = _pubkey_param(pubkey)
    acct = ex.get_account(key)
    if acct is None:
        # Purged and never-created accounts look the same.
        return {"ok": True, "pubkey": str(key), "exists": False, "lamports": 0}
    return {
        "ok": True,
        "pubkey": str(key),
        "exists": True,
        "lamports": int(acct.lamports),
        "owner": str(acct.owner),
        "data_len": len(acct.data),
        "data": acct.data.hex(),
    }
