from __future__ import annotations

from typing import Any, Dict

from fastapi import APIRouter, Request

from storefront.api.errors import ApiError
from storefront.api.routes_public_parts.common import _executor
from storefront.api.schemas import TxReceiptOut, TxSubmitRequest
from storefront.runtime.tx import Transaction

router = APIRouter()

Json = Dict[str, Any]

# Receipt codes raised before the program runs; everything else is a program error.
_ADMISSION_ERRORS = {
    "unauthorized": ApiError.forbidden,
    "forbidden": ApiError.forbidden,
    "replay": ApiError.conflict,
}


@router.post("/tx/submit", response_model=TxReceiptOut)
def tx_submit(body: TxSubmitRequest, request: Request) -> Json:
    """Submit a signed transaction and apply it immediately.

    Returns the applied receipt; a rejected transaction is an error response
    whose details carry the full receipt.
    """
    ex = _executor(request)

    try:
        tx = Transaction.from_json(body.model_dump())
    except ValueError as e:
        raise ApiError.bad_request("invalid_tx", str(e), {}) from None

    receipt = ex.submit(tx)
    if not receipt.ok:
        make = _ADMISSION_ERRORS.get(receipt.code, ApiError.bad_request)
        raise make(receipt.code, receipt.reason, {"receipt": receipt.to_json()})
    return receipt.to_json()
