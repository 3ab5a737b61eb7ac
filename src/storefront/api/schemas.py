from __future__ import annotations

"""Pydantic request/response schemas for the public API.

The wire layout of a transaction is owned by storefront.runtime.tx; these
models only validate HTTP input shape and keep responses stable.
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field


class AccountMetaIn(BaseModel):
    pubkey: str = Field(..., description="Base58 account address")
    is_signer: bool = False
    is_writable: bool = True


class InstructionIn(BaseModel):
    program_id: str = Field(..., description="Base58 program id")
    accounts: List[AccountMetaIn] = Field(default_factory=list)
    data: str = Field(default="", description="Hex-encoded instruction data")


class TxSubmitRequest(BaseModel):
    instructions: List[InstructionIn] = Field(..., min_length=1)
    nonce: str = Field(..., description="Client-chosen nonce; part of the signed message")
    signatures: Dict[str, str] = Field(default_factory=dict, description="base58 pubkey -> hex signature")


class StoreOut(BaseModel):
    pubkey: str
    name_of_store: str
    owner: str
    lamports: int


class ProductOut(BaseModel):
    pubkey: str
    owner: str
    store: str
    name: str
    price: int
    lamports: int
    sold: bool


class StoreWithProducts(BaseModel):
    ok: bool = True
    store: StoreOut
    products: List[ProductOut] = Field(default_factory=list)


class TxReceiptOut(BaseModel):
    ok: bool
    tx_id: str
    code: str
    reason: str
    details: Optional[dict] = None
    commands: List[str] = Field(default_factory=list)
