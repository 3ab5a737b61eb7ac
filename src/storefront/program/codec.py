# src/storefront/program/codec.py
from __future__ import annotations

"""Binary layout for marketplace records and the instruction union.

Little-endian, Borsh-compatible:
  pubkey  = 32 raw bytes
  u64     = 8 bytes
  string  = u32 byte length + UTF-8 bytes
  union   = u8 tag + variant payload

Records are read from the front of a fixed-size account buffer, so trailing
bytes are ignored there. Instruction data must be consumed exactly.
"""

import struct
from dataclasses import dataclass
from enum import IntEnum
from typing import Callable, Dict, Union

from storefront.ledger.pubkey import PUBKEY_BYTES, Pubkey
from storefront.runtime.errors import DecodeError, NameTooLong

MAX_NAME_BYTES = 50
U64_MAX = 2**64 - 1

STORE_SPACE = 50 + 32
PRODUCT_SPACE = 32 + 32 + 50 + 8 + 8

_U32 = struct.Struct("<I")
_U64 = struct.Struct("<Q")


@dataclass(frozen=True)
class Store:
    name_of_store: str
    owner: Pubkey


@dataclass(frozen=True)
class Product:
    owner: Pubkey
    store: Pubkey
    name: str
    price: int


class CommandTag(IntEnum):
    BUY = 0
    MAKE_STORE = 1
    ADD_TO_STORE = 2
    DELETE_FROM_STORE = 3
    CLOSE = 4
    WIPE = 5


@dataclass(frozen=True)
class Buy:
    tag = CommandTag.BUY


@dataclass(frozen=True)
class MakeStore:
    store: Store
    deposit: int
    tag = CommandTag.MAKE_STORE


@dataclass(frozen=True)
class AddToStore:
    product: Product
    deposit: int
    tag = CommandTag.ADD_TO_STORE


@dataclass(frozen=True)
class DeleteFromStore:
    tag = CommandTag.DELETE_FROM_STORE


@dataclass(frozen=True)
class Close:
    tag = CommandTag.CLOSE


@dataclass(frozen=True)
class Wipe:
    tag = CommandTag.WIPE


Command = Union[Buy, MakeStore, AddToStore, DeleteFromStore, Close, Wipe]


def name_len(name: str) -> int:
    return len(name.encode("utf-8"))


def check_name(name: str, field: str) -> None:
    n = name_len(name)
    if n > MAX_NAME_BYTES:
        raise NameTooLong(f"{field}_too_long", {"field": field, "len": n, "max": MAX_NAME_BYTES})


# ----------------------------
# Writers
# ----------------------------


def _put_pubkey(out: bytearray, pk: Pubkey) -> None:
    out += bytes(pk)


def _put_u64(out: bytearray, v: int) -> None:
    if not isinstance(v, int) or isinstance(v, bool) or v < 0 or v > U64_MAX:
        raise ValueError(f"u64 out of range: {v!r}")
    out += _U64.pack(v)


def _put_str(out: bytearray, s: str) -> None:
    b = s.encode("utf-8")
    out += _U32.pack(len(b))
    out += b


def encode_store(store: Store) -> bytes:
    out = bytearray()
    _put_str(out, store.name_of_store)
    _put_pubkey(out, store.owner)
    return bytes(out)


def encode_product(product: Product) -> bytes:
    out = bytearray()
    _put_pubkey(out, product.owner)
    _put_pubkey(out, product.store)
    _put_str(out, product.name)
    _put_u64(out, product.price)
    return bytes(out)


def encode_command(cmd: Command) -> bytes:
    out = bytearray([int(cmd.tag)])
    if isinstance(cmd, MakeStore):
        out += encode_store(cmd.store)
        _put_u64(out, cmd.deposit)
    elif isinstance(cmd, AddToStore):
        out += encode_product(cmd.product)
        _put_u64(out, cmd.deposit)
    return bytes(out)


# ----------------------------
# Readers
# ----------------------------


class _Reader:
    def __init__(self, buf: bytes) -> None:
        self._buf = bytes(buf)
        self._pos = 0

    @property
    def remaining(self) -> int:
        return len(self._buf) - self._pos

    def take(self, n: int, what: str) -> bytes:
        if n > self.remaining:
            raise DecodeError("buffer_too_short", {"field": what, "need": n, "have": self.remaining})
        b = self._buf[self._pos : self._pos + n]
        self._pos += n
        return b

    def pubkey(self, what: str) -> Pubkey:
        return Pubkey(self.take(PUBKEY_BYTES, what))

    def u8(self, what: str) -> int:
        return self.take(1, what)[0]

    def u64(self, what: str) -> int:
        return _U64.unpack(self.take(8, what))[0]

    def string(self, what: str) -> str:
        (n,) = _U32.unpack(self.take(4, what))
        raw = self.take(n, what)
        try:
            return raw.decode("utf-8")
        except UnicodeDecodeError as e:
            raise DecodeError("invalid_utf8", {"field": what}) from e


def _read_store(r: _Reader) -> Store:
    name = r.string("name_of_store")
    owner = r.pubkey("owner")
    return Store(name_of_store=name, owner=owner)


def _read_product(r: _Reader) -> Product:
    owner = r.pubkey("owner")
    store = r.pubkey("store")
    name = r.string("name")
    price = r.u64("price")
    return Product(owner=owner, store=store, name=name, price=price)


def decode_store(buf: bytes) -> Store:
    return _read_store(_Reader(buf))


def decode_product(buf: bytes) -> Product:
    return _read_product(_Reader(buf))


_COMMAND_READERS: Dict[CommandTag, Callable[[_Reader], Command]] = {
    CommandTag.BUY: lambda r: Buy(),
    CommandTag.MAKE_STORE: lambda r: MakeStore(store=_read_store(r), deposit=r.u64("deposit")),
    CommandTag.ADD_TO_STORE: lambda r: AddToStore(product=_read_product(r), deposit=r.u64("deposit")),
    CommandTag.DELETE_FROM_STORE: lambda r: DeleteFromStore(),
    CommandTag.CLOSE: lambda r: Close(),
    CommandTag.WIPE: lambda r: Wipe(),
}


def decode_command(data: bytes) -> Command:
    """Decode exactly one Command; unknown tags and leftover bytes are errors."""
    r = _Reader(data)
    raw_tag = r.u8("tag")
    try:
        tag = CommandTag(raw_tag)
    except ValueError as e:
        raise DecodeError("unknown_command_tag", {"tag": raw_tag}) from e

    cmd = _COMMAND_READERS[tag](r)
    if r.remaining:
        raise DecodeError("trailing_bytes", {"tag": tag.name, "extra": r.remaining})
    return cmd


def write_record(data: bytearray, encoded: bytes) -> None:
    """Serialize into the front of a fixed-size account buffer.

    The buffer never grows; a record that does not fit means the variable
    length name pushed it past the allocated layout.
    """
    if len(encoded) > len(data):
        raise NameTooLong("record_exceeds_account_space", {"need": len(encoded), "space": len(data)})
    data[: len(encoded)] = encoded
