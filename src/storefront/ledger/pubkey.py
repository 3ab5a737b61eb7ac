# src/storefront/ledger/pubkey.py
from __future__ import annotations

"""Account identities and deterministic address derivation.

A derived address is SHA-256 over the seeds, the program id and a fixed
marker. It is only valid when the digest does NOT decode to an Ed25519 point:
an off-curve address has no private key, so the only way to act "as" that
address is to present the seeds + bump that produce it (a Capability).
"""

import hashlib
from dataclasses import dataclass
from typing import Sequence, Tuple

from storefront.runtime.errors import DerivationError

PUBKEY_BYTES = 32
MAX_SEEDS = 16
PDA_MARKER = b"ProgramDerivedAddress"

B58_ALPHABET = b"123456789ABCDEFGHJKLMNPQRSTUVWXYZabcdefghijkmnopqrstuvwxyz"
B58_MAP = {c: i for i, c in enumerate(B58_ALPHABET)}

# Ed25519 field parameters (RFC 8032)
_P = 2**255 - 19
_D = -121665 * pow(121666, _P - 2, _P) % _P


def b58encode(b: bytes) -> str:
    n_pad = 0
    for c in b:
        if c == 0:
            n_pad += 1
        else:
            break
    num = int.from_bytes(b, "big")
    out = bytearray()
    while num > 0:
        num, rem = divmod(num, 58)
        out.append(B58_ALPHABET[rem])
    out.extend(B58_ALPHABET[0] for _ in range(n_pad))
    out.reverse()
    return out.decode("ascii")


def b58decode(s: str) -> bytes:
    s_bytes = s.encode("ascii")
    num = 0
    for c in s_bytes:
        if c not in B58_MAP:
            raise ValueError("Invalid base58 character")
        num = num * 58 + B58_MAP[c]
    n_pad = 0
    for c in s_bytes:
        if c == B58_ALPHABET[0]:
            n_pad += 1
        else:
            break
    full = num.to_bytes((num.bit_length() + 7) // 8, "big") if num else b""
    return b"\x00" * n_pad + full


@dataclass(frozen=True, slots=True, order=True)
class Pubkey:
    """32-byte account identity. Text form is base58."""

    raw: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.raw, (bytes, bytearray)) or len(self.raw) != PUBKEY_BYTES:
            raise ValueError(f"pubkey must be {PUBKEY_BYTES} bytes")
        object.__setattr__(self, "raw", bytes(self.raw))

    @classmethod
    def from_string(cls, s: str) -> "Pubkey":
        try:
            return cls(b58decode(str(s).strip()))
        except (ValueError, UnicodeEncodeError) as e:
            raise ValueError(f"invalid pubkey: {s!r}") from e

    @classmethod
    def default(cls) -> "Pubkey":
        return cls(bytes(PUBKEY_BYTES))

    def __bytes__(self) -> bytes:
        return self.raw

    def __str__(self) -> str:
        return b58encode(self.raw)

    def __repr__(self) -> str:
        return f"Pubkey({self})"

    def hex(self) -> str:
        return self.raw.hex()


def is_on_curve(raw: bytes) -> bool:
    """True if `raw` decompresses to a point on the Ed25519 curve.

    x^2 = (y^2 - 1) / (d*y^2 + 1); the point exists iff the ratio is a square.
    """
    y = int.from_bytes(raw, "little") & ((1 << 255) - 1)
    u = (y * y - 1) % _P
    v = (_D * y * y + 1) % _P
    xx = u * pow(v, _P - 2, _P) % _P
    if xx == 0:
        return True
    return pow(xx, (_P - 1) // 2, _P) == 1


def create_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Pubkey:
    """Derive the address for an exact seed list (bump included by the caller).

    Raises DerivationError when the digest lands on the curve.
    """
    if len(seeds) > MAX_SEEDS:
        raise DerivationError("too_many_seeds", {"count": len(seeds), "max": MAX_SEEDS})
    h = hashlib.sha256()
    for s in seeds:
        h.update(bytes(s))
    h.update(bytes(program_id))
    h.update(PDA_MARKER)
    digest = h.digest()
    if is_on_curve(digest):
        raise DerivationError("address_on_curve")
    return Pubkey(digest)


def find_program_address(seeds: Sequence[bytes], program_id: Pubkey) -> Tuple[Pubkey, int]:
    """Search bump 255..0 for the first off-curve address over seeds + [bump]."""
    base = [bytes(s) for s in seeds]
    if len(base) + 1 > MAX_SEEDS:
        raise DerivationError("too_many_seeds", {"count": len(base), "max": MAX_SEEDS - 1})
    for bump in range(255, -1, -1):
        try:
            return create_program_address([*base, bytes([bump])], program_id), bump
        except DerivationError as e:
            if e.reason != "address_on_curve":
                raise
    raise DerivationError("no_viable_bump", {"seeds": [s.hex() for s in base]})


@dataclass(frozen=True)
class Capability:
    """Proof that the holder may act as a derived address.

    Handed explicitly to the system primitives in place of a signature.
    """

    address: Pubkey
    seeds: Tuple[bytes, ...]
    bump: int
    program_id: Pubkey

    def signer_seeds(self) -> Tuple[bytes, ...]:
        return (*self.seeds, bytes([self.bump]))

    def verify(self) -> bool:
        try:
            return create_program_address(self.signer_seeds(), self.program_id) == self.address
        except DerivationError:
            return False


def derive_capability(seeds: Sequence[bytes], program_id: Pubkey) -> Capability:
    address, bump = find_program_address(seeds, program_id)
    return Capability(address=address, seeds=tuple(bytes(s) for s in seeds), bump=bump, program_id=program_id)
