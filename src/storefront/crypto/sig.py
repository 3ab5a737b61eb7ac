# src/storefront/crypto/sig.py
from __future__ import annotations

import base64
import hashlib
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey, Ed25519PublicKey
from cryptography.hazmat.primitives.serialization import Encoding, PublicFormat

from storefront.ledger.pubkey import Pubkey


def _decode_bytes(s: str) -> bytes:
    s = s.strip()
    if not s:
        raise ValueError("empty string")
    try:
        return bytes.fromhex(s)
    except ValueError:
        pass
    try:
        padding = "=" * (-len(s) % 4)
        s2 = (s + padding).replace("-", "+").replace("_", "/")
        return base64.b64decode(s2, validate=True)
    except ValueError as e:
        raise ValueError("not hex or base64") from e


@dataclass(frozen=True)
class Keypair:
    """Ed25519 signing identity. The account address is the raw public key."""

    private_key: Ed25519PrivateKey

    @classmethod
    def from_seed(cls, seed: bytes) -> "Keypair":
        if len(seed) == 64:
            # expanded secret keys carry the 32-byte seed first
            seed = seed[:32]
        if len(seed) != 32:
            raise ValueError("ed25519 seed must be 32 bytes (or 64-byte expanded key)")
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def from_secret(cls, secret: str) -> "Keypair":
        """Load from a hex or base64/base64url encoded seed."""
        return cls.from_seed(_decode_bytes(secret))

    @classmethod
    def from_label(cls, label: str) -> "Keypair":
        """Deterministic keypair from a stable label (local dev identities only)."""
        seed = hashlib.sha256(("storefront-ed25519:" + (label or "")).encode("utf-8")).digest()
        return cls.from_seed(seed)

    @property
    def pubkey(self) -> Pubkey:
        return Pubkey(self.private_key.public_key().public_bytes(Encoding.Raw, PublicFormat.Raw))

    def sign(self, message: bytes) -> bytes:
        return self.private_key.sign(message)


def verify_ed25519(pubkey: Pubkey, message: bytes, sig: bytes) -> bool:
    try:
        Ed25519PublicKey.from_public_bytes(bytes(pubkey)).verify(sig, message)
        return True
    except (InvalidSignature, ValueError):
        return False
