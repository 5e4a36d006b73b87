"""
keys.py — signer keys and ledger addresses

Implements:
  - Ed25519 signer keys loaded from hex-encoded 32-byte seeds
  - Ledger address derivation from the public key hash
  - Detached signing and verification of envelope bytes

Address derivation:
  address = '0x' + hex(SHA-256(raw_public_key)[12:32])

Dependencies:
  - cryptography >= 41.0
"""

from __future__ import annotations
import hashlib
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.hazmat.primitives.serialization import (
    Encoding,
    NoEncryption,
    PrivateFormat,
    PublicFormat,
)

from .encoding import ADDRESS_LENGTH, bytes_to_address
from .errors import InvalidPrivateKeyError

SEED_LENGTH = 32


def address_from_public_bytes(pub_bytes: bytes) -> str:
    """Derive the ledger address of a raw Ed25519 public key."""
    digest = hashlib.sha256(pub_bytes).digest()
    return bytes_to_address(digest[-ADDRESS_LENGTH:])


def public_key_bytes(public_key: Ed25519PublicKey) -> bytes:
    return public_key.public_bytes(Encoding.Raw, PublicFormat.Raw)


@dataclass(frozen=True)
class SignerKey:
    """An Ed25519 signing key together with its derived ledger address."""
    private_key: Ed25519PrivateKey = field(compare=False, repr=False)
    public_key: Ed25519PublicKey = field(compare=False, repr=False)
    address: str

    @classmethod
    def from_hex(cls, raw: str) -> "SignerKey":
        """Load a key from a hex-encoded seed. Raises InvalidPrivateKeyError."""
        if not isinstance(raw, str):
            raise InvalidPrivateKeyError(f"expected a hex string, got {type(raw).__name__}")
        text = raw[2:] if raw[:2] in ("0x", "0X") else raw
        try:
            seed = bytes.fromhex(text)
        except ValueError as exc:
            raise InvalidPrivateKeyError(f"{raw!r}: {exc}") from exc
        if len(seed) != SEED_LENGTH:
            raise InvalidPrivateKeyError(f"expected {SEED_LENGTH} bytes, got {len(seed)}")
        return cls.from_private_key(Ed25519PrivateKey.from_private_bytes(seed))

    @classmethod
    def from_private_key(cls, private_key: Ed25519PrivateKey) -> "SignerKey":
        pk = private_key.public_key()
        return cls(
            private_key=private_key,
            public_key=pk,
            address=address_from_public_bytes(public_key_bytes(pk)),
        )

    @classmethod
    def generate(cls) -> "SignerKey":
        return cls.from_private_key(Ed25519PrivateKey.generate())

    def private_key_hex(self) -> str:
        raw = self.private_key.private_bytes(
            Encoding.Raw, PrivateFormat.Raw, NoEncryption()
        )
        return raw.hex()

    def public_key_bytes(self) -> bytes:
        return public_key_bytes(self.public_key)

    def sign(self, payload: bytes) -> bytes:
        return self.private_key.sign(payload)


def verify_signature(pub_bytes: bytes, signature: bytes, payload: bytes) -> bool:
    """
    Verify a detached Ed25519 signature.

    Returns True if valid, False on a bad signature or malformed key.
    """
    try:
        Ed25519PublicKey.from_public_bytes(pub_bytes).verify(signature, payload)
        return True
    except (InvalidSignature, ValueError):
        return False
