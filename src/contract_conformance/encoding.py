"""
encoding.py — fixture field decoding and the 32-byte address word

Scenario files carry every binary or numeric value as a string. The helpers
here decode them strictly; any malformed value raises a FixtureError naming
the field, so a broken fixture is rejected before the ledger is touched.

Address word layout (ABI-style, one 32-byte word):

    | 12 zero bytes | 20 address bytes |
"""

from __future__ import annotations
import re

from .errors import InvalidAddressError, InvalidHexError, InvalidIntegerError

# Destination of a contract creation.
EMPTY_ADDRESS = ""

ADDRESS_LENGTH = 20
WORD_SIZE = 32

_ADDRESS_RE = re.compile(r"0x[0-9a-f]{40}")
_INT_RE = re.compile(r"[+-]?[0-9]+")


def decode_hex(raw: str, field: str = "value") -> bytes:
    """Decode a hex string; an optional ``0x`` prefix is accepted."""
    if not isinstance(raw, str):
        raise InvalidHexError(f"{field}: expected a string, got {type(raw).__name__}")
    text = raw[2:] if raw[:2] in ("0x", "0X") else raw
    try:
        return bytes.fromhex(text)
    except ValueError as exc:
        raise InvalidHexError(f"{field}={raw!r}: {exc}") from exc


def parse_big_int(raw: str, field: str = "value") -> int:
    """Parse a base-10 integer of arbitrary size. Negative values are allowed."""
    if isinstance(raw, bool) or not isinstance(raw, (str, int)):
        raise InvalidIntegerError(f"{field}: expected a decimal string, got {type(raw).__name__}")
    if isinstance(raw, int):
        return raw
    if not _INT_RE.fullmatch(raw):
        raise InvalidIntegerError(f"{field}={raw!r}")
    return int(raw, 10)


def is_valid_address(address: str) -> bool:
    return isinstance(address, str) and bool(_ADDRESS_RE.fullmatch(address))


def address_to_bytes(address: str) -> bytes:
    if not is_valid_address(address):
        raise InvalidAddressError(repr(address))
    return bytes.fromhex(address[2:])


def bytes_to_address(raw: bytes) -> str:
    if len(raw) != ADDRESS_LENGTH:
        raise InvalidAddressError(f"expected {ADDRESS_LENGTH} bytes, got {len(raw)}")
    return "0x" + raw.hex()


def encode_address_word(address: str) -> bytes:
    """Left-pad a 20-byte address with 12 zero bytes into one 32-byte word."""
    return bytes(WORD_SIZE - ADDRESS_LENGTH) + address_to_bytes(address)


def append_address_word(payload: bytes, address: str) -> bytes:
    """Return ``payload`` followed by the address word of ``address``."""
    return bytes(payload) + encode_address_word(address)


def word_to_int(raw: bytes) -> int:
    return int.from_bytes(raw, "big")


def int_to_word(value: int) -> bytes:
    return (value % (1 << 256)).to_bytes(WORD_SIZE, "big")
