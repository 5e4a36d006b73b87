"""
canonical_json.py — deterministic serialization for content hashes

Action hashes, block hashes and contract addresses are all SHA-256 digests
over the canonical form produced here:
- UTF-8 encoding
- Object keys sorted lexicographically
- No insignificant whitespace
- Byte strings rendered as lowercase hex (see ``to_jsonable``)
- Integers of any size are emitted as JSON numbers

Two runs of the same scenario MUST hash every action and block to the same
value, otherwise contract addresses drift between runs.
"""

from __future__ import annotations
import hashlib
import json
from typing import Any


def to_jsonable(obj: Any) -> Any:
    """Recursively convert bytes to hex and tuples to lists."""
    if isinstance(obj, (bytes, bytearray)):
        return bytes(obj).hex()
    if isinstance(obj, dict):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [to_jsonable(v) for v in obj]
    return obj


def canonical_dumps(obj: Any) -> str:
    """Return canonical JSON string with sorted keys and no whitespace."""
    return json.dumps(
        to_jsonable(obj),
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def canonical_bytes(obj: Any) -> bytes:
    return canonical_dumps(obj).encode("utf-8")


def sha256_digest(data: bytes) -> bytes:
    return hashlib.sha256(data).digest()


def canonical_hash(obj: Any) -> str:
    """Return SHA-256 hex digest of canonical JSON bytes."""
    return hashlib.sha256(canonical_bytes(obj)).hexdigest()
