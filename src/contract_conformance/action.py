"""
action.py — executions, signed envelopes and receipts

An Execution is the only action type the harness submits: a contract
creation when its destination is EMPTY_ADDRESS, a contract call otherwise.
It travels inside an Envelope (nonce and gas terms) which the signer seals
with an Ed25519 signature over the envelope's canonical bytes.

The ledger answers every committed execution with a Receipt.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from .canonical_json import canonical_bytes, canonical_hash
from .encoding import EMPTY_ADDRESS
from .errors import EnvelopeMismatchError
from .keys import SignerKey, address_from_public_bytes, verify_signature

SUCCESS_RECEIPT_STATUS = 1
FAILURE_RECEIPT_STATUS = 0


@dataclass(frozen=True)
class Execution:
    contract: str
    nonce: int
    amount: int
    gas_limit: int
    gas_price: int
    data: bytes = b""

    @property
    def is_deployment(self) -> bool:
        return self.contract == EMPTY_ADDRESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract": self.contract,
            "nonce": self.nonce,
            "amount": self.amount,
            "gas_limit": self.gas_limit,
            "gas_price": self.gas_price,
            "data": self.data,
        }

    def hash(self) -> str:
        """Content hash of the unsigned action; names transient read receipts."""
        return canonical_hash({"execution": self.to_dict()})


@dataclass(frozen=True)
class Envelope:
    nonce: int
    gas_limit: int
    gas_price: int
    action: Execution

    def to_dict(self) -> Dict[str, Any]:
        return {
            "nonce": self.nonce,
            "gas_limit": self.gas_limit,
            "gas_price": self.gas_price,
            "action": self.action.to_dict(),
        }

    def signing_bytes(self) -> bytes:
        return canonical_bytes(self.to_dict())


class EnvelopeBuilder:
    """Fluent builder; ``build`` rejects terms that disagree with the action."""

    def __init__(self) -> None:
        self._action: Optional[Execution] = None
        self._nonce: Optional[int] = None
        self._gas_limit: Optional[int] = None
        self._gas_price: Optional[int] = None

    def set_action(self, action: Execution) -> "EnvelopeBuilder":
        self._action = action
        return self

    def set_nonce(self, nonce: int) -> "EnvelopeBuilder":
        self._nonce = nonce
        return self

    def set_gas_limit(self, gas_limit: int) -> "EnvelopeBuilder":
        self._gas_limit = gas_limit
        return self

    def set_gas_price(self, gas_price: int) -> "EnvelopeBuilder":
        self._gas_price = gas_price
        return self

    def build(self) -> Envelope:
        act = self._action
        if act is None:
            raise EnvelopeMismatchError("no action set")
        nonce = act.nonce if self._nonce is None else self._nonce
        gas_limit = act.gas_limit if self._gas_limit is None else self._gas_limit
        gas_price = act.gas_price if self._gas_price is None else self._gas_price
        if (nonce, gas_limit, gas_price) != (act.nonce, act.gas_limit, act.gas_price):
            raise EnvelopeMismatchError(
                f"envelope (nonce={nonce}, gas_limit={gas_limit}, gas_price={gas_price}) "
                f"vs action (nonce={act.nonce}, gas_limit={act.gas_limit}, gas_price={act.gas_price})"
            )
        return Envelope(nonce=nonce, gas_limit=gas_limit, gas_price=gas_price, action=act)


@dataclass(frozen=True)
class SealedEnvelope:
    envelope: Envelope
    sender_public_key: bytes
    signature: bytes

    @property
    def sender(self) -> str:
        return address_from_public_bytes(self.sender_public_key)

    @property
    def action(self) -> Execution:
        return self.envelope.action

    def verify(self) -> bool:
        return verify_signature(
            self.sender_public_key, self.signature, self.envelope.signing_bytes()
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "envelope": self.envelope.to_dict(),
            "sender_public_key": self.sender_public_key,
            "signature": self.signature,
        }

    def hash(self) -> str:
        """Hash of the signed envelope; committed receipts and actions are indexed by it."""
        return canonical_hash(self.to_dict())


def sign_envelope(envelope: Envelope, key: SignerKey) -> SealedEnvelope:
    """Seal an envelope with a detached signature over its canonical bytes."""
    return SealedEnvelope(
        envelope=envelope,
        sender_public_key=key.public_key_bytes(),
        signature=key.sign(envelope.signing_bytes()),
    )


@dataclass(frozen=True)
class ReceiptLog:
    address: str
    topics: Tuple[bytes, ...]
    data: bytes


@dataclass(frozen=True)
class Receipt:
    action_hash: str
    status: int
    gas_consumed: int
    contract_address: str = EMPTY_ADDRESS
    logs: Tuple[ReceiptLog, ...] = field(default_factory=tuple)
    block_height: int = 0

    @property
    def succeeded(self) -> bool:
        return self.status == SUCCESS_RECEIPT_STATUS
