"""
protocols.py — ledger protocols and action validators

The ledger is assembled from a fixed protocol set:

  account        balances and sender funding checks
  rolldpos       epoch / round-robin delegate bookkeeping
  smart_contract execution validation and handling (runs the evm)

plus a generic envelope validator (signature, nonce, gas limits) that runs
before any protocol-specific validation.
"""

from __future__ import annotations
import logging
from typing import Any, Dict, List, Sequence, Tuple

from .action import Execution, Receipt, SealedEnvelope
from .encoding import is_valid_address
from .errors import (
    GasLimitExceededError,
    InsufficientBalanceError,
    InvalidAmountError,
    InvalidContractAddressError,
    InvalidSignatureError,
    NonceMismatchError,
    PayloadTooLargeError,
)
from .evm import BlockContext, execute_action, intrinsic_gas
from .state import WorkingSet

logger = logging.getLogger(__name__)

ACCOUNT_PROTOCOL_ID = "account"
ROLLDPOS_PROTOCOL_ID = "rolldpos"
EXECUTION_PROTOCOL_ID = "smart_contract"


class Registry:
    """Protocols keyed by id; registration order is preserved."""

    def __init__(self) -> None:
        self._protocols: Dict[str, Any] = {}

    def register(self, protocol_id: str, protocol: Any) -> None:
        if protocol_id in self._protocols:
            raise ValueError(f"protocol {protocol_id!r} is already registered")
        self._protocols[protocol_id] = protocol

    def find(self, protocol_id: str) -> Any:
        return self._protocols.get(protocol_id)

    def ids(self) -> List[str]:
        return list(self._protocols)


class AccountProtocol:
    """Sender must exist and cover ``amount + gas_limit * gas_price``."""

    protocol_id = ACCOUNT_PROTOCOL_ID

    def validate(self, ws: WorkingSet, sender: str, execution: Execution) -> None:
        if not ws.exists(sender):
            raise InsufficientBalanceError(f"sender {sender} does not exist")
        need = max(execution.amount, 0) + execution.gas_limit * execution.gas_price
        have = ws.balance(sender)
        if have < need:
            raise InsufficientBalanceError(f"sender {sender} holds {have}, needs {need}")


class RollDPoSProtocol:
    """Epoch arithmetic for a round-robin delegate schedule."""

    protocol_id = ROLLDPOS_PROTOCOL_ID

    def __init__(self, num_candidate_delegates: int, num_delegates: int, num_sub_epochs: int):
        if num_delegates <= 0 or num_sub_epochs <= 0:
            raise ValueError("num_delegates and num_sub_epochs must be > 0")
        if num_candidate_delegates < num_delegates:
            raise ValueError("num_candidate_delegates must be >= num_delegates")
        self.num_candidate_delegates = num_candidate_delegates
        self.num_delegates = num_delegates
        self.num_sub_epochs = num_sub_epochs

    @property
    def blocks_per_epoch(self) -> int:
        return self.num_delegates * self.num_sub_epochs

    def epoch_num(self, height: int) -> int:
        if height == 0:
            return 0
        return (height - 1) // self.blocks_per_epoch + 1

    def epoch_height(self, epoch: int) -> int:
        """First block height of ``epoch``."""
        if epoch == 0:
            return 0
        return (epoch - 1) * self.blocks_per_epoch + 1

    def delegate_for(self, height: int, delegates: Sequence[str]) -> str:
        if not delegates:
            raise ValueError("delegate list is empty")
        active = list(delegates)[: self.num_delegates]
        offset = height - self.epoch_height(self.epoch_num(height))
        return active[(offset // self.num_sub_epochs) % len(active)]


class ExecutionProtocol:
    """Stateless execution checks, and the handler that applies executions."""

    protocol_id = EXECUTION_PROTOCOL_ID

    def __init__(self, max_payload_size: int):
        self.max_payload_size = max_payload_size

    def validate(self, ws: WorkingSet, sender: str, execution: Execution) -> None:
        if len(execution.data) > self.max_payload_size:
            raise PayloadTooLargeError(
                f"{len(execution.data)} bytes > {self.max_payload_size}"
            )
        if execution.amount < 0:
            raise InvalidAmountError(f"amount={execution.amount}")
        if execution.gas_price < 0:
            raise InvalidAmountError(f"gas_price={execution.gas_price}")
        if not execution.is_deployment and not is_valid_address(execution.contract):
            raise InvalidContractAddressError(f"contract={execution.contract!r}")

    def handle(
        self,
        ws: WorkingSet,
        sender: str,
        execution: Execution,
        block: BlockContext,
        action_hash: str,
    ) -> Tuple[bytes, Receipt]:
        return execute_action(ws, sender, execution, block, action_hash)


class GenericValidator:
    """Envelope checks shared by every action type."""

    def __init__(self, action_gas_limit: int):
        self.action_gas_limit = action_gas_limit

    def validate(self, ws: WorkingSet, selp: SealedEnvelope) -> None:
        if not selp.verify():
            raise InvalidSignatureError(f"sender {selp.sender}")
        execution = selp.action
        if execution.gas_limit > self.action_gas_limit:
            raise GasLimitExceededError(
                f"gas_limit={execution.gas_limit} > action limit {self.action_gas_limit}"
            )
        needed = intrinsic_gas(execution.data)
        if execution.gas_limit < needed:
            raise GasLimitExceededError(
                f"gas_limit={execution.gas_limit} < intrinsic gas {needed}"
            )
        confirmed = ws.nonce(selp.sender)
        if selp.envelope.nonce != confirmed + 1:
            raise NonceMismatchError(
                f"sender {selp.sender}: nonce {selp.envelope.nonce}, confirmed {confirmed}"
            )
