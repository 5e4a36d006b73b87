"""
evm.py — contract execution on py-evm

The ledger owns the transaction envelope rules: intrinsic gas, fee
prepayment and refund, sender nonces and the address of a new contract.
The message itself is handed to py-evm's Shanghai computation, which runs
init or runtime code against the working set's state, including nested
CALL/CREATE frames, KECCAK256, precompiles and the Shanghai gas schedule.

Gas model:
  intrinsic      10000 + 100 per payload byte (ledger rule)
  execution      py-evm Shanghai schedule, code deposit 200 per byte
  refunds        capped at gas_used // 5

REVERT keeps the unused gas; every other failure consumes the whole limit.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Tuple

import rlp
from eth.constants import CREATE_CONTRACT_ADDRESS
from eth.vm.message import Message
from eth_utils import keccak

from .action import (
    FAILURE_RECEIPT_STATUS,
    SUCCESS_RECEIPT_STATUS,
    Execution,
    Receipt,
    ReceiptLog,
)
from .encoding import (
    ADDRESS_LENGTH,
    EMPTY_ADDRESS,
    address_to_bytes,
    bytes_to_address,
    int_to_word,
)
from .errors import InsufficientBalanceError
from .state import BlockContext, WorkingSet

__all__ = [
    "BlockContext",
    "VMResult",
    "contract_address",
    "execute_action",
    "intrinsic_gas",
    "run_message",
]

logger = logging.getLogger(__name__)

EXECUTION_BASE_INTRINSIC_GAS = 10000
EXECUTION_DATA_GAS = 100
MAX_REFUND_QUOTIENT = 5


def intrinsic_gas(data: bytes) -> int:
    return EXECUTION_BASE_INTRINSIC_GAS + EXECUTION_DATA_GAS * len(data)


def contract_address(sender: str, nonce: int) -> str:
    """Address of the contract created by ``sender`` at ``nonce``: keccak(rlp([sender, nonce]))[12:]."""
    digest = keccak(rlp.encode([address_to_bytes(sender), nonce]))
    return bytes_to_address(digest[-ADDRESS_LENGTH:])


@dataclass
class VMResult:
    success: bool
    output: bytes
    gas_left: int
    logs: List[ReceiptLog] = field(default_factory=list)
    error: str = ""


def _receipt_logs(computation) -> List[ReceiptLog]:
    return [
        ReceiptLog(
            address=bytes_to_address(address),
            topics=tuple(int_to_word(topic) for topic in topics),
            data=bytes(data),
        )
        for address, topics, data in computation.get_log_entries()
    ]


def run_message(
    ws: WorkingSet,
    sender: str,
    execution: Execution,
    target: str,
    gas: int,
) -> VMResult:
    """Run one top-level message through py-evm with ``gas`` left after intrinsic gas."""
    state = ws.state
    sender_bytes = address_to_bytes(sender)
    target_bytes = address_to_bytes(target)

    if execution.is_deployment:
        if ws.code(target) or ws.nonce(target):
            return VMResult(success=False, output=b"", gas_left=0, error="contract address collision")
        message = Message(
            gas=gas,
            to=CREATE_CONTRACT_ADDRESS,
            sender=sender_bytes,
            value=execution.amount,
            data=b"",
            code=execution.data,
            create_address=target_bytes,
        )
    else:
        message = Message(
            gas=gas,
            to=target_bytes,
            sender=sender_bytes,
            value=execution.amount,
            data=execution.data,
            code=state.get_code(target_bytes),
        )

    for warm in (sender_bytes, target_bytes, state.coinbase):
        state.mark_address_warm(warm)
    tx_context = state.get_transaction_context_class()(
        gas_price=execution.gas_price,
        origin=sender_bytes,
    )
    if execution.is_deployment:
        computation = state.computation_class.apply_create_message(state, message, tx_context)
    else:
        computation = state.computation_class.apply_message(state, message, tx_context)

    if computation.is_error:
        return VMResult(
            success=False,
            output=b"",
            gas_left=computation.get_gas_remaining(),
            error=repr(computation.error),
        )
    gas_left = computation.get_gas_remaining()
    gas_used = execution.gas_limit - gas_left
    gas_left += min(computation.get_gas_refund(), gas_used // MAX_REFUND_QUOTIENT)
    return VMResult(
        success=True,
        output=bytes(computation.output),
        gas_left=gas_left,
        logs=_receipt_logs(computation),
    )


def execute_action(
    ws: WorkingSet,
    sender: str,
    execution: Execution,
    block: BlockContext,
    action_hash: str,
    charge_fees: bool = True,
) -> Tuple[bytes, Receipt]:
    """
    Apply one execution to ``ws`` and return (output, receipt).

    The sender prepays ``gas_limit * gas_price``; unused gas is refunded and
    the consumed part is credited to the block producer. On failure every
    state change except the fee and the nonce bump is rolled back.
    """
    gas_limit = execution.gas_limit
    if charge_fees:
        ws.sub_balance(sender, gas_limit * execution.gas_price)
        ws.set_nonce(sender, execution.nonce)
    have = ws.balance(sender)
    if have < execution.amount:
        raise InsufficientBalanceError(f"{sender} holds {have}, needs {execution.amount}")

    if execution.is_deployment:
        target = contract_address(sender, execution.nonce)
    else:
        target = execution.contract

    gas = gas_limit - intrinsic_gas(execution.data)
    if gas < 0:
        result = VMResult(success=False, output=b"", gas_left=0, error="intrinsic gas exceeds limit")
    else:
        result = run_message(ws, sender, execution, target, gas)

    gas_consumed = gas_limit - result.gas_left
    if charge_fees:
        ws.add_balance(sender, result.gas_left * execution.gas_price)
        ws.add_balance(block.producer, gas_consumed * execution.gas_price)
    ws.finish_action()

    receipt = Receipt(
        action_hash=action_hash,
        status=SUCCESS_RECEIPT_STATUS if result.success else FAILURE_RECEIPT_STATUS,
        gas_consumed=gas_consumed,
        contract_address=target if execution.is_deployment and result.success else EMPTY_ADDRESS,
        logs=tuple(result.logs),
        block_height=block.height,
    )
    if not result.success:
        logger.debug("execution %s failed: %s", action_hash, result.error or "reverted")
    return result.output if result.success else b"", receipt
