"""
executor.py — turn one scenario step into one ledger transaction

Mutating steps go through the full block path: envelope, signature, a new
block holding only this envelope for its signer, validation, commit, and
receipt lookup by sealed envelope hash. Read-only steps are simulated and never
produce a block.

Ledger errors are not caught here. The ledger decides atomicity; a step
either commits as a whole block or raises.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from .action import EnvelopeBuilder, Execution, Receipt, sign_envelope
from .chain import LedgerFacade
from .scenario import StepConfig

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StepResult:
    # Only populated on the read-only path.
    return_data: Optional[bytes]
    receipt: Receipt
    execution: Execution


class StepExecutor:
    """Builds, signs and submits the transaction for a step."""

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.nonce_log: Dict[str, List[int]] = {}

    def reset(self) -> None:
        """Forget the nonces of a previous ledger."""
        self.nonce_log = {}

    def build_execution(self, ledger: LedgerFacade, step: StepConfig, contract_address: str) -> Execution:
        nonce = ledger.nonce(step.executor)
        return Execution(
            contract=contract_address,
            nonce=nonce + 1,
            amount=step.amount,
            gas_limit=step.gas_limit,
            gas_price=step.gas_price,
            data=step.payload(),
        )

    def execute(self, ledger: LedgerFacade, step: StepConfig, contract_address: str) -> StepResult:
        self.logger.info("%s", step.comment)
        execution = self.build_execution(ledger, step, contract_address)

        if step.read_only:
            output, receipt = ledger.execute_contract_read(step.executor, execution)
            return StepResult(return_data=output, receipt=receipt, execution=execution)

        envelope = (
            EnvelopeBuilder()
            .set_action(execution)
            .set_nonce(execution.nonce)
            .set_gas_limit(step.gas_limit)
            .set_gas_price(step.gas_price)
            .build()
        )
        selp = sign_envelope(envelope, step.signer)
        block = ledger.mint_new_block({step.executor: [selp]})
        ledger.validate_block(block)
        ledger.commit_block(block)
        self.nonce_log.setdefault(step.executor, []).append(execution.nonce)

        receipt = ledger.receipt_by_action_hash(selp.hash())
        self.logger.debug(
            "block %d: status=%d gas=%d contract=%s logs=%d",
            block.height, receipt.status, receipt.gas_consumed,
            receipt.contract_address or "-", len(receipt.logs),
        )
        return StepResult(return_data=None, receipt=receipt, execution=execution)
