"""
chain.py — the ledger boundary and its in-memory implementation

LedgerFacade is everything the harness consumes from a ledger engine.
InMemoryChain implements it on top of StateFactory: blocks are minted from
sealed envelopes, validated by deterministic re-execution, and committed
together with their receipts. Receipts and actions are indexed by the
sealed envelope hash, which covers the signer. Storage is process memory
only; a chain lives for exactly one scenario run.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import (
    Dict, List, Mapping, Optional, Protocol, Sequence, Tuple, runtime_checkable,
)

from .action import Execution, Receipt, SealedEnvelope
from .canonical_json import canonical_hash
from .config import HarnessConfig
from .encoding import int_to_word, word_to_int
from .errors import (
    BlockValidationError,
    GasLimitExceededError,
    LedgerNotRunningError,
    ReceiptNotFoundError,
)
from .evm import BlockContext, execute_action
from .protocols import (
    ROLLDPOS_PROTOCOL_ID,
    GenericValidator,
    Registry,
)
from .state import StateFactory, WorkingSet

logger = logging.getLogger(__name__)

GENESIS_PREV_HASH = "0" * 64


@runtime_checkable
class LedgerFacade(Protocol):
    """Ledger operations the scenario harness depends on."""

    def nonce(self, address: str) -> int: ...

    def mint_new_block(
        self,
        actions: Mapping[str, Sequence[SealedEnvelope]],
        timestamp: Optional[int] = None,
    ) -> "Block": ...

    def validate_block(self, block: "Block") -> None: ...

    def commit_block(self, block: "Block") -> None: ...

    def receipt_by_action_hash(self, action_hash: str) -> Receipt: ...

    def balance(self, address: str) -> int: ...

    def execute_contract_read(
        self, caller: str, execution: Execution
    ) -> Tuple[bytes, Receipt]: ...

    def code_at(self, address: str, ws: Optional[WorkingSet] = None) -> bytes: ...

    def storage_at(
        self, address: str, key: bytes, ws: Optional[WorkingSet] = None
    ) -> bytes: ...

    def new_working_set(self) -> WorkingSet: ...


@dataclass(frozen=True)
class Block:
    height: int
    timestamp: int
    producer: str
    epoch: int
    prev_hash: str
    actions: Tuple[SealedEnvelope, ...]
    receipts: Tuple[Receipt, ...]

    def hash(self) -> str:
        return canonical_hash({
            "height": self.height,
            "timestamp": self.timestamp,
            "producer": self.producer,
            "epoch": self.epoch,
            "prev_hash": self.prev_hash,
            "actions": [a.hash() for a in self.actions],
            "receipts": [
                [r.action_hash, r.status, r.gas_consumed, r.contract_address, len(r.logs)]
                for r in self.receipts
            ],
        })


class Validator:
    """Envelope validators run first, then action validators, in order."""

    def __init__(self) -> None:
        self.envelope_validators: List[GenericValidator] = []
        self.action_validators: List = []

    def add_envelope_validators(self, *validators) -> None:
        self.envelope_validators.extend(validators)

    def add_action_validators(self, *validators) -> None:
        self.action_validators.extend(validators)

    def validate(self, ws: WorkingSet, selp: SealedEnvelope) -> None:
        for v in self.envelope_validators:
            v.validate(ws, selp)
        for v in self.action_validators:
            v.validate(ws, selp.sender, selp.action)


class InMemoryChain:
    """A single-node ledger backed by process memory."""

    def __init__(self, config: HarnessConfig, registry: Registry):
        self.config = config
        self.registry = registry
        self.factory = StateFactory(chain_id=config.chain_id, gas_limit=config.block_gas_limit)
        self._validator = Validator()
        self._handlers: List = []
        self._running = False
        self._blocks: List[Block] = []
        self._receipts: Dict[str, Receipt] = {}
        self._actions: Dict[str, Tuple[int, SealedEnvelope]] = {}
        self._actions_by_sender: Dict[str, List[str]] = {}
        self._validated: Dict[str, WorkingSet] = {}

    # -- lifecycle ---------------------------------------------------------

    def validator(self) -> Validator:
        return self._validator

    def add_action_handlers(self, *handlers) -> None:
        self._handlers.extend(handlers)

    def start(self) -> None:
        if self._running:
            return
        if not self._blocks:
            self._blocks.append(Block(
                height=0,
                timestamp=self.config.timestamp_for(0),
                producer=self.config.producer,
                epoch=0,
                prev_hash=GENESIS_PREV_HASH,
                actions=(),
                receipts=(),
            ))
        self._running = True
        logger.debug("chain started at height %d", self.tip_height())

    def stop(self) -> None:
        self._running = False
        self._validated.clear()
        logger.debug("chain stopped at height %d", self.tip_height())

    @property
    def running(self) -> bool:
        return self._running

    def _require_running(self) -> None:
        if not self._running:
            raise LedgerNotRunningError()

    # -- state access ------------------------------------------------------

    def tip_height(self) -> int:
        return len(self._blocks) - 1

    def tip(self) -> Block:
        return self._blocks[-1]

    def block_by_height(self, height: int) -> Block:
        return self._blocks[height]

    def new_working_set(self) -> WorkingSet:
        self._require_running()
        return self.factory.new_working_set()

    def commit_working_set(self, ws: WorkingSet) -> None:
        """Commit a working set outside of any block (pre-genesis funding)."""
        self._require_running()
        self.factory.commit(ws)

    def nonce(self, address: str) -> int:
        self._require_running()
        acct = self.factory.account(address)
        return acct.nonce if acct is not None else 0

    def balance(self, address: str) -> int:
        self._require_running()
        acct = self.factory.account(address)
        return acct.balance if acct is not None else 0

    def code_at(self, address: str, ws: Optional[WorkingSet] = None) -> bytes:
        self._require_running()
        return (ws or self.factory.new_working_set()).code(address)

    def storage_at(self, address: str, key: bytes, ws: Optional[WorkingSet] = None) -> bytes:
        self._require_running()
        view = ws or self.factory.new_working_set()
        return int_to_word(view.storage_get(address, word_to_int(key)))

    # -- indexes -----------------------------------------------------------

    def receipt_by_action_hash(self, action_hash: str) -> Receipt:
        self._require_running()
        try:
            return self._receipts[action_hash]
        except KeyError:
            raise ReceiptNotFoundError(action_hash) from None

    def action_by_hash(self, action_hash: str) -> SealedEnvelope:
        self._require_running()
        try:
            return self._actions[action_hash][1]
        except KeyError:
            raise ReceiptNotFoundError(action_hash) from None

    def block_hash_by_action_hash(self, action_hash: str) -> str:
        self._require_running()
        try:
            height = self._actions[action_hash][0]
        except KeyError:
            raise ReceiptNotFoundError(action_hash) from None
        return self._blocks[height].hash()

    def actions_from_address(self, address: str) -> List[str]:
        self._require_running()
        return list(self._actions_by_sender.get(address, []))

    # -- block production --------------------------------------------------

    def _handler(self):
        if not self._handlers:
            raise BlockValidationError("no action handler registered")
        return self._handlers[0]

    def _run_actions(
        self,
        actions: Sequence[SealedEnvelope],
        height: int,
        timestamp: int,
        producer: str,
    ) -> Tuple[WorkingSet, Tuple[Receipt, ...]]:
        block_ctx = BlockContext(height=height, timestamp=timestamp, producer=producer)
        ws = self.factory.new_working_set(block_ctx)
        handler = self._handler()
        receipts = []
        for selp in actions:
            self._validator.validate(ws, selp)
            _, receipt = handler.handle(ws, selp.sender, selp.action, block_ctx, selp.hash())
            receipts.append(receipt)
        return ws, tuple(receipts)

    def mint_new_block(
        self,
        actions: Mapping[str, Sequence[SealedEnvelope]],
        timestamp: Optional[int] = None,
    ) -> Block:
        """Assemble the next block from ``actions`` (grouped by sender)."""
        self._require_running()
        ordered = [selp for sender in actions for selp in actions[sender]]
        total_gas = sum(selp.envelope.gas_limit for selp in ordered)
        if total_gas > self.config.block_gas_limit:
            raise GasLimitExceededError(
                f"block gas {total_gas} > limit {self.config.block_gas_limit}"
            )
        height = self.tip_height() + 1
        if timestamp is None:
            timestamp = self.config.timestamp_for(height)
        rolldpos = self.registry.find(ROLLDPOS_PROTOCOL_ID)
        producer = self.config.producer
        epoch = 0
        if rolldpos is not None:
            producer = rolldpos.delegate_for(height, [self.config.producer])
            epoch = rolldpos.epoch_num(height)
        ws, receipts = self._run_actions(ordered, height, timestamp, producer)
        block = Block(
            height=height,
            timestamp=timestamp,
            producer=producer,
            epoch=epoch,
            prev_hash=self.tip().hash(),
            actions=tuple(ordered),
            receipts=receipts,
        )
        self._validated[block.hash()] = ws
        logger.debug("minted block %d with %d action(s)", height, len(ordered))
        return block

    def validate_block(self, block: Block) -> None:
        """Check linkage, then re-execute and compare receipts."""
        self._require_running()
        if block.height != self.tip_height() + 1:
            raise BlockValidationError(
                f"height {block.height}, expected {self.tip_height() + 1}"
            )
        if block.prev_hash != self.tip().hash():
            raise BlockValidationError(f"prev_hash {block.prev_hash} does not match tip")
        ws, receipts = self._run_actions(block.actions, block.height, block.timestamp, block.producer)
        if receipts != block.receipts:
            raise BlockValidationError(f"receipts of block {block.height} do not match re-execution")
        self._validated[block.hash()] = ws

    def commit_block(self, block: Block) -> None:
        self._require_running()
        block_hash = block.hash()
        ws = self._validated.pop(block_hash, None)
        if ws is None:
            self.validate_block(block)
            ws = self._validated.pop(block_hash)
        self.factory.commit(ws, height=block.height)
        self._blocks.append(block)
        for selp, receipt in zip(block.actions, block.receipts):
            action_hash = selp.hash()
            self._receipts[action_hash] = receipt
            self._actions[action_hash] = (block.height, selp)
            self._actions_by_sender.setdefault(selp.sender, []).append(action_hash)
        logger.debug("committed block %d (%s)", block.height, block_hash[:16])

    # -- simulation --------------------------------------------------------

    def execute_contract_read(
        self, caller: str, execution: Execution
    ) -> Tuple[bytes, Receipt]:
        """
        Run ``execution`` against a throwaway view of the tip state.

        Nothing is committed and no block is produced; the returned receipt
        is transient and never indexed.
        """
        self._require_running()
        handler = self._handler()
        height = self.tip_height() + 1
        block_ctx = BlockContext(
            height=height,
            timestamp=self.config.timestamp_for(height),
            producer=self.config.producer,
        )
        ws = self.factory.new_working_set(block_ctx)
        handler.validate(ws, caller, execution)
        return execute_action(ws, caller, execution, block_ctx, execution.hash(), charge_fees=False)

