"""
state.py — account state on py-evm's state trie

StateFactory holds the committed state root over one in-memory AtomicDB.
Every mutation goes through a WorkingSet: a py-evm Shanghai state opened
at that root, which is either persisted and adopted by the factory as a
whole or discarded. Trie nodes are content addressed, so a discarded
working set never disturbs the committed root.
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Optional, Tuple

from eth.constants import BLANK_ROOT_HASH, ZERO_HASH32
from eth.db.atomic import AtomicDB
from eth.vm.execution_context import ExecutionContext
from eth.vm.forks.shanghai.state import ShanghaiState

from .encoding import ADDRESS_LENGTH, address_to_bytes
from .errors import BlockValidationError, InsufficientBalanceError

_ZERO_ADDRESS = "0x" + "00" * ADDRESS_LENGTH


@dataclass(frozen=True)
class BlockContext:
    height: int
    timestamp: int
    producer: str


@dataclass
class Account:
    """Read-only copy of one account; editing it changes nothing."""
    balance: int = 0
    nonce: int = 0
    code: bytes = b""


class StateFactory:
    """Committed state root plus the height it was committed at."""

    def __init__(self, chain_id: int = 1, gas_limit: int = 30_000_000) -> None:
        self.chain_id = chain_id
        self.gas_limit = gas_limit
        self.db = AtomicDB()
        self._state_root = BLANK_ROOT_HASH
        self._height = 0
        self._version = 0

    @property
    def height(self) -> int:
        return self._height

    @property
    def state_root(self) -> bytes:
        return self._state_root

    def execution_context(self, block: BlockContext) -> ExecutionContext:
        return ExecutionContext(
            coinbase=address_to_bytes(block.producer),
            timestamp=block.timestamp,
            block_number=block.height,
            difficulty=0,
            mix_hash=ZERO_HASH32,
            gas_limit=self.gas_limit,
            prev_hashes=(),
            chain_id=self.chain_id,
            base_fee_per_gas=0,
        )

    def account(self, address: str) -> Optional[Account]:
        ws = self.new_working_set()
        return ws.account(address) if ws.exists(address) else None

    def new_working_set(self, block: Optional[BlockContext] = None) -> "WorkingSet":
        if block is None:
            block = BlockContext(height=self._height, timestamp=0, producer=_ZERO_ADDRESS)
        return WorkingSet(self, self._version, block)

    def commit(self, ws: "WorkingSet", height: Optional[int] = None) -> None:
        if ws.base_version != self._version:
            raise BlockValidationError(
                f"working set based on version {ws.base_version}, state is at {self._version}"
            )
        self._state_root = ws.persist()
        if height is not None:
            self._height = height
        self._version += 1


class WorkingSet:
    """Mutable view over a StateFactory; writes stay local until commit."""

    def __init__(self, factory: StateFactory, base_version: int, block: BlockContext):
        self.base_version = base_version
        self.block = block
        self.height = block.height
        self.state = ShanghaiState(
            factory.db, factory.execution_context(block), factory.state_root
        )

    def snapshot(self) -> Tuple[bytes, object]:
        return self.state.snapshot()

    def revert(self, snapshot: Tuple[bytes, object]) -> None:
        self.state.revert(snapshot)

    def finish_action(self) -> None:
        """Seal the changes of one action; earlier snapshots become invalid."""
        self.state.lock_changes()

    def persist(self) -> bytes:
        self.state.persist()
        return self.state.state_root

    def account(self, address: str) -> Account:
        return Account(
            balance=self.balance(address),
            nonce=self.nonce(address),
            code=self.code(address),
        )

    def exists(self, address: str) -> bool:
        return self.state.account_exists(address_to_bytes(address))

    def balance(self, address: str) -> int:
        return self.state.get_balance(address_to_bytes(address))

    def add_balance(self, address: str, amount: int) -> None:
        self.state.delta_balance(address_to_bytes(address), amount)

    def sub_balance(self, address: str, amount: int) -> None:
        have = self.balance(address)
        if have < amount:
            raise InsufficientBalanceError(f"{address} holds {have}, needs {amount}")
        self.state.delta_balance(address_to_bytes(address), -amount)

    def nonce(self, address: str) -> int:
        return self.state.get_nonce(address_to_bytes(address))

    def set_nonce(self, address: str, nonce: int) -> None:
        self.state.set_nonce(address_to_bytes(address), nonce)

    def code(self, address: str) -> bytes:
        return bytes(self.state.get_code(address_to_bytes(address)))

    def set_code(self, address: str, code: bytes) -> None:
        self.state.set_code(address_to_bytes(address), bytes(code))

    def storage_get(self, address: str, key: int) -> int:
        return self.state.get_storage(address_to_bytes(address), key)

    def storage_set(self, address: str, key: int, value: int) -> None:
        self.state.set_storage(address_to_bytes(address), key, value)


def load_or_create_account(ws: WorkingSet, address: str, initial_balance: int) -> Account:
    """Create ``address`` with ``initial_balance``, or credit it if it exists."""
    ws.add_balance(address, initial_balance)
    return ws.account(address)
