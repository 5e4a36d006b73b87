"""
test_evm.py — executions on the py-evm backed engine

Gas figures are the ledger's intrinsic gas (10000 + 100 per payload byte)
plus the Shanghai opcode costs of the few instructions each snippet runs.
"""

import pytest

from contract_conformance.action import (
    FAILURE_RECEIPT_STATUS,
    SUCCESS_RECEIPT_STATUS,
    Execution,
)
from contract_conformance.encoding import encode_address_word, int_to_word
from contract_conformance.errors import InsufficientBalanceError
from contract_conformance.evm import (
    BlockContext,
    contract_address,
    execute_action,
    intrinsic_gas,
)
from contract_conformance.state import StateFactory, load_or_create_account

SENDER = "0x046fd2271b7bed4b6abe45aa58877ef47f9721b9"
OTHER = "0xb9f51b9b08979d08295959c4f3990ee617f5139f"
PRODUCER = "0x000000000000000000000000000000000000fee1"

# Deploys runtime code 0x00 (STOP).
STOP_DEPLOY = bytes.fromhex("6001600c60003960016000f300")
# Deploys runtime code JUMPDEST PUSH1 0 JUMP.
LOOP_DEPLOY = bytes.fromhex("6004600c60003960046000f35b600056")
# Deploys runtime code that returns the word 42.
ANSWER_RUNTIME = bytes.fromhex("602a60005260206000f3")
ANSWER_DEPLOY = bytes.fromhex("600a600c600039600a6000f3") + ANSWER_RUNTIME
# Deploys runtime code that CALLs the address in its first calldata word
# and returns the first 32 bytes of the reply.
RELAY_DEPLOY = bytes.fromhex(
    "6015600c60003960156000f3"
    "602060006000600060006000355af15060206000f3"
)
# Constructor CREATEs an ANSWER contract and stores its address in slot 0.
FACTORY_DEPLOY = bytes.fromhex("60166012600039601660006000f060005500") + ANSWER_DEPLOY
# solc 0.4 SimpleStorage: set(uint256) / get()
STORAGE_DEPLOY = bytes.fromhex(
    "608060405234801561001057600080fd5b5060df8061001f6000396000f3006080604052600436106049"
    "576000357c0100000000000000000000000000000000000000000000000000000000900463ffffffff16"
    "806360fe47b114604e5780636d4ce63c146078575b600080fd5b348015605957600080fd5b5060766004"
    "803603810190808035906020019092919050505060a0565b005b348015608357600080fd5b50608a60aa"
    "565b6040518082815260200191505060405180910390f35b8060008190555050565b6000805490509056"
    "00a165627a7a7230582002faabbefbbda99b20217cf33cb8ab8100caf1542bf1f48117d72e2c59139aea"
    "0029"
)
SET_15 = bytes.fromhex("60fe47b1" + "00" * 31 + "0f")
GET = bytes.fromhex("6d4ce63c")

BLOCK = BlockContext(height=1, timestamp=1546300810, producer=PRODUCER)


@pytest.fixture
def ws():
    factory = StateFactory()
    working = factory.new_working_set(BLOCK)
    load_or_create_account(working, SENDER, 10 ** 9)
    return working


def _apply(ws, contract, data, nonce, gas_limit=1_000_000, amount=0, gas_price=0):
    execution = Execution(
        contract=contract, nonce=nonce, amount=amount,
        gas_limit=gas_limit, gas_price=gas_price, data=data,
    )
    return execute_action(ws, SENDER, execution, BLOCK, execution.hash())


def _deploy(ws, code, nonce=1, gas_limit=1_000_000):
    _, receipt = _apply(ws, "", code, nonce=nonce, gas_limit=gas_limit)
    return receipt


# ---------------------------------------------------------------------------
# Ledger rules
# ---------------------------------------------------------------------------

def test_intrinsic_gas():
    assert intrinsic_gas(b"") == 10000
    assert intrinsic_gas(b"\x00" * 13) == 11300


def test_contract_address_depends_on_sender_and_nonce():
    assert contract_address(SENDER, 1) == contract_address(SENDER, 1)
    assert contract_address(SENDER, 1) != contract_address(SENDER, 2)
    assert contract_address(SENDER, 1) != contract_address(OTHER, 1)
    assert len(contract_address(SENDER, 1)) == 42


def test_gas_limit_below_intrinsic_fails(ws):
    _, receipt = _apply(ws, "", STOP_DEPLOY, nonce=1, gas_limit=5000)
    assert receipt.status == FAILURE_RECEIPT_STATUS
    assert receipt.gas_consumed == 5000


def test_fees_go_to_producer(ws):
    _apply(ws, "", STOP_DEPLOY, nonce=1, gas_limit=100000, gas_price=2)
    assert ws.balance(SENDER) == 10 ** 9 - 2 * 11524
    assert ws.balance(PRODUCER) == 2 * 11524


def test_value_beyond_balance_is_a_ledger_error(ws):
    with pytest.raises(InsufficientBalanceError):
        _apply(ws, "", STOP_DEPLOY, nonce=1, amount=10 ** 9 + 1)


# ---------------------------------------------------------------------------
# Deployments
# ---------------------------------------------------------------------------

def test_stop_contract_deployment(ws):
    output, receipt = _apply(ws, "", STOP_DEPLOY, nonce=1, gas_limit=100000)
    assert receipt.status == SUCCESS_RECEIPT_STATUS
    # five PUSH1 15, CODECOPY 9, code deposit 200
    assert receipt.gas_consumed == 11524
    assert receipt.contract_address == contract_address(SENDER, 1)
    assert output == b"\x00"
    assert ws.code(receipt.contract_address) == b"\x00"
    assert ws.nonce(SENDER) == 1


def test_code_deposit_out_of_gas(ws):
    receipt = _deploy(ws, STOP_DEPLOY, gas_limit=11324)
    assert receipt.status == FAILURE_RECEIPT_STATUS
    assert receipt.gas_consumed == 11324
    assert receipt.contract_address == ""
    assert ws.code(contract_address(SENDER, 1)) == b""


def test_keccak_in_constructor(ws):
    # PUSH1 0 PUSH1 0 KECCAK256 POP STOP
    receipt = _deploy(ws, bytes.fromhex("60006000205000"))
    assert receipt.status == SUCCESS_RECEIPT_STATUS
    assert receipt.gas_consumed == 10700 + 3 + 3 + 30 + 2
    assert ws.code(receipt.contract_address) == b""


def test_revert_keeps_unused_gas(ws):
    # PUSH1 0 PUSH1 0 REVERT
    receipt = _deploy(ws, bytes.fromhex("60006000fd"), gas_limit=20000)
    assert receipt.status == FAILURE_RECEIPT_STATUS
    assert receipt.gas_consumed == 10500 + 6


def test_invalid_opcode_burns_the_limit(ws):
    receipt = _deploy(ws, bytes.fromhex("fe"), gas_limit=50000)
    assert receipt.status == FAILURE_RECEIPT_STATUS
    assert receipt.gas_consumed == 50000


def test_log_is_recorded(ws):
    # PUSH1 0 PUSH1 0 LOG0 STOP
    receipt = _deploy(ws, bytes.fromhex("60006000a000"))
    assert receipt.status == SUCCESS_RECEIPT_STATUS
    assert receipt.gas_consumed == 10600 + 3 + 3 + 375
    assert len(receipt.logs) == 1
    assert receipt.logs[0].address == receipt.contract_address
    assert receipt.logs[0].topics == ()


def test_constructor_creates_a_child_contract(ws):
    receipt = _deploy(ws, FACTORY_DEPLOY)
    assert receipt.status == SUCCESS_RECEIPT_STATUS
    parent = receipt.contract_address
    # a new contract starts at nonce 1, so its first child is at nonce 1
    child = contract_address(parent, 1)
    assert ws.storage_get(parent, 0) == int(child, 16)
    assert ws.code(child) == ANSWER_RUNTIME


# ---------------------------------------------------------------------------
# Calls
# ---------------------------------------------------------------------------

def test_infinite_loop_consumes_gas_limit(ws):
    deployed = _deploy(ws, LOOP_DEPLOY, gas_limit=100000)
    assert deployed.gas_consumed == 12424
    output, receipt = _apply(ws, deployed.contract_address, b"", nonce=2, gas_limit=120000)
    assert receipt.status == FAILURE_RECEIPT_STATUS
    assert receipt.gas_consumed == 120000
    assert output == b""


def test_value_transfer_to_stop_contract(ws):
    deployed = _deploy(ws, STOP_DEPLOY)
    _, receipt = _apply(ws, deployed.contract_address, b"", nonce=2, amount=100)
    assert receipt.status == SUCCESS_RECEIPT_STATUS
    assert receipt.gas_consumed == 10000
    assert ws.balance(deployed.contract_address) == 100
    assert ws.balance(SENDER) == 10 ** 9 - 100


def test_failed_call_rolls_back_transfer_but_not_nonce(ws):
    deployed = _deploy(ws, LOOP_DEPLOY)
    _, receipt = _apply(ws, deployed.contract_address, b"", nonce=2, amount=100, gas_limit=50000)
    assert receipt.status == FAILURE_RECEIPT_STATUS
    assert ws.balance(deployed.contract_address) == 0
    assert ws.balance(SENDER) == 10 ** 9
    assert ws.nonce(SENDER) == 2


def test_call_into_another_contract(ws):
    relay = _deploy(ws, RELAY_DEPLOY, nonce=1).contract_address
    answer = _deploy(ws, ANSWER_DEPLOY, nonce=2).contract_address
    output, receipt = _apply(ws, relay, encode_address_word(answer), nonce=3)
    assert receipt.status == SUCCESS_RECEIPT_STATUS
    assert output == int_to_word(42)


class TestSimpleStorage:

    def test_deploy_stores_runtime_slice(self, ws):
        receipt = _deploy(ws, STORAGE_DEPLOY)
        assert receipt.status == SUCCESS_RECEIPT_STATUS
        code = ws.code(receipt.contract_address)
        assert len(code) == 0xdf
        assert code in STORAGE_DEPLOY

    def test_set_then_get(self, ws):
        address = _deploy(ws, STORAGE_DEPLOY).contract_address
        _, receipt = _apply(ws, address, SET_15, nonce=2)
        assert receipt.status == SUCCESS_RECEIPT_STATUS
        assert ws.storage_get(address, 0) == 15

        output, receipt = _apply(ws, address, GET, nonce=3)
        assert receipt.status == SUCCESS_RECEIPT_STATUS
        assert output == int_to_word(15)

    def test_unknown_selector_reverts(self, ws):
        address = _deploy(ws, STORAGE_DEPLOY).contract_address
        _, receipt = _apply(ws, address, bytes.fromhex("deadbeef"), nonce=2)
        assert receipt.status == FAILURE_RECEIPT_STATUS
        assert receipt.gas_consumed < 1_000_000

    def test_not_payable(self, ws):
        address = _deploy(ws, STORAGE_DEPLOY).contract_address
        _, receipt = _apply(ws, address, SET_15, nonce=2, amount=1)
        assert receipt.status == FAILURE_RECEIPT_STATUS
        assert receipt.gas_consumed < 1_000_000
        assert ws.storage_get(address, 0) == 0
