import pytest

from contract_conformance.errors import BlockValidationError, InsufficientBalanceError
from contract_conformance.state import StateFactory, load_or_create_account

A = "0x00000000000000000000000000000000000000aa"
B = "0x00000000000000000000000000000000000000bb"


@pytest.fixture
def factory():
    f = StateFactory()
    ws = f.new_working_set()
    load_or_create_account(ws, A, 1000)
    f.commit(ws)
    return f


def test_funding_is_committed(factory):
    assert factory.account(A).balance == 1000
    assert factory.account(B) is None


def test_load_or_create_credits_existing_account(factory):
    ws = factory.new_working_set()
    load_or_create_account(ws, A, 1)
    factory.commit(ws)
    assert factory.account(A).balance == 1001


def test_writes_stay_local_until_commit(factory):
    ws = factory.new_working_set()
    ws.sub_balance(A, 400)
    ws.add_balance(B, 400)
    assert ws.balance(A) == 600
    assert factory.account(A).balance == 1000
    factory.commit(ws, height=1)
    assert factory.account(A).balance == 600
    assert factory.account(B).balance == 400
    assert factory.height == 1


def test_committed_accounts_are_copies(factory):
    acct = factory.account(A)
    acct.balance = 0
    assert factory.account(A).balance == 1000


def test_insufficient_balance(factory):
    ws = factory.new_working_set()
    with pytest.raises(InsufficientBalanceError):
        ws.sub_balance(A, 1001)


def test_stale_working_set_rejected(factory):
    first = factory.new_working_set()
    second = factory.new_working_set()
    factory.commit(first)
    with pytest.raises(BlockValidationError):
        factory.commit(second)


def test_snapshot_and_revert(factory):
    ws = factory.new_working_set()
    ws.set_nonce(A, 1)
    snap = ws.snapshot()
    ws.add_balance(B, 5)
    ws.storage_set(A, 1, 9)
    ws.revert(snap)
    assert ws.nonce(A) == 1
    assert ws.balance(B) == 0
    assert ws.storage_get(A, 1) == 0
    assert not ws.exists(B)


def test_storage_survives_commit(factory):
    ws = factory.new_working_set()
    ws.storage_set(A, 7, 3)
    assert ws.storage_get(A, 7) == 3
    factory.commit(ws)
    assert factory.new_working_set().storage_get(A, 7) == 3


def test_discarded_working_set_leaves_root(factory):
    root = factory.state_root
    ws = factory.new_working_set()
    ws.add_balance(B, 1)
    ws.persist()
    assert factory.state_root == root
    assert factory.account(B) is None


def test_code(factory):
    ws = factory.new_working_set()
    assert ws.code(B) == b""
    ws.set_code(B, bytearray(b"\x00"))
    assert ws.code(B) == b"\x00"
