import pytest
from contract_conformance.errors import (
    BlockValidationError,
    ConformanceError,
    ContractIndexError,
    EnvelopeMismatchError,
    ExpectationMismatchError,
    FixtureError,
    GasLimitExceededError,
    InsufficientBalanceError,
    InvalidAddressError,
    InvalidAmountError,
    InvalidContractAddressError,
    InvalidHexError,
    InvalidIntegerError,
    InvalidPrivateKeyError,
    InvalidSignatureError,
    LedgerError,
    LedgerNotRunningError,
    NonceMismatchError,
    PayloadTooLargeError,
    ReceiptNotFoundError,
    ScenarioSchemaError,
)

FIXTURE_ERRORS = [
    InvalidHexError, InvalidIntegerError, InvalidPrivateKeyError,
    InvalidAddressError, ScenarioSchemaError, ContractIndexError,
]
LEDGER_ERRORS = [
    LedgerNotRunningError, NonceMismatchError, InsufficientBalanceError,
    InvalidAmountError, PayloadTooLargeError, InvalidContractAddressError,
    GasLimitExceededError, InvalidSignatureError, EnvelopeMismatchError,
    BlockValidationError, ReceiptNotFoundError,
]


def test_conformance_error_base():
    err = ConformanceError("CODE", "message", "ctx")
    assert err.code == "CODE"
    assert err.message == "message"
    assert err.context == "ctx"
    assert str(err) == "[CODE] message Context: ctx"


def test_conformance_error_without_context():
    err = ConformanceError("CODE", "message")
    assert err.context is None
    assert str(err) == "[CODE] message"


@pytest.mark.parametrize("cls", FIXTURE_ERRORS)
def test_fixture_errors(cls):
    err = cls("some context")
    assert isinstance(err, FixtureError)
    assert err.code.startswith("CC_E1")
    assert "some context" in str(err)


@pytest.mark.parametrize("cls", LEDGER_ERRORS)
def test_ledger_errors(cls):
    err = cls("some context")
    assert isinstance(err, LedgerError)
    assert not isinstance(err, FixtureError)
    assert err.code.startswith("CC_E2")


def test_error_codes_are_unique():
    codes = [cls().code for cls in FIXTURE_ERRORS + LEDGER_ERRORS]
    assert len(codes) == len(set(codes))


def test_invalid_contract_address_message():
    assert InvalidContractAddressError().message == "Error when validating contract's address."


def test_expectation_mismatch_is_an_assertion():
    err = ExpectationMismatchError("set(15)", "gas consumed", 100, 200)
    assert isinstance(err, AssertionError)
    assert isinstance(err, ConformanceError)
    assert err.code == "CC_E300"
    assert err.step == "set(15)"
    assert err.expected == 100
    assert err.actual == 200
    assert "set(15)" in str(err)
    assert "expected 100, got 200" in str(err)

    with pytest.raises(AssertionError):
        raise err
