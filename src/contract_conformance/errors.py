"""
errors.py — Conformance Harness Error Taxonomy

Three families of failure:

  CC_E1xx  Fixture errors. The scenario file itself is broken (bad hex,
           unparseable integer, invalid key). Raised while a Scenario is
           being constructed, before any ledger exists.
  CC_E2xx  Ledger errors. The ledger engine refused or failed an operation
           (nonce, funding, validation, commit). Propagated unchanged.
  CC_E3xx  Expectation mismatches. The engine ran, but the outcome differs
           from what the scenario expects. These are assertion failures.
"""

from typing import Any, Optional

__all__ = [
    "ConformanceError",
    "FixtureError",
    "InvalidHexError",
    "InvalidIntegerError",
    "InvalidPrivateKeyError",
    "InvalidAddressError",
    "ScenarioSchemaError",
    "ContractIndexError",
    "LedgerError",
    "LedgerNotRunningError",
    "NonceMismatchError",
    "InsufficientBalanceError",
    "InvalidAmountError",
    "PayloadTooLargeError",
    "InvalidContractAddressError",
    "GasLimitExceededError",
    "InvalidSignatureError",
    "EnvelopeMismatchError",
    "BlockValidationError",
    "ReceiptNotFoundError",
    "ExpectationMismatchError",
]


class ConformanceError(Exception):
    """Base class for all harness errors."""
    def __init__(
        self,
        code: str,
        message: str,
        context: Optional[str] = None,
    ):
        self.code = code
        self.message = message
        self.context = context

        full_msg = f"[{code}] {message}"
        if context:
            full_msg += f" Context: {context}"

        super().__init__(full_msg)


# ---------------------------------------------------------------------------
# Fixture errors (E1xx)
# ---------------------------------------------------------------------------

class FixtureError(ConformanceError):
    """The scenario data is malformed. Never recovered."""


class InvalidHexError(FixtureError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E100", "A hex-encoded fixture field could not be decoded.", context)


class InvalidIntegerError(FixtureError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E101", "A decimal integer fixture field could not be parsed.", context)


class InvalidPrivateKeyError(FixtureError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E102", "A private key is not a 32-byte hex-encoded Ed25519 seed.", context)


class InvalidAddressError(FixtureError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E103", "An address is not '0x' followed by 40 hex digits.", context)


class ScenarioSchemaError(FixtureError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E110", "The scenario document does not match the scenario schema.", context)


class ContractIndexError(FixtureError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E111", "A step references a contract index outside the deployment list.", context)


# ---------------------------------------------------------------------------
# Ledger errors (E2xx)
# ---------------------------------------------------------------------------

class LedgerError(ConformanceError):
    """The ledger engine rejected or failed an operation."""


class LedgerNotRunningError(LedgerError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E200", "The ledger has not been started or was already stopped.", context)


class NonceMismatchError(LedgerError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E201", "Action nonce is not the sender's confirmed nonce plus one.", context)


class InsufficientBalanceError(LedgerError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E202", "Sender balance does not cover amount plus maximum gas fee.", context)


class InvalidAmountError(LedgerError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E203", "Execution amount or gas price is negative.", context)


class PayloadTooLargeError(LedgerError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E204", "Execution data exceeds the maximum payload size.", context)


class InvalidContractAddressError(LedgerError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E205", "Error when validating contract's address.", context)


class GasLimitExceededError(LedgerError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E206", "Gas limit is above the action limit or below the intrinsic gas.", context)


class InvalidSignatureError(LedgerError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E207", "Ed25519 signature over the envelope failed verification.", context)


class EnvelopeMismatchError(LedgerError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E208", "Envelope nonce, gas limit or gas price differs from its action.", context)


class BlockValidationError(LedgerError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E210", "Block failed validation against the current chain tip.", context)


class ReceiptNotFoundError(LedgerError):
    def __init__(self, context: Optional[str] = None):
        super().__init__("CC_E211", "No receipt is indexed under the given action hash.", context)


# ---------------------------------------------------------------------------
# Expectation mismatches (E3xx)
# ---------------------------------------------------------------------------

class ExpectationMismatchError(ConformanceError, AssertionError):
    """A step's observed outcome differs from its expected outcome."""
    def __init__(self, step: str, field: str, expected: Any, actual: Any):
        self.step = step
        self.field = field
        self.expected = expected
        self.actual = actual
        super().__init__(
            "CC_E300",
            f"{field} mismatch: expected {expected!r}, got {actual!r}.",
            f"step {step!r}",
        )
