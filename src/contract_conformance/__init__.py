"""Smart contract conformance harness.

Runs declarative scenarios (initial balances, contract deployments and
invocations) against a fresh in-memory ledger and asserts receipt status,
gas consumption, return values, balances and log counts.

Example:
    from contract_conformance import run_scenario_file

    report = run_scenario_file("tests/fixtures/scenarios/storage.json")
    print(report.contract_addresses)
"""

from .action import (
    FAILURE_RECEIPT_STATUS,
    SUCCESS_RECEIPT_STATUS,
    Envelope,
    EnvelopeBuilder,
    Execution,
    Receipt,
    SealedEnvelope,
    sign_envelope,
)
from .chain import Block, InMemoryChain, LedgerFacade
from .config import HarnessConfig
from .encoding import EMPTY_ADDRESS, append_address_word, encode_address_word
from .errors import (
    ConformanceError,
    ExpectationMismatchError,
    FixtureError,
    LedgerError,
)
from .executor import StepExecutor, StepResult
from .keys import SignerKey
from .runner import Phase, RunReport, ScenarioRunner, run_scenario_file
from .scenario import AccountBalance, LogExpectation, Scenario, StepConfig, load_scenario

__version__ = "0.1.0"
__all__ = [
    "FAILURE_RECEIPT_STATUS",
    "SUCCESS_RECEIPT_STATUS",
    "Envelope",
    "EnvelopeBuilder",
    "Execution",
    "Receipt",
    "SealedEnvelope",
    "sign_envelope",
    "Block",
    "InMemoryChain",
    "LedgerFacade",
    "HarnessConfig",
    "EMPTY_ADDRESS",
    "append_address_word",
    "encode_address_word",
    "ConformanceError",
    "ExpectationMismatchError",
    "FixtureError",
    "LedgerError",
    "StepExecutor",
    "StepResult",
    "SignerKey",
    "Phase",
    "RunReport",
    "ScenarioRunner",
    "run_scenario_file",
    "AccountBalance",
    "LogExpectation",
    "Scenario",
    "StepConfig",
    "load_scenario",
]
