"""
runner.py — scenario interpreter and verification protocol

A run moves through a fixed state machine:

    Bootstrap -> Deploying -> Invoking -> Done
    Deploying -> Done    (an expected deployment failure, or no deployments)
    Invoking  -> Done    (early, at the first read-only step)

Bootstrap builds a fresh in-memory chain and funds the initial accounts in
one pre-genesis state commit. Deploying runs every deployment in order and
collects contract addresses. Invoking resolves each step's contractIndex
against those addresses and asserts the outcome.

Two early exits are part of the protocol:

  * A deployment step marked ``failed`` ends the whole run after its status
    check; executions are not attempted.
  * The first read-only execution ends the invocation phase after its
    return-value check; later executions are not attempted.

Only the log *count* of a receipt is checked, never log contents.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

from .action import FAILURE_RECEIPT_STATUS, SUCCESS_RECEIPT_STATUS, Receipt
from .chain import InMemoryChain, LedgerFacade
from .config import HarnessConfig
from .encoding import EMPTY_ADDRESS
from .errors import ExpectationMismatchError
from .executor import StepExecutor
from .protocols import (
    ACCOUNT_PROTOCOL_ID,
    EXECUTION_PROTOCOL_ID,
    ROLLDPOS_PROTOCOL_ID,
    AccountProtocol,
    ExecutionProtocol,
    GenericValidator,
    Registry,
    RollDPoSProtocol,
)
from .scenario import Scenario, StepConfig, load_scenario
from .state import load_or_create_account


class Phase(str, Enum):
    BOOTSTRAP = "bootstrap"
    DEPLOYING = "deploying"
    INVOKING = "invoking"
    DONE = "done"


@dataclass
class RunReport:
    """What a run did, for callers that want more than pass/fail."""
    scenario: str
    phase: Phase = Phase.BOOTSTRAP
    contract_addresses: List[str] = field(default_factory=list)
    deployment_receipts: List[Receipt] = field(default_factory=list)
    execution_receipts: List[Receipt] = field(default_factory=list)
    invocation_skipped: bool = False
    terminated_at_read_only: Optional[int] = None
    # Nonces each signer used on this run's ledger, in order.
    nonce_log: Dict[str, List[int]] = field(default_factory=dict)

    @property
    def executions_run(self) -> int:
        return len(self.execution_receipts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "scenario": self.scenario,
            "phase": self.phase.value,
            "contract_addresses": list(self.contract_addresses),
            "deployments_run": len(self.deployment_receipts),
            "executions_run": self.executions_run,
            "invocation_skipped": self.invocation_skipped,
            "terminated_at_read_only": self.terminated_at_read_only,
            "nonce_log": {signer: list(n) for signer, n in self.nonce_log.items()},
        }


def expect_equal(step: StepConfig, what: str, expected: Any, actual: Any) -> None:
    if expected != actual:
        raise ExpectationMismatchError(step.comment, what, expected, actual)


def _short_hex(data: bytes, limit: int = 64) -> str:
    text = data.hex()
    return text if len(text) <= limit else f"{text[:limit]}...({len(data)} bytes)"


class ScenarioRunner:
    """Drives one Scenario against one fresh ledger."""

    def __init__(
        self,
        config: Optional[HarnessConfig] = None,
        logger: Optional[logging.Logger] = None,
        executor: Optional[StepExecutor] = None,
    ):
        self.config = config or HarnessConfig()
        self.logger = logger or logging.getLogger(__name__)
        self.executor = executor or StepExecutor(self.logger)

    # -- bootstrap ---------------------------------------------------------

    def new_chain(self) -> InMemoryChain:
        """An unstarted chain with the standard protocol set and validators."""
        cfg = self.config
        registry = Registry()
        account = AccountProtocol()
        execution = ExecutionProtocol(cfg.max_payload_size)
        registry.register(ACCOUNT_PROTOCOL_ID, account)
        registry.register(
            ROLLDPOS_PROTOCOL_ID,
            RollDPoSProtocol(cfg.num_candidate_delegates, cfg.num_delegates, cfg.num_sub_epochs),
        )
        registry.register(EXECUTION_PROTOCOL_ID, execution)
        chain = InMemoryChain(cfg, registry)
        chain.validator().add_envelope_validators(GenericValidator(cfg.action_gas_limit))
        chain.validator().add_action_validators(account, execution)
        chain.add_action_handlers(execution)
        return chain

    def bootstrap(self, scenario: Scenario) -> InMemoryChain:
        chain = self.new_chain()
        chain.start()
        try:
            ws = chain.new_working_set()
            for entry in scenario.init_balances:
                load_or_create_account(ws, entry.account, entry.balance)
            chain.commit_working_set(ws)
        except Exception:
            chain.stop()
            raise
        self.logger.info(
            "bootstrapped ledger with %d funded account(s)", len(scenario.init_balances)
        )
        return chain

    # -- deployment --------------------------------------------------------

    def deploy(
        self,
        ledger: LedgerFacade,
        scenario: Scenario,
        report: Optional[RunReport] = None,
    ) -> List[str]:
        """
        Run every deployment in order and return the created addresses.

        Returns an empty list as soon as a deployment marked ``failed`` is
        confirmed to have failed; the caller must then skip invocations.
        """
        addresses: List[str] = []
        for step in scenario.deployments:
            if step.append_contract_address and not step.contract_address_to_append:
                step = step.with_address_to_append(addresses[step.contract_index_to_append])
            result = self.executor.execute(ledger, step, EMPTY_ADDRESS)
            receipt = result.receipt
            if report is not None:
                report.deployment_receipts.append(receipt)

            if step.failed:
                expect_equal(step, "receipt status", FAILURE_RECEIPT_STATUS, receipt.status)
                self.logger.info("deployment %r failed as expected; skipping executions", step.comment)
                return []
            expect_equal(step, "receipt status", SUCCESS_RECEIPT_STATUS, receipt.status)
            if step.expected_gas_consumed != 0:
                expect_equal(step, "gas consumed", step.expected_gas_consumed, receipt.gas_consumed)

            ws = ledger.new_working_set()
            code = ledger.code_at(receipt.contract_address, ws)
            if code not in step.byte_code:
                raise ExpectationMismatchError(
                    step.comment,
                    "deployed code (substring of bytecode)",
                    _short_hex(step.byte_code),
                    _short_hex(code),
                )
            self.logger.debug("deployed %s (%d code bytes)", receipt.contract_address, len(code))
            addresses.append(receipt.contract_address)
        return addresses

    # -- invocation --------------------------------------------------------

    def invoke(
        self,
        ledger: LedgerFacade,
        scenario: Scenario,
        addresses: List[str],
        report: Optional[RunReport] = None,
    ) -> None:
        if not addresses:
            if report is not None:
                report.invocation_skipped = True
            return

        for index, step in enumerate(scenario.executions):
            contract = addresses[step.contract_index]
            if step.append_contract_address:
                step = step.with_address_to_append(addresses[step.contract_index_to_append])
            result = self.executor.execute(ledger, step, contract)
            receipt = result.receipt
            if report is not None:
                report.execution_receipts.append(receipt)

            expected_status = FAILURE_RECEIPT_STATUS if step.failed else SUCCESS_RECEIPT_STATUS
            expect_equal(step, "receipt status", expected_status, receipt.status)
            if step.expected_gas_consumed != 0:
                expect_equal(step, "gas consumed", step.expected_gas_consumed, receipt.gas_consumed)

            if step.read_only:
                actual = result.return_data or b""
                expect_equal(step, "return value", step.expected_return_value.hex(), actual.hex())
                remaining = len(scenario.executions) - index - 1
                if remaining:
                    self.logger.info(
                        "read-only step %r ends the invocation phase; %d later step(s) not run",
                        step.comment, remaining,
                    )
                if report is not None:
                    report.terminated_at_read_only = index
                return

            for expected in step.expected_balances:
                account = expected.account or contract
                balance = ledger.balance(account)
                expect_equal(step, f"balance of {account}", expected.balance, balance)
            expect_equal(step, "log count", len(step.expected_logs), len(receipt.logs))

    # -- whole run ---------------------------------------------------------

    def run(self, scenario: Scenario) -> RunReport:
        """Bootstrap, deploy, invoke. The ledger is stopped on every exit path."""
        report = RunReport(scenario=scenario.name)
        self.executor.reset()
        ledger = self.bootstrap(scenario)
        try:
            report.phase = Phase.DEPLOYING
            addresses = self.deploy(ledger, scenario, report)
            report.contract_addresses = list(addresses)
            if addresses:
                report.phase = Phase.INVOKING
            self.invoke(ledger, scenario, addresses, report)
            report.phase = Phase.DONE
        finally:
            ledger.stop()
            report.nonce_log = {signer: list(n) for signer, n in self.executor.nonce_log.items()}
        self.logger.info("scenario %r done: %s", scenario.name, report.to_dict())
        return report


def run_scenario_file(
    path: str | Path,
    config: Optional[HarnessConfig] = None,
    logger: Optional[logging.Logger] = None,
) -> RunReport:
    """Load, validate and run one scenario file."""
    return ScenarioRunner(config=config, logger=logger).run(load_scenario(path))
