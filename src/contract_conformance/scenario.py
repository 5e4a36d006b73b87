"""
scenario.py — declarative scenario data model

A Scenario is three ordered lists: initial balances, deployment steps and
execution (invocation) steps. Everything a JSON fixture carries as a raw
string ("rawX" fields) is decoded here, eagerly, while the Scenario is
being built. A malformed fixture therefore fails with a FixtureError naming
the offending step and field before any ledger is created.

Scenarios are immutable; the runner works on modified copies of steps when
it splices a deployed contract address into a payload.
"""

from __future__ import annotations
import json
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import jsonschema

from .encoding import append_address_word, decode_hex, is_valid_address, parse_big_int
from .errors import (
    ContractIndexError,
    InvalidAddressError,
    InvalidIntegerError,
    InvalidPrivateKeyError,
    ScenarioSchemaError,
)
from .keys import SignerKey

SCHEMA_PATH = Path(__file__).resolve().parent / "schemas" / "scenario.schema.json"


# ---------------------------------------------------------------------------
# Field helpers
# ---------------------------------------------------------------------------

def _uint(data: Mapping[str, Any], key: str, where: str) -> int:
    value = data.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise InvalidIntegerError(f"{where}.{key}={value!r}: expected an unsigned integer")
    return value


def _flag(data: Mapping[str, Any], key: str) -> bool:
    return bool(data.get(key, False))


# ---------------------------------------------------------------------------
# Data classes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class AccountBalance:
    """An account/balance pair. A blank account means the target contract."""
    account: str
    balance: int

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], where: str = "balance") -> "AccountBalance":
        balance = parse_big_int(data.get("rawBalance", ""), f"{where}.rawBalance")
        if balance < 0:
            raise InvalidIntegerError(f"{where}.rawBalance={balance}: balances are non-negative")
        return cls(account=str(data.get("account", "")), balance=balance)

    def to_dict(self) -> Dict[str, Any]:
        return {"account": self.account, "rawBalance": str(self.balance)}


@dataclass(frozen=True)
class LogExpectation:
    # Only the number of expected logs is compared against a receipt.
    topics: Tuple[str, ...] = ()
    data: str = ""

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LogExpectation":
        return cls(
            topics=tuple(str(t) for t in data.get("topics", [])),
            data=str(data.get("data", "")),
        )


@dataclass(frozen=True)
class StepConfig:
    """One deployment or invocation, fully decoded."""
    signer: SignerKey
    byte_code: bytes
    amount: int
    gas_limit: int
    gas_price: int
    comment: str = ""
    contract_index: int = 0
    append_contract_address: bool = False
    contract_index_to_append: int = 0
    contract_address_to_append: str = ""
    read_only: bool = False
    failed: bool = False
    expected_return_value: bytes = b""
    expected_gas_consumed: int = 0
    expected_balances: Tuple[AccountBalance, ...] = ()
    expected_logs: Tuple[LogExpectation, ...] = ()

    @property
    def executor(self) -> str:
        """Ledger address of the signer."""
        return self.signer.address

    def payload(self) -> bytes:
        """Bytecode to submit, with the address word appended when configured."""
        if not self.append_contract_address:
            return self.byte_code
        if not is_valid_address(self.contract_address_to_append):
            raise InvalidAddressError(
                f"step {self.comment!r}: contract address to append "
                f"{self.contract_address_to_append!r} is not resolved"
            )
        return append_address_word(self.byte_code, self.contract_address_to_append)

    def with_address_to_append(self, address: str) -> "StepConfig":
        return replace(self, contract_address_to_append=address)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], where: str = "step") -> "StepConfig":
        comment = str(data.get("comment", ""))
        label = f"{where}({comment})" if comment else where
        address_to_append = str(data.get("contractAddressToAppend", ""))
        if address_to_append and not is_valid_address(address_to_append):
            raise InvalidAddressError(f"{label}.contractAddressToAppend={address_to_append!r}")
        try:
            signer = SignerKey.from_hex(data.get("rawPrivateKey", ""))
        except InvalidPrivateKeyError as exc:
            raise InvalidPrivateKeyError(f"{label}.rawPrivateKey: {exc.context}") from exc
        return cls(
            comment=comment,
            contract_index=_uint(data, "contractIndex", label),
            append_contract_address=_flag(data, "appendContractAddress"),
            contract_index_to_append=_uint(data, "contractIndexToAppend", label),
            contract_address_to_append=address_to_append,
            read_only=_flag(data, "readOnly"),
            signer=signer,
            byte_code=decode_hex(data.get("rawByteCode", ""), f"{label}.rawByteCode"),
            amount=parse_big_int(data.get("rawAmount", ""), f"{label}.rawAmount"),
            gas_limit=_uint(data, "rawGasLimit", label),
            gas_price=parse_big_int(data.get("rawGasPrice", ""), f"{label}.rawGasPrice"),
            failed=_flag(data, "failed"),
            expected_return_value=decode_hex(
                data.get("rawReturnValue", ""), f"{label}.rawReturnValue"
            ),
            expected_gas_consumed=_uint(data, "rawExpectedGasConsumed", label),
            expected_balances=tuple(
                AccountBalance.from_dict(b, f"{label}.expectedBalances[{i}]")
                for i, b in enumerate(data.get("expectedBalances", []))
            ),
            expected_logs=tuple(
                LogExpectation.from_dict(entry) for entry in data.get("expectedLogs", [])
            ),
        )


@dataclass(frozen=True)
class Scenario:
    """Initial balances, deployments and executions, in significant order."""
    init_balances: Tuple[AccountBalance, ...] = ()
    deployments: Tuple[StepConfig, ...] = ()
    executions: Tuple[StepConfig, ...] = ()
    name: str = field(default="", compare=False)

    def __post_init__(self) -> None:
        validate_contract_indices(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], name: str = "") -> "Scenario":
        return cls(
            init_balances=tuple(
                AccountBalance.from_dict(b, f"initBalances[{i}]")
                for i, b in enumerate(data.get("initBalances", []))
            ),
            deployments=tuple(
                StepConfig.from_dict(s, f"deployments[{i}]")
                for i, s in enumerate(data.get("deployments", []))
            ),
            executions=tuple(
                StepConfig.from_dict(s, f"executions[{i}]")
                for i, s in enumerate(data.get("executions", []))
            ),
            name=name,
        )


def validate_contract_indices(scenario: Scenario) -> None:
    """
    Reject steps whose contract references cannot resolve.

    A deployment may only append the address of an earlier deployment.
    An execution may target or append any deployment. Without deployments
    the executions are never run, so their indices are not checked.
    """
    for i, step in enumerate(scenario.deployments):
        if step.append_contract_address and not step.contract_address_to_append:
            if step.contract_index_to_append >= i:
                raise ContractIndexError(
                    f"deployments[{i}] appends contract {step.contract_index_to_append}, "
                    f"only {i} deployed before it"
                )
    total = len(scenario.deployments)
    if total == 0:
        return
    for i, step in enumerate(scenario.executions):
        if step.contract_index >= total:
            raise ContractIndexError(
                f"executions[{i}].contractIndex={step.contract_index}, {total} deployment(s)"
            )
        if step.append_contract_address and step.contract_index_to_append >= total:
            raise ContractIndexError(
                f"executions[{i}].contractIndexToAppend={step.contract_index_to_append}, "
                f"{total} deployment(s)"
            )


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SCHEMA: Optional[Dict[str, Any]] = None


def load_schema() -> Dict[str, Any]:
    global _SCHEMA
    if _SCHEMA is None:
        _SCHEMA = json.loads(SCHEMA_PATH.read_text(encoding="utf-8"))
    return _SCHEMA


def schema_errors(document: Any) -> List[str]:
    """Human-readable schema violations, sorted by location."""
    validator = jsonschema.Draft7Validator(load_schema())
    errors = sorted(validator.iter_errors(document), key=lambda e: [str(p) for p in e.absolute_path])
    out = []
    for err in errors:
        location = "/".join(str(p) for p in err.absolute_path) or "<root>"
        out.append(f"{location}: {err.message}")
    return out


def scenario_from_document(document: Any, name: str = "") -> Scenario:
    problems = schema_errors(document)
    if problems:
        raise ScenarioSchemaError(f"{name or 'scenario'}: " + "; ".join(problems))
    return Scenario.from_dict(document, name=name)


def load_scenario(path: str | Path) -> Scenario:
    """Read, schema-check and decode a scenario file."""
    p = Path(path)
    try:
        document = json.loads(p.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ScenarioSchemaError(f"{p.name}: {exc}") from exc
    return scenario_from_document(document, name=p.stem)
