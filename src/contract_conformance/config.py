"""
config.py — harness configuration

One explicit HarnessConfig value is handed to the runner; nothing here is
read implicitly at import time. ``from_env`` exists for the CLI and for CI
jobs that want to tighten limits without editing fixtures.
"""

from __future__ import annotations
import logging
import os
from dataclasses import dataclass, replace
from typing import Mapping, Optional

from .encoding import is_valid_address
from .errors import InvalidAddressError, InvalidIntegerError

logger = logging.getLogger(__name__)

# Receives the gas fees of every minted block.
DEFAULT_PRODUCER = "0x000000000000000000000000000000000000fee1"

ENV_PREFIX = "CONTRACT_CONFORMANCE_"

_INT_FIELDS = (
    "action_gas_limit",
    "block_gas_limit",
    "max_payload_size",
    "num_candidate_delegates",
    "num_delegates",
    "num_sub_epochs",
    "genesis_timestamp",
    "block_interval",
    "chain_id",
)


@dataclass(frozen=True)
class HarnessConfig:
    # Per-action ceiling enforced by the generic validator.
    action_gas_limit: int = 5_000_000
    block_gas_limit: int = 20_000_000
    # Largest execution payload the execution protocol accepts.
    max_payload_size: int = 32 * 1024
    producer: str = DEFAULT_PRODUCER
    num_candidate_delegates: int = 36
    num_delegates: int = 24
    num_sub_epochs: int = 1
    # Block timestamps are derived from height so reruns are bit-identical.
    genesis_timestamp: int = 1546300800
    block_interval: int = 10
    # Seen by the CHAINID opcode.
    chain_id: int = 4689

    def timestamp_for(self, height: int) -> int:
        return self.genesis_timestamp + height * self.block_interval

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "HarnessConfig":
        """
        Build a config from ``CONTRACT_CONFORMANCE_*`` variables.

        Environment variables:
            CONTRACT_CONFORMANCE_ACTION_GAS_LIMIT
            CONTRACT_CONFORMANCE_BLOCK_GAS_LIMIT
            CONTRACT_CONFORMANCE_MAX_PAYLOAD_SIZE
            CONTRACT_CONFORMANCE_PRODUCER
            CONTRACT_CONFORMANCE_NUM_CANDIDATE_DELEGATES
            CONTRACT_CONFORMANCE_NUM_DELEGATES
            CONTRACT_CONFORMANCE_NUM_SUB_EPOCHS
            CONTRACT_CONFORMANCE_GENESIS_TIMESTAMP
            CONTRACT_CONFORMANCE_BLOCK_INTERVAL
            CONTRACT_CONFORMANCE_CHAIN_ID

        Unset variables keep their defaults.
        """
        env = os.environ if environ is None else environ
        overrides = {}
        for name in _INT_FIELDS:
            raw = env.get(ENV_PREFIX + name.upper())
            if raw is None:
                continue
            try:
                overrides[name] = int(raw, 10)
            except ValueError as exc:
                raise InvalidIntegerError(f"{ENV_PREFIX}{name.upper()}={raw!r}") from exc
        producer = env.get(ENV_PREFIX + "PRODUCER")
        if producer is not None:
            if not is_valid_address(producer):
                raise InvalidAddressError(f"{ENV_PREFIX}PRODUCER={producer!r}")
            overrides["producer"] = producer
        if overrides:
            logger.info("config overrides from environment: %s", sorted(overrides))
        return replace(cls(), **overrides)
