#!/usr/bin/env python3
"""
cli.py — command line entry point

Commands:
  run       Run scenario files against a fresh in-memory ledger each
  validate  Load and check scenario files without running them
"""

from __future__ import annotations
import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import HarnessConfig
from .errors import ConformanceError
from .runner import ScenarioRunner
from .scenario import load_scenario

logger = logging.getLogger("contract_conformance")


def _report_error(path: Path, err: ConformanceError) -> None:
    context = f" Context: {err.context}." if err.context else ""
    print(f"FAIL {path}: {err.code}. {err.message}.{context}")


def _configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def cmd_run(args: argparse.Namespace) -> int:
    try:
        config = HarnessConfig.from_env()
    except ConformanceError as err:
        print(f"ERROR: {err}")
        return 1
    runner = ScenarioRunner(config=config, logger=logger)

    failures = 0
    for raw in args.files:
        path = Path(raw)
        try:
            report = runner.run(load_scenario(path))
        except ConformanceError as err:
            _report_error(path, err)
            failures += 1
            continue
        except OSError as err:
            print(f"FAIL {path}: cannot read scenario ({err.strerror or err})")
            failures += 1
            continue
        if args.json:
            print(json.dumps(report.to_dict(), sort_keys=True))
        else:
            print(f"PASS {path} (deployments={len(report.deployment_receipts)}, "
                  f"executions={report.executions_run})")

    total = len(args.files)
    print(f"\n{total - failures}/{total} scenario(s) passed.")
    return 1 if failures else 0


def cmd_validate(args: argparse.Namespace) -> int:
    failures = 0
    for raw in args.files:
        path = Path(raw)
        try:
            scenario = load_scenario(path)
        except ConformanceError as err:
            _report_error(path, err)
            failures += 1
            continue
        except OSError as err:
            print(f"FAIL {path}: cannot read scenario ({err.strerror or err})")
            failures += 1
            continue
        print(f"OK   {path} (balances={len(scenario.init_balances)}, "
              f"deployments={len(scenario.deployments)}, executions={len(scenario.executions)})")
    return 1 if failures else 0


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments, dispatch, and return the process exit code."""
    parser = argparse.ArgumentParser(
        prog="contract-conformance",
        description="Run declarative smart-contract scenarios against an in-memory ledger",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every ledger step")
    parser.add_argument("-q", "--quiet", action="store_true", help="Only log warnings")
    sub = parser.add_subparsers(dest="command", required=True)

    # run
    p_run = sub.add_parser("run", help="Run scenario files")
    p_run.add_argument("files", nargs="+", help="Scenario JSON files")
    p_run.add_argument("--json", action="store_true", help="Print one JSON report per passing file")

    # validate
    p_val = sub.add_parser("validate", help="Check scenario files without running them")
    p_val.add_argument("files", nargs="+", help="Scenario JSON files")

    args = parser.parse_args(argv)
    _configure_logging(args.verbose, args.quiet)

    if args.command == "run":
        return cmd_run(args)
    if args.command == "validate":
        return cmd_validate(args)
    parser.error(f"unknown command {args.command!r}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
