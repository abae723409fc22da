"""
Command line entry point.

    smoke-runner [binary_path] [node_id] [--max-tasks]

Example:
    smoke-runner ./target/release/nexus-network 6166715 --max-tasks
"""

from __future__ import annotations

import argparse
from pathlib import Path
from typing import Optional, Sequence

from smoke_runner.config import get_settings
from smoke_runner.core.logging import setup_logging
from smoke_runner.orchestrator import run

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


def _parse_args(argv: Optional[Sequence[str]]) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        prog="smoke-runner",
        description="Run the prover CLI headless and verify it submits a proof.",
    )
    ap.add_argument("binary_path", nargs="?", default=None, help="Path to the CLI binary.")
    ap.add_argument(
        "node_id",
        nargs="?",
        default=None,
        help="Node ID to test. Ignored when SMOKE_TEST_NODE_IDS is set.",
    )
    ap.add_argument(
        "--max-tasks",
        dest="single_attempt",
        action="store_true",
        help="Run one task per node; rate limiting rotates to the next node.",
    )
    ap.add_argument("--report", type=Path, default=None, help="Write a JSON or .md report.")
    ap.add_argument(
        "--log-level",
        type=str.upper,
        choices=LOG_LEVELS,
        default=None,
        help="Harness log level (DEBUG, INFO, WARNING, ERROR, CRITICAL).",
    )
    ap.add_argument("--log-format", choices=["text", "json"], default=None)
    ap.add_argument("--no-echo", action="store_true", help="Do not mirror CLI output.")
    ap.add_argument("--no-shuffle", action="store_true", help="Try nodes in the given order.")
    return ap.parse_args(argv)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = _parse_args(argv)

    overrides = {}
    if args.report is not None:
        overrides["report_path"] = args.report
    if args.log_level:
        overrides["log_level"] = args.log_level
    if args.log_format:
        overrides["log_format"] = args.log_format
    if args.no_echo:
        overrides["echo_output"] = False
    if args.no_shuffle:
        overrides["shuffle"] = False

    settings = get_settings().model_copy(update=overrides)
    setup_logging(settings)

    return run(
        binary_path=args.binary_path,
        single_candidate=args.node_id,
        single_attempt=args.single_attempt,
        settings=settings,
    )
