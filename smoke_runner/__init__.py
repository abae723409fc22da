"""
Integration smoke test runner for the headless prover CLI.

Runs the CLI against a pool of node IDs and passes as soon as one run logs a
successful proof submission.

Key Features:
- Output capture with live success / rate-limit marker detection
- Staged timeouts with a grace window after success
- Two-stage worker shutdown (SIGTERM, then SIGKILL)
- Node rotation on rate limiting, crashes and timeouts
"""

from smoke_runner.orchestrator import run

__all__ = ["run"]
