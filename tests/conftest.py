"""Pytest configuration and fixtures."""

from __future__ import annotations

import logging
import stat
import sys
import textwrap
from pathlib import Path
from typing import Callable

import pytest

from smoke_runner.config import HarnessSettings, get_settings


# Behaviour is chosen by the node ID prefix, e.g. "success-X" or "hang-Y"
WORKER_SOURCE = textwrap.dedent(
    """
    import signal
    import sys
    import time

    SUCCESS = "Step 4 of 4: Proof submitted successfully for task 01"
    args = sys.argv[1:]
    node = args[args.index("--node-id") + 1] if "--node-id" in args else ""
    kind = node.split("-")[0]

    def say(text):
        sys.stdout.write(text + "\\n")
        sys.stdout.flush()

    say("Node %s starting (%s)" % (node, " ".join(args)))

    if kind == "success":
        time.sleep(0.2)
        say(SUCCESS)
        time.sleep(0.1)
        sys.exit(0)
    elif kind == "lingering":
        time.sleep(0.2)
        say(SUCCESS)
        time.sleep(60)
    elif kind == "nonzero":
        time.sleep(0.2)
        say(SUCCESS)
        time.sleep(0.3)
        sys.exit(3)
    elif kind == "late":
        time.sleep(0.1)
        say(SUCCESS)
        sys.exit(3)
    elif kind == "ratelimit":
        time.sleep(0.1)
        sys.stderr.write("Rate limited - retrying in 30s\\n")
        sys.stderr.flush()
        sys.exit(1)
    elif kind == "crash":
        say("thread 'main' panicked at src/prover.rs:12")
        sys.exit(101)
    elif kind == "silent":
        sys.exit(0)
    elif kind == "split":
        sys.stdout.write("Step 4 of 4: Proof ")
        sys.stdout.flush()
        time.sleep(0.2)
        sys.stdout.write("submitted successfully")
        sys.stdout.flush()
        time.sleep(0.2)
        sys.exit(0)
    elif kind == "stubborn":
        signal.signal(signal.SIGTERM, signal.SIG_IGN)
        say("ignoring SIGTERM")
        time.sleep(60)
    else:
        say("working")
        time.sleep(60)
    """
)


@pytest.fixture
def fake_worker(tmp_path: Path) -> Path:
    """Executable standing in for the prover CLI."""
    path = tmp_path / "nexus-network"
    path.write_text(f"#!{sys.executable} -u\n{WORKER_SOURCE}", encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture
def make_settings(fake_worker: Path) -> Callable[..., HarnessSettings]:
    """Settings with short timings and no environment influence."""

    def _make(**overrides) -> HarnessSettings:
        values = {
            "_env_file": None,
            "binary_path": str(fake_worker),
            "node_ids": "",
            "fallback_node_ids": "",
            "shuffle": False,
            "echo_output": False,
            "tick_interval": 0.05,
            "primary_timeout": 2.0,
            "success_grace": 1.0,
            "terminate_grace": 0.5,
            "progress_interval": 0.5,
            "drain_timeout": 2.0,
        }
        values.update(overrides)
        return HarnessSettings(**values)

    return _make


@pytest.fixture(autouse=True)
def _isolate_harness(monkeypatch):
    """Keep CI secrets and earlier logging setup out of each test."""
    monkeypatch.delenv("SMOKE_TEST_NODE_IDS", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
    harness_logger = logging.getLogger("smoke_runner")
    for handler in harness_logger.handlers[:]:
        harness_logger.removeHandler(handler)
    harness_logger.propagate = True
    harness_logger.setLevel(logging.NOTSET)
