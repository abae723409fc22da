"""Tests for worker spawning and two-stage termination."""

from __future__ import annotations

import os
import signal
import time

import pytest

from smoke_runner.core.exceptions import BinaryNotFoundError
from smoke_runner.fixtures.output_capture import OutputCapture
from smoke_runner.fixtures.process_supervisor import (
    ProcessSupervisor,
    describe_exit_code,
    resolve_binary,
)

posix_only = pytest.mark.skipif(os.name == "nt", reason="needs POSIX signals")


def _wait_for(capture: OutputCapture, needle: bytes, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while needle not in capture.snapshot():
        if time.monotonic() > deadline:
            raise AssertionError(f"{needle!r} not seen in {capture.snapshot()!r}")
        time.sleep(0.02)


class TestResolveBinary:

    def test_missing_path_raises(self, tmp_path):
        missing = tmp_path / "nope" / "nexus-network"
        with pytest.raises(BinaryNotFoundError) as exc_info:
            resolve_binary(str(missing))
        assert exc_info.value.binary_path == str(missing)
        assert exc_info.value.exit_code == 1

    def test_existing_file(self, fake_worker):
        assert resolve_binary(str(fake_worker)) == str(fake_worker)

    @posix_only
    def test_bare_name_looked_up_on_path(self):
        assert resolve_binary("sh").endswith("sh")

    def test_spawn_missing_binary_raises(self, tmp_path):
        with pytest.raises(BinaryNotFoundError):
            ProcessSupervisor().spawn([str(tmp_path / "missing")])


class TestDescribeExitCode:

    @pytest.mark.parametrize(
        "code, expected",
        [
            (None, "still running"),
            (0, "exited successfully"),
            (-signal.SIGTERM, "terminated by SIGTERM"),
            (143, "terminated by SIGTERM"),
            (137, "terminated by SIGKILL"),
            (124, "timed out"),
            (1, "exited with code 1"),
        ],
    )
    def test_descriptions(self, code, expected):
        assert describe_exit_code(code) == expected


@posix_only
class TestTerminate:

    def test_graceful_stop(self, fake_worker):
        supervisor = ProcessSupervisor(terminate_grace=2.0)
        handle = supervisor.spawn([str(fake_worker), "start", "--node-id", "hang-1"])
        with OutputCapture(handle.stdout) as capture:
            _wait_for(capture, b"working")
            code = supervisor.terminate(handle)

        assert not supervisor.is_alive(handle)
        assert code == -signal.SIGTERM
        assert handle.term_signals == 1
        assert handle.kill_signals == 0

    def test_escalates_to_exactly_one_kill(self, fake_worker):
        supervisor = ProcessSupervisor(terminate_grace=0.3)
        handle = supervisor.spawn([str(fake_worker), "start", "--node-id", "stubborn-1"])
        with OutputCapture(handle.stdout) as capture:
            _wait_for(capture, b"ignoring SIGTERM")
            code = supervisor.terminate(handle)

        assert not supervisor.is_alive(handle)
        assert code == -signal.SIGKILL
        assert handle.term_signals == 1
        assert handle.kill_signals == 1
        assert handle.was_killed

    def test_terminate_is_idempotent(self, fake_worker):
        supervisor = ProcessSupervisor(terminate_grace=1.0)
        handle = supervisor.spawn([str(fake_worker), "start", "--node-id", "hang-2"])
        with OutputCapture(handle.stdout) as capture:
            _wait_for(capture, b"working")
            first = supervisor.terminate(handle)
            second = supervisor.terminate(handle)

        assert first == second
        assert handle.term_signals == 1

    def test_terminate_after_natural_exit_sends_nothing(self, fake_worker):
        supervisor = ProcessSupervisor()
        handle = supervisor.spawn([str(fake_worker), "start", "--node-id", "silent-1"])
        with OutputCapture(handle.stdout):
            assert supervisor.wait(handle, timeout=10) == 0
            assert supervisor.terminate(handle) == 0

        assert not handle.was_terminated

    def test_worker_env_is_passed(self, tmp_path):
        script = tmp_path / "env-worker"
        script.write_text('#!/bin/sh\necho "level=$RUST_LOG"\n', encoding="utf-8")
        script.chmod(0o755)

        supervisor = ProcessSupervisor()
        handle = supervisor.spawn([str(script)], env={"RUST_LOG": "warn"})
        with OutputCapture(handle.stdout) as capture:
            supervisor.wait(handle, timeout=10)
        assert b"level=warn" in capture.snapshot()
