"""
Process Supervisor - Spawns the worker and shuts it down in two stages.

Shutdown sequence (``terminate``):
1. SIGTERM to the worker's process group
2. Wait up to ``terminate_grace`` seconds
3. SIGKILL if it is still alive
4. Reap it, so the exit code is always known when ``terminate`` returns
"""

from __future__ import annotations

import os
import shutil
import signal
import subprocess
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, Sequence

from smoke_runner.core.exceptions import BinaryNotFoundError, TerminationEscalationRequired
from smoke_runner.core.logging import get_logger

logger = get_logger("supervisor")

# Shell-style codes for signal deaths (128 + signum), as `wait` reports them
EXIT_SIGTERM = 128 + 15
EXIT_SIGKILL = 128 + 9
EXIT_TIMEOUT = 124


def describe_exit_code(code: Optional[int]) -> str:
    """Human description that tells signal deaths from natural exits."""
    if code is None:
        return "still running"
    if code == 0:
        return "exited successfully"
    if code < 0:
        try:
            name = signal.Signals(-code).name
        except ValueError:
            name = f"signal {-code}"
        return f"terminated by {name}"
    if code == EXIT_SIGTERM:
        return "terminated by SIGTERM"
    if code == EXIT_SIGKILL:
        return "terminated by SIGKILL"
    if code == EXIT_TIMEOUT:
        return "timed out"
    return f"exited with code {code}"


def resolve_binary(binary_path: str) -> str:
    """Resolve the worker executable or raise BinaryNotFoundError."""
    path = Path(binary_path)
    if path.is_file():
        return str(path)
    # Bare names ("nexus-network") are looked up on PATH
    if os.sep not in binary_path:
        found = shutil.which(binary_path)
        if found:
            return found
    raise BinaryNotFoundError(binary_path)


def _disable_core_dumps() -> None:
    import resource

    resource.setrlimit(resource.RLIMIT_CORE, (0, 0))


@dataclass
class ProcessHandle:
    """A spawned worker and what the supervisor did to it."""

    process: subprocess.Popen
    command: list[str]
    started_at: float = field(default_factory=time.monotonic)
    term_signals: int = 0
    kill_signals: int = 0

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def stdout(self):
        return self.process.stdout

    @property
    def exit_code(self) -> Optional[int]:
        """Final exit code, None while the process runs."""
        return self.process.returncode

    @property
    def was_terminated(self) -> bool:
        return self.term_signals > 0 or self.kill_signals > 0

    @property
    def was_killed(self) -> bool:
        return self.kill_signals > 0


class ProcessSupervisor:
    """
    Spawn, poll and stop one worker process at a time.

    Usage:
        supervisor = ProcessSupervisor(terminate_grace=2.0)
        handle = supervisor.spawn([binary, "start", "--headless"], env={...})
        while supervisor.is_alive(handle):
            ...
        supervisor.terminate(handle)   # no-op once exited
    """

    def __init__(self, terminate_grace: float = 2.0, disable_core_dumps: bool = True):
        self.terminate_grace = terminate_grace
        self.disable_core_dumps = disable_core_dumps

    def spawn(
        self,
        command: Sequence[str],
        env: Optional[Mapping[str, str]] = None,
    ) -> ProcessHandle:
        """Start the worker with stdout and stderr merged into one pipe."""
        if not command:
            raise ValueError("command must not be empty")
        argv = [resolve_binary(command[0]), *command[1:]]

        child_env = dict(os.environ)
        if env:
            child_env.update(env)

        popen_kwargs = {
            "env": child_env,
            "stdin": subprocess.DEVNULL,
            "stdout": subprocess.PIPE,
            "stderr": subprocess.STDOUT,
        }
        # New process group so the whole worker tree can be signalled
        if os.name == "nt":
            popen_kwargs["creationflags"] = getattr(subprocess, "CREATE_NEW_PROCESS_GROUP", 0)
        else:
            popen_kwargs["start_new_session"] = True
            if self.disable_core_dumps:
                popen_kwargs["preexec_fn"] = _disable_core_dumps

        try:
            process = subprocess.Popen(argv, **popen_kwargs)  # noqa: S603
        except (FileNotFoundError, PermissionError) as e:
            raise BinaryNotFoundError(argv[0]) from e

        logger.debug("Spawned worker pid=%d", process.pid)
        return ProcessHandle(process=process, command=argv)

    def is_alive(self, handle: ProcessHandle) -> bool:
        return handle.process.poll() is None

    def wait(self, handle: ProcessHandle, timeout: Optional[float] = None) -> int:
        """Block until the worker exits and return its exit code."""
        return handle.process.wait(timeout=timeout)

    def terminate(self, handle: ProcessHandle) -> int:
        """
        Stop the worker: SIGTERM, grace window, then SIGKILL.

        Idempotent. Returns the exit code once the process is confirmed dead.
        """
        if not self.is_alive(handle):
            return self.wait(handle)

        try:
            return self._stop_gracefully(handle)
        except TerminationEscalationRequired as e:
            logger.warning(e.message)
            self._signal(handle, signal.SIGKILL if os.name != "nt" else None)
            handle.kill_signals += 1
            return self.wait(handle)

    def _stop_gracefully(self, handle: ProcessHandle) -> int:
        self._signal(handle, signal.SIGTERM)
        handle.term_signals += 1
        try:
            return self.wait(handle, timeout=self.terminate_grace)
        except subprocess.TimeoutExpired:
            raise TerminationEscalationRequired(handle.pid, self.terminate_grace) from None

    def _signal(self, handle: ProcessHandle, sig: Optional[int]) -> None:
        process = handle.process
        if sig is None:
            process.kill()
            return
        if os.name == "nt":
            process.terminate()
            return
        try:
            os.killpg(process.pid, sig)
        except ProcessLookupError:
            # Group already gone; fall back to the leader itself
            try:
                process.send_signal(sig)
            except ProcessLookupError:
                pass
