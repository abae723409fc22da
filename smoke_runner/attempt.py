"""
Attempt Runner - One supervised worker run against one candidate.

Each attempt owns its process handle and capture buffer. Both are released on
every exit path (normal conclusion, internal failure, operator interrupt):
the worker is terminated first, then the capture is drained and closed.
"""

from __future__ import annotations

import time
from contextlib import ExitStack
from dataclasses import dataclass, field
from enum import Enum
from typing import BinaryIO, Callable, Optional

from smoke_runner.config import HarnessSettings
from smoke_runner.core.logging import attempt_var, get_logger, success
from smoke_runner.fixtures.output_capture import OutputCapture
from smoke_runner.fixtures.pattern_detector import DetectionResult, PatternDetector
from smoke_runner.fixtures.process_supervisor import ProcessSupervisor, describe_exit_code
from smoke_runner.reporters.log_extractor import LogExtractor
from smoke_runner.timeouts import TickAction, TimeoutPhase, TimeoutStateMachine

logger = get_logger("attempt")


class OutcomeKind(str, Enum):
    SUCCESS = "Success"
    RATE_LIMITED = "RateLimited"
    TIMEOUT = "Timeout"
    CRASHED = "Crashed"
    UNKNOWN = "Unknown"


@dataclass(frozen=True)
class Outcome:
    """Classified result of one attempt, fixed once the worker has exited."""

    kind: OutcomeKind
    exit_code: Optional[int] = None
    retry_after: Optional[int] = None

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    def __str__(self) -> str:
        if self.kind in (OutcomeKind.CRASHED, OutcomeKind.UNKNOWN):
            return f"{self.kind.value}({self.exit_code})"
        return self.kind.value


def classify_outcome(
    exit_code: Optional[int],
    final: DetectionResult,
    success_seen: bool = False,
    rate_limited_seen: bool = False,
    timed_out: bool = False,
    retry_after: Optional[int] = None,
) -> Outcome:
    """
    Classify an attempt.

    Precedence: Success > RateLimited > Timeout / Crashed / Unknown. A success
    marker seen while the worker ran wins over any exit code, including a
    forced shutdown during the grace window. A marker that only shows up in the
    final buffer after a non-zero exit is ``Unknown``, never ``Crashed``.
    """
    if success_seen or (exit_code == 0 and final.success):
        return Outcome(OutcomeKind.SUCCESS, exit_code)
    if final.rate_limited or rate_limited_seen:
        hint = final.retry_after if final.retry_after is not None else retry_after
        return Outcome(OutcomeKind.RATE_LIMITED, exit_code, retry_after=hint)
    if timed_out:
        return Outcome(OutcomeKind.TIMEOUT, exit_code)
    if exit_code is not None and exit_code != 0 and not final.success:
        return Outcome(OutcomeKind.CRASHED, exit_code)
    return Outcome(OutcomeKind.UNKNOWN, exit_code)


@dataclass
class AttemptRecord:
    """Everything the verdict and the report need to know about one attempt."""

    candidate: str
    label: str
    outcome: Outcome
    duration: float
    tail: list[str] = field(default_factory=list)
    snippets: list[str] = field(default_factory=list)
    terminated: bool = False
    killed: bool = False
    marker_at: Optional[float] = None


class AttemptRunner:
    """
    Compose supervisor, capture, detector and timeout machine for one run.

    ``clock`` and ``sleep`` are injectable so the loop can be driven in tests.
    """

    def __init__(
        self,
        settings: HarnessSettings,
        supervisor: Optional[ProcessSupervisor] = None,
        detector: Optional[PatternDetector] = None,
        single_attempt: bool = False,
        echo: Optional[BinaryIO] = None,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.settings = settings
        self.supervisor = supervisor or ProcessSupervisor(
            terminate_grace=settings.terminate_grace,
            disable_core_dumps=settings.disable_core_dumps,
        )
        self.detector = detector or PatternDetector.from_settings(settings)
        self.single_attempt = single_attempt
        self.echo = echo
        self.extractor = LogExtractor()
        self._clock = clock
        self._sleep = sleep

    def build_command(self, candidate: str) -> list[str]:
        max_tasks = 1 if self.single_attempt else self.settings.max_tasks
        return [
            self.settings.binary_path,
            "start",
            "--headless",
            "--max-tasks",
            str(max_tasks),
            "--node-id",
            candidate,
        ]

    def worker_env(self) -> dict[str, str]:
        return {"RUST_LOG": self.settings.worker_log_level}

    def run(self, candidate: str, label: str = "1/1") -> AttemptRecord:
        token = attempt_var.set(label)
        try:
            return self._run(candidate, label)
        finally:
            attempt_var.reset(token)

    def _run(self, candidate: str, label: str) -> AttemptRecord:
        settings = self.settings
        machine = TimeoutStateMachine(settings.primary_timeout, settings.success_grace)

        logger.info("Starting CLI process...")
        with ExitStack() as stack:
            handle = self.supervisor.spawn(self.build_command(candidate), self.worker_env())
            capture = OutputCapture(
                handle.stdout, echo=self.echo, drain_timeout=settings.drain_timeout
            )
            # LIFO: the worker is stopped before the capture is closed
            stack.callback(capture.close)
            stack.callback(self.supervisor.terminate, handle)
            capture.start()

            machine.start(self._clock())
            next_progress = settings.progress_interval

            while True:
                now = self._clock()
                alive = self.supervisor.is_alive(handle)
                detection = self.detector.scan(capture.snapshot()) if alive else None
                phase_before = machine.phase
                action = machine.tick(now, alive, detection)

                if action is TickAction.CONCLUDE:
                    if phase_before is TimeoutPhase.SUCCESS_GRACE:
                        logger.info("CLI exited cleanly after success")
                    break

                if action is TickAction.TERMINATE:
                    if machine.grace_expired:
                        logger.info(
                            "CLI still running after %gs, terminating...",
                            settings.success_grace,
                        )
                    else:
                        logger.info(
                            "CLI process timed out after %g seconds, terminating...",
                            settings.primary_timeout,
                        )
                    self.supervisor.terminate(handle)
                    machine.mark_terminated()
                    break

                if (
                    phase_before is TimeoutPhase.RUNNING
                    and machine.phase is TimeoutPhase.SUCCESS_GRACE
                ):
                    success(logger, "Success pattern detected early, waiting for clean exit...")

                elapsed = machine.elapsed(now)
                if elapsed >= next_progress:
                    self._report_progress(capture, elapsed)
                    next_progress += settings.progress_interval

                self._sleep(settings.tick_interval)

            exit_code = self.supervisor.wait(handle)
            capture.close()
            final = self.detector.scan(capture.snapshot())
            tail = capture.tail(settings.tail_lines)
            output = capture.text()

        outcome = classify_outcome(
            exit_code,
            final,
            success_seen=machine.success_seen,
            rate_limited_seen=machine.rate_limited_seen,
            timed_out=machine.timed_out,
            retry_after=machine.retry_after,
        )
        record = AttemptRecord(
            candidate=candidate,
            label=label,
            outcome=outcome,
            duration=machine.elapsed(self._clock()),
            tail=tail,
            terminated=handle.was_terminated,
            killed=handle.was_killed,
            marker_at=machine.first_marker_at,
        )
        if not outcome.is_success:
            record.snippets = [
                s.to_string() for s in self.extractor.extract_error_snippets(output)
            ]
        self._report_conclusion(record)
        return record

    def _report_progress(self, capture: OutputCapture, elapsed: float) -> None:
        logger.info(
            "CLI still running... (%d/%d seconds)",
            int(elapsed),
            int(self.settings.primary_timeout),
        )
        recent = capture.tail(self.settings.progress_tail_lines)
        if recent:
            logger.info("Recent activity:\n%s", "\n".join(f"    {ln}" for ln in recent))

    def _report_conclusion(self, record: AttemptRecord) -> None:
        outcome = record.outcome
        logger.info("Process %s", describe_exit_code(outcome.exit_code))

        if outcome.kind is OutcomeKind.SUCCESS:
            success(logger, "Success pattern detected: %s", self.settings.success_pattern)
        elif outcome.kind is OutcomeKind.RATE_LIMITED:
            hint = f" (retry in {outcome.retry_after}s)" if outcome.retry_after else ""
            if self.single_attempt:
                logger.info("Rate limited%s, rotating to next node", hint)
            else:
                logger.warning("Rate limited%s, rotating to next node", hint)
        elif outcome.kind is OutcomeKind.TIMEOUT:
            logger.warning("No marker within %gs", self.settings.primary_timeout)
        elif outcome.kind is OutcomeKind.CRASHED:
            logger.error("CLI crashed: %s", describe_exit_code(outcome.exit_code))
        else:
            logger.info("No success pattern found in output")

        if self.settings.tail_lines:
            lines = "\n".join(f"  {ln}" for ln in record.tail) or "  (no output)"
            logger.info("CLI output (last %d lines):\n%s", self.settings.tail_lines, lines)
