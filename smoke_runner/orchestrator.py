"""Entry point that wires settings, selector, runner and aggregator together."""

from __future__ import annotations

import signal
import sys
from contextlib import contextmanager
from datetime import datetime, UTC
from typing import BinaryIO, Iterator, Optional, Sequence

from smoke_runner.attempt import AttemptRunner
from smoke_runner.candidates import CandidateSelector, resolve_pool
from smoke_runner.config import HarnessSettings, get_settings
from smoke_runner.core.exceptions import BinaryNotFoundError, HarnessError, OperatorAbort
from smoke_runner.core.logging import get_logger, register_secrets
from smoke_runner.fixtures.process_supervisor import ProcessSupervisor, resolve_binary
from smoke_runner.reporters.run_report import RunReport
from smoke_runner.verdict import Verdict, VerdictAggregator

logger = get_logger("orchestrator")


def _raise_abort(signum, frame) -> None:
    raise OperatorAbort(f"Run aborted by {signal.Signals(signum).name}")


@contextmanager
def abort_on_sigterm() -> Iterator[None]:
    """Turn SIGTERM (CI job cancellation) into an exception that unwinds cleanly."""
    if sys.platform == "win32":
        yield
        return
    try:
        previous = signal.signal(signal.SIGTERM, _raise_abort)
    except ValueError:
        # Not the main thread; signals cannot be rerouted here
        yield
        return
    try:
        yield
    finally:
        signal.signal(signal.SIGTERM, previous)


def run(
    binary_path: Optional[str] = None,
    candidates: Optional[Sequence[str]] = None,
    single_candidate: Optional[str] = None,
    single_attempt: bool = False,
    settings: Optional[HarnessSettings] = None,
    selector: Optional[CandidateSelector] = None,
    runner: Optional[AttemptRunner] = None,
    echo: Optional[BinaryIO] = None,
) -> int:
    """
    Run the integration test and return the process exit code.

    ``candidates`` overrides the environment pool; ``single_candidate`` is the
    node ID given on the command line. 0 means Pass, 1 Fail.
    """
    settings = settings or get_settings()
    if binary_path:
        settings = settings.model_copy(update={"binary_path": binary_path})

    verdict = Verdict(passed=False)
    error: Optional[HarnessError] = None
    try:
        with abort_on_sigterm():
            _run(settings, verdict, candidates, single_candidate, single_attempt, selector, runner, echo)
    except KeyboardInterrupt:
        error = OperatorAbort("Run aborted by operator")
        logger.error(error.message)
    except HarnessError as e:
        error = e
        logger.error(e.message)
        if isinstance(e, BinaryNotFoundError):
            logger.info("Usage: smoke-runner [binary_path] [node_id] [--max-tasks]")

    if isinstance(error, OperatorAbort) and verdict.attempts:
        logger.info(
            "Completed %d attempt(s) before abort: %s",
            len(verdict.attempts),
            ", ".join(verdict.outcomes),
        )

    verdict.finished_at = verdict.finished_at or datetime.now(UTC)
    if settings.report_path:
        report = RunReport(
            verdict=verdict,
            binary_path=settings.binary_path,
            success_pattern=settings.success_pattern,
            single_attempt=single_attempt,
            include_candidates=not settings.redact_candidates,
            error=error.to_dict() if error else None,
        )
        path = report.save(settings.report_path)
        logger.info("Report written to %s", path)

    if error is not None:
        return error.exit_code
    return verdict.exit_code


def _run(
    settings: HarnessSettings,
    verdict: Verdict,
    candidates: Optional[Sequence[str]],
    single_candidate: Optional[str],
    single_attempt: bool,
    selector: Optional[CandidateSelector],
    runner: Optional[AttemptRunner],
    echo: Optional[BinaryIO],
) -> Verdict:
    environment_pool = candidates if candidates is not None else settings.environment_pool
    if selector is None:
        pool = resolve_pool(environment_pool, single_candidate, settings.fallback_pool)
        selector = CandidateSelector(pool, shuffle=settings.shuffle)
    if settings.redact_candidates:
        register_secrets(selector.order)

    # Pre-flight: fail before any attempt when the binary is missing
    resolve_binary(settings.binary_path)

    logger.info("Using binary: %s", settings.binary_path)
    logger.info("Monitoring for: %s", settings.success_pattern)
    if single_attempt:
        logger.info("Running with max-tasks=1 - will exit after first proof or rate limiting")

    if runner is None:
        if echo is None and settings.echo_output:
            echo = sys.stdout.buffer
        runner = AttemptRunner(
            settings,
            supervisor=ProcessSupervisor(
                terminate_grace=settings.terminate_grace,
                disable_core_dumps=settings.disable_core_dumps,
            ),
            single_attempt=single_attempt,
            echo=echo,
        )

    return VerdictAggregator(selector, runner, verdict).run()
