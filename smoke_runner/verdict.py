"""Verdict Aggregator - rotate through candidates until one attempt succeeds."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, UTC
from typing import Optional

from smoke_runner.attempt import AttemptRecord, AttemptRunner, OutcomeKind
from smoke_runner.candidates import CandidateSelector
from smoke_runner.core.logging import get_logger, success

logger = get_logger("verdict")


@dataclass
class Verdict:
    """Aggregate result over every candidate that was tried."""

    passed: bool
    attempts: list[AttemptRecord] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(UTC))
    finished_at: Optional[datetime] = None

    @property
    def exit_code(self) -> int:
        return 0 if self.passed else 1

    @property
    def label(self) -> str:
        return "Pass" if self.passed else "Fail"

    @property
    def outcomes(self) -> list[str]:
        return [str(a.outcome) for a in self.attempts]

    @property
    def winner(self) -> Optional[AttemptRecord]:
        for attempt in self.attempts:
            if attempt.outcome.is_success:
                return attempt
        return None


class VerdictAggregator:
    """
    Try candidates in selector order.

    Stops at the first Success. Rate limiting, timeouts and crashes rotate to
    the next candidate; only exhaustion yields a Fail.
    """

    def __init__(
        self,
        selector: CandidateSelector,
        runner: AttemptRunner,
        verdict: Optional[Verdict] = None,
    ):
        self.selector = selector
        self.runner = runner
        # Filled in place, so attempts survive an interrupted run
        self.verdict = verdict if verdict is not None else Verdict(passed=False)

    def run(self) -> Verdict:
        verdict = self.verdict
        total = len(self.selector)

        for index, candidate in enumerate(self.selector, start=1):
            record = self.runner.run(candidate, label=f"{index}/{total}")
            verdict.attempts.append(record)

            if record.outcome.is_success:
                verdict.passed = True
                break

            if record.outcome.kind is OutcomeKind.CRASHED:
                logger.error(
                    "Node %d/%d: unexpected crash (%s), trying next node",
                    index,
                    total,
                    record.outcome,
                )
            elif index < total:
                logger.info("Node %d/%d: %s, trying next node", index, total, record.outcome)

        verdict.finished_at = datetime.now(UTC)
        self._report(verdict)
        return verdict

    def _report(self, verdict: Verdict) -> None:
        lines = [
            f"  {a.label}: {a.outcome} ({a.duration:.1f}s)" for a in verdict.attempts
        ]
        logger.info("Attempt summary:\n%s", "\n".join(lines) or "  (no attempts)")

        if verdict.passed:
            success(logger, "Integration test PASSED - CLI successfully submitted proof")
            return

        settings = self.runner.settings
        logger.error(
            "Integration test FAILED - No proof submission detected on %d node(s)",
            len(verdict.attempts),
        )
        logger.info("Checked for success patterns:\n  - %s", settings.success_pattern)
