"""
Timeout state machine for one attempt.

    RUNNING --success marker--> SUCCESS_GRACE --exit / grace expired--> CONCLUDED
    RUNNING --primary window expired--> ESCALATING --terminated--> CONCLUDED
    RUNNING --natural exit--> CONCLUDED

The worker's clean shutdown is slower than its success message, so a detected
success gets a second window to exit on its own before it is stopped.

The machine is driven by ``tick`` and never touches the process itself; it
returns the action the caller has to carry out.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from smoke_runner.fixtures.pattern_detector import DetectionResult, Marker


class TimeoutPhase(str, Enum):
    RUNNING = "running"
    SUCCESS_GRACE = "success_grace"
    ESCALATING = "escalating"
    CONCLUDED = "concluded"


class TickAction(str, Enum):
    CONTINUE = "continue"
    TERMINATE = "terminate"
    CONCLUDE = "conclude"


class TimeoutStateMachine:
    """Decides, tick by tick, whether an attempt keeps running."""

    def __init__(self, primary_timeout: float, success_grace: float):
        self.primary_timeout = primary_timeout
        self.success_grace = success_grace
        self.phase = TimeoutPhase.RUNNING
        self.started_at: Optional[float] = None
        self.grace_started_at: Optional[float] = None
        self.success_seen = False
        self.rate_limited_seen = False
        self.retry_after: Optional[int] = None
        self.first_marker: Optional[Marker] = None
        self.first_marker_at: Optional[float] = None
        self.timed_out = False
        self.grace_expired = False

    @property
    def concluded(self) -> bool:
        return self.phase is TimeoutPhase.CONCLUDED

    def start(self, now: float) -> None:
        self.started_at = now

    def elapsed(self, now: float) -> float:
        return 0.0 if self.started_at is None else now - self.started_at

    def tick(
        self,
        now: float,
        alive: bool,
        detection: Optional[DetectionResult] = None,
    ) -> TickAction:
        """
        Advance one tick.

        ``alive`` must be sampled before ``detection`` so that a worker which
        printed the marker and exited is concluded as a natural exit.
        """
        if self.started_at is None:
            self.start(now)

        if self.phase in (TimeoutPhase.ESCALATING, TimeoutPhase.CONCLUDED):
            return TickAction.CONCLUDE if self.concluded else TickAction.TERMINATE

        if not alive:
            self.phase = TimeoutPhase.CONCLUDED
            return TickAction.CONCLUDE

        if self.phase is TimeoutPhase.RUNNING:
            if detection is not None:
                self._record(detection, now)
            if self.success_seen:
                self.phase = TimeoutPhase.SUCCESS_GRACE
                self.grace_started_at = now
                return TickAction.CONTINUE
            if self.elapsed(now) >= self.primary_timeout:
                self.timed_out = True
                self.phase = TimeoutPhase.ESCALATING
                return TickAction.TERMINATE
            return TickAction.CONTINUE

        # SUCCESS_GRACE
        if now - self.grace_started_at >= self.success_grace:
            self.grace_expired = True
            self.phase = TimeoutPhase.ESCALATING
            return TickAction.TERMINATE
        return TickAction.CONTINUE

    def mark_terminated(self) -> None:
        """The caller confirmed the escalated process is gone."""
        self.phase = TimeoutPhase.CONCLUDED

    def _record(self, detection: DetectionResult, now: float) -> None:
        if detection.rate_limited:
            self.rate_limited_seen = True
            if detection.retry_after is not None:
                self.retry_after = detection.retry_after
        if detection.success:
            self.success_seen = True
        if self.first_marker is None and detection.marker is not None:
            self.first_marker = detection.marker
            self.first_marker_at = self.elapsed(now)
