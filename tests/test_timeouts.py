"""Tests for the per-attempt timeout state machine."""

from __future__ import annotations

from smoke_runner.fixtures.pattern_detector import DetectionResult, Marker
from smoke_runner.timeouts import TickAction, TimeoutPhase, TimeoutStateMachine

NOTHING = DetectionResult()
SUCCESS = DetectionResult(success=True)
RATE_LIMITED = DetectionResult(rate_limited=True, retry_after=30)


def _machine(primary: float = 60.0, grace: float = 30.0) -> TimeoutStateMachine:
    machine = TimeoutStateMachine(primary_timeout=primary, success_grace=grace)
    machine.start(0.0)
    return machine


class TestRunningPhase:

    def test_keeps_running_without_events(self):
        machine = _machine()
        for t in range(1, 60):
            assert machine.tick(float(t), alive=True, detection=NOTHING) is TickAction.CONTINUE
        assert machine.phase is TimeoutPhase.RUNNING

    def test_natural_exit_concludes(self):
        machine = _machine()
        assert machine.tick(5.0, alive=False) is TickAction.CONCLUDE
        assert machine.concluded
        assert not machine.timed_out

    def test_exit_is_checked_before_markers(self):
        machine = _machine()
        assert machine.tick(5.0, alive=False, detection=SUCCESS) is TickAction.CONCLUDE
        # Final classification scans the drained buffer instead
        assert not machine.success_seen

    def test_primary_window_expiry_escalates(self):
        machine = _machine(primary=60.0)
        assert machine.tick(59.0, alive=True, detection=NOTHING) is TickAction.CONTINUE
        assert machine.tick(60.0, alive=True, detection=NOTHING) is TickAction.TERMINATE
        assert machine.phase is TimeoutPhase.ESCALATING
        assert machine.timed_out

        machine.mark_terminated()
        assert machine.concluded

    def test_rate_limit_recorded_and_window_still_enforced(self):
        machine = _machine(primary=10.0)
        assert machine.tick(3.0, alive=True, detection=RATE_LIMITED) is TickAction.CONTINUE
        assert machine.rate_limited_seen
        assert machine.retry_after == 30
        assert machine.first_marker is Marker.RATE_LIMITED
        assert machine.tick(10.0, alive=True, detection=RATE_LIMITED) is TickAction.TERMINATE

    def test_success_on_last_tick_beats_timeout(self):
        machine = _machine(primary=10.0)
        assert machine.tick(10.0, alive=True, detection=SUCCESS) is TickAction.CONTINUE
        assert machine.phase is TimeoutPhase.SUCCESS_GRACE
        assert not machine.timed_out


class TestSuccessGrace:

    def test_success_enters_grace(self):
        machine = _machine()
        assert machine.tick(5.0, alive=True, detection=SUCCESS) is TickAction.CONTINUE
        assert machine.phase is TimeoutPhase.SUCCESS_GRACE
        assert machine.success_seen
        assert machine.first_marker_at == 5.0

    def test_exit_within_grace_concludes(self):
        machine = _machine()
        machine.tick(5.0, alive=True, detection=SUCCESS)
        assert machine.tick(6.0, alive=False) is TickAction.CONCLUDE
        assert machine.success_seen
        assert not machine.grace_expired

    def test_grace_window_is_counted_from_detection(self):
        machine = _machine(primary=60.0, grace=30.0)
        machine.tick(50.0, alive=True, detection=SUCCESS)
        # Past the primary window, still inside the grace window
        assert machine.tick(70.0, alive=True, detection=NOTHING) is TickAction.CONTINUE
        assert machine.tick(80.0, alive=True, detection=NOTHING) is TickAction.TERMINATE
        assert machine.grace_expired
        assert machine.success_seen
        assert not machine.timed_out

    def test_ticks_after_escalation_repeat_terminate(self):
        machine = _machine(primary=1.0)
        machine.tick(1.0, alive=True, detection=NOTHING)
        assert machine.tick(2.0, alive=True) is TickAction.TERMINATE
        machine.mark_terminated()
        assert machine.tick(3.0, alive=False) is TickAction.CONCLUDE
