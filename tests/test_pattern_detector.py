"""Tests for marker detection on captured output."""

from __future__ import annotations

from smoke_runner.config import DEFAULT_SUCCESS_PATTERN, HarnessSettings
from smoke_runner.fixtures.pattern_detector import (
    DetectionResult,
    Marker,
    PatternDetector,
    RegexMatcher,
    SubstringMatcher,
)


def _detector(**overrides) -> PatternDetector:
    return PatternDetector.from_settings(HarnessSettings(_env_file=None, **overrides))


class TestPatternDetector:

    def test_empty_buffer_has_no_marker(self):
        assert _detector().scan(b"").marker is None

    def test_success_marker_mid_line_without_newline(self):
        buffer = b"noise [12:00] Step 4 of 4: Proof submitted successfully for task 9"
        result = _detector().scan(buffer)
        assert result.success
        assert result.marker is Marker.SUCCESS

    def test_marker_split_across_writes_found_in_full_buffer(self):
        detector = _detector()
        first = b"Step 4 of 4: Proof "
        assert detector.scan(first).marker is None
        assert detector.scan(first + b"submitted successfully").marker is Marker.SUCCESS

    def test_rate_limit_with_retry_hint(self):
        result = _detector().scan(b"WARN Rate limited - retrying in 45s\n")
        assert result.marker is Marker.RATE_LIMITED
        assert result.retry_after == 45

    def test_rate_limit_without_hint(self):
        result = _detector().scan(b"Rate limited - no retry time specified\n")
        assert result.rate_limited
        assert result.retry_after is None

    def test_success_takes_precedence_over_rate_limit(self):
        buffer = b"Rate limited - retrying in 5s\n" + DEFAULT_SUCCESS_PATTERN.encode() + b"\n"
        result = _detector().scan(buffer)
        assert result.success and result.rate_limited
        assert result.marker is Marker.SUCCESS

    def test_invalid_utf8_does_not_break_scan(self):
        buffer = b"\xff\xfe garbage " + DEFAULT_SUCCESS_PATTERN.encode()
        assert _detector().scan(buffer).success

    def test_regex_mode(self):
        detector = _detector(match_mode="regex", success_pattern=r"Proof submitted \w+")
        assert isinstance(detector.success, RegexMatcher)
        assert detector.scan(b"Step 4 of 4: Proof submitted successfully").success

    def test_substring_mode_treats_pattern_literally(self):
        detector = _detector(success_pattern="a.c")
        assert isinstance(detector.success, SubstringMatcher)
        assert not detector.scan(b"abc").success
        assert detector.scan(b"xa.cx").success


class TestDetectionResult:

    def test_default_is_empty(self):
        assert DetectionResult().marker is None
