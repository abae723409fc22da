"""
Pattern Detector - Finds success and rate-limit markers in worker output.

The detector always scans the whole captured buffer. Markers can be split
across reads or sit on a line without a trailing newline, so diff-based or
line-anchored matching would miss them.

The match strategy is a small interface (``MarkerMatcher``) so the worker's
free-form log text can later be replaced by structured events without
touching the timeout logic.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Protocol

from smoke_runner.config import HarnessSettings

RETRY_AFTER = re.compile(rb"Rate limited - retrying in (\d+)s")


class Marker(str, Enum):
    """Semantic events the worker announces in its output."""

    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"


class MarkerMatcher(Protocol):
    def found_in(self, buffer: bytes) -> bool: ...


class SubstringMatcher:
    """Plain containment check on raw bytes."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        self._needle = pattern.encode("utf-8")

    def found_in(self, buffer: bytes) -> bool:
        return self._needle in buffer


class RegexMatcher:
    """Unanchored regular expression search on raw bytes."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        self._regex = re.compile(pattern.encode("utf-8"))

    def found_in(self, buffer: bytes) -> bool:
        return self._regex.search(buffer) is not None


def build_matcher(pattern: str, mode: str = "substring") -> MarkerMatcher:
    if mode == "regex":
        return RegexMatcher(pattern)
    return SubstringMatcher(pattern)


@dataclass(frozen=True)
class DetectionResult:
    """Markers present in one buffer snapshot."""

    success: bool = False
    rate_limited: bool = False
    retry_after: Optional[int] = None

    @property
    def marker(self) -> Optional[Marker]:
        """Highest-precedence marker; success always wins."""
        if self.success:
            return Marker.SUCCESS
        if self.rate_limited:
            return Marker.RATE_LIMITED
        return None


class PatternDetector:
    """
    Scan captured output for the success and rate-limit markers.

    Usage:
        detector = PatternDetector.from_settings(settings)
        result = detector.scan(capture.snapshot())
        if result.marker is Marker.SUCCESS:
            ...
    """

    def __init__(self, success: MarkerMatcher, rate_limited: MarkerMatcher):
        self.success = success
        self.rate_limited = rate_limited

    @classmethod
    def from_settings(cls, settings: HarnessSettings) -> "PatternDetector":
        return cls(
            success=build_matcher(settings.success_pattern, settings.match_mode),
            rate_limited=build_matcher(settings.rate_limit_pattern, settings.match_mode),
        )

    def scan(self, buffer: bytes) -> DetectionResult:
        if not buffer:
            return DetectionResult()

        rate_limited = self.rate_limited.found_in(buffer)
        retry_after = None
        if rate_limited:
            hints = RETRY_AFTER.findall(buffer)
            if hints:
                retry_after = int(hints[-1])

        return DetectionResult(
            success=self.success.found_in(buffer),
            rate_limited=rate_limited,
            retry_after=retry_after,
        )
